# Drawing detections, landmarks and tracks on frames

from typing import Dict, Sequence

import cv2

from vision_pipeline.data_types import Channel, DetectionResult

OBJECT_COLOR = (0, 0, 255)
FACE_COLOR = (0, 255, 255)
LANDMARK_COLOR = (255, 255, 0)
TRACK_COLOR = (0, 255, 0)


def _label(frame, text: str, origin, color) -> None:
    cv2.putText(
        frame,
        text,
        origin,
        cv2.FONT_HERSHEY_SIMPLEX,
        0.5,
        color,
        1,
        cv2.LINE_AA,
    )


def _pose_text(roll, yaw, pitch) -> str:
    parts = [f"{name} {value:.0f}" for name, value in (("roll", roll), ("yaw", yaw), ("pitch", pitch))
             if value is not None]
    return " ".join(parts)


def draw_observations(frame, snapshot: Dict[Channel, Sequence[DetectionResult]]):
    """
    Draw the published result snapshots on the frame (in place).

    frame: numpy array (BGR) the boxes are scaled to
    snapshot: channel -> results, as returned by ResultPublisher.snapshot()
    """

    h, w = frame.shape[:2]

    # ----- Draw objects -----
    for obj in snapshot.get(Channel.OBJECTS, ()):
        x1, y1, x2, y2 = obj.box.to_pixels(w, h)
        cv2.rectangle(frame, (x1, y1), (x2, y2), OBJECT_COLOR, 2)
        _label(frame, f"{obj.label} {obj.confidence:.2f}", (x1, max(0, y1 - 5)), OBJECT_COLOR)

    # ----- Draw faces -----
    for face in snapshot.get(Channel.FACES, ()):
        x1, y1, x2, y2 = face.box.to_pixels(w, h)
        cv2.rectangle(frame, (x1, y1), (x2, y2), FACE_COLOR, 2)
        if face.capture_quality is not None:
            _label(frame, f"quality {face.capture_quality:.2f}", (x1, min(h - 1, y2 + 15)), FACE_COLOR)
        pose = _pose_text(face.roll, face.yaw, face.pitch)
        if pose:
            _label(frame, pose, (x1, min(h - 1, y2 + 30)), FACE_COLOR)

    # ----- Draw landmarks -----
    for landmarks in snapshot.get(Channel.LANDMARKS, ()):
        # head pose from the fitted landmarks, above the face box
        pose = _pose_text(landmarks.roll, landmarks.yaw, landmarks.pitch)
        if pose:
            x1, y1, _, _ = landmarks.box.to_pixels(w, h)
            _label(frame, pose, (x1, max(0, y1 - 5)), LANDMARK_COLOR)
        for px, py in landmarks.points:
            cv2.circle(frame, (int(px * w), int(py * h)), 1, LANDMARK_COLOR, -1)

    # ----- Draw tracks -----
    for track in snapshot.get(Channel.TRACKED, ()):
        x1, y1, x2, y2 = track.box.to_pixels(w, h)
        cv2.rectangle(frame, (x1, y1), (x2, y2), TRACK_COLOR, 2)
        _label(frame, str(track.uuid)[:8], (x1 + 3, min(h - 1, y1 + 15)), TRACK_COLOR)

    return frame
