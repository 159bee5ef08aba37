import logging
import math
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import cv2
import numpy as np
from ultralytics import YOLO

from vision_pipeline.config import DetectionConfig, FaceConfig
from vision_pipeline.data_types import BoundingBox, FaceDetection, FaceLandmarks, ObjectDetection

logger = logging.getLogger(__name__)


class BaseObjectDetector(ABC):
    """
    Abstract interface for all object detectors.
    """

    @abstractmethod
    def detect(self, frame: np.ndarray) -> List[ObjectDetection]:
        """
        Run detection on a single BGR frame.
        Boxes are normalized to the frame that was passed in.
        """
        raise NotImplementedError


class DummyObjectDetector(BaseObjectDetector):
    """
    Placeholder detector. Returns no detections.
    """

    def detect(self, frame: np.ndarray) -> List[ObjectDetection]:
        return []


class YoloObjectDetector(BaseObjectDetector):
    """
    YOLO detector using the ultralytics package.

    Behavior:
      - If a weights file exists at DetectionConfig.model_path, use it.
      - Otherwise, fall back to DetectionConfig.fallback_model, which
        ultralytics downloads on first use.
    """

    def __init__(self, config: DetectionConfig):
        self.config = config

        weights_path: Path = Path(self.config.model_path)

        if weights_path.is_file():
            self.model = YOLO(str(weights_path))
        else:
            logger.warning("Weights not found at %s, using %s", weights_path, config.fallback_model)
            self.model = YOLO(config.fallback_model)

        # model.names may be dict or list; both support [] lookup
        self.class_names = self.model.names
        # a YOLO model must not run on two engine workers at once
        self._lock = threading.Lock()

    def detect(self, frame: np.ndarray) -> List[ObjectDetection]:
        with self._lock:
            results = self.model(
                frame,
                imgsz=(self.config.input_height, self.config.input_width),
                conf=self.config.confidence_threshold,
                iou=self.config.iou_threshold,
                max_det=self.config.max_detections,
                device=self.config.device,
                verbose=False,
            )[0]

        detections: List[ObjectDetection] = []

        if results.boxes is None:
            return detections

        # Each box in results.boxes has xyxyn, conf, cls
        for box in results.boxes:
            score = float(box.conf[0].item())
            class_id = int(box.cls[0].item())
            x1, y1, x2, y2 = box.xyxyn[0].tolist()

            detections.append(ObjectDetection(
                box=BoundingBox(x=x1, y=y1, width=x2 - x1, height=y2 - y1).clamped(),
                confidence=score,
                label=str(self.class_names[class_id]),
                class_id=class_id,
            ))

        return detections


# ---------- Faces ----------

class BaseFaceDetector(ABC):
    """
    Abstract interface for face detectors.
    """

    @abstractmethod
    def detect(self, frame: np.ndarray) -> List[FaceDetection]:
        raise NotImplementedError


class DummyFaceDetector(BaseFaceDetector):

    def detect(self, frame: np.ndarray) -> List[FaceDetection]:
        return []


def pose_from_keypoints(keypoints: np.ndarray) -> Tuple[float, float, float]:
    """
    Rough (roll, yaw, pitch) in degrees from the five YuNet keypoints:
    right eye, left eye, nose tip, right and left mouth corners.
    """
    right_eye, left_eye, nose = keypoints[0], keypoints[1], keypoints[2]
    dx = float(left_eye[0] - right_eye[0])
    dy = float(left_eye[1] - right_eye[1])
    roll = math.degrees(math.atan2(dy, dx))

    eye_distance = math.hypot(dx, dy)
    if eye_distance <= 0.0:
        return roll, 0.0, 0.0
    mid_x = (left_eye[0] + right_eye[0]) / 2.0
    offset = 2.0 * float(nose[0] - mid_x) / eye_distance
    yaw = math.degrees(math.asin(max(-1.0, min(1.0, offset))))

    # nose tip sits halfway between the eye line and the mouth line when level
    eye_y = (left_eye[1] + right_eye[1]) / 2.0
    mouth_y = (keypoints[3][1] + keypoints[4][1]) / 2.0
    face_height = float(mouth_y - eye_y)
    if face_height <= 0.0:
        return roll, yaw, 0.0
    offset = 2.0 * float(nose[1] - (eye_y + mouth_y) / 2.0) / face_height
    pitch = math.degrees(math.asin(max(-1.0, min(1.0, offset))))
    return roll, yaw, pitch


def capture_quality(score: float, yaw: float, pitch: float) -> float:
    """
    Face capture quality in [0, 1]: the detector score, lowered as the
    head turns away from the camera.
    """
    frontal = math.cos(math.radians(yaw)) * math.cos(math.radians(pitch))
    return float(max(0.0, min(1.0, score * max(0.0, frontal))))


class YuNetFaceDetector(BaseFaceDetector):
    """
    Face detector backed by OpenCV's YuNet model (cv2.FaceDetectorYN).
    """

    def __init__(self, config: FaceConfig):
        self.config = config
        self.detector = cv2.FaceDetectorYN.create(
            str(config.detector_model_path),
            "",
            (320, 320),
            config.score_threshold,
            config.nms_threshold,
        )
        self._lock = threading.Lock()

    def detect(self, frame: np.ndarray) -> List[FaceDetection]:
        h, w = frame.shape[:2]

        with self._lock:
            self.detector.setInputSize((w, h))
            _, faces = self.detector.detect(frame)

        if faces is None:
            return []

        detections: List[FaceDetection] = []
        for row in faces:
            x, y, fw, fh = (float(v) for v in row[:4])
            keypoints = np.asarray(row[4:14], dtype=np.float32).reshape(5, 2)
            roll, yaw, pitch = pose_from_keypoints(keypoints)
            score = float(row[14])

            detections.append(FaceDetection(
                box=BoundingBox.from_pixels(x, y, x + fw, y + fh, w, h).clamped(),
                confidence=score,
                roll=roll,
                yaw=yaw,
                pitch=pitch,
                capture_quality=capture_quality(score, yaw, pitch),
            ))

        return detections


# ---------- Face landmarks ----------

# 68-point iBUG layout
LANDMARK_REGIONS: Dict[str, Tuple[int, int]] = {
    "face_contour": (0, 17),
    "right_eyebrow": (17, 22),
    "left_eyebrow": (22, 27),
    "nose_crest": (27, 31),
    "nose": (31, 36),
    "right_eye": (36, 42),
    "left_eye": (42, 48),
    "outer_lips": (48, 60),
    "inner_lips": (60, 68),
}

# 3D model points for head pose (units arbitrary, consistent)
FACE_3D_MODEL = np.array([
    (0.0, 0.0, 0.0),           # nose tip
    (0.0, -330.0, -65.0),      # chin
    (-225.0, 170.0, -135.0),   # left eye left corner
    (225.0, 170.0, -135.0),    # right eye right corner
    (-150.0, -150.0, -125.0),  # left mouth corner
    (150.0, -150.0, -125.0),   # right mouth corner
], dtype=np.float32)

POSE_LANDMARK_IDX = (30, 8, 36, 45, 48, 54)


def rotation_to_euler(rotation: np.ndarray) -> Tuple[float, float, float]:
    """
    Returns (pitch, yaw, roll) in degrees.
    """
    sy = math.sqrt(rotation[0, 0] ** 2 + rotation[1, 0] ** 2)
    if sy >= 1e-6:
        x = math.atan2(rotation[2, 1], rotation[2, 2])
        y = math.atan2(-rotation[2, 0], sy)
        z = math.atan2(rotation[1, 0], rotation[0, 0])
    else:
        x = math.atan2(-rotation[1, 2], rotation[1, 1])
        y = math.atan2(-rotation[2, 0], sy)
        z = 0.0
    return math.degrees(x), math.degrees(y), math.degrees(z)


def estimate_head_pose(points: np.ndarray, frame_width: int, frame_height: int
                       ) -> Optional[Tuple[float, float, float]]:
    """
    Head pose (pitch, yaw, roll) from 68 landmarks in pixels, or None.
    """
    image_points = np.asarray(points, dtype=np.float32)[list(POSE_LANDMARK_IDX)]
    focal_length = float(frame_width)
    camera_matrix = np.array([
        [focal_length, 0, frame_width / 2.0],
        [0, focal_length, frame_height / 2.0],
        [0, 0, 1],
    ], dtype=np.float32)
    dist_coeffs = np.zeros((4, 1), dtype=np.float32)

    ok, rvec, _ = cv2.solvePnP(FACE_3D_MODEL, image_points, camera_matrix, dist_coeffs,
                               flags=cv2.SOLVEPNP_ITERATIVE)
    if not ok:
        return None
    rotation, _ = cv2.Rodrigues(rvec)
    return rotation_to_euler(rotation)


class BaseLandmarkDetector(ABC):
    """
    Abstract interface for face landmark detectors.
    """

    @abstractmethod
    def detect(self, frame: np.ndarray, faces: List[FaceDetection]) -> List[FaceLandmarks]:
        """
        Fit landmarks for each face found in the frame.
        """
        raise NotImplementedError


class DummyLandmarkDetector(BaseLandmarkDetector):

    def detect(self, frame: np.ndarray, faces: List[FaceDetection]) -> List[FaceLandmarks]:
        return []


class LbfLandmarkDetector(BaseLandmarkDetector):
    """
    68-point landmarks with OpenCV's LBF facemark (opencv-contrib).
    """

    def __init__(self, config: FaceConfig):
        self.config = config
        self.facemark = cv2.face.createFacemarkLBF()
        self.facemark.loadModel(str(config.landmark_model_path))
        self._lock = threading.Lock()

    def detect(self, frame: np.ndarray, faces: List[FaceDetection]) -> List[FaceLandmarks]:
        if not faces:
            return []

        h, w = frame.shape[:2]
        rects = []
        for face in faces:
            x1, y1, x2, y2 = face.box.to_pixels(w, h)
            rects.append((x1, y1, x2 - x1, y2 - y1))
        gray = cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY)

        with self._lock:
            ok, shapes = self.facemark.fit(gray, np.array(rects, dtype=np.int32))

        if not ok:
            return []

        results: List[FaceLandmarks] = []
        for face, shape in zip(faces, shapes):
            points = np.asarray(shape, dtype=np.float32).reshape(-1, 2)
            regions = {
                name: [(float(px) / w, float(py) / h) for px, py in points[start:end]]
                for name, (start, end) in LANDMARK_REGIONS.items()
            }
            pose = estimate_head_pose(points, w, h)
            pitch, yaw, roll = pose if pose is not None else (None, None, None)

            results.append(FaceLandmarks(
                box=face.box,
                confidence=face.confidence,
                regions=regions,
                roll=roll,
                yaw=yaw,
                pitch=pitch,
            ))

        return results
