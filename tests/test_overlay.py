from unittest.mock import patch

import numpy as np

from conftest import make_face, make_object, tracked

from vision_pipeline.data_types import BoundingBox, Channel, FaceDetection, FaceLandmarks
from vision_pipeline.overlay import OBJECT_COLOR, TRACK_COLOR, draw_observations


def empty_snapshot():
    return {channel: () for channel in Channel}


def test_empty_snapshot_leaves_frame_untouched(frame):
    draw_observations(frame, empty_snapshot())

    assert not frame.any()


def test_object_box_is_drawn_at_frame_scale(frame):
    snapshot = empty_snapshot()
    snapshot[Channel.OBJECTS] = (make_object(BoundingBox(0.25, 0.25, 0.5, 0.5)),)

    draw_observations(frame, snapshot)

    # left edge of the box at x = 160
    assert tuple(frame[240, 160]) == OBJECT_COLOR


def test_all_channels_are_drawn(frame):
    face = make_face(BoundingBox(0.1, 0.1, 0.2, 0.2))
    snapshot = {
        Channel.OBJECTS: (make_object(BoundingBox(0.6, 0.6, 0.2, 0.2)),),
        Channel.FACES: (face,),
        Channel.LANDMARKS: (FaceLandmarks(box=face.box, confidence=0.9, regions={"nose": [(0.5, 0.1)]}),),
        Channel.TRACKED: (tracked(face, 0.8, BoundingBox(0.1, 0.5, 0.2, 0.2)),),
    }

    draw_observations(frame, snapshot)

    assert frame[48, 320].any()  # landmark point
    assert tuple(frame[288, 64]) == TRACK_COLOR
    assert np.count_nonzero(frame) > 0


def test_face_quality_and_head_pose_are_labelled(frame):
    face = FaceDetection(box=BoundingBox(0.1, 0.1, 0.2, 0.2), confidence=0.9,
                         roll=5.0, yaw=-12.0, pitch=8.0, capture_quality=0.73)
    snapshot = empty_snapshot()
    snapshot[Channel.FACES] = (face,)
    snapshot[Channel.LANDMARKS] = (FaceLandmarks(box=face.box, confidence=0.9, roll=3.0, yaw=20.0, pitch=-4.0),)

    with patch("vision_pipeline.overlay._label") as label:
        draw_observations(frame, snapshot)

    texts = [c.args[1] for c in label.call_args_list]
    assert "quality 0.73" in texts
    assert "roll 5 yaw -12 pitch 8" in texts
    assert "roll 3 yaw 20 pitch -4" in texts


def test_missing_pose_is_not_labelled(frame):
    snapshot = empty_snapshot()
    snapshot[Channel.FACES] = (FaceDetection(box=BoundingBox(0.1, 0.1, 0.2, 0.2), confidence=0.9),)
    snapshot[Channel.LANDMARKS] = (FaceLandmarks(box=BoundingBox(0.1, 0.1, 0.2, 0.2), confidence=0.9),)

    with patch("vision_pipeline.overlay._label") as label:
        draw_observations(frame, snapshot)

    label.assert_not_called()
