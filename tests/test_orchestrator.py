import pytest

from conftest import complete, grid_box, make_face, make_object, tracked

from vision_pipeline.config import PipelineConfig
from vision_pipeline.data_types import Channel, FaceLandmarks
from vision_pipeline.orchestrator import DetectionOrchestrator


@pytest.fixture
def orchestrator(engine, state, immediate_queue):
    orchestrator = DetectionOrchestrator(engine, state, immediate_queue, PipelineConfig())
    orchestrator.enable_detections()
    return orchestrator


def test_enable_registers_one_request_per_submitter(orchestrator):
    assert orchestrator.object_submitter.requests == [orchestrator.object_request]
    assert orchestrator.face_submitter.requests == [orchestrator.face_request]
    assert orchestrator.landmark_submitter.requests == [orchestrator.landmark_request]
    assert orchestrator.sequence_submitter.requests == []


def test_object_detection_uses_fixed_input_size(orchestrator, engine, frame):
    orchestrator.submit_object_detection(frame)

    image = engine.batches_of("image")[0][2]
    assert image.shape[:2] == (640, 640)


def test_object_results_are_filtered_and_published(orchestrator, publisher):
    obj = make_object(grid_box(0))
    face = make_face(grid_box(1))

    complete(orchestrator.object_request, [obj, face])

    assert publisher.latest(Channel.OBJECTS) == (obj,)


def test_objects_are_offered_to_tracking(orchestrator):
    obj = make_object(grid_box(0))

    complete(orchestrator.object_request, [obj])

    assert obj.uuid in orchestrator.tracking.active_tracks


def test_object_tracking_can_be_turned_off(engine, state, immediate_queue):
    config = PipelineConfig()
    config.tracking.track_objects = False
    orchestrator = DetectionOrchestrator(engine, state, immediate_queue, config)
    orchestrator.enable_detections()

    complete(orchestrator.object_request, [make_object(grid_box(0))])

    assert orchestrator.tracking.active_count == 0


def test_faces_trigger_landmarks_on_cached_frame(orchestrator, engine, state, frame):
    state.cache_frame(frame)
    face = make_face(grid_box(0))

    complete(orchestrator.face_request, [face])

    (kind, batch, image), = engine.batches
    assert batch == [orchestrator.landmark_request.engine_request]
    assert image is frame
    assert face.uuid in orchestrator.tracking.active_tracks


def test_no_faces_clears_landmarks(orchestrator, engine, publisher, state, frame):
    state.cache_frame(frame)
    face = make_face(grid_box(0))
    complete(orchestrator.face_request, [face])
    complete(orchestrator.landmark_request, [FaceLandmarks(box=face.box, confidence=0.9)])
    assert len(publisher.latest(Channel.LANDMARKS)) == 1
    engine.batches.clear()

    complete(orchestrator.face_request, [])

    assert publisher.latest(Channel.LANDMARKS) == ()
    assert publisher.latest(Channel.FACES) == ()
    assert engine.batches == []


def test_faces_without_cached_frame_skip_landmarks(orchestrator, engine):
    complete(orchestrator.face_request, [make_face(grid_box(0))])

    assert engine.batches == []


def test_landmark_results_are_published(orchestrator, publisher):
    landmarks = FaceLandmarks(box=grid_box(0), confidence=0.8, regions={"nose": [(0.1, 0.1)]})

    complete(orchestrator.landmark_request, [landmarks])

    assert publisher.latest(Channel.LANDMARKS) == (landmarks,)


def test_overlapping_face_and_object_tracked_once(orchestrator):
    box = grid_box(0)

    complete(orchestrator.face_request, [make_face(box)])
    complete(orchestrator.object_request, [make_object(box)])

    assert orchestrator.tracking.active_count == 1


def test_tracking_submitted_every_frame(orchestrator, engine, frame):
    face = make_face(grid_box(0))
    complete(orchestrator.face_request, [face])
    track = orchestrator.tracking.active_tracks[face.uuid]

    orchestrator.submit_tracking(frame)
    complete(track.request, [tracked(face, 0.9)])
    orchestrator.submit_tracking(frame)

    assert len(engine.batches_of("sequence")) == 2


def test_disable_detections_stops_everything(orchestrator, publisher):
    complete(orchestrator.face_request, [make_face(grid_box(0))])

    orchestrator.disable_detections()

    assert orchestrator.object_submitter.requests == []
    assert orchestrator.face_submitter.requests == []
    assert orchestrator.landmark_submitter.requests == []
    assert orchestrator.tracking.active_count == 0
    assert publisher.latest(Channel.TRACKED) == ()
