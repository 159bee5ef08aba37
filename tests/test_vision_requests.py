import logging
import threading

import pytest

from conftest import complete, grid_box, make_face, make_object

from vision_pipeline.submitters import ImageSubmitter, SequenceSubmitter
from vision_pipeline.vision_requests import (
    FaceDetect,
    InferenceRequest,
    LandmarkDetect,
    ObjectDetect,
    Task,
    Track,
    TrackingRequest,
    create_engine_request,
)


class RecordingQueue:
    """Holds dispatched work until the test runs it."""

    def __init__(self):
        self.tasks = []

    def dispatch(self, fn, *args, **kwargs):
        self.tasks.append((fn, args, kwargs))

    def drain(self):
        tasks, self.tasks = self.tasks, []
        for fn, args, kwargs in tasks:
            fn(*args, **kwargs)


@pytest.mark.parametrize("kind, task", [
    (ObjectDetect(), Task.DETECT_OBJECTS),
    (FaceDetect(), Task.DETECT_FACES),
    (LandmarkDetect(), Task.DETECT_FACE_LANDMARKS),
])
def test_create_engine_request_maps_kind_to_task(kind, task):
    request = create_engine_request(kind, None)

    assert request.task is task
    assert request.input_observation is None


def test_create_engine_request_for_track_carries_observation():
    face = make_face(grid_box(0))

    request = create_engine_request(Track(face), None)

    assert request.task is Task.TRACK_OBJECT
    assert request.input_observation is face
    assert request.is_last_frame is False


def test_landmark_request_carries_point_count():
    assert create_engine_request(LandmarkDetect(points=68), None).options == {"points": 68}


def test_create_engine_request_rejects_unknown_kind():
    with pytest.raises(TypeError):
        create_engine_request("objects", None)


class TestInferenceRequest:

    @pytest.fixture
    def submitter(self, engine):
        return ImageSubmitter(engine)

    def test_requests_get_distinct_ids(self, submitter, immediate_queue):
        a = InferenceRequest(ObjectDetect(), submitter, immediate_queue)
        b = InferenceRequest(ObjectDetect(), submitter, immediate_queue)

        assert a.request_id != b.request_id
        assert a.engine_request.request_id == a.request_id

    def test_enable_registers_with_submitter(self, submitter, immediate_queue):
        request = InferenceRequest(ObjectDetect(), submitter, immediate_queue)

        request.enable(lambda results: None)

        assert request.is_enabled
        assert submitter.requests == [request]

    def test_results_reach_callback(self, submitter, immediate_queue):
        request = InferenceRequest(ObjectDetect(), submitter, immediate_queue)
        received = []
        request.enable(received.append)
        obj = make_object(grid_box(0))

        complete(request, [obj])

        assert received == [[obj]]

    def test_callback_runs_on_processing_queue(self, submitter):
        queue = RecordingQueue()
        request = InferenceRequest(ObjectDetect(), submitter, queue)
        received = []
        request.enable(received.append)

        complete(request, [make_object(grid_box(0))])
        assert received == []

        queue.drain()
        assert len(received) == 1

    def test_no_callback_after_disable(self, submitter):
        queue = RecordingQueue()
        request = InferenceRequest(ObjectDetect(), submitter, queue)
        received = []
        request.enable(received.append)

        # result is in flight when the request is disabled
        complete(request, [make_object(grid_box(0))])
        request.disable()
        queue.drain()

        assert received == []
        assert submitter.requests == []
        assert not request.is_enabled

    def test_reenabled_request_drops_results_from_before_disable(self, submitter):
        queue = RecordingQueue()
        request = InferenceRequest(ObjectDetect(), submitter, queue)
        received = []
        request.enable(received.append)
        complete(request, [make_object(grid_box(0))])

        request.disable()
        request.enable(received.append)
        queue.drain()

        assert received == []

    def test_failed_completion_is_logged_not_delivered(self, submitter, immediate_queue, caplog):
        request = InferenceRequest(FaceDetect(), submitter, immediate_queue)
        received = []
        request.enable(received.append)

        with caplog.at_level(logging.WARNING, logger="vision_pipeline.vision_requests"):
            complete(request, [], error=RuntimeError("model crashed"))

        assert received == []
        assert "model crashed" in caplog.text

    def test_callback_gets_a_copy_of_results(self, submitter, immediate_queue):
        request = InferenceRequest(ObjectDetect(), submitter, immediate_queue)
        received = []
        request.enable(received.append)
        results = [make_object(grid_box(0))]

        complete(request, results)
        received[0].clear()

        assert len(results) == 1


class TestTrackingRequest:

    @pytest.fixture
    def submitter(self, engine):
        return SequenceSubmitter(engine)

    def test_reuse_keeps_generation(self, submitter, immediate_queue):
        first = make_face(grid_box(0))
        request = TrackingRequest(first, submitter, immediate_queue)
        request.set_final_frame()
        generation = request.generation
        update = make_face(grid_box(0))

        request.reuse(update)

        assert request.generation == generation
        assert request.observation is update
        assert request.engine_request.input_observation is update
        assert not request.is_final_frame

    def test_reconfigure_starts_new_generation(self, submitter, immediate_queue):
        request = TrackingRequest(make_face(grid_box(0)), submitter, immediate_queue)
        generation = request.generation
        other = make_face(grid_box(4))

        request.reconfigure(other)

        assert request.generation == generation + 1
        assert request.kind == Track(other)
        assert request.engine_request.input_observation is other

    def test_in_flight_result_dropped_after_reconfigure(self, submitter):
        queue = RecordingQueue()
        first = make_face(grid_box(0))
        request = TrackingRequest(first, submitter, queue)
        received = []
        request.enable(received.append)

        complete(request, [make_face(grid_box(0))])
        request.reconfigure(make_face(grid_box(3)))
        queue.drain()

        assert received == []

    def test_set_final_frame(self, submitter, immediate_queue):
        request = TrackingRequest(make_face(grid_box(0)), submitter, immediate_queue)

        request.set_final_frame()

        assert request.is_final_frame
        assert request.engine_request.is_last_frame

    def test_snapshot_reflects_reconfigure_as_a_whole(self, submitter, immediate_queue):
        request = TrackingRequest(make_face(grid_box(0)), submitter, immediate_queue)
        request.set_final_frame()
        other = make_face(grid_box(4))

        request.reconfigure(other)

        assert request.engine_request.snapshot() == (1, False, other)

    def test_snapshot_waits_for_writer(self, submitter, immediate_queue):
        request = TrackingRequest(make_face(grid_box(0)), submitter, immediate_queue)
        seen = []
        reader = threading.Thread(target=lambda: seen.append(request.engine_request.snapshot()))

        with request.engine_request.lock:
            reader.start()
            reader.join(timeout=0.05)
            assert seen == []
            request.engine_request.generation += 1
        reader.join(timeout=5)

        assert seen[0][0] == 1
