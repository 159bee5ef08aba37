"""
Inference engine.

The engine performs batches of EngineRequests against a frame and
reports each request's outcome through its completion handler. Callers
never wait: perform() returns a Future as soon as the batch is queued.

Image batches run on a worker pool, so several frames may be in flight
at once and may finish out of order. Sequence batches (tracking) run on
a single worker so that tracker state advances one frame at a time.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

from vision_pipeline.data_types import Detection, DetectionResult, TrackedObject
from vision_pipeline.exceptions import EngineError
from vision_pipeline.vision_requests import Completion, EngineRequest, Task

logger = logging.getLogger(__name__)


@dataclass
class EngineBackends:
    """The models the engine runs; see detector.py and tracker.py."""
    object_detector: object
    face_detector: object
    landmark_detector: object
    tracker_factory: Callable[[], object]


def _complete(request: EngineRequest, generation: int,
              results: Optional[List[DetectionResult]] = None,
              error: Optional[BaseException] = None) -> None:
    if request.completion is None:
        return
    request.completion(Completion(
        request_id=request.request_id,
        generation=generation,
        results=list(results or []),
        error=error,
    ))


class ImageRequestHandler:
    """
    Performs requests on a single frame. Holds no state between frames.
    """

    def __init__(self, backends: EngineBackends):
        self.backends = backends

    def perform(self, requests: Sequence[EngineRequest], frame: np.ndarray) -> None:
        for request in requests:
            generation, _, _ = request.snapshot()
            try:
                results = self._perform_one(request, frame)
            except Exception as exc:
                logger.debug("%s failed", request.task.value, exc_info=True)
                _complete(request, generation, error=exc)
                continue
            _complete(request, generation, results)

    def _perform_one(self, request: EngineRequest, frame: np.ndarray) -> List[DetectionResult]:
        if request.task is Task.DETECT_OBJECTS:
            return self.backends.object_detector.detect(frame)
        if request.task is Task.DETECT_FACES:
            return self.backends.face_detector.detect(frame)
        if request.task is Task.DETECT_FACE_LANDMARKS:
            faces = self.backends.face_detector.detect(frame)
            return self.backends.landmark_detector.detect(frame, faces)
        raise EngineError(f"{request.task.value} needs a sequence request handler")


class SequenceRequestHandler:
    """
    Performs tracking requests across consecutive frames.

    Keeps one tracker per request id, tagged with the request generation
    it was started for. A request whose generation changed (it was
    reassigned to another object) gets a fresh tracker. A request flagged
    as last frame only releases its tracker.
    """

    def __init__(self, backends: EngineBackends):
        self.backends = backends
        self._trackers: Dict[int, Tuple[int, object]] = {}
        self._lock = threading.Lock()

    @property
    def active_contexts(self) -> int:
        with self._lock:
            return len(self._trackers)

    def perform(self, requests: Sequence[EngineRequest], frame: np.ndarray) -> None:
        with self._lock:
            for request in requests:
                generation, is_last_frame, observation = request.snapshot()
                if is_last_frame:
                    self._trackers.pop(request.request_id, None)
                    continue

                try:
                    results = self._track(request, generation, observation, frame)
                except Exception as exc:
                    logger.debug("tracking request %d failed", request.request_id, exc_info=True)
                    self._trackers.pop(request.request_id, None)
                    _complete(request, generation, error=exc)
                    continue
                _complete(request, generation, results)

    def _track(self, request: EngineRequest, generation: int, observation: Optional[Detection],
               frame: np.ndarray) -> List[DetectionResult]:
        if request.task is not Task.TRACK_OBJECT:
            raise EngineError(f"{request.task.value} cannot be performed on a sequence")

        if observation is None:
            raise EngineError("Tracking request has no input observation")

        entry = self._trackers.get(request.request_id)
        if entry is None or entry[0] != generation:
            tracker = self.backends.tracker_factory()
            tracker.init(frame, observation.box)
            self._trackers[request.request_id] = (generation, tracker)
        else:
            tracker = entry[1]

        box, confidence = tracker.update(frame)
        return [TrackedObject(box=box, confidence=float(confidence), uuid=observation.uuid)]


class VisionEngine:
    def __init__(self, backends: EngineBackends, max_workers: int = 4):
        self.backends = backends
        self._image_executor = ThreadPoolExecutor(max_workers=max_workers,
                                                  thread_name_prefix="vision-image")
        self._sequence_executor = ThreadPoolExecutor(max_workers=1,
                                                     thread_name_prefix="vision-sequence")

    def create_sequence_handler(self) -> SequenceRequestHandler:
        return SequenceRequestHandler(self.backends)

    def perform(self, requests: Sequence[EngineRequest], frame: np.ndarray,
                handler: Optional[ImageRequestHandler] = None) -> Future:
        handler = handler or ImageRequestHandler(self.backends)
        return self._submit(self._image_executor, handler.perform, list(requests), frame)

    def perform_sequence(self, requests: Sequence[EngineRequest], frame: np.ndarray,
                         handler: SequenceRequestHandler) -> Future:
        return self._submit(self._sequence_executor, handler.perform, list(requests), frame)

    def shutdown(self, wait: bool = True) -> None:
        self._image_executor.shutdown(wait=wait)
        self._sequence_executor.shutdown(wait=wait)

    @staticmethod
    def _submit(executor: ThreadPoolExecutor, fn, *args) -> Future:
        try:
            return executor.submit(fn, *args)
        except RuntimeError as exc:
            raise EngineError("Inference engine has been shut down", details=str(exc)) from exc
