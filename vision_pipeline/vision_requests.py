"""
Inference requests.

A request is created once per detection kind and reused for every frame.
The kind decides what the engine is asked to do; everything else
(enabling, disabling and handing results over to the processing
context) is shared by all kinds.
"""

import functools
import itertools
import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from vision_pipeline.data_types import Detection, DetectionResult

logger = logging.getLogger(__name__)

_request_ids = itertools.count(1)


class Task(Enum):
    DETECT_OBJECTS = "detect_objects"
    DETECT_FACES = "detect_faces"
    DETECT_FACE_LANDMARKS = "detect_face_landmarks"
    TRACK_OBJECT = "track_object"


# ---------- Request kinds ----------

@dataclass(frozen=True)
class ObjectDetect:
    pass


@dataclass(frozen=True)
class FaceDetect:
    pass


@dataclass(frozen=True)
class LandmarkDetect:
    points: int = 68


@dataclass(frozen=True)
class Track:
    initial_observation: Detection


RequestKind = Union[ObjectDetect, FaceDetect, LandmarkDetect, Track]


# ---------- Engine side ----------

@dataclass
class Completion:
    """
    Message sent by the engine when it has finished one request.
    generation is the request generation the engine saw when it started.
    """
    request_id: int
    generation: int
    results: List[DetectionResult] = field(default_factory=list)
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(eq=False)
class EngineRequest:
    """
    What the engine actually performs. Fields other than task and options
    may change between frames (tracking requests are reused in place);
    they are written under lock and read together through snapshot().
    """
    task: Task
    completion: Optional[Callable[[Completion], None]] = None
    options: Dict[str, Any] = field(default_factory=dict)
    input_observation: Optional[Detection] = None
    is_last_frame: bool = False
    request_id: int = 0
    generation: int = 0
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def snapshot(self) -> Tuple[int, bool, Optional[Detection]]:
        """(generation, is_last_frame, input_observation), read atomically."""
        with self.lock:
            return self.generation, self.is_last_frame, self.input_observation


@functools.singledispatch
def create_engine_request(kind, completion: Callable[[Completion], None]) -> EngineRequest:
    raise TypeError(f"Unsupported request kind: {type(kind).__name__}")


@create_engine_request.register
def _(kind: ObjectDetect, completion):
    return EngineRequest(Task.DETECT_OBJECTS, completion)


@create_engine_request.register
def _(kind: FaceDetect, completion):
    return EngineRequest(Task.DETECT_FACES, completion)


@create_engine_request.register
def _(kind: LandmarkDetect, completion):
    return EngineRequest(Task.DETECT_FACE_LANDMARKS, completion, options={"points": kind.points})


@create_engine_request.register
def _(kind: Track, completion):
    return EngineRequest(Task.TRACK_OBJECT, completion, input_observation=kind.initial_observation)


# ---------- Requests ----------

class InferenceRequest:
    """
    A reusable request bound to one submitter.

    Results are produced on an engine worker thread and handed to
    processing_queue before the registered callback runs, so callbacks
    always execute on the processing context.
    """

    def __init__(self, kind: RequestKind, submitter, processing_queue):
        self.request_id = next(_request_ids)
        self.kind = kind
        self.submitter = submitter
        self.processing_queue = processing_queue

        self._on_results: Optional[Callable[[List[DetectionResult]], None]] = None

        self.engine_request = create_engine_request(kind, self.handle_completion)
        self.engine_request.request_id = self.request_id
        # shared with the engine, which reads the request through snapshot()
        self._lock = self.engine_request.lock

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.request_id}, task={self.engine_request.task.value})"

    @property
    def generation(self) -> int:
        return self.engine_request.generation

    @property
    def is_enabled(self) -> bool:
        return self._on_results is not None

    def enable(self, callback: Callable[[List[DetectionResult]], None]) -> None:
        """
        Register the results callback and add this request to its
        submitter. Nothing is detected until the submitter is given a frame.
        """
        with self._lock:
            self._on_results = callback
        self.submitter.add(self)

    def disable(self) -> None:
        """
        Deregister the callback. Results already in flight are dropped
        when they reach the processing context.
        """
        with self._lock:
            self._on_results = None
            self.engine_request.generation += 1
        self.submitter.remove(self)

    def handle_completion(self, message: Completion) -> None:
        # engine worker thread: do not touch shared state here
        self.processing_queue.dispatch(self._deliver, message)

    def _deliver(self, message: Completion) -> None:
        with self._lock:
            callback = self._on_results
            generation = self.engine_request.generation

        if callback is None:
            logger.debug("Dropping result for disabled %r", self)
            return
        if message.generation != generation:
            logger.debug("Dropping stale result for %r (generation %d != %d)",
                         self, message.generation, generation)
            return
        if not message.ok:
            logger.warning("%r failed: %s", self, message.error)
            return

        callback(list(message.results))


class TrackingRequest(InferenceRequest):
    """
    Request that follows one object across frames.

    The engine has a limited number of tracking contexts, so these are
    pooled and reassigned to new objects rather than discarded.
    """

    def __init__(self, observation: Detection, submitter, processing_queue):
        self.observation = observation
        super().__init__(Track(observation), submitter, processing_queue)

    @property
    def is_final_frame(self) -> bool:
        return self.engine_request.is_last_frame

    def reuse(self, observation: Detection) -> None:
        """Continue the same track from an updated observation."""
        with self._lock:
            self.observation = observation
            self.engine_request.input_observation = observation
            self.engine_request.is_last_frame = False

    def reconfigure(self, observation: Detection) -> None:
        """
        Point a pooled request at a different object. The new generation
        makes the engine start a fresh tracker and discards late results
        that belong to the previous object.
        """
        with self._lock:
            self.kind = Track(observation)
            self.observation = observation
            self.engine_request.input_observation = observation
            self.engine_request.is_last_frame = False
            self.engine_request.generation += 1

    def set_final_frame(self) -> None:
        with self._lock:
            self.engine_request.is_last_frame = True
