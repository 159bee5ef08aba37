"""
Shared fixtures.

FakeEngine stands in for VisionEngine: it records every batch it is
given and never runs a model. Tests deliver results themselves with
complete(), and ImmediateQueue runs callbacks inline so the whole flow
is synchronous.
"""

from typing import List, Optional

import numpy as np
import pytest

from vision_pipeline.data_types import BoundingBox, FaceDetection, ObjectDetection, TrackedObject
from vision_pipeline.dispatch import ImmediateQueue
from vision_pipeline.exceptions import EngineError
from vision_pipeline.state import PipelineState, ResultPublisher
from vision_pipeline.vision_requests import Completion


class FakeSequenceHandler:
    def __init__(self, index: int):
        self.index = index


class FakeEngine:
    def __init__(self):
        self.batches = []
        self.sequence_handlers: List[FakeSequenceHandler] = []
        self.fail = False

    def create_sequence_handler(self):
        handler = FakeSequenceHandler(len(self.sequence_handlers))
        self.sequence_handlers.append(handler)
        return handler

    def perform(self, requests, frame, handler=None):
        if self.fail:
            raise EngineError("engine unavailable")
        self.batches.append(("image", list(requests), frame))

    def perform_sequence(self, requests, frame, handler):
        if self.fail:
            raise EngineError("engine unavailable")
        self.batches.append(("sequence", list(requests), frame, handler))

    def batches_of(self, kind: str):
        return [b for b in self.batches if b[0] == kind]


def complete(request, results, error=None, generation: Optional[int] = None) -> None:
    """Deliver an engine completion for request, as a worker thread would."""
    engine_request = request.engine_request
    engine_request.completion(Completion(
        request_id=engine_request.request_id,
        generation=engine_request.generation if generation is None else generation,
        results=list(results),
        error=error,
    ))


def grid_box(index: int, size: float = 0.1) -> BoundingBox:
    """Boxes that never intersect for index in 0..19."""
    return BoundingBox(x=(index % 5) * 0.2, y=(index // 5) * 0.25, width=size, height=size)


def make_face(box: BoundingBox, confidence: float = 0.9) -> FaceDetection:
    return FaceDetection(box=box, confidence=confidence, roll=0.0, yaw=0.0)


def make_object(box: BoundingBox, label: str = "person", confidence: float = 0.8) -> ObjectDetection:
    return ObjectDetection(box=box, confidence=confidence, label=label, class_id=0)


def tracked(detection, confidence: float, box: Optional[BoundingBox] = None) -> TrackedObject:
    return TrackedObject(box=box or detection.box, confidence=confidence, uuid=detection.uuid)


@pytest.fixture
def engine():
    return FakeEngine()


@pytest.fixture
def immediate_queue():
    return ImmediateQueue()


@pytest.fixture
def publisher(immediate_queue):
    return ResultPublisher(immediate_queue)


@pytest.fixture
def state(publisher):
    return PipelineState(publisher)


@pytest.fixture
def frame():
    return np.zeros((480, 640, 3), dtype=np.uint8)


@pytest.fixture
def textured_frame():
    rng = np.random.default_rng(7)
    return rng.integers(0, 255, size=(240, 320, 3), dtype=np.uint8)
