"""
Submitters bundle the requests that are performed together on one frame.
"""

import logging
import threading
from typing import List, Optional, Tuple

import cv2
import numpy as np

from vision_pipeline.exceptions import EngineError, SubmissionError
from vision_pipeline.vision_requests import EngineRequest

logger = logging.getLogger(__name__)


class Submitter:
    """
    Owns the ordered list of requests submitted as one batch.
    The list is changed from the processing context (tracking) while the
    camera context submits, so access goes through a lock.
    """

    def __init__(self, engine):
        self.engine = engine
        self._requests: List = []
        self._lock = threading.RLock()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(requests={len(self._requests)})"

    @property
    def requests(self) -> List:
        with self._lock:
            return list(self._requests)

    def add(self, request) -> None:
        with self._lock:
            if request not in self._requests:
                self._requests.append(request)

    def remove(self, request) -> None:
        with self._lock:
            if request in self._requests:
                self._requests.remove(request)

    def batch(self) -> List[EngineRequest]:
        with self._lock:
            return [r.engine_request for r in self._requests]


class ImageSubmitter(Submitter):
    """
    Submits requests against a single frame; no state is kept between frames.
    """

    # Override if needed to customize the submitted image size
    def adjusted_bounds(self, width: int, height: int) -> Tuple[int, int]:
        return width, height

    def submit(self, frame: np.ndarray, width: Optional[int] = None, height: Optional[int] = None) -> bool:
        """
        Submit the frame, rescaled to adjusted_bounds() if that differs
        from its own size. Returns False if the frame was dropped.
        """
        if frame is None:
            logger.warning("%r: no frame to submit", self)
            return False

        if width is None or height is None:
            height, width = frame.shape[:2]

        batch = self.batch()
        if not batch:
            return False

        adj_width, adj_height = self.adjusted_bounds(width, height)

        try:
            if (adj_width, adj_height) == (width, height):
                image = frame
            else:
                image = self._rescale(frame, adj_width, adj_height)
            self.engine.perform(batch, image)
        except (SubmissionError, EngineError) as exc:
            logger.error("%r: dropping frame: %s", self, exc)
            return False

        return True

    @staticmethod
    def _rescale(frame: np.ndarray, width: int, height: int) -> np.ndarray:
        # aspect ratio is not preserved
        try:
            return cv2.resize(frame, (int(width), int(height)), interpolation=cv2.INTER_LINEAR)
        except cv2.error as exc:
            raise SubmissionError("Could not rescale frame", details=str(exc)) from exc


class FixedImageSubmitter(ImageSubmitter):
    """
    Scales every frame to a fixed size, for models with a fixed input.
    """

    def __init__(self, engine, width: int, height: int):
        super().__init__(engine)
        self.fixed_bounds = (int(width), int(height))

    def adjusted_bounds(self, width: int, height: int) -> Tuple[int, int]:
        return self.fixed_bounds


class SequenceSubmitter(Submitter):
    """
    Submits requests through a request handler that persists across
    frames (the tracker state lives there).

    A request removed while flagged as final frame is submitted once more
    so the engine can release its state, then forgotten.
    """

    def __init__(self, engine):
        super().__init__(engine)
        self.request_handler = engine.create_sequence_handler()
        self._retiring: List[EngineRequest] = []

    def add(self, request) -> None:
        with self._lock:
            self._retiring = [r for r in self._retiring if r is not request.engine_request]
            super().add(request)

    def remove(self, request) -> None:
        with self._lock:
            was_submitted = request in self._requests
            super().remove(request)
            if was_submitted and request.engine_request.is_last_frame:
                self._retiring.append(request.engine_request)

    def reset(self) -> None:
        """
        Replace the request handler so the engine can free tracker state.
        Only safe while no tracking request is active.
        """
        with self._lock:
            if self._requests:
                logger.warning("%r: resetting with %d active requests", self, len(self._requests))
            self.request_handler = self.engine.create_sequence_handler()
            self._retiring = []
        logger.info("Sequence request handler reset")

    def submit(self, frame: np.ndarray) -> bool:
        if frame is None:
            logger.warning("%r: no frame to submit", self)
            return False

        with self._lock:
            batch = [r.engine_request for r in self._requests] + self._retiring
            self._retiring = []
            handler = self.request_handler

        if not batch:
            return False

        try:
            self.engine.perform_sequence(batch, frame, handler)
        except EngineError as exc:
            logger.error("%r: dropping frame: %s", self, exc)
            return False

        return True
