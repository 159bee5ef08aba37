import logging
from abc import ABC, abstractmethod
from typing import Callable, Optional, Tuple

import cv2
import numpy as np

from vision_pipeline.data_types import BoundingBox

logger = logging.getLogger(__name__)


class BaseObjectTracker(ABC):
    """
    Abstract interface for single-object trackers.
    One instance follows one object; the sequence request handler keeps
    one per active tracking request.
    """

    @abstractmethod
    def init(self, frame: np.ndarray, box: BoundingBox) -> None:
        """
        Start following the object inside box (normalized) on frame.
        """
        raise NotImplementedError

    @abstractmethod
    def update(self, frame: np.ndarray) -> Tuple[BoundingBox, float]:
        """
        Locate the object on the next frame.
        Returns the new normalized box and a confidence in [0, 1].
        """
        raise NotImplementedError


def _create_csrt():
    if hasattr(cv2, "TrackerCSRT_create"):
        return cv2.TrackerCSRT_create()
    if hasattr(cv2, "legacy") and hasattr(cv2.legacy, "TrackerCSRT_create"):
        return cv2.legacy.TrackerCSRT_create()
    # opencv-python without contrib modules
    logger.warning("CSRT tracker unavailable, falling back to MIL")
    return cv2.TrackerMIL_create()


class CsrtObjectTracker(BaseObjectTracker):
    """
    OpenCV CSRT correlation-filter tracker.

    CSRT only reports found / lost, so confidence is the normalized
    correlation between the object's previous appearance and the patch
    at the new location (0 when the tracker loses the object).
    """

    def __init__(self, create: Callable = _create_csrt):
        self._create = create
        self._tracker = None
        self._template: Optional[np.ndarray] = None
        self._box: Optional[BoundingBox] = None

    def init(self, frame: np.ndarray, box: BoundingBox) -> None:
        h, w = frame.shape[:2]
        x1, y1, x2, y2 = box.clamped().to_pixels(w, h)
        rect = (x1, y1, max(1, x2 - x1), max(1, y2 - y1))

        self._tracker = self._create()
        self._tracker.init(frame, rect)
        self._template = self._crop(frame, rect)
        self._box = box

    def update(self, frame: np.ndarray) -> Tuple[BoundingBox, float]:
        if self._tracker is None:
            raise RuntimeError("Tracker used before init()")

        h, w = frame.shape[:2]
        ok, rect = self._tracker.update(frame)
        if not ok:
            return self._box, 0.0

        x, y, rw, rh = (int(v) for v in rect)
        box = BoundingBox.from_pixels(x, y, x + rw, y + rh, w, h).clamped()
        if box.is_empty():
            return self._box, 0.0

        patch = self._crop(frame, (x, y, rw, rh))
        confidence = self._similarity(self._template, patch)

        self._template = patch
        self._box = box
        return box, confidence

    @staticmethod
    def _crop(frame: np.ndarray, rect) -> np.ndarray:
        x, y, rw, rh = rect
        h, w = frame.shape[:2]
        x1, y1 = max(0, x), max(0, y)
        x2, y2 = min(w, x + rw), min(h, y + rh)
        if x2 <= x1 or y2 <= y1:
            return frame[0:1, 0:1]
        return frame[y1:y2, x1:x2].copy()

    @staticmethod
    def _similarity(template: np.ndarray, patch: np.ndarray) -> float:
        if template is None or template.size == 0 or patch.size == 0:
            return 0.0
        th, tw = template.shape[:2]
        resized = cv2.resize(patch, (tw, th), interpolation=cv2.INTER_LINEAR)
        score = cv2.matchTemplate(resized, template, cv2.TM_CCOEFF_NORMED)
        value = float(score.max())
        if np.isnan(value):
            # flat patches have no variance to correlate
            return 1.0 if np.array_equal(resized, template) else 0.0
        return float(np.clip(value, 0.0, 1.0))
