"""
Per-pipeline state and the publisher that hands result snapshots to the
renderer.
"""

import logging
import threading
from typing import Callable, Dict, List, Optional, Sequence, Tuple
from uuid import UUID

import numpy as np

from vision_pipeline.data_types import Channel, DetectionResult, TrackedObject

logger = logging.getLogger(__name__)

Snapshot = Tuple[DetectionResult, ...]


class ResultPublisher:
    """
    Keeps the latest snapshot of every result channel.

    publish() copies the items right away and applies the copy on the
    publish context, where subscribers are notified. Each snapshot
    replaces the previous one for its channel.
    """

    def __init__(self, publish_queue):
        self.publish_queue = publish_queue
        self._lock = threading.Lock()
        self._snapshots: Dict[Channel, Snapshot] = {channel: () for channel in Channel}
        self._frame: Optional[np.ndarray] = None
        self._subscribers: List[Callable[[Channel, Snapshot], None]] = []

    def subscribe(self, callback: Callable[[Channel, Snapshot], None]) -> None:
        with self._lock:
            self._subscribers.append(callback)

    def publish(self, channel: Channel, items: Sequence[DetectionResult]) -> None:
        self.publish_queue.dispatch(self._store, channel, tuple(items))

    def publish_frame(self, frame: np.ndarray) -> None:
        self.publish_queue.dispatch(self._store_frame, frame)

    def snapshot(self) -> Dict[Channel, Snapshot]:
        with self._lock:
            return dict(self._snapshots)

    def latest(self, channel: Channel) -> Snapshot:
        with self._lock:
            return self._snapshots[channel]

    def latest_frame(self) -> Optional[np.ndarray]:
        with self._lock:
            return self._frame

    def _store(self, channel: Channel, snapshot: Snapshot) -> None:
        with self._lock:
            self._snapshots[channel] = snapshot
            subscribers = list(self._subscribers)
        for callback in subscribers:
            callback(channel, snapshot)

    def _store_frame(self, frame: np.ndarray) -> None:
        with self._lock:
            self._frame = frame


class PipelineState:
    """
    State shared by the components of one pipeline instance.

    tracked_objects is the rendered tracking map (identity -> latest
    tracked observation). It is only touched on the processing context.
    """

    def __init__(self, publisher: ResultPublisher):
        self.publisher = publisher
        self.tracked_objects: Dict[UUID, TrackedObject] = {}
        self._frame_lock = threading.Lock()
        self._cached_frame: Optional[np.ndarray] = None

    def cache_frame(self, frame: np.ndarray) -> None:
        with self._frame_lock:
            self._cached_frame = frame

    @property
    def cached_frame(self) -> Optional[np.ndarray]:
        with self._frame_lock:
            return self._cached_frame

    def publish_tracked(self) -> None:
        self.publisher.publish(Channel.TRACKED, list(self.tracked_objects.values()))
