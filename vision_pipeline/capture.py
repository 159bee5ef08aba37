import logging
import threading
import time
from typing import Callable, Dict, Optional, Union

import cv2
import numpy as np

from vision_pipeline.config import VideoConfig
from vision_pipeline.exceptions import CaptureError

logger = logging.getLogger(__name__)

# consecutive failed reads before the source is considered gone
MAX_FAILED_READS = 30
# seconds stop() waits for the reader thread
STOP_TIMEOUT = 2.0


class CameraCapture:
    """
    Reads frames from a camera (or video file) on its own thread and
    hands them, in order and one at a time, to the registered callback.

    Every start() opens a new session with its own running flag. A
    reader thread that outlives stop() (e.g. blocked in read()) only
    sees its own, cleared flag and exits without delivering.
    """

    def __init__(self, config: Optional[VideoConfig] = None):
        self.config = config or VideoConfig()
        self._thread: Optional[threading.Thread] = None
        self._running = threading.Event()
        self._deliver_lock = threading.Lock()
        self._on_captured_image: Optional[Callable[[np.ndarray], None]] = None
        self.source: Optional[Union[int, str]] = None
        self.dropped_frames = 0

    def on_captured_image(self, callback: Optional[Callable[[np.ndarray], None]]) -> "CameraCapture":
        self._on_captured_image = callback
        return self

    @property
    def is_running(self) -> bool:
        return self._running.is_set()

    def start(self, source: Optional[Union[int, str]] = None) -> bool:
        """
        Start capturing from source, stopping any running session first.
        Returns False (and logs) if the source cannot be opened.
        """
        self.stop()

        source = self.config.source if source is None else source

        try:
            capture = self._open(source)
        except CaptureError as exc:
            logger.error("Video capture failed: %s", exc)
            return False

        running = threading.Event()
        running.set()
        self.source = source
        self._running = running
        self._thread = threading.Thread(
            target=self._run,
            args=(capture, running, source),
            name="video-capture",
            daemon=True,
        )
        self._thread.start()
        logger.info("Capturing from %r", source)
        return True

    def stop(self) -> None:
        self._running.clear()
        thread, self._thread = self._thread, None
        if thread is None or thread is threading.current_thread():
            return
        thread.join(timeout=STOP_TIMEOUT)
        if thread.is_alive():
            logger.warning("Capture thread for %r did not stop within %.1fs", self.source, STOP_TIMEOUT)

    def _open(self, source: Union[int, str]):
        capture = cv2.VideoCapture(source)
        if not capture.isOpened():
            capture.release()
            # missing device and denied camera access look the same here
            raise CaptureError("Could not open video source (no device or access denied)", source=source)

        capture.set(cv2.CAP_PROP_FRAME_WIDTH, self.config.frame_width)
        capture.set(cv2.CAP_PROP_FRAME_HEIGHT, self.config.frame_height)
        capture.set(cv2.CAP_PROP_FPS, self.config.fps)
        return capture

    def _run(self, capture, running: threading.Event, source: Union[int, str]) -> None:
        # files are read as fast as possible unless paced
        frame_interval = 1.0 / self.config.fps if isinstance(source, str) and self.config.fps > 0 else 0.0
        failed_reads = 0

        try:
            while running.is_set():
                started = time.monotonic()
                ok, frame = capture.read()

                if not running.is_set():
                    break

                if not ok or frame is None:
                    self.dropped_frames += 1
                    failed_reads += 1
                    logger.warning("Dropped frame")
                    if failed_reads >= MAX_FAILED_READS:
                        logger.error("Video source %r stopped delivering frames", source)
                        break
                    continue

                failed_reads = 0
                self._deliver(frame, running)

                if frame_interval:
                    remaining = frame_interval - (time.monotonic() - started)
                    if remaining > 0:
                        time.sleep(remaining)
        finally:
            capture.release()
            running.clear()

    def _deliver(self, frame: np.ndarray, running: threading.Event) -> None:
        # the flag is checked under the lock so a stopped session never
        # delivers alongside the next one
        with self._deliver_lock:
            if not running.is_set():
                return
            callback = self._on_captured_image
            if callback is None:
                return
            try:
                callback(frame)
            except Exception:
                logger.exception("Frame callback failed")


def discover_cameras(max_index: int = 5) -> Dict[str, int]:
    """
    Probe camera indices 0..max_index-1 and return {name: index}.
    """
    cameras: Dict[str, int] = {}
    for index in range(max_index):
        capture = cv2.VideoCapture(index)
        try:
            if capture.isOpened():
                cameras[f"Camera {index} ({capture.getBackendName()})"] = index
        finally:
            capture.release()
    return cameras
