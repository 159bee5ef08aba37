"""
Execution contexts for inference results.

A SerialQueue is a single worker thread that runs submitted callables
one at a time, in submission order. All tracking-state mutation is
funnelled through one of these, so the state it guards needs no locks.
ImmediateQueue has the same interface but runs work on the caller's
thread; tests use it to make callback flow deterministic.
"""

import logging
import queue
import threading
from typing import Any, Callable

logger = logging.getLogger(__name__)

_STOP = object()


class SerialQueue:
    def __init__(self, name: str = "serial-queue"):
        self.name = name
        self._queue: "queue.Queue[Any]" = queue.Queue()
        self._closed = False
        self._lock = threading.Lock()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self._thread.start()

    def dispatch(self, fn: Callable[..., Any], *args, **kwargs) -> None:
        with self._lock:
            if self._closed:
                logger.debug("%s is closed, dropping %r", self.name, fn)
                return
            self._queue.put((fn, args, kwargs))

    def join(self) -> None:
        """Block until every task queued so far has run."""
        self._queue.join()

    def close(self, timeout: float = 5.0) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._queue.put(_STOP)
        if threading.current_thread() is not self._thread:
            self._thread.join(timeout)

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                fn, args, kwargs = item
                try:
                    fn(*args, **kwargs)
                except Exception:
                    logger.exception("Task failed on %s", self.name)
            finally:
                self._queue.task_done()


class ImmediateQueue:
    def __init__(self, name: str = "immediate"):
        self.name = name

    def dispatch(self, fn: Callable[..., Any], *args, **kwargs) -> None:
        fn(*args, **kwargs)

    def join(self) -> None:
        pass

    def close(self, timeout: float = 5.0) -> None:
        pass
