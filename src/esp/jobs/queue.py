"""Bounded FIFO of deferred work items."""

from __future__ import annotations

import queue
import threading
from typing import Callable, Optional

from esp.utils.logging import get_logger


logger = get_logger(__name__)

WorkItem = Callable[[threading.Event], None]


class BackgroundTaskQueue:
    """Bounded handoff from producers to a single worker.

    ``enqueue`` blocks while the queue is full. Items are handed out in
    enqueue order.
    """

    def __init__(self, capacity: int = 100, poll_seconds: float = 0.5) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1: {capacity}")
        self.capacity = capacity
        self.poll_seconds = poll_seconds
        self._queue: queue.Queue[WorkItem] = queue.Queue(maxsize=capacity)

    def enqueue(self, work_item: WorkItem, timeout: Optional[float] = None) -> None:
        """Add a work item, waiting for space. Raises queue.Full on timeout."""
        if not callable(work_item):
            raise TypeError(f"work item must be callable: {work_item!r}")
        self._queue.put(work_item, block=True, timeout=timeout)
        logger.debug("queue.enqueued size=%s", self._queue.qsize())

    def dequeue(self, cancel: threading.Event) -> Optional[WorkItem]:
        """Wait for the next item; return None once ``cancel`` is set."""
        while not cancel.is_set():
            try:
                return self._queue.get(timeout=self.poll_seconds)
            except queue.Empty:
                continue
        return None

    def task_done(self) -> None:
        self._queue.task_done()

    def join(self) -> None:
        """Block until every enqueued item has been processed."""
        self._queue.join()

    def qsize(self) -> int:
        return self._queue.qsize()

    def full(self) -> bool:
        return self._queue.full()
