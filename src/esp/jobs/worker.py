"""Single long-lived worker draining the background queue."""

from __future__ import annotations

import threading
from typing import Optional

from esp.jobs.queue import BackgroundTaskQueue
from esp.utils.logging import get_logger


logger = get_logger(__name__)


class QueuedWorker:
    """Run queued work items one at a time on a dedicated thread.

    A failing item is logged and the worker moves on to the next one. The
    stop event doubles as the cancellation signal handed to every item.
    """

    def __init__(
        self,
        task_queue: BackgroundTaskQueue,
        stop_event: Optional[threading.Event] = None,
        name: str = "esp-queued-worker",
    ) -> None:
        self.task_queue = task_queue
        self.stop_event = stop_event or threading.Event()
        self.name = name
        self.processed = 0
        self.failed = 0
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            raise RuntimeError("worker already running")
        self._thread = threading.Thread(target=self.run, name=self.name, daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        """Signal shutdown and wait for the thread to exit."""
        self.stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)

    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run(self) -> None:
        logger.info("worker.started name=%s", self.name)
        while not self.stop_event.is_set():
            work_item = self.task_queue.dequeue(self.stop_event)
            if work_item is None:
                break
            try:
                work_item(self.stop_event)
                self.processed += 1
            except Exception:
                self.failed += 1
                logger.exception("worker.item_failed name=%s", self.name)
            finally:
                self.task_queue.task_done()
        logger.info(
            "worker.stopping name=%s processed=%s failed=%s", self.name, self.processed, self.failed
        )
