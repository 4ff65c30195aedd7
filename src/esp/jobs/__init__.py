"""Background job queue and worker."""

from esp.jobs.queue import BackgroundTaskQueue, WorkItem
from esp.jobs.worker import QueuedWorker

__all__ = ["BackgroundTaskQueue", "QueuedWorker", "WorkItem"]
