"""Work items for the background queue."""

from __future__ import annotations

import threading
from typing import Callable, Optional

import httpx

from esp.config import Settings
from esp.db.repository import PostgresRepository, StagingRepository
from esp.ingestion.http import build_client
from esp.ingestion.runner import import_canonical, stage_all
from esp.jobs.queue import BackgroundTaskQueue, WorkItem
from esp.utils.logging import get_logger


logger = get_logger(__name__)

RepositoryFactory = Callable[[Settings], StagingRepository]


def wikidata_staging_job(
    settings: Optional[Settings] = None,
    repository_factory: RepositoryFactory = PostgresRepository,
    page_size: Optional[int] = None,
    transport: Optional[httpx.BaseTransport] = None,
) -> WorkItem:
    """Build a work item that runs one full Wikidata staging pass."""
    settings = settings or Settings()

    def work(cancel: threading.Event) -> None:
        repository = repository_factory(settings)
        with build_client(settings, transport=transport) as client:
            summary = stage_all(repository, client, settings, cancel=cancel, page_size=page_size)
        logger.info("job.staging.complete %s", summary.describe())

    return work


def canonical_import_job(
    settings: Optional[Settings] = None,
    repository_factory: RepositoryFactory = PostgresRepository,
    page_size: Optional[int] = None,
    transport: Optional[httpx.BaseTransport] = None,
) -> WorkItem:
    """Build a work item that runs one canonical bulk import."""
    settings = settings or Settings()

    def work(cancel: threading.Event) -> None:
        repository = repository_factory(settings)
        with build_client(settings, transport=transport) as client:
            summary = import_canonical(
                repository, client, settings, cancel=cancel, page_size=page_size
            )
        logger.info("job.canonical.complete %s", summary.describe())

    return work


def enqueue_wikidata_staging(
    task_queue: BackgroundTaskQueue,
    settings: Optional[Settings] = None,
    repository_factory: RepositoryFactory = PostgresRepository,
    page_size: Optional[int] = None,
) -> None:
    """Enqueue a staging pass; blocks while the queue is full."""
    task_queue.enqueue(wikidata_staging_job(settings, repository_factory, page_size))
    logger.info("job.staging.enqueued queued=%s", task_queue.qsize())


def enqueue_canonical_import(
    task_queue: BackgroundTaskQueue,
    settings: Optional[Settings] = None,
    repository_factory: RepositoryFactory = PostgresRepository,
    page_size: Optional[int] = None,
) -> None:
    """Enqueue a canonical bulk import; blocks while the queue is full."""
    task_queue.enqueue(canonical_import_job(settings, repository_factory, page_size))
    logger.info("job.canonical.enqueued queued=%s", task_queue.qsize())
