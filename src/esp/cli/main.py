"""Typer CLI entry point."""

from __future__ import annotations

import signal
import threading
from contextlib import contextmanager
from typing import Callable, Iterator, Optional

import typer

from esp.config import Settings
from esp.db.client import db_cursor
from esp.db.repository import PostgresRepository
from esp.db.schema import apply_schema
from esp.ingestion.errors import IngestionError
from esp.ingestion.http import build_client
from esp.ingestion.runner import import_canonical, stage_all, stage_from_wikipedia
from esp.ingestion.staging import list_pending
from esp.jobs.queue import BackgroundTaskQueue
from esp.jobs.service import enqueue_canonical_import, enqueue_wikidata_staging
from esp.jobs.worker import QueuedWorker
from esp.review import ReviewOutcome, approve, reject
from esp.utils.logging import configure_logging, get_logger


app = typer.Typer(help="Event Staging Pipeline CLI")
stage_app = typer.Typer(help="Staging commands")
canonical_app = typer.Typer(help="Canonical dataset commands")
review_app = typer.Typer(help="Review staged events")
worker_app = typer.Typer(help="Background worker")
db_app = typer.Typer(help="Database utilities")

app.add_typer(stage_app, name="stage")
app.add_typer(canonical_app, name="canonical")
app.add_typer(review_app, name="review")
app.add_typer(worker_app, name="worker")
app.add_typer(db_app, name="db")

logger = get_logger(__name__)


@app.callback()
def main() -> None:
    """Initialize logging for all commands."""
    settings = Settings()
    configure_logging(settings.log_level)


@contextmanager
def _cancel_on_sigint() -> Iterator[threading.Event]:
    """Turn Ctrl-C into a cancellation signal for the duration of a run."""
    cancel = threading.Event()

    def _handler(signum, frame) -> None:
        logger.warning("cli.cancel_requested")
        cancel.set()

    previous = signal.signal(signal.SIGINT, _handler)
    try:
        yield cancel
    finally:
        signal.signal(signal.SIGINT, previous)


def _fail(message: str) -> None:
    typer.echo(message, err=True)
    raise typer.Exit(1)


def _run_in_background(
    settings: Settings,
    enqueue: Callable[..., None],
    page_size: Optional[int],
    label: str,
) -> None:
    """Start a worker, enqueue one job and wait for the queue to drain."""
    task_queue = BackgroundTaskQueue(
        capacity=settings.job_queue_capacity, poll_seconds=settings.job_queue_poll_seconds
    )
    worker = QueuedWorker(task_queue)
    worker.start()
    enqueue(task_queue, settings, page_size=page_size)
    typer.echo(f"{label} job enqueued.")
    try:
        task_queue.join()
    except KeyboardInterrupt:
        typer.echo("Stopping worker...")
    finally:
        worker.stop(timeout=30)
    if worker.failed:
        _fail(f"{label} job failed; see log for details.")


@stage_app.command("wikidata")
def stage_wikidata(
    page_size: Optional[int] = typer.Option(None, help="Page size (overrides env)"),
    background: bool = typer.Option(
        False, help="Run through the background queue and wait for it to drain"
    ),
) -> None:
    """Stage all Wikidata candidates for review."""
    settings = Settings()

    if background:
        _run_in_background(settings, enqueue_wikidata_staging, page_size, "Bulk Wikidata staging")
        return

    repository = PostgresRepository(settings)
    with _cancel_on_sigint() as cancel, build_client(settings) as client:
        try:
            summary = stage_all(repository, client, settings, cancel=cancel, page_size=page_size)
        except IngestionError as exc:
            _fail(f"Staging failed: {exc}")
    typer.echo(f"Staged {summary.staged} items from Wikidata. ({summary.describe()})")


@stage_app.command("wikipedia")
def stage_wikipedia(
    section: str = typer.Option(..., help="Section heading, e.g. 1900s"),
    until_section: Optional[str] = typer.Option(
        None, help="Last section heading of an inclusive range"
    ),
    page: Optional[str] = typer.Option(None, help="Wikipedia list page (overrides env)"),
    dry_run: bool = typer.Option(False, help="Do not write to DB"),
) -> None:
    """Stage events linked from a Wikipedia list section."""
    settings = Settings()
    repository = PostgresRepository(settings)
    with _cancel_on_sigint() as cancel, build_client(settings) as client:
        try:
            summary = stage_from_wikipedia(
                repository,
                client,
                section=section,
                until_section=until_section,
                page_title=page,
                settings=settings,
                cancel=cancel,
                dry_run=dry_run,
            )
        except IngestionError as exc:
            _fail(f"Import failed: {exc}")
    typer.echo(
        f"Imported {summary.fetched} candidate items into staging ({summary.staged} new)."
    )


@canonical_app.command("import")
def canonical_import(
    page_size: Optional[int] = typer.Option(None, help="Page size (overrides env)"),
    background: bool = typer.Option(
        False, help="Run through the background queue and wait for it to drain"
    ),
) -> None:
    """Import Wikidata candidates directly into the canonical dataset."""
    settings = Settings()
    if background:
        _run_in_background(settings, enqueue_canonical_import, page_size, "Canonical import")
        return

    repository = PostgresRepository(settings)
    with _cancel_on_sigint() as cancel, build_client(settings) as client:
        try:
            summary = import_canonical(
                repository, client, settings, cancel=cancel, page_size=page_size
            )
        except IngestionError as exc:
            _fail(f"Canonical import failed: {exc}")
    typer.echo(summary.describe())


@review_app.command("list")
def review_list(
    limit: Optional[int] = typer.Option(50, help="Max rows to show"),
) -> None:
    """List pending staged events, newest first."""
    repository = PostgresRepository(Settings())
    pending = list_pending(repository, limit=limit)
    if not pending:
        typer.echo("No pending items.")
        return
    for item in pending:
        coords = (
            f"{item.latitude:.4f},{item.longitude:.4f}"
            if item.latitude is not None and item.longitude is not None
            else "-"
        )
        typer.echo(
            f"{item.staged_id}\t{item.external_id or '-'}\t{item.start_date.date()}\t"
            f"{item.country or item.country_external_id or '-'}\t{coords}\t{item.name}"
        )


@review_app.command("approve")
def review_approve(
    staged_id: int = typer.Argument(..., help="Staged row id"),
    reviewer: Optional[str] = typer.Option(None, help="Reviewer identity"),
) -> None:
    """Approve a staged event and promote it to the canonical dataset."""
    settings = Settings()
    result = approve(PostgresRepository(settings), staged_id, reviewer=reviewer, settings=settings)
    _report_review(staged_id, result.outcome)


@review_app.command("reject")
def review_reject(
    staged_id: int = typer.Argument(..., help="Staged row id"),
    reason: Optional[str] = typer.Option(None, help="Rejection note"),
    reviewer: Optional[str] = typer.Option(None, help="Reviewer identity"),
) -> None:
    """Reject a staged event."""
    result = reject(PostgresRepository(Settings()), staged_id, reason=reason, reviewer=reviewer)
    _report_review(staged_id, result.outcome)


def _report_review(staged_id: int, outcome: ReviewOutcome) -> None:
    if outcome is ReviewOutcome.NOT_FOUND:
        _fail(f"Staged item {staged_id} not found.")
    if outcome is ReviewOutcome.ALREADY_REVIEWED:
        _fail(f"Staged item {staged_id} was already reviewed.")
    messages = {
        ReviewOutcome.APPROVED: "approved and imported",
        ReviewOutcome.APPROVED_EXISTING: "approved (already existed)",
        ReviewOutcome.REJECTED: "rejected",
    }
    typer.echo(f"Staged item {staged_id} {messages[outcome]}.")


@worker_app.command("run")
def worker_run(
    interval_minutes: Optional[int] = typer.Option(
        None, help="Enqueue a staging pass every N minutes (overrides env; 0 = once)"
    ),
) -> None:
    """Run the background worker with a scheduled staging trigger."""
    settings = Settings()
    interval = (
        interval_minutes if interval_minutes is not None else settings.worker_interval_minutes
    )
    task_queue = BackgroundTaskQueue(
        capacity=settings.job_queue_capacity, poll_seconds=settings.job_queue_poll_seconds
    )
    worker = QueuedWorker(task_queue)
    worker.start()
    logger.info("worker.schedule interval_minutes=%s", interval)

    try:
        enqueue_wikidata_staging(task_queue, settings)
        if interval <= 0:
            task_queue.join()
            return
        while not worker.stop_event.wait(interval * 60):
            enqueue_wikidata_staging(task_queue, settings)
    except KeyboardInterrupt:
        typer.echo("Stopping worker...")
    finally:
        worker.stop(timeout=30)


@db_app.command("init")
def db_init() -> None:
    """Create tables and indexes if missing."""
    with db_cursor(Settings()) as cursor:
        apply_schema(cursor)
    logger.info("db.init.ok")
    typer.echo("Schema applied.")


@db_app.command("check")
def db_check() -> None:
    """Check database connectivity."""
    try:
        with db_cursor() as cursor:
            cursor.execute("select 1")
            logger.info("db.check.ok")
    except Exception as exc:
        logger.error("db.check.failed: %s", exc)
        typer.echo(f"Database check failed: {exc}", err=True)
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
