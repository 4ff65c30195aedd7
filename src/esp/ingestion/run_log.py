"""Ingestion run logging helpers."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Optional

from psycopg import Cursor
from psycopg.types.json import Jsonb


@dataclass
class RunSummary:
    """Counters for one ingestion run."""

    source: str
    mode: str
    run_id: Optional[int] = None
    pages: int = 0
    fetched: int = 0
    staged: int = 0
    updated: int = 0
    duplicates: int = 0
    rejected: Counter = field(default_factory=Counter)
    cancelled: bool = False

    @property
    def rejected_count(self) -> int:
        return sum(self.rejected.values())

    def record_reject(self, reason: str) -> None:
        self.rejected[reason] += 1

    def describe(self) -> str:
        text = (
            f"{self.source} {self.mode}: staged {self.staged} new of {self.fetched} fetched "
            f"({self.duplicates} duplicates, {self.rejected_count} rejected, {self.pages} pages)"
        )
        if self.updated:
            text += f", {self.updated} updated"
        if self.cancelled:
            text += " [cancelled]"
        return text


def create_run(cursor: Cursor, source: str, mode: str) -> int:
    cursor.execute(
        "insert into ingestion_runs (status, source, mode) "
        "values ('running', %s, %s) returning run_id",
        (source, mode),
    )
    return int(cursor.fetchone()[0])


def complete_run_success(cursor: Cursor, run_id: int, summary: RunSummary) -> None:
    cursor.execute(
        "update ingestion_runs set status = 'success', finished_at = now(), "
        "page_count = %s, fetched_count = %s, staged_count = %s, "
        "duplicate_count = %s, rejected_count = %s, cancelled = %s where run_id = %s",
        (
            summary.pages,
            summary.fetched,
            summary.staged,
            summary.duplicates,
            summary.rejected_count,
            summary.cancelled,
            run_id,
        ),
    )


def complete_run_failed(
    cursor: Cursor,
    run_id: int,
    error: Exception,
    summary: Optional[RunSummary] = None,
) -> None:
    cursor.execute(
        "update ingestion_runs set status = 'failed', finished_at = now(), "
        "page_count = %s, fetched_count = %s, staged_count = %s, error_json = %s "
        "where run_id = %s",
        (
            summary.pages if summary else None,
            summary.fetched if summary else None,
            summary.staged if summary else None,
            Jsonb({"error": str(error), "type": type(error).__name__}),
            run_id,
        ),
    )
