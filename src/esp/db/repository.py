"""Storage contract for staged and canonical events, with a Postgres backend."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol, Sequence, TypeVar

from psycopg import Cursor
from psycopg import errors as pg_errors
from psycopg.rows import dict_row

from esp.config import Settings
from esp.db.client import db_cursor
from esp.ingestion.run_log import (
    RunSummary,
    complete_run_failed,
    complete_run_success,
    create_run,
)
from esp.models import CanonicalRecord, ReviewStatus, StagedRecord
from esp.utils.logging import get_logger


logger = get_logger(__name__)


STAGED_COLUMNS = (
    "external_id",
    "name",
    "description",
    "start_date",
    "end_date",
    "country",
    "country_iso",
    "country_external_id",
    "latitude",
    "longitude",
    "sources",
    "status",
    "created_at",
)

CANONICAL_COLUMNS = (
    "external_id",
    "name",
    "description",
    "start_date",
    "end_date",
    "country",
    "country_iso",
    "country_external_id",
    "latitude",
    "longitude",
    "sources",
    "event_type",
)

EXTERNAL_ID_CONFLICT = "on conflict (lower(external_id)) where external_id is not null"


class DuplicateIdentifierError(Exception):
    """A canonical row with the same external identifier already exists."""


class ReviewConflictError(Exception):
    """The staged row is no longer Pending."""


@dataclass(frozen=True)
class KnownIdentifiers:
    canonical: frozenset[str]
    staged: frozenset[str]


@dataclass
class UpsertResult:
    total: int
    inserted: int
    updated: int


class StagingRepository(Protocol):
    """Persistence operations used by the pipeline and the review surface."""

    def load_identifiers(self) -> KnownIdentifiers:
        """Return all non-null external identifiers in both stores."""

    def insert_staged(self, records: Sequence[StagedRecord]) -> int:
        """Atomically insert staged rows, skipping identifier conflicts. Returns inserted count."""

    def upsert_canonical(self, records: Sequence[CanonicalRecord]) -> UpsertResult:
        """Insert or update canonical rows keyed by external identifier."""

    def canonical_exists(self, external_id: str) -> bool:
        """Return True if a canonical row has this identifier (case-insensitive)."""

    def get_staged(self, staged_id: int) -> Optional[StagedRecord]:
        """Return a staged row or None."""

    def list_staged(self, status: ReviewStatus, limit: Optional[int] = None) -> list[StagedRecord]:
        """Return staged rows in a status, newest first."""

    def save_review(
        self,
        staged: StagedRecord,
        canonical: Optional[CanonicalRecord] = None,
    ) -> Optional[int]:
        """Persist a review transition and an optional promotion in one commit.

        Raises DuplicateIdentifierError if the promotion collides and
        ReviewConflictError if the row is no longer Pending. Returns the new
        canonical id when a row was promoted.
        """

    def start_run(self, source: str, mode: str) -> Optional[int]:
        """Record the start of an ingestion run."""

    def finish_run(self, run_id: Optional[int], summary: RunSummary) -> None:
        """Record a successful (possibly cancelled) run."""

    def fail_run(self, run_id: Optional[int], error: Exception, summary: RunSummary) -> None:
        """Record a failed run."""


class PostgresRepository:
    """StagingRepository backed by Postgres via psycopg."""

    def __init__(self, settings: Optional[Settings] = None, batch_size: Optional[int] = None) -> None:
        self.settings = settings or Settings()
        self.batch_size = batch_size or self.settings.staging_batch_size

    def load_identifiers(self) -> KnownIdentifiers:
        with db_cursor(self.settings) as cursor:
            cursor.execute(
                "select external_id from canonical_events where external_id is not null"
            )
            canonical = frozenset(row[0] for row in cursor.fetchall())
            cursor.execute("select external_id from staged_events where external_id is not null")
            staged = frozenset(row[0] for row in cursor.fetchall())
        logger.info(
            "repository.identifiers canonical=%s staged=%s", len(canonical), len(staged)
        )
        return KnownIdentifiers(canonical=canonical, staged=staged)

    def insert_staged(self, records: Sequence[StagedRecord]) -> int:
        if not records:
            return 0
        with db_cursor(self.settings) as cursor:
            return _insert_staged_batches(cursor, list(records), self.batch_size)

    def upsert_canonical(self, records: Sequence[CanonicalRecord]) -> UpsertResult:
        if not records:
            return UpsertResult(total=0, inserted=0, updated=0)
        with db_cursor(self.settings) as cursor:
            return _upsert_canonical(cursor, list(records), self.batch_size)

    def canonical_exists(self, external_id: str) -> bool:
        with db_cursor(self.settings) as cursor:
            cursor.execute(
                "select 1 from canonical_events where lower(external_id) = lower(%s) limit 1",
                (external_id,),
            )
            return cursor.fetchone() is not None

    def get_staged(self, staged_id: int) -> Optional[StagedRecord]:
        with db_cursor(self.settings, row_factory=dict_row) as cursor:
            cursor.execute("select * from staged_events where staged_id = %s", (staged_id,))
            row = cursor.fetchone()
        return StagedRecord.model_validate(row) if row else None

    def list_staged(self, status: ReviewStatus, limit: Optional[int] = None) -> list[StagedRecord]:
        query = "select * from staged_events where status = %s order by created_at desc, staged_id desc"
        params: list[object] = [status.value]
        if limit is not None:
            query += " limit %s"
            params.append(limit)
        with db_cursor(self.settings, row_factory=dict_row) as cursor:
            cursor.execute(query, params)
            rows = cursor.fetchall()
        return [StagedRecord.model_validate(row) for row in rows]

    def save_review(
        self,
        staged: StagedRecord,
        canonical: Optional[CanonicalRecord] = None,
    ) -> Optional[int]:
        with db_cursor(self.settings) as cursor:
            cursor.execute(
                "update staged_events set status = %s, reviewed_at = %s, reviewer = %s, "
                "review_notes = %s where staged_id = %s and status = %s",
                (
                    staged.status.value,
                    staged.reviewed_at,
                    staged.reviewer,
                    staged.review_notes,
                    staged.staged_id,
                    ReviewStatus.PENDING.value,
                ),
            )
            if cursor.rowcount == 0:
                raise ReviewConflictError(f"staged row {staged.staged_id} is not pending")

            if canonical is None:
                return None

            placeholders = ",".join(["%s"] * len(CANONICAL_COLUMNS))
            try:
                cursor.execute(
                    f"insert into canonical_events ({', '.join(CANONICAL_COLUMNS)}) "
                    f"values ({placeholders}) returning canonical_id",
                    _canonical_values(canonical),
                )
            except pg_errors.UniqueViolation as exc:
                raise DuplicateIdentifierError(
                    f"canonical row already exists for {canonical.external_id}"
                ) from exc
            return int(cursor.fetchone()[0])

    def start_run(self, source: str, mode: str) -> Optional[int]:
        with db_cursor(self.settings) as cursor:
            return create_run(cursor, source, mode)

    def finish_run(self, run_id: Optional[int], summary: RunSummary) -> None:
        if run_id is None:
            return
        with db_cursor(self.settings) as cursor:
            complete_run_success(cursor, run_id, summary)

    def fail_run(self, run_id: Optional[int], error: Exception, summary: RunSummary) -> None:
        if run_id is None:
            return
        with db_cursor(self.settings) as cursor:
            complete_run_failed(cursor, run_id, error, summary)


def _staged_values(record: StagedRecord) -> list[object]:
    return [
        record.external_id,
        record.name,
        record.description,
        record.start_date,
        record.end_date,
        record.country,
        record.country_iso,
        record.country_external_id,
        record.latitude,
        record.longitude,
        record.sources,
        record.status.value,
        record.created_at,
    ]


def _canonical_values(record: CanonicalRecord) -> list[object]:
    return [
        record.external_id,
        record.name,
        record.description,
        record.start_date,
        record.end_date,
        record.country,
        record.country_iso,
        record.country_external_id,
        record.latitude,
        record.longitude,
        record.sources,
        record.event_type,
    ]


def _insert_staged_batches(
    cursor: Cursor,
    records: list[StagedRecord],
    batch_size: int,
) -> int:
    placeholders = "(" + ",".join(["%s"] * len(STAGED_COLUMNS)) + ")"
    inserted = 0

    for batch in _chunked(records, batch_size):
        values: list[object] = []
        for record in batch:
            values.extend(_staged_values(record))

        query = (
            f"insert into staged_events ({', '.join(STAGED_COLUMNS)}) values "
            + ",".join([placeholders] * len(batch))
            + f" {EXTERNAL_ID_CONFLICT} do nothing returning staged_id"
        )
        cursor.execute(query, values)
        rows = cursor.fetchall()
        inserted += len(rows)
        if len(rows) < len(batch):
            logger.info(
                "insert_staged.conflicts skipped=%s batch=%s", len(batch) - len(rows), len(batch)
            )

    return inserted


def _upsert_canonical(
    cursor: Cursor,
    records: list[CanonicalRecord],
    batch_size: int,
) -> UpsertResult:
    placeholders = "(" + ",".join(["%s"] * len(CANONICAL_COLUMNS)) + ")"
    updates = ", ".join(
        f"{column} = excluded.{column}" for column in CANONICAL_COLUMNS if column != "external_id"
    )
    total_inserted = 0
    total_updated = 0

    for batch in _chunked(records, batch_size):
        values: list[object] = []
        for record in batch:
            values.extend(_canonical_values(record))

        query = (
            f"insert into canonical_events ({', '.join(CANONICAL_COLUMNS)}) values "
            + ",".join([placeholders] * len(batch))
            + f" {EXTERNAL_ID_CONFLICT} do update set {updates}"
            + " returning (xmax = 0) as inserted"
        )
        cursor.execute(query, values)
        results = cursor.fetchall()
        inserted = sum(1 for row in results if row[0])
        total_inserted += inserted
        total_updated += len(results) - inserted

    return UpsertResult(
        total=total_inserted + total_updated, inserted=total_inserted, updated=total_updated
    )


T = TypeVar("T")


def _chunked(items: Sequence[T], batch_size: int) -> list[list[T]]:
    return [list(items[i : i + batch_size]) for i in range(0, len(items), batch_size)]
