from __future__ import annotations

import itertools
from typing import Any, Optional, Sequence

import pytest

from esp.config import Settings
from esp.db.repository import (
    DuplicateIdentifierError,
    KnownIdentifiers,
    ReviewConflictError,
    UpsertResult,
)
from esp.ingestion.run_log import RunSummary
from esp.models import CanonicalRecord, ReviewStatus, StagedRecord
from esp.utils.text import identifier_key


class InMemoryRepository:
    """StagingRepository fake with the same uniqueness rules as the schema."""

    def __init__(self) -> None:
        self.staged: dict[int, StagedRecord] = {}
        self.canonical: dict[int, CanonicalRecord] = {}
        self.runs: dict[int, dict[str, Any]] = {}
        self.insert_batches: list[int] = []
        self.identifier_reads = 0
        self._staged_ids = itertools.count(1)
        self._canonical_ids = itertools.count(1)
        self._run_ids = itertools.count(1)

    def load_identifiers(self) -> KnownIdentifiers:
        self.identifier_reads += 1
        return KnownIdentifiers(
            canonical=frozenset(r.external_id for r in self.canonical.values() if r.external_id),
            staged=frozenset(r.external_id for r in self.staged.values() if r.external_id),
        )

    def insert_staged(self, records: Sequence[StagedRecord]) -> int:
        keys = {identifier_key(r.external_id) for r in self.staged.values()}
        inserted = 0
        for record in records:
            key = identifier_key(record.external_id)
            if key is not None and key in keys:
                continue
            keys.add(key)
            staged_id = next(self._staged_ids)
            self.staged[staged_id] = record.model_copy(update={"staged_id": staged_id})
            inserted += 1
        self.insert_batches.append(len(records))
        return inserted

    def upsert_canonical(self, records: Sequence[CanonicalRecord]) -> UpsertResult:
        inserted = 0
        updated = 0
        for record in records:
            existing_id = self._canonical_id_for(record.external_id)
            if existing_id is None:
                canonical_id = next(self._canonical_ids)
                self.canonical[canonical_id] = record.model_copy(
                    update={"canonical_id": canonical_id}
                )
                inserted += 1
            else:
                self.canonical[existing_id] = record.model_copy(
                    update={"canonical_id": existing_id}
                )
                updated += 1
        return UpsertResult(total=inserted + updated, inserted=inserted, updated=updated)

    def canonical_exists(self, external_id: str) -> bool:
        return self._canonical_id_for(external_id) is not None

    def get_staged(self, staged_id: int) -> Optional[StagedRecord]:
        record = self.staged.get(staged_id)
        return record.model_copy() if record else None

    def list_staged(self, status: ReviewStatus, limit: Optional[int] = None) -> list[StagedRecord]:
        rows = sorted(
            (r for r in self.staged.values() if r.status is status),
            key=lambda r: (r.created_at, r.staged_id),
            reverse=True,
        )
        return rows[:limit] if limit is not None else rows

    def save_review(
        self,
        staged: StagedRecord,
        canonical: Optional[CanonicalRecord] = None,
    ) -> Optional[int]:
        current = self.staged.get(staged.staged_id)
        if current is None or current.status is not ReviewStatus.PENDING:
            raise ReviewConflictError(f"staged row {staged.staged_id} is not pending")
        if canonical is not None and self._canonical_id_for(canonical.external_id) is not None:
            raise DuplicateIdentifierError(canonical.external_id)

        self.staged[staged.staged_id] = staged.model_copy()
        if canonical is None:
            return None
        canonical_id = next(self._canonical_ids)
        self.canonical[canonical_id] = canonical.model_copy(update={"canonical_id": canonical_id})
        return canonical_id

    def start_run(self, source: str, mode: str) -> Optional[int]:
        run_id = next(self._run_ids)
        self.runs[run_id] = {"status": "running", "source": source, "mode": mode}
        return run_id

    def finish_run(self, run_id: Optional[int], summary: RunSummary) -> None:
        self.runs[run_id].update(status="success", summary=summary)

    def fail_run(self, run_id: Optional[int], error: Exception, summary: RunSummary) -> None:
        self.runs[run_id].update(status="failed", error=str(error), summary=summary)

    def add_canonical(self, external_id: str, **fields: Any) -> int:
        """Seed a canonical row directly."""
        payload = {"external_id": external_id, "name": external_id, "start_date": "1917-11-07T00:00:00Z"}
        payload.update(fields)
        canonical_id = next(self._canonical_ids)
        self.canonical[canonical_id] = CanonicalRecord.model_validate(
            {**payload, "canonical_id": canonical_id}
        )
        return canonical_id

    def _canonical_id_for(self, external_id: Optional[str]) -> Optional[int]:
        key = identifier_key(external_id)
        if key is None:
            return None
        for canonical_id, record in self.canonical.items():
            if identifier_key(record.external_id) == key:
                return canonical_id
        return None


def sparql_binding(
    qid: Optional[str] = "Q1",
    label: Optional[str] = "Test Revolution",
    start: Optional[str] = "1917-11-07T00:00:00Z",
    end: Optional[str] = None,
    country_qid: Optional[str] = "Q159",
    country_label: Optional[str] = "Russia",
    country_iso: Optional[str] = "RU",
    coord: Optional[str] = None,
    description: Optional[str] = "uprising in a test country",
) -> dict[str, Any]:
    values = {
        "qid": qid,
        "itemLabel": label,
        "itemDescription": description,
        "startDate": start,
        "end": end,
        "countryQid": country_qid,
        "countryLabel": country_label,
        "countryIso": country_iso,
        "coord": coord,
    }
    if qid:
        values["item"] = f"http://www.wikidata.org/entity/{qid}"
    return {
        name: {"type": "literal", "value": value}
        for name, value in values.items()
        if value is not None
    }


@pytest.fixture
def repository() -> InMemoryRepository:
    return InMemoryRepository()


@pytest.fixture
def binding():
    return sparql_binding


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        WIKIDATA_SPARQL_URL="https://query.example.test/sparql",
        WIKIPEDIA_API_URL="https://wiki.example.test/w/api.php",
        WIKIDATA_PAGE_SIZE=2,
        WIKIDATA_PAGE_DELAY_SECONDS=0,
        WIKIDATA_QID_BATCH_SIZE=50,
        WIKIDATA_QID_BATCH_DELAY_SECONDS=0,
        WIKIPEDIA_REQUEST_DELAY_SECONDS=0,
        HTTP_MAX_RETRIES=0,
        INGESTION_MIN_START_YEAR=1900,
        CANONICAL_EVENT_TYPE="Revolution/Uprising",
    )
