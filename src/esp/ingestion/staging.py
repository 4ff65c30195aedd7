"""Staging adapter: normalized records into the pending store."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional, Sequence

from esp.db.repository import StagingRepository
from esp.models import CanonicalRecord, ExternalRecord, ReviewStatus, StagedRecord
from esp.utils.logging import get_logger


logger = get_logger(__name__)

BULK_STAGING_SOURCE = "Wikidata (bulk staging)"
QID_IMPORT_SOURCE = "Wikidata (QID import)"
CANONICAL_IMPORT_SOURCE = "Wikidata"


def to_staged(
    record: ExternalRecord,
    sources: str = BULK_STAGING_SOURCE,
    created_at: Optional[datetime] = None,
) -> StagedRecord:
    """Wrap a normalized record in a Pending review envelope."""
    return StagedRecord(
        external_id=record.external_id,
        name=record.name,
        description=record.description,
        start_date=record.start_date,
        end_date=record.end_date,
        country=record.country,
        country_iso=record.country_iso,
        country_external_id=record.country_external_id,
        latitude=record.latitude,
        longitude=record.longitude,
        sources=sources,
        status=ReviewStatus.PENDING,
        created_at=created_at or datetime.now(timezone.utc),
    )


def to_canonical(
    record: ExternalRecord,
    event_type: str,
    sources: str = CANONICAL_IMPORT_SOURCE,
) -> CanonicalRecord:
    """Map a normalized record straight into the canonical shape."""
    return CanonicalRecord(
        external_id=record.external_id,
        name=record.name,
        description=record.description,
        start_date=record.start_date,
        end_date=record.end_date,
        country=record.country,
        country_iso=record.country_iso,
        country_external_id=record.country_external_id,
        latitude=record.latitude,
        longitude=record.longitude,
        sources=sources,
        event_type=event_type,
    )


def stage_batch(repository: StagingRepository, batch: Sequence[StagedRecord]) -> int:
    """Commit one batch of staged rows. Returns the number actually inserted."""
    if not batch:
        return 0
    inserted = repository.insert_staged(batch)
    logger.info("stage_batch.committed count=%s inserted=%s", len(batch), inserted)
    return inserted


def list_pending(repository: StagingRepository, limit: Optional[int] = None) -> list[StagedRecord]:
    """Pending staged rows, newest first."""
    return repository.list_staged(ReviewStatus.PENDING, limit=limit)
