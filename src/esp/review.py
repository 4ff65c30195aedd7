"""Review transitions for staged records."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from esp.config import Settings
from esp.db.repository import DuplicateIdentifierError, ReviewConflictError, StagingRepository
from esp.models import CanonicalRecord, ReviewStatus, StagedRecord
from esp.utils.countries import normalize_iso
from esp.utils.logging import get_logger


logger = get_logger(__name__)

NOTE_IMPORTED = "Approved and imported."
NOTE_ALREADY_EXISTED = "Already existed - marked approved."
NOTE_REJECTED_DEFAULT = "Rejected via admin UI."


class ReviewOutcome(str, Enum):
    APPROVED = "approved"
    APPROVED_EXISTING = "approved_existing"
    REJECTED = "rejected"
    NOT_FOUND = "not_found"
    ALREADY_REVIEWED = "already_reviewed"


@dataclass(frozen=True)
class ReviewResult:
    outcome: ReviewOutcome
    staged: Optional[StagedRecord] = None
    canonical_id: Optional[int] = None

    @property
    def found(self) -> bool:
        return self.outcome is not ReviewOutcome.NOT_FOUND


def promote(staged: StagedRecord, event_type: str) -> CanonicalRecord:
    """Map a staged row into a canonical row."""
    return CanonicalRecord(
        external_id=staged.external_id,
        name=staged.name,
        description=staged.description,
        start_date=staged.start_date,
        end_date=staged.end_date or staged.start_date,
        country=staged.country,
        country_iso=normalize_iso(staged.country_iso),
        country_external_id=staged.country_external_id,
        latitude=staged.latitude,
        longitude=staged.longitude,
        sources=staged.sources,
        event_type=event_type,
    )


def approve(
    repository: StagingRepository,
    staged_id: int,
    reviewer: Optional[str] = None,
    settings: Optional[Settings] = None,
    now: Optional[datetime] = None,
) -> ReviewResult:
    """Approve a pending row and promote it unless its identifier is already canonical."""
    settings = settings or Settings()
    staged = repository.get_staged(staged_id)
    if staged is None:
        return ReviewResult(outcome=ReviewOutcome.NOT_FOUND)
    if staged.status is not ReviewStatus.PENDING:
        return ReviewResult(outcome=ReviewOutcome.ALREADY_REVIEWED, staged=staged)

    reviewed_at = now or datetime.now(timezone.utc)
    if staged.external_id and repository.canonical_exists(staged.external_id):
        return _approve_existing(repository, staged, reviewer, reviewed_at)

    updated = _reviewed(staged, ReviewStatus.APPROVED, reviewer, reviewed_at, NOTE_IMPORTED)
    try:
        canonical_id = repository.save_review(updated, promote(staged, settings.canonical_event_type))
    except DuplicateIdentifierError:
        # another writer promoted the same identifier after our existence check
        return _approve_existing(repository, staged, reviewer, reviewed_at)
    except ReviewConflictError:
        return _already_reviewed(repository, staged)

    logger.info(
        "review.approved staged_id=%s external_id=%s canonical_id=%s",
        staged_id,
        staged.external_id,
        canonical_id,
    )
    return ReviewResult(outcome=ReviewOutcome.APPROVED, staged=updated, canonical_id=canonical_id)


def reject(
    repository: StagingRepository,
    staged_id: int,
    reason: Optional[str] = None,
    reviewer: Optional[str] = None,
    now: Optional[datetime] = None,
) -> ReviewResult:
    """Reject a pending row, storing the reason verbatim or a default note."""
    staged = repository.get_staged(staged_id)
    if staged is None:
        return ReviewResult(outcome=ReviewOutcome.NOT_FOUND)
    if staged.status is not ReviewStatus.PENDING:
        return ReviewResult(outcome=ReviewOutcome.ALREADY_REVIEWED, staged=staged)

    notes = reason if reason is not None else NOTE_REJECTED_DEFAULT
    updated = _reviewed(
        staged, ReviewStatus.REJECTED, reviewer, now or datetime.now(timezone.utc), notes
    )
    try:
        repository.save_review(updated)
    except ReviewConflictError:
        return _already_reviewed(repository, staged)

    logger.info("review.rejected staged_id=%s external_id=%s", staged_id, staged.external_id)
    return ReviewResult(outcome=ReviewOutcome.REJECTED, staged=updated)


def _approve_existing(
    repository: StagingRepository,
    staged: StagedRecord,
    reviewer: Optional[str],
    reviewed_at: datetime,
) -> ReviewResult:
    updated = _reviewed(staged, ReviewStatus.APPROVED, reviewer, reviewed_at, NOTE_ALREADY_EXISTED)
    try:
        repository.save_review(updated)
    except ReviewConflictError:
        return _already_reviewed(repository, staged)
    logger.info(
        "review.approved_existing staged_id=%s external_id=%s",
        staged.staged_id,
        staged.external_id,
    )
    return ReviewResult(outcome=ReviewOutcome.APPROVED_EXISTING, staged=updated)


def _already_reviewed(repository: StagingRepository, staged: StagedRecord) -> ReviewResult:
    current = repository.get_staged(staged.staged_id) if staged.staged_id is not None else None
    return ReviewResult(outcome=ReviewOutcome.ALREADY_REVIEWED, staged=current or staged)


def _reviewed(
    staged: StagedRecord,
    status: ReviewStatus,
    reviewer: Optional[str],
    reviewed_at: datetime,
    notes: str,
) -> StagedRecord:
    return staged.model_copy(
        update={
            "status": status,
            "reviewed_at": reviewed_at,
            "reviewer": reviewer,
            "review_notes": notes,
        }
    )
