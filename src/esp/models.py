"""Core data models for ingestion, staging and review."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field
from pydantic import ConfigDict


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReviewStatus(str, Enum):
    """Review state of a staged record. Pending is the only non-terminal state."""

    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"


class RawRecord(BaseModel):
    """One SPARQL binding flattened to text. Absent fields are empty strings."""

    model_config = ConfigDict(extra="ignore")

    external_id: str = ""
    label: str = ""
    description: str = ""
    start_text: str = ""
    end_text: str = ""
    country_label: str = ""
    country_iso: str = ""
    country_external_id: str = ""
    coordinate_text: str = ""
    payload: dict[str, Any] = Field(default_factory=dict)


class ExternalRecord(BaseModel):
    """Normalized source record, not persisted as-is."""

    model_config = ConfigDict(extra="ignore")

    external_id: Optional[str] = None
    name: str = ""
    description: str = ""
    start_date: datetime
    end_date: Optional[datetime] = None
    country: str = ""
    country_iso: Optional[str] = None
    country_external_id: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    coordinate_text: Optional[str] = None


class StagedRecord(BaseModel):
    """Candidate event awaiting manual review."""

    model_config = ConfigDict(extra="ignore")

    staged_id: Optional[int] = None
    external_id: Optional[str] = None
    name: str = ""
    description: str = ""
    start_date: datetime
    end_date: Optional[datetime] = None
    country: str = ""
    country_iso: Optional[str] = None
    country_external_id: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    sources: str = ""

    status: ReviewStatus = ReviewStatus.PENDING
    created_at: datetime = Field(default_factory=_utcnow)
    reviewed_at: Optional[datetime] = None
    reviewer: Optional[str] = None
    review_notes: Optional[str] = None


class CanonicalRecord(BaseModel):
    """Accepted event in the publicly queryable dataset."""

    model_config = ConfigDict(extra="ignore")

    canonical_id: Optional[int] = None
    external_id: Optional[str] = None
    name: str = ""
    description: str = ""
    start_date: datetime
    end_date: Optional[datetime] = None
    country: str = ""
    country_iso: Optional[str] = None
    country_external_id: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    sources: str = ""
    event_type: str = ""


class AcceptDecision(BaseModel):
    """Normalization acceptance."""

    raw_record: RawRecord
    record: ExternalRecord
    reason: str = "accepted"


class RejectDecision(BaseModel):
    """Normalization rejection."""

    raw_record: RawRecord
    reason: str
    details: dict[str, Any] = Field(default_factory=dict)
