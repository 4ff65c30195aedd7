"""Normalization gate for incoming SPARQL records."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from esp.config import Settings
from esp.models import AcceptDecision, ExternalRecord, RawRecord, RejectDecision
from esp.utils.geo import parse_point
from esp.utils.text import blank_to_none, normalize_qid
from esp.utils.time import parse_timestamp


def parse_start(value: str) -> Optional[datetime]:
    """Parse a start timestamp. None means the record must be rejected."""
    return parse_timestamp(value)


def parse_end(value: str) -> Optional[datetime]:
    """Parse an optional end timestamp. Failures are not fatal."""
    return parse_timestamp(value)


def is_admissible(record: ExternalRecord) -> bool:
    """Return True if the record has a country or a full coordinate pair."""
    if (record.country_external_id or "").strip() or record.country.strip():
        return True
    return record.latitude is not None and record.longitude is not None


class NormalizationGate:
    """Turn raw bindings into typed records or explicit rejections."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        min_start_year: Optional[int] = None,
        apply_min_year: bool = True,
    ) -> None:
        self.settings = settings or Settings()
        if min_start_year is None and apply_min_year:
            min_start_year = self.settings.ingestion_min_start_year
        self.min_start_year = min_start_year if apply_min_year else None

    def evaluate(self, raw_record: RawRecord) -> AcceptDecision | RejectDecision:
        """Evaluate a raw record and return accept/reject decision."""
        external_id = normalize_qid(raw_record.external_id)

        start_date = parse_start(raw_record.start_text)
        if start_date is None:
            return RejectDecision(
                raw_record=raw_record,
                reason="invalid_start_date",
                details={"start": raw_record.start_text},
            )

        if self.min_start_year is not None and start_date.year < self.min_start_year:
            return RejectDecision(
                raw_record=raw_record,
                reason="before_min_year",
                details={"year": start_date.year, "min_year": self.min_start_year},
            )

        point = parse_point(raw_record.coordinate_text)
        latitude, longitude = point if point is not None else (None, None)

        country_iso = blank_to_none(raw_record.country_iso)
        record = ExternalRecord(
            external_id=external_id,
            name=raw_record.label.strip() or external_id or "",
            description=raw_record.description.strip(),
            start_date=start_date,
            end_date=parse_end(raw_record.end_text),
            country=raw_record.country_label.strip(),
            country_iso=country_iso.upper() if country_iso else None,
            country_external_id=normalize_qid(raw_record.country_external_id),
            latitude=latitude,
            longitude=longitude,
            coordinate_text=blank_to_none(raw_record.coordinate_text),
        )

        if not is_admissible(record):
            return RejectDecision(
                raw_record=raw_record,
                reason="not_admissible",
                details={"coord": raw_record.coordinate_text},
            )

        return AcceptDecision(raw_record=raw_record, record=record)
