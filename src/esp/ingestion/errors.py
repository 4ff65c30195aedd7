"""Ingestion error types."""

from __future__ import annotations


class IngestionError(Exception):
    """Base class for ingestion failures surfaced to the run's caller."""


class FetchError(IngestionError):
    """Non-success response or network failure from an external service."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class MalformedPayloadError(FetchError):
    """Response body does not have the expected JSON shape."""


class SectionNotFoundError(IngestionError):
    """A Wikipedia page has no section with the requested heading."""
