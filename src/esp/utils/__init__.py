"""Utility helpers."""

from esp.utils.countries import normalize_iso
from esp.utils.geo import parse_point
from esp.utils.logging import configure_logging, get_logger
from esp.utils.time import parse_timestamp

__all__ = [
    "configure_logging",
    "get_logger",
    "normalize_iso",
    "parse_point",
    "parse_timestamp",
]
