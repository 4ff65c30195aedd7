"""Ingestion package."""

from esp.ingestion.bindings import extract_bindings, parse_binding, value_of
from esp.ingestion.dedup import DedupIndex
from esp.ingestion.normalizer import NormalizationGate, is_admissible

__all__ = [
    "DedupIndex",
    "NormalizationGate",
    "extract_bindings",
    "is_admissible",
    "parse_binding",
    "value_of",
]
