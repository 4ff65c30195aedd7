"""Event staging pipeline: Wikidata/Wikipedia ingestion with manual review."""

__version__ = "0.1.0"
