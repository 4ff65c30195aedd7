"""Ingestion runner."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator, List, Optional

import httpx

from esp.config import Settings
from esp.db.repository import StagingRepository
from esp.ingestion.bindings import parse_binding
from esp.ingestion.dedup import DedupIndex
from esp.ingestion.errors import FetchError, SectionNotFoundError
from esp.ingestion.http import is_cancelled
from esp.ingestion.normalizer import NormalizationGate
from esp.ingestion.run_log import RunSummary
from esp.ingestion.staging import (
    QID_IMPORT_SOURCE,
    stage_batch,
    to_canonical,
    to_staged,
)
from esp.ingestion.wikidata import fetch_by_identifiers, iter_pages
from esp.ingestion.wikipedia import (
    get_section_index,
    get_section_links,
    get_section_links_in_range,
    resolve_titles_to_qids,
)
from esp.models import CanonicalRecord, RejectDecision, StagedRecord
from esp.utils.logging import get_logger
from esp.utils.text import identifier_key


logger = get_logger(__name__)


def stage_all(
    repository: StagingRepository,
    client: httpx.Client,
    settings: Optional[Settings] = None,
    cancel: Optional[threading.Event] = None,
    page_size: Optional[int] = None,
) -> RunSummary:
    """Page through the Wikidata candidates and stage every new record.

    Each page is committed before the next one is requested, so a failure
    keeps everything staged so far. Cancellation ends the run cleanly.
    """
    settings = settings or Settings()
    gate = NormalizationGate(settings)
    summary = RunSummary(source="wikidata", mode="staging")

    with _run_log(repository, summary):
        index = DedupIndex.from_repository(repository)
        logger.info(
            "staging.start run_id=%s page_size=%s known_canonical=%s known_staged=%s",
            summary.run_id,
            page_size or settings.wikidata_page_size,
            index.canonical_count,
            index.staged_count,
        )

        for page in iter_pages(client, settings, cancel=cancel, page_size=page_size):
            summary.pages += 1
            batch: List[StagedRecord] = []
            for binding in page.bindings:
                summary.fetched += 1
                decision = gate.evaluate(parse_binding(binding))
                if isinstance(decision, RejectDecision):
                    summary.record_reject(decision.reason)
                    logger.info(
                        "staging.reject qid=%s reason=%s details=%s",
                        decision.raw_record.external_id,
                        decision.reason,
                        decision.details,
                    )
                    continue
                if not index.should_admit(decision.record.external_id):
                    summary.duplicates += 1
                    continue
                batch.append(to_staged(decision.record))

            inserted = stage_batch(repository, batch)
            summary.staged += inserted
            summary.duplicates += len(batch) - inserted

        summary.cancelled = is_cancelled(cancel)

    logger.info("staging.complete %s", summary.describe())
    return summary


def import_canonical(
    repository: StagingRepository,
    client: httpx.Client,
    settings: Optional[Settings] = None,
    cancel: Optional[threading.Event] = None,
    page_size: Optional[int] = None,
) -> RunSummary:
    """Page through the Wikidata candidates straight into the canonical store.

    Existing canonical rows with the same identifier are updated in place.
    Records without an identifier are skipped.
    """
    settings = settings or Settings()
    gate = NormalizationGate(settings)
    summary = RunSummary(source="wikidata", mode="canonical")
    seen: set[str] = set()

    with _run_log(repository, summary):
        for page in iter_pages(client, settings, cancel=cancel, page_size=page_size):
            summary.pages += 1
            batch: List[CanonicalRecord] = []
            for binding in page.bindings:
                summary.fetched += 1
                raw = parse_binding(binding)
                key = identifier_key(raw.external_id)
                if key is None:
                    summary.record_reject("missing_external_id")
                    continue
                if key in seen:
                    summary.duplicates += 1
                    continue
                seen.add(key)

                decision = gate.evaluate(raw)
                if isinstance(decision, RejectDecision):
                    summary.record_reject(decision.reason)
                    logger.info(
                        "canonical.reject qid=%s reason=%s", raw.external_id, decision.reason
                    )
                    continue
                batch.append(to_canonical(decision.record, settings.canonical_event_type))

            result = repository.upsert_canonical(batch)
            summary.staged += result.inserted
            summary.updated += result.updated

        summary.cancelled = is_cancelled(cancel)

    logger.info("canonical.complete %s", summary.describe())
    return summary


def stage_from_wikipedia(
    repository: StagingRepository,
    client: httpx.Client,
    section: str,
    until_section: Optional[str] = None,
    page_title: Optional[str] = None,
    settings: Optional[Settings] = None,
    cancel: Optional[threading.Event] = None,
    dry_run: bool = False,
) -> RunSummary:
    """Stage the events linked from a Wikipedia list section (or section range).

    Titles are resolved to QIDs, fetched by identifier, and only records
    whose identifier is unknown to both stores are staged.
    """
    settings = settings or Settings()
    page_title = page_title or settings.wikipedia_list_page
    summary = RunSummary(source="wikipedia", mode="qid_import")

    try:
        titles = _section_titles(client, page_title, section, until_section, settings, cancel)
    except FetchError:
        if not is_cancelled(cancel):
            raise
        titles = []
    if is_cancelled(cancel):
        summary.cancelled = True
        logger.info("wikipedia.import.cancelled page=%s section=%s", page_title, section)
        return summary

    resolved = resolve_titles_to_qids(client, titles, settings, cancel=cancel)
    qids = [qid for qid in resolved.values() if qid]
    logger.info(
        "wikipedia.import page=%s section=%s titles=%s qids=%s",
        page_title,
        section,
        len(titles),
        len(qids),
    )

    if dry_run:
        records = fetch_by_identifiers(client, qids, settings, cancel=cancel)
        summary.fetched = len(records)
        summary.cancelled = is_cancelled(cancel)
        logger.info("wikipedia.import.dry_run %s", summary.describe())
        return summary

    with _run_log(repository, summary):
        records = fetch_by_identifiers(client, qids, settings, cancel=cancel)
        summary.pages = 1 if records else 0
        summary.fetched = len(records)

        index = DedupIndex.from_repository(repository)
        batch: List[StagedRecord] = []
        for record in records:
            if not index.should_admit(record.external_id):
                summary.duplicates += 1
                continue
            batch.append(to_staged(record, sources=QID_IMPORT_SOURCE))

        inserted = stage_batch(repository, batch)
        summary.staged += inserted
        summary.duplicates += len(batch) - inserted
        summary.cancelled = is_cancelled(cancel)

    logger.info("wikipedia.import.complete %s", summary.describe())
    return summary


def _section_titles(
    client: httpx.Client,
    page_title: str,
    section: str,
    until_section: Optional[str],
    settings: Settings,
    cancel: Optional[threading.Event],
) -> List[str]:
    if until_section:
        titles = get_section_links_in_range(
            client, page_title, section, until_section, settings, cancel=cancel
        )
        if not titles and not is_cancelled(cancel):
            raise SectionNotFoundError(
                f"No links found between sections {section!r} and {until_section!r} "
                f"on {page_title!r}"
            )
        return titles

    index = get_section_index(client, page_title, section, settings, cancel=cancel)
    if index is None:
        raise SectionNotFoundError(f"Could not find section {section!r} on {page_title!r}")
    return get_section_links(client, page_title, index, settings, cancel=cancel)


@contextmanager
def _run_log(repository: StagingRepository, summary: RunSummary) -> Iterator[RunSummary]:
    summary.run_id = repository.start_run(summary.source, summary.mode)
    try:
        yield summary
    except Exception as exc:
        logger.exception(
            "ingestion.failed run_id=%s source=%s mode=%s", summary.run_id, summary.source, summary.mode
        )
        repository.fail_run(summary.run_id, exc, summary)
        raise
    repository.finish_run(summary.run_id, summary)
