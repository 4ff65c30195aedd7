"""Wikidata Query Service fetcher."""

from __future__ import annotations

import re
import threading
from dataclasses import dataclass
from typing import Any, Iterable, Iterator, List, Optional

import httpx

from esp.config import Settings
from esp.ingestion.bindings import extract_bindings, parse_binding
from esp.ingestion.errors import FetchError, MalformedPayloadError
from esp.ingestion.http import is_cancelled, pause, request_with_retry
from esp.ingestion.normalizer import NormalizationGate
from esp.ingestion.sparql import identifier_query, paged_query
from esp.models import AcceptDecision, ExternalRecord
from esp.utils.logging import get_logger
from esp.utils.text import normalize_qid, truncate


logger = get_logger(__name__)

SPARQL_RESULTS_JSON = "application/sparql-results+json"
QID_PATTERN = re.compile(r"Q\d+")


@dataclass
class Page:
    offset: int
    bindings: list[dict[str, Any]]


def iter_pages(
    client: httpx.Client,
    settings: Optional[Settings] = None,
    cancel: Optional[threading.Event] = None,
    page_size: Optional[int] = None,
) -> Iterator[Page]:
    """Yield result pages in offset order until an empty page or cancellation.

    The offset advances and the politeness delay runs only after the caller
    has finished with the previous page. A failed request raises FetchError;
    pages already yielded are unaffected.
    """
    settings = settings or Settings()
    limit = page_size or settings.wikidata_page_size
    offset = 0

    while not is_cancelled(cancel):
        query = paged_query(limit=limit, offset=offset, min_year=settings.ingestion_min_start_year)
        try:
            bindings = post_query(client, query, settings, cancel)
        except FetchError:
            # a retry backoff interrupted by cancellation is a stop, not a failure
            if is_cancelled(cancel):
                logger.info("wikidata.paging.cancelled offset=%s", offset)
                return
            raise
        logger.info("wikidata.page offset=%s limit=%s count=%s", offset, limit, len(bindings))

        if not bindings:
            return

        yield Page(offset=offset, bindings=bindings)

        offset += limit
        if pause(settings.wikidata_page_delay_seconds, cancel):
            logger.info("wikidata.paging.cancelled next_offset=%s", offset)
            return


def fetch_by_identifiers(
    client: httpx.Client,
    identifiers: Iterable[str],
    settings: Optional[Settings] = None,
    cancel: Optional[threading.Event] = None,
) -> List[ExternalRecord]:
    """Fetch normalized records for explicit QIDs, in batches.

    Failed or malformed batches are skipped. The dedup index is not
    consulted; callers decide what to persist.
    """
    settings = settings or Settings()
    qids = _distinct_qids(identifiers)
    if not qids:
        return []

    gate = NormalizationGate(settings, apply_min_year=False)
    batch_size = settings.wikidata_qid_batch_size
    records: List[ExternalRecord] = []

    for start in range(0, len(qids), batch_size):
        if is_cancelled(cancel):
            logger.info("wikidata.qids.cancelled fetched=%s", len(records))
            break

        batch = qids[start : start + batch_size]
        try:
            bindings = post_query(client, identifier_query(batch), settings, cancel)
        except MalformedPayloadError as exc:
            logger.warning("wikidata.qids.batch_malformed start=%s error=%s", start, exc)
            bindings = []
        except FetchError as exc:
            # a retry backoff interrupted by cancellation is a stop, not a failure
            if is_cancelled(cancel):
                logger.info("wikidata.qids.cancelled fetched=%s", len(records))
                break
            if exc.status_code is None:
                raise
            logger.warning("wikidata.qids.batch_failed start=%s error=%s", start, exc)
            bindings = []

        for binding in bindings:
            raw = parse_binding(binding)
            if not raw.external_id.strip():
                continue
            decision = gate.evaluate(raw)
            if isinstance(decision, AcceptDecision):
                records.append(decision.record)
            else:
                logger.info(
                    "wikidata.qids.reject qid=%s reason=%s", raw.external_id, decision.reason
                )

        if start + batch_size < len(qids):
            pause(settings.wikidata_qid_batch_delay_seconds, cancel)

    logger.info("wikidata.qids.complete requested=%s records=%s", len(qids), len(records))
    return records


def post_query(
    client: httpx.Client,
    query: str,
    settings: Settings,
    cancel: Optional[threading.Event] = None,
) -> list[dict[str, Any]]:
    """POST a SPARQL query and return its bindings."""
    try:
        response = request_with_retry(
            client,
            "POST",
            settings.wikidata_sparql_url,
            retries=settings.http_max_retries,
            cancel=cancel,
            data={"query": query},
            headers={"Accept": SPARQL_RESULTS_JSON},
        )
    except httpx.RequestError as exc:
        raise FetchError(f"Wikidata SPARQL request failed: {exc}") from exc

    if response.is_error:
        raise FetchError(
            "Wikidata SPARQL request failed: "
            f"{response.status_code} {response.reason_phrase}. "
            f"Response: {truncate(response.text)}",
            status_code=response.status_code,
        )

    return extract_bindings(response.content)


def _distinct_qids(identifiers: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    qids: list[str] = []
    for identifier in identifiers:
        qid = normalize_qid(identifier)
        if qid is None or qid in seen:
            continue
        if not QID_PATTERN.fullmatch(qid):
            logger.warning("wikidata.qids.invalid identifier=%r", identifier)
            continue
        seen.add(qid)
        qids.append(qid)
    return qids
