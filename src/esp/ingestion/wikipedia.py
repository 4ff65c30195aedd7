"""MediaWiki helpers: section discovery, section links and title -> QID resolution."""

from __future__ import annotations

import threading
from typing import Any, Iterable, List, Optional

import httpx
import orjson

from esp.config import Settings
from esp.ingestion.errors import FetchError, MalformedPayloadError
from esp.ingestion.http import is_cancelled, pause, request_with_retry
from esp.utils.logging import get_logger


logger = get_logger(__name__)


def get_sections(
    client: httpx.Client,
    page_title: str,
    settings: Optional[Settings] = None,
    cancel: Optional[threading.Event] = None,
) -> list[dict[str, Any]]:
    """Return the raw section list of a page (``parse.sections``)."""
    settings = settings or Settings()
    payload = _get_json(
        client,
        settings,
        {"action": "parse", "page": page_title, "prop": "sections", "format": "json"},
        cancel,
    )
    sections = (payload.get("parse") or {}).get("sections")
    return [s for s in sections if isinstance(s, dict)] if isinstance(sections, list) else []


def find_section_index(sections: Iterable[dict[str, Any]], heading: str) -> Optional[int]:
    """Match a heading by case-insensitive trimmed equality."""
    wanted = heading.strip().casefold()
    for section in sections:
        line = str(section.get("line") or "").strip().casefold()
        if line != wanted:
            continue
        try:
            return int(section.get("index"))
        except (TypeError, ValueError):
            continue
    return None


def get_section_index(
    client: httpx.Client,
    page_title: str,
    heading: str,
    settings: Optional[Settings] = None,
    cancel: Optional[threading.Event] = None,
) -> Optional[int]:
    """Return the section index for a heading, or None when absent."""
    return find_section_index(get_sections(client, page_title, settings, cancel), heading)


def get_section_links(
    client: httpx.Client,
    page_title: str,
    section_index: int,
    settings: Optional[Settings] = None,
    cancel: Optional[threading.Event] = None,
) -> List[str]:
    """Return the linked article titles in one section, de-duplicated."""
    settings = settings or Settings()
    payload = _get_json(
        client,
        settings,
        {
            "action": "parse",
            "page": page_title,
            "prop": "links",
            "section": section_index,
            "format": "json",
        },
        cancel,
    )
    links = (payload.get("parse") or {}).get("links")
    if not isinstance(links, list):
        return []

    titles = []
    for link in links:
        title = link.get("*") if isinstance(link, dict) else None
        if title:
            titles.append(str(title))
    return _distinct_titles(titles)


def get_section_links_in_range(
    client: httpx.Client,
    page_title: str,
    start_heading: str,
    end_heading: str,
    settings: Optional[Settings] = None,
    cancel: Optional[threading.Event] = None,
) -> List[str]:
    """Collect links from every section between two headings, inclusive.

    Single-section failures are logged and skipped.
    """
    settings = settings or Settings()
    sections = get_sections(client, page_title, settings, cancel)
    start_index = find_section_index(sections, start_heading)
    end_index = find_section_index(sections, end_heading)
    if start_index is None or end_index is None:
        return []

    low, high = sorted((start_index, end_index))
    titles: List[str] = []
    for index in range(low, high + 1):
        if is_cancelled(cancel):
            break
        try:
            titles.extend(get_section_links(client, page_title, index, settings, cancel))
        except FetchError as exc:
            logger.warning("wikipedia.section_links.failed index=%s error=%s", index, exc)
        pause(settings.wikipedia_request_delay_seconds, cancel)

    return _distinct_titles(titles)


def resolve_titles_to_qids(
    client: httpx.Client,
    titles: Iterable[str],
    settings: Optional[Settings] = None,
    cancel: Optional[threading.Event] = None,
) -> dict[str, Optional[str]]:
    """Resolve article titles to Wikidata QIDs via ``pageprops.wikibase_item``.

    Every requested title appears in the result; unresolved titles map to None.
    """
    settings = settings or Settings()
    title_list = list(titles)
    batch_size = settings.wikipedia_title_batch_size
    resolved: dict[str, Optional[str]] = {}

    for start in range(0, len(title_list), batch_size):
        if is_cancelled(cancel):
            break
        batch = title_list[start : start + batch_size]
        try:
            payload = _get_json(
                client,
                settings,
                {
                    "action": "query",
                    "titles": "|".join(batch),
                    "prop": "pageprops",
                    "ppprop": "wikibase_item",
                    "format": "json",
                },
                cancel,
            )
        except FetchError:
            # a retry backoff interrupted by cancellation is a stop, not a failure
            if is_cancelled(cancel):
                logger.info("wikipedia.resolve.cancelled resolved=%s", len(resolved))
                break
            raise
        resolved.update(_qids_from_query(payload, batch))
        pause(settings.wikipedia_request_delay_seconds, cancel)

    for title in title_list:
        resolved.setdefault(title, None)
    return resolved


def _qids_from_query(payload: dict[str, Any], batch: list[str]) -> dict[str, Optional[str]]:
    query = payload.get("query") or {}
    pages = query.get("pages")
    result: dict[str, Optional[str]] = {title: None for title in batch}
    if not isinstance(pages, dict):
        return result

    by_title: dict[str, Optional[str]] = {}
    for page in pages.values():
        if not isinstance(page, dict) or not page.get("title"):
            continue
        qid = (page.get("pageprops") or {}).get("wikibase_item")
        by_title[str(page["title"]).casefold()] = qid or None

    # the API reports requested titles it rewrote (underscores, capitalization)
    aliases = {
        str(item.get("from")): str(item.get("to"))
        for item in query.get("normalized") or []
        if isinstance(item, dict)
    }
    for title in batch:
        target = aliases.get(title, title)
        result[title] = by_title.get(target.casefold())
    return result


def _get_json(
    client: httpx.Client,
    settings: Settings,
    params: dict[str, Any],
    cancel: Optional[threading.Event] = None,
) -> dict[str, Any]:
    try:
        response = request_with_retry(
            client,
            "GET",
            settings.wikipedia_api_url,
            retries=settings.http_max_retries,
            cancel=cancel,
            params=params,
            headers={"Accept": "application/json"},
        )
    except httpx.RequestError as exc:
        raise FetchError(f"MediaWiki request failed: {exc}") from exc

    if response.is_error:
        raise FetchError(
            f"MediaWiki request failed: {response.status_code} {response.reason_phrase}",
            status_code=response.status_code,
        )

    try:
        payload = orjson.loads(response.content)
    except orjson.JSONDecodeError as exc:
        raise MalformedPayloadError(f"MediaWiki response is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise MalformedPayloadError("MediaWiki response is not a JSON object")
    return payload


def _distinct_titles(titles: Iterable[str]) -> List[str]:
    seen: set[str] = set()
    result: List[str] = []
    for title in titles:
        key = title.casefold()
        if key in seen:
            continue
        seen.add(key)
        result.append(title)
    return result
