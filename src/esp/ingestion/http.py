"""Shared HTTP client construction and retry policy."""

from __future__ import annotations

import threading
import time
from typing import Any, Optional

import httpx

from esp.config import Settings


RETRY_STATUS_CODES = frozenset({429, 500, 502, 503, 504})


def build_client(
    settings: Optional[Settings] = None,
    transport: Optional[httpx.BaseTransport] = None,
) -> httpx.Client:
    """Create a client with the configured User-Agent and timeout."""
    settings = settings or Settings()
    return httpx.Client(
        timeout=settings.http_timeout_seconds,
        headers={"User-Agent": settings.http_user_agent},
        follow_redirects=True,
        transport=transport,
    )


def pause(seconds: float, cancel: Optional[threading.Event] = None) -> bool:
    """Sleep for ``seconds``; return True if cancelled meanwhile."""
    if cancel is None:
        if seconds > 0:
            time.sleep(seconds)
        return False
    if seconds > 0:
        return cancel.wait(seconds)
    return cancel.is_set()


def is_cancelled(cancel: Optional[threading.Event]) -> bool:
    return cancel is not None and cancel.is_set()


def request_with_retry(
    client: httpx.Client,
    method: str,
    url: str,
    retries: int = 3,
    cancel: Optional[threading.Event] = None,
    **kwargs: Any,
) -> httpx.Response:
    """Send a request with simple retry and backoff on 429/5xx and network errors."""
    attempt = 0
    while True:
        try:
            response = client.request(method, url, **kwargs)
            if response.status_code in RETRY_STATUS_CODES and attempt < retries:
                attempt += 1
                if pause(min(2**attempt, 8), cancel):
                    return response
                continue
            return response
        except httpx.RequestError:
            attempt += 1
            if attempt > retries:
                raise
            if pause(min(2**attempt, 8), cancel):
                raise
