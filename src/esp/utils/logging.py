"""Logging helpers."""

from __future__ import annotations

import logging
from typing import Optional

LOG_FORMAT = "%(asctime)s %(levelname)s [%(threadName)s] %(name)s %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Configure root logger once."""
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
    # Request lines for every SPARQL page and MediaWiki batch are too chatty at INFO.
    for noisy in ("httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Get a logger instance."""
    return logging.getLogger(name)
