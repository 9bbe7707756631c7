"""Logging configuration utilities for the warmer service."""
from __future__ import annotations

import logging
import os

# Every probe is an httpx request; its per-request INFO lines drown the warm log.
NOISY_LOGGERS = ("httpx", "httpcore")


def setup_logging(level: str | None = None) -> None:
    """Configure root logging from ``level`` or the LOG_LEVEL environment variable."""
    level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
