"""
Logging setup for the sentinel.
Call setup_logging() once at startup in main.py.

Provider URLs carry API keys in their query strings (Helius, Alchemy, ...).
Components log endpoints by label, but exception messages from aiohttp or
websockets can still quote a full URL, so every record passes through a
redacting filter before it is written.
"""

from __future__ import annotations
import logging
import re
import sys
import time

# Third-party loggers that are chatty at INFO
_NOISY = ("websockets", "aiohttp.access", "asyncio")

_SECRET_PARAM = re.compile(r"((?:api[-_]?key|token|secret)=)[^&\s'\"]+", re.IGNORECASE)


def redact(text: str) -> str:
    return _SECRET_PARAM.sub(r"\1***", text)


class _RedactFilter(logging.Filter):

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        cleaned = redact(message)
        if cleaned != message:
            record.msg, record.args = cleaned, None
        return True


class _MonoFormatter(logging.Formatter):
    """Stamps a monotonic millisecond clock on every record, for latency reading."""

    def format(self, record: logging.LogRecord) -> str:
        record.mono_ms = time.monotonic_ns() // 1_000_000
        return super().format(record)


def setup_logging(level: str = "INFO") -> None:
    numeric = getattr(logging, level.upper(), logging.INFO)
    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(_RedactFilter())
    handler.setFormatter(
        _MonoFormatter(
            fmt="%(asctime)s %(levelname)-7s %(name)s mono_ms=%(mono_ms)d | %(message)s",
            datefmt="%H:%M:%S",
        )
    )
    root = logging.getLogger()
    root.setLevel(numeric)
    root.handlers.clear()
    root.addHandler(handler)
    for name in _NOISY:
        logging.getLogger(name).setLevel(max(numeric, logging.WARNING))
