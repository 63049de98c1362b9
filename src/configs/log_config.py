"""Logging setup for the matching engine.

Features:
- console handler
- JSON logs optional (easy ingestion)
- structured payload via ``extra={"payload": {...}}``
"""

from __future__ import annotations

import json
import logging
import sys
import time

ROOT_LOGGER_NAME = "src"

# ---------------------------------------------------------------------
# Formatters
# ---------------------------------------------------------------------


class JsonFormatter(logging.Formatter):
    """Format log records as JSON."""

    def format(self, record: logging.LogRecord) -> str:
        base = {
            "ts": time.time(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for k in ("taxonomy_version", "venue_id", "region_code"):
            if hasattr(record, k):
                base[k] = getattr(record, k)

        if record.exc_info:
            base["exc_info"] = self.formatException(record.exc_info)

        payload = getattr(record, "payload", None)
        if isinstance(payload, dict):
            base["payload"] = payload

        return json.dumps(base, ensure_ascii=False, default=str)


class TextFormatter(logging.Formatter):
    """Format log records as human-readable text."""

    def format(self, record: logging.LogRecord) -> str:
        parts = [record.levelname, record.name]

        ctx = []
        version = getattr(record, "taxonomy_version", None)
        venue_id = getattr(record, "venue_id", None)
        if version:
            ctx.append(f"taxonomy={version}")
        if venue_id:
            ctx.append(f"venue={venue_id}")
        if ctx:
            parts.append("[" + " ".join(ctx) + "]")

        parts.append(record.getMessage())
        s = " ".join(parts)

        if record.exc_info:
            s += "\n" + self.formatException(record.exc_info)

        return s


# ---------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------


def setup_logging(level: str = "INFO", json_logs: bool = False) -> logging.Logger:
    """Configure the package logger with a single console handler."""
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Prevent duplicate handlers in repeated calls
    for h in list(logger.handlers):
        if getattr(h, "_venue_matching_handler", False):
            logger.removeHandler(h)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(logger.level)
    handler.setFormatter(JsonFormatter() if json_logs else TextFormatter())
    handler._venue_matching_handler = True
    logger.addHandler(handler)
    return logger
