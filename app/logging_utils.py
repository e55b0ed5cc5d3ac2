"""
JSON event lines for the ingestion pipeline.

Events carry prices, collection dates, run ids and raw row payloads, so the
encoder renders ``Decimal`` as its exact string, dates as ISO and sets as
sorted lists. Long strings (raw cells, driver messages) are clipped.
"""

from __future__ import annotations

import json
import logging
import uuid
from datetime import date
from decimal import Decimal
from typing import Any

MAX_FIELD_CHARS = 500


def _encode(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=str)
    return str(value)


def _clip(value: Any) -> Any:
    if isinstance(value, str) and len(value) > MAX_FIELD_CHARS:
        return value[:MAX_FIELD_CHARS] + "..."
    return value


def format_event(event: str, **fields: Any) -> str:
    payload = {name: _clip(value) for name, value in fields.items()}
    payload["event"] = event
    return json.dumps(payload, default=_encode, sort_keys=True, ensure_ascii=False, separators=(",", ":"))


def log_event(logger: logging.Logger, level: int, event: str, **fields: Any) -> None:
    """Log ``event`` with ``fields`` as one JSON line, if ``level`` is enabled."""
    if logger.isEnabledFor(level):
        logger.log(level, format_event(event, **fields))
