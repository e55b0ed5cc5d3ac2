from __future__ import annotations

import json
import logging
import uuid
from datetime import date
from decimal import Decimal

import pytest

from app.logging_utils import MAX_FIELD_CHARS, format_event, log_event


def test_domain_values_are_encoded() -> None:
    run_id = uuid.UUID("00000000-0000-0000-0000-000000000001")

    line = format_event(
        "reconciliation.chunk_failed",
        price=Decimal("5.59"),
        collection_date=date(2024, 1, 15),
        run_id=run_id,
        rows={3, 1},
    )

    assert json.loads(line) == {
        "event": "reconciliation.chunk_failed",
        "price": "5.59",
        "collection_date": "2024-01-15",
        "run_id": str(run_id),
        "rows": [1, 3],
    }


def test_long_strings_are_clipped() -> None:
    payload = json.loads(format_event("ingestion.failed", error="x" * (MAX_FIELD_CHARS + 50)))
    assert payload["error"] == "x" * MAX_FIELD_CHARS + "..."


def test_disabled_level_emits_nothing(caplog: pytest.LogCaptureFixture) -> None:
    logger = logging.getLogger("tests.logging_utils")

    with caplog.at_level(logging.WARNING, logger=logger.name):
        log_event(logger, logging.INFO, "ingestion.started", source="upload")
        log_event(logger, logging.WARNING, "ingestion.failed", source="upload")

    assert [json.loads(record.getMessage())["event"] for record in caplog.records] == ["ingestion.failed"]
