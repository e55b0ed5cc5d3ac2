"""
tests/test_scheduler_jobs.py

Scheduler wiring and the weekly sync job's failure handling.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager

import pytest

from app.config import SyncScheduleSettings
from app.domain.errors import AcquisitionError
from app.domain.ingestion_result import IngestionResult, Inserted
from app.scheduler import jobs


class RecordingService:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.urls: list[str] = []

    def ingest_url(self, *, db, url: str) -> IngestionResult:
        self.urls.append(url)
        if self.error is not None:
            raise self.error
        return IngestionResult.fold([Inserted(row=1)])


@pytest.fixture()
def fake_session_scope(monkeypatch: pytest.MonkeyPatch) -> list[str]:
    events: list[str] = []

    @contextmanager
    def scope():
        events.append("open")
        try:
            yield object()
        finally:
            events.append("close")

    monkeypatch.setattr(jobs, "session_scope", scope)
    return events


def test_no_job_without_source_url() -> None:
    scheduler = jobs.build_scheduler(SyncScheduleSettings(source_url=None))
    assert scheduler.get_jobs() == []


def test_weekly_job_is_registered() -> None:
    settings = SyncScheduleSettings(source_url="https://example.org/precos.xlsx", day_of_week="tue", hour=9)

    scheduler = jobs.build_scheduler(settings)

    [job] = scheduler.get_jobs()
    assert job.id == "weekly_fuel_price_sync"
    assert job.args == ("https://example.org/precos.xlsx",)
    fields = {field.name: str(field) for field in job.trigger.fields}
    assert fields["day_of_week"] == "tue"
    assert fields["hour"] == "9"
    assert fields["minute"] == "0"


def test_sync_runs_the_ingestion(monkeypatch: pytest.MonkeyPatch, fake_session_scope: list[str]) -> None:
    service = RecordingService()
    monkeypatch.setattr(jobs, "get_spreadsheet_ingestion_service", lambda: service)

    jobs.run_fuel_price_sync("https://example.org/precos.xlsx")

    assert service.urls == ["https://example.org/precos.xlsx"]
    assert fake_session_scope == ["open", "close"]


def test_sync_failures_are_logged_not_raised(
    monkeypatch: pytest.MonkeyPatch,
    fake_session_scope: list[str],
    caplog: pytest.LogCaptureFixture,
) -> None:
    service = RecordingService(error=AcquisitionError("HTTP 503"))
    monkeypatch.setattr(jobs, "get_spreadsheet_ingestion_service", lambda: service)

    with caplog.at_level(logging.WARNING, logger=jobs.__name__):
        jobs.run_fuel_price_sync("https://example.org/precos.xlsx")

    assert "weekly_fuel_price_sync failed" in caplog.text
    assert fake_session_scope == ["open", "close"]
