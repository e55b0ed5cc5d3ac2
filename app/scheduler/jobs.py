"""
app/scheduler/jobs.py

APScheduler-based scheduler for the weekly ANP fuel price sync.

The ANP publishes one "levantamento de preços" spreadsheet per week. When
``FUEL_PRICE_SYNC_URL`` is configured, the ``weekly_fuel_price_sync`` job
ingests that URL on a cron trigger (UTC). Without it, the scheduler starts
with no jobs.

Lifecycle
----------
Call ``build_scheduler()`` once to get a configured ``BackgroundScheduler``.
Start it on app boot; shut it down gracefully on app shutdown.
The scheduler is wired into FastAPI via the ``lifespan`` context in main.py.
"""

from __future__ import annotations

import logging

from apscheduler.schedulers.background import BackgroundScheduler

from app.config import SyncScheduleSettings, get_sync_schedule_settings
from app.domain.errors import IngestionError
from app.services.spreadsheet_ingestion_service import get_spreadsheet_ingestion_service
from db.session import session_scope

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Job: Weekly fuel price sync
# ---------------------------------------------------------------------------


def run_fuel_price_sync(url: str) -> None:
    """
    Ingest the configured spreadsheet URL. Failures are logged, never raised.
    """
    logger.info("Scheduler: weekly_fuel_price_sync starting url=%s", url)
    service = get_spreadsheet_ingestion_service()

    with session_scope() as db:
        try:
            result = service.ingest_url(db=db, url=url)
        except IngestionError as exc:
            logger.warning("Scheduler: weekly_fuel_price_sync failed url=%s: %s", url, exc)
            return
        except Exception as exc:  # noqa: BLE001
            logger.exception("Scheduler: weekly_fuel_price_sync crashed url=%s: %s", url, exc)
            return

    logger.info("Scheduler: weekly_fuel_price_sync complete: %s", result.summary)


# ---------------------------------------------------------------------------
# Scheduler factory
# ---------------------------------------------------------------------------


def build_scheduler(settings: SyncScheduleSettings | None = None) -> BackgroundScheduler:
    """
    Build the scheduler and register the sync job when a source URL is set.

    Returns a configured but *not yet started* ``BackgroundScheduler``.
    """
    settings = settings or get_sync_schedule_settings()
    scheduler = BackgroundScheduler(timezone="UTC")

    if not settings.source_url:
        logger.info("Scheduler: FUEL_PRICE_SYNC_URL not set, no sync job registered")
        return scheduler

    scheduler.add_job(
        run_fuel_price_sync,
        trigger="cron",
        day_of_week=settings.day_of_week,
        hour=settings.hour,
        minute=0,
        args=[settings.source_url],
        id="weekly_fuel_price_sync",
        name="Weekly ANP fuel price sync",
        replace_existing=True,
        misfire_grace_time=7200,
        max_instances=1,
        coalesce=True,
    )
    return scheduler
