"""
app/main.py

FastAPI entry point for the fuel price ingestion service.

Startup order: environment validation, logging, then (inside the lifespan)
a store check and the weekly sync scheduler.
"""

from __future__ import annotations

import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.logging_utils import log_event

logger = logging.getLogger(__name__)


def _startup_errors() -> list[str]:
    from app.config import get_app_settings
    from db.config import load_env_files, resolve_database_url

    load_env_files()
    errors: list[str] = []

    try:
        get_app_settings()
    except RuntimeError as exc:
        errors.append(str(exc))

    try:
        resolve_database_url()
    except RuntimeError as exc:
        errors.append(str(exc))

    sync_url = os.getenv("FUEL_PRICE_SYNC_URL", "").strip()
    if sync_url and not sync_url.lower().startswith(("http://", "https://")):
        errors.append(f"FUEL_PRICE_SYNC_URL='{sync_url}' must be an http(s) URL.")

    return errors


def _validate_env() -> None:
    """
    Fail fast with every configuration problem listed at once.
    """

    errors = _startup_errors()
    if errors:
        raise RuntimeError("Invalid startup configuration:\n" + "\n".join(f"  - {error}" for error in errors))


def _configure_logging() -> None:
    level_name = os.getenv("LOG_LEVEL", "INFO").strip().upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def _verify_store() -> None:
    """
    Ping the database and require every mapped table to exist.
    Raises RuntimeError; run 'alembic upgrade head' when tables are missing.
    """

    from sqlalchemy import inspect as sa_inspect
    from sqlalchemy import text
    from sqlalchemy.exc import SQLAlchemyError

    import db.models  # noqa: F401  registers all ORM models on Base.metadata
    from db.base import Base
    from db.session import get_engine

    try:
        with get_engine().connect() as connection:
            connection.execute(text("SELECT 1"))
            present = set(sa_inspect(connection).get_table_names())
    except SQLAlchemyError as exc:
        raise RuntimeError("Fuel price store is unreachable.") from exc

    missing = sorted(set(Base.metadata.tables) - present)
    if missing:
        log_event(logger, logging.CRITICAL, "app.schema_missing_tables", tables=missing)
        raise RuntimeError(
            f"Missing tables: {', '.join(missing)}. Run 'alembic upgrade head' and restart."
        )


@asynccontextmanager
async def _lifespan(application: FastAPI) -> AsyncIterator[None]:
    from app.scheduler.jobs import build_scheduler

    _verify_store()
    scheduler = build_scheduler()
    scheduler.start()
    log_event(logger, logging.INFO, "app.started", jobs=[job.id for job in scheduler.get_jobs()])
    try:
        yield
    finally:
        scheduler.shutdown(wait=True)
        log_event(logger, logging.INFO, "app.stopped")


def create_app() -> FastAPI:
    _validate_env()
    _configure_logging()

    from app.api.routers import spreadsheet_ingestion_router

    application = FastAPI(
        title="Fuel Price Ingestion API",
        version="1.0.0",
        lifespan=_lifespan,
    )
    application.include_router(spreadsheet_ingestion_router)

    @application.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    return application


app = create_app()
