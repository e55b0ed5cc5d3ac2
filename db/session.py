"""
db/session.py

Engine and session plumbing for the fuel price store. Nothing connects at
import time; the engine is built on first use from the resolved URL.
"""

from __future__ import annotations

import os
from collections.abc import Iterator
from contextlib import contextmanager
from functools import lru_cache

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from db.config import resolve_database_url

_POOL_DEFAULTS: dict[str, int] = {
    "DB_POOL_SIZE": 5,
    "DB_MAX_OVERFLOW": 10,
    "DB_POOL_RECYCLE": 1800,
}


def _pool_setting(name: str) -> int:
    raw = (os.getenv(name) or "").strip()
    return int(raw) if raw.isdigit() else _POOL_DEFAULTS[name]


def create_db_engine(database_url: str | None = None) -> Engine:
    url = database_url or resolve_database_url()
    if not url.startswith("postgresql"):
        raise RuntimeError("The fuel price store runs on PostgreSQL only.")

    return create_engine(
        url,
        echo=(os.getenv("SQL_ECHO") or "").strip().lower() in {"1", "true", "yes", "on"},
        pool_pre_ping=True,
        pool_size=_pool_setting("DB_POOL_SIZE"),
        max_overflow=_pool_setting("DB_MAX_OVERFLOW"),
        pool_recycle=_pool_setting("DB_POOL_RECYCLE"),
    )


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


def build_session_factory(engine: Engine) -> sessionmaker[Session]:
    """
    Sessions never autoflush and keep attributes loaded after commit, so
    row-level results stay readable once a chunk has been committed.
    """

    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@lru_cache(maxsize=1)
def _default_factory() -> sessionmaker[Session]:
    return build_session_factory(get_engine())


def SessionLocal() -> Session:
    return _default_factory()()


def get_db() -> Iterator[Session]:
    """FastAPI dependency: one session per request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def session_scope() -> Iterator[Session]:
    """Session for background jobs and scripts; always closed on exit."""
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
