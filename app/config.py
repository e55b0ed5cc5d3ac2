"""
app/config.py

Environment-driven settings for the ingestion pipeline, the acquirer and
the weekly sync. Every getter is cached; tests call ``cache_clear()``.
"""

from __future__ import annotations

import os
import tempfile
from collections.abc import Callable
from dataclasses import dataclass
from functools import lru_cache
from typing import TypeVar

from db.config import load_env_files

N = TypeVar("N", int, float)

_ALLOWED_APP_MODES = frozenset({"cloud"})
_TRUTHY = frozenset({"1", "true", "yes", "on"})

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
)


# ---------------------------------------------------------------------------
# Raw environment access
# ---------------------------------------------------------------------------


@lru_cache(maxsize=1)
def _load_env_once() -> None:
    load_env_files()


def _env(name: str) -> str | None:
    """Stripped value of ``name``; blank counts as unset."""
    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return None
    return value.strip() or None


def _get_bool_env(name: str, default: bool) -> bool:
    raw = _env(name)
    if raw is None:
        return default
    return raw.lower() in _TRUTHY


def _get_number_env(name: str, default: N, cast: Callable[[str], N]) -> N:
    raw = _env(name)
    if raw is None:
        return default
    try:
        return cast(raw)
    except ValueError:
        return default


def _get_int_env(name: str, default: int) -> int:
    return _get_number_env(name, default, int)


def _get_float_env(name: str, default: float) -> float:
    return _get_number_env(name, default, float)


def _get_str_env(name: str, default: str) -> str:
    return _env(name) or default


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AppSettings:
    mode: str


@lru_cache(maxsize=1)
def get_app_settings() -> AppSettings:
    """
    APP_MODE must be set explicitly; only 'cloud' is accepted.
    """

    raw = _env("APP_MODE")
    if raw is None:
        raise RuntimeError("APP_MODE must be explicitly set to 'cloud'.")
    mode = raw.lower()
    if mode not in _ALLOWED_APP_MODES:
        raise RuntimeError(f"APP_MODE '{raw}' is not valid. Allowed values: {sorted(_ALLOWED_APP_MODES)}.")
    return AppSettings(mode=mode)


@dataclass(frozen=True)
class SpreadsheetIngestionSettings:
    """
    Runtime settings for spreadsheet normalization and reconciliation.
    """

    chunk_size: int = 500
    lookup_batch_size: int = 500
    max_recorded_errors: int = 1000
    log_row_errors: bool = True
    anchor_token: str = "CNPJ"
    scratch_dir: str = tempfile.gettempdir()
    keep_intermediate_csv: bool = False


@dataclass(frozen=True)
class AcquisitionSettings:
    """
    HTTP and local-file settings for acquiring source spreadsheets.
    """

    timeout_seconds: float = 60.0
    max_bytes: int = 100 * 1024 * 1024
    user_agent: str = DEFAULT_USER_AGENT
    allowed_local_root: str | None = None


@dataclass(frozen=True)
class SyncScheduleSettings:
    """
    Weekly scheduled sync of a published spreadsheet URL.
    """

    source_url: str | None = None
    day_of_week: str = "mon"
    hour: int = 6


@lru_cache(maxsize=1)
def get_spreadsheet_ingestion_settings() -> SpreadsheetIngestionSettings:
    defaults = SpreadsheetIngestionSettings()
    return SpreadsheetIngestionSettings(
        chunk_size=max(1, _get_int_env("SPREADSHEET_INGEST_CHUNK_SIZE", defaults.chunk_size)),
        lookup_batch_size=max(1, _get_int_env("SPREADSHEET_INGEST_LOOKUP_BATCH_SIZE", defaults.lookup_batch_size)),
        max_recorded_errors=max(
            1, _get_int_env("SPREADSHEET_INGEST_MAX_RECORDED_ERRORS", defaults.max_recorded_errors)
        ),
        log_row_errors=_get_bool_env("SPREADSHEET_INGEST_LOG_ROW_ERRORS", defaults.log_row_errors),
        anchor_token=_get_str_env("SPREADSHEET_ANCHOR_TOKEN", defaults.anchor_token),
        scratch_dir=_get_str_env("SPREADSHEET_SCRATCH_DIR", defaults.scratch_dir),
        keep_intermediate_csv=_get_bool_env("SPREADSHEET_KEEP_INTERMEDIATE_CSV", defaults.keep_intermediate_csv),
    )


@lru_cache(maxsize=1)
def get_acquisition_settings() -> AcquisitionSettings:
    defaults = AcquisitionSettings()
    return AcquisitionSettings(
        timeout_seconds=max(1.0, _get_float_env("SPREADSHEET_FETCH_TIMEOUT_SECONDS", defaults.timeout_seconds)),
        max_bytes=max(1, _get_int_env("SPREADSHEET_FETCH_MAX_BYTES", defaults.max_bytes)),
        user_agent=_get_str_env("SPREADSHEET_FETCH_USER_AGENT", defaults.user_agent),
        allowed_local_root=_env("SPREADSHEET_LOCAL_ROOT"),
    )


@lru_cache(maxsize=1)
def get_sync_schedule_settings() -> SyncScheduleSettings:
    defaults = SyncScheduleSettings()
    return SyncScheduleSettings(
        source_url=_env("FUEL_PRICE_SYNC_URL"),
        day_of_week=_get_str_env("FUEL_PRICE_SYNC_DAY_OF_WEEK", defaults.day_of_week).lower(),
        hour=min(23, max(0, _get_int_env("FUEL_PRICE_SYNC_HOUR", defaults.hour))),
    )
