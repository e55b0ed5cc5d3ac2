"""
Environment-driven database configuration helpers shared by the API,
the scheduler, the CLI script and Alembic.
"""

from __future__ import annotations

import os
from pathlib import Path

_ENV_FILENAMES: tuple[str, ...] = (".env", ".env.local")
_CLOUD_LIKE_ENVIRONMENTS = frozenset({"prod", "production", "staging", "cloud"})
_POSTGRES_PREFIXES: tuple[tuple[str, str], ...] = (
    ("postgres://", "postgresql+psycopg://"),
    ("postgresql://", "postgresql+psycopg://"),
)


def _parse_env_line(text: str) -> tuple[str, str] | None:
    if text.lstrip().startswith("#"):
        return None
    key, separator, value = text.partition("=")
    if not separator or not key.strip():
        return None
    return key.strip(), value.strip().strip('"').strip("'")


def load_env_files(project_root: Path | None = None) -> None:
    """
    Load KEY=VALUE pairs from `.env` and `.env.local` at the project root.
    Variables already present in the process environment win.
    """

    root = project_root or Path(__file__).resolve().parents[1]
    env_paths = [root / filename for filename in _ENV_FILENAMES]
    for env_path in filter(Path.is_file, env_paths):
        pairs = map(_parse_env_line, env_path.read_text(encoding="utf-8").splitlines())
        for key, value in filter(None, pairs):
            os.environ.setdefault(key, value)


def normalize_postgres_url(url: str) -> str:
    """
    Rewrite bare postgres URLs to the psycopg (v3) driver form.
    """

    for prefix, replacement in _POSTGRES_PREFIXES:
        if url.startswith(prefix):
            return replacement + url[len(prefix):]
    return url


def _database_url_candidates() -> list[str | None]:
    candidates = [os.getenv("DATABASE_URL")]
    if os.getenv("ENVIRONMENT", "local").strip().lower() in _CLOUD_LIKE_ENVIRONMENTS:
        candidates.append(os.getenv("CLOUD_DATABASE_URL"))
    candidates.append(os.getenv("LOCAL_DATABASE_URL"))
    return candidates


def resolve_database_url() -> str:
    """
    First non-blank of DATABASE_URL, CLOUD_DATABASE_URL (only when
    ENVIRONMENT is prod, production, staging or cloud) and LOCAL_DATABASE_URL,
    after loading .env files.
    """

    load_env_files()
    for candidate in _database_url_candidates():
        if candidate and candidate.strip():
            return normalize_postgres_url(candidate.strip())
    raise RuntimeError(
        "No database URL configured for the fuel price store. Set DATABASE_URL, "
        "or configure LOCAL_DATABASE_URL / CLOUD_DATABASE_URL."
    )
