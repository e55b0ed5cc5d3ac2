"""
Ingestion error taxonomy.

Run-scoped errors (``AcquisitionError``, ``MalformedSpreadsheet``,
``StorageUnavailableError``) abort the whole run and reach the trigger
surface. Row-scoped errors (``RowValidationError``, ``MappingError``,
``PersistenceError``) are captured per row as ``{row, data, error}`` and
never escape the row boundary.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any


class IngestionError(Exception):
    """Base exception for the spreadsheet ingestion pipeline."""


# ---------------------------------------------------------------------------
# Run-scoped
# ---------------------------------------------------------------------------


class RunAbortedError(IngestionError):
    """Base for failures that abort the whole run."""


class AcquisitionError(RunAbortedError):
    """Raised when the source spreadsheet cannot be fetched or opened."""


class MalformedSpreadsheet(RunAbortedError):
    """Raised when the spreadsheet has no usable worksheet, header row or required columns."""


class StorageUnavailableError(RunAbortedError):
    """Raised when the database cannot be reached at all."""


# ---------------------------------------------------------------------------
# Row-scoped
# ---------------------------------------------------------------------------


class RowScopedError(IngestionError):
    """
    Failure bound to one data row; carries the 1-based row index and raw payload.
    """

    def __init__(
        self,
        message: str,
        *,
        row: int | None = None,
        data: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.row = row
        self.data = dict(data) if data is not None else None


class RowValidationError(RowScopedError):
    """Raised when a raw row fails validation."""


class MappingError(RowScopedError):
    """Raised when a validated row cannot be canonicalized."""


class PersistenceError(RowScopedError):
    """Raised when a write unit fails inside the per-unit fallback."""
