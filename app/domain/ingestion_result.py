"""
app/domain/ingestion_result.py

Per-row outcomes and the immutable run result folded from them.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from functools import reduce
from typing import Any, Union


@dataclass(frozen=True)
class Inserted:
    row: int


@dataclass(frozen=True)
class Updated:
    row: int


@dataclass(frozen=True)
class Skipped:
    row: int
    reason: str


@dataclass(frozen=True)
class Errored:
    row: int
    reason: str
    data: dict[str, Any] | None = field(default=None, compare=False)


RowOutcome = Union[Inserted, Updated, Skipped, Errored]


@dataclass(frozen=True)
class RowError:
    """
    One captured row failure, as reported to callers.
    """

    row: int
    error: str
    data: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"row": self.row, "data": self.data, "error": self.error}


@dataclass(frozen=True)
class IngestionResult:
    """
    Run-level counters.

    ``processed`` counts rows that reached a non-error terminal state, so
    ``processed == inserted + updated + skipped`` always holds.
    ``error_count`` keeps counting after ``errors`` stops growing at the
    configured cap.
    """

    processed: int = 0
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    error_count: int = 0
    errors: tuple[RowError, ...] = ()
    max_errors: int | None = field(default=None, compare=False)

    def apply(self, outcome: RowOutcome) -> IngestionResult:
        if isinstance(outcome, Inserted):
            return replace(self, processed=self.processed + 1, inserted=self.inserted + 1)
        if isinstance(outcome, Updated):
            return replace(self, processed=self.processed + 1, updated=self.updated + 1)
        if isinstance(outcome, Skipped):
            return replace(self, processed=self.processed + 1, skipped=self.skipped + 1)
        if isinstance(outcome, Errored):
            return self._with_error(RowError(row=outcome.row, error=outcome.reason, data=outcome.data))
        raise TypeError(f"Unknown row outcome: {outcome!r}")

    def _with_error(self, error: RowError) -> IngestionResult:
        errors = self.errors
        if self.max_errors is None or len(errors) < self.max_errors:
            errors = (*errors, error)
        return replace(self, error_count=self.error_count + 1, errors=errors)

    @classmethod
    def fold(
        cls,
        outcomes: Iterable[RowOutcome],
        *,
        max_errors: int | None = None,
    ) -> IngestionResult:
        return reduce(lambda acc, outcome: acc.apply(outcome), outcomes, cls(max_errors=max_errors))

    @property
    def summary(self) -> str:
        parts = [
            f"{count} {label}"
            for count, label in (
                (self.processed, "processed"),
                (self.inserted, "inserted"),
                (self.updated, "updated"),
                (self.skipped, "skipped"),
                (self.error_count, "errors" if self.error_count != 1 else "error"),
            )
            if count
        ]
        if not parts:
            return "Processing completed: nothing to process"
        return "Processing completed: " + ", ".join(parts)

    def to_dict(self, *, error_limit: int | None = None) -> dict[str, Any]:
        errors = self.errors if error_limit is None else self.errors[:error_limit]
        return {
            "processed": self.processed,
            "inserted": self.inserted,
            "updated": self.updated,
            "skipped": self.skipped,
            "error_count": self.error_count,
            "errors": [error.to_dict() for error in errors],
            "summary": self.summary,
        }
