"""
tests/test_ingestion_result.py

Counter arithmetic, error capping and the human-readable summary.
"""

from __future__ import annotations

import pytest

from app.domain.ingestion_result import Errored, IngestionResult, Inserted, Skipped, Updated


def test_fold_counts_every_outcome_kind() -> None:
    result = IngestionResult.fold(
        [
            Inserted(row=1),
            Inserted(row=2),
            Updated(row=3),
            Skipped(row=4, reason="older"),
            Errored(row=5, reason="Invalid CNPJ: value is missing.", data={"CNPJ": ""}),
        ]
    )

    assert (result.processed, result.inserted, result.updated, result.skipped) == (4, 2, 1, 1)
    assert result.error_count == 1
    assert result.processed == result.inserted + result.updated + result.skipped
    assert result.errors[0].to_dict() == {
        "row": 5,
        "data": {"CNPJ": ""},
        "error": "Invalid CNPJ: value is missing.",
    }


def test_errors_are_capped_but_still_counted() -> None:
    outcomes = [Errored(row=index, reason="bad row") for index in range(1, 6)]

    result = IngestionResult.fold(outcomes, max_errors=2)

    assert result.error_count == 5
    assert [error.row for error in result.errors] == [1, 2]


def test_result_is_immutable() -> None:
    result = IngestionResult()
    with pytest.raises((AttributeError, TypeError)):
        result.inserted = 3  # type: ignore[misc]


@pytest.mark.parametrize(
    ("outcomes", "expected"),
    [
        ([], "Processing completed: nothing to process"),
        ([Inserted(row=1)], "Processing completed: 1 processed, 1 inserted"),
        (
            [Inserted(row=1), Skipped(row=2, reason="same"), Errored(row=3, reason="x")],
            "Processing completed: 2 processed, 1 inserted, 1 skipped, 1 error",
        ),
        (
            [Updated(row=1), Errored(row=2, reason="x"), Errored(row=3, reason="y")],
            "Processing completed: 1 processed, 1 updated, 2 errors",
        ),
    ],
)
def test_summary_lists_non_zero_counters(outcomes, expected: str) -> None:
    assert IngestionResult.fold(outcomes).summary == expected


def test_to_dict_limits_errors_only() -> None:
    result = IngestionResult.fold([Errored(row=index, reason="bad") for index in range(1, 4)])

    payload = result.to_dict(error_limit=1)

    assert payload["error_count"] == 3
    assert len(payload["errors"]) == 1
    assert payload["summary"] == "Processing completed: 3 errors"


def test_unknown_outcome_is_rejected() -> None:
    with pytest.raises(TypeError):
        IngestionResult().apply("inserted")  # type: ignore[arg-type]
