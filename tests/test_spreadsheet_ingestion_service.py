"""
tests/test_spreadsheet_ingestion_service.py

End-to-end pipeline runs (workbook or CSV in, reconciled rows and a run log
out) against the in-memory store.
"""

from __future__ import annotations

import io
from datetime import datetime
from pathlib import Path

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.config import AcquisitionSettings
from app.domain.errors import AcquisitionError, MalformedSpreadsheet
from app.services.reconciliation_service import ReconciliationService
from app.services.spreadsheet_acquirer import SpreadsheetAcquirer
from app.services.spreadsheet_ingestion_service import SpreadsheetIngestionService
from conftest import ANP_HEADERS, anp_row, write_anp_workbook
from db.models import IngestionRun, IngestionRunStatus, PriceObservation, Station


@pytest.fixture()
def scratch_dir(tmp_path: Path) -> Path:
    return tmp_path / "scratch"


@pytest.fixture()
def service(scratch_dir: Path) -> SpreadsheetIngestionService:
    acquirer = SpreadsheetAcquirer(settings=AcquisitionSettings(), scratch_dir=scratch_dir)
    return SpreadsheetIngestionService(
        acquirer=acquirer,
        reconciler=ReconciliationService(chunk_size=50),
        max_recorded_errors=10,
    )


@pytest.fixture()
def workbook(tmp_path: Path) -> Path:
    return write_anp_workbook(
        tmp_path / "revendas_lpc_2024-01-15.xlsx",
        [
            anp_row(cnpj=12345678000190, price=5.59, collection_date=datetime(2024, 1, 15)),
            anp_row(cnpj="", collection_date=datetime(2024, 1, 15)),
            anp_row(cnpj=12345678000190, product="ETANOL HIDRATADO", price=3.89, collection_date=datetime(2024, 1, 15)),
            anp_row(cnpj=98765432000110, address="RUA DO SOL", price="R$ 5,65", collection_date="16/01/2024"),
        ],
    )


def runs(session: Session) -> list[IngestionRun]:
    return list(session.scalars(select(IngestionRun).order_by(IngestionRun.started_at)))


class TestWorkbookIngestion:
    def test_rows_are_reconciled_and_errors_reported(
        self,
        service: SpreadsheetIngestionService,
        db_session: Session,
        workbook: Path,
        scratch_dir: Path,
    ) -> None:
        result = service.ingest_path(db=db_session, path=str(workbook))

        assert (result.processed, result.inserted, result.updated, result.skipped) == (3, 3, 0, 0)
        assert result.error_count == 1
        assert result.errors[0].row == 2
        assert result.errors[0].error.startswith("Invalid CNPJ")
        assert result.errors[0].data is not None
        assert result.errors[0].data["PRODUTO"] == "GASOLINA COMUM"
        assert result.summary == "Processing completed: 3 processed, 3 inserted, 1 error"

        assert db_session.scalar(select(func.count()).select_from(Station)) == 2
        assert db_session.scalar(select(func.count()).select_from(PriceObservation)) == 3
        assert list(scratch_dir.iterdir()) == []

    def test_second_run_skips_everything(
        self,
        service: SpreadsheetIngestionService,
        db_session: Session,
        workbook: Path,
    ) -> None:
        service.ingest_path(db=db_session, path=str(workbook))

        result = service.ingest_path(db=db_session, path=str(workbook))

        assert (result.processed, result.inserted, result.updated, result.skipped) == (3, 0, 0, 3)
        assert db_session.scalar(select(func.count()).select_from(PriceObservation)) == 3

    def test_completed_run_is_logged(
        self,
        service: SpreadsheetIngestionService,
        db_session: Session,
        workbook: Path,
    ) -> None:
        service.ingest_path(db=db_session, path=str(workbook))

        [run] = runs(db_session)
        assert run.status == IngestionRunStatus.COMPLETED
        assert run.file_name == workbook.name
        assert run.completed_at is not None
        assert run.result_payload is not None
        assert run.result_payload["inserted"] == 3
        assert run.result_payload["error_count"] == 1
        assert run.result_payload["errors"][0]["row"] == 2


class TestCsvIngestion:
    def test_semicolon_csv_upload_with_preamble(
        self,
        service: SpreadsheetIngestionService,
        db_session: Session,
    ) -> None:
        lines = [
            "LEVANTAMENTO DE PREÇOS DE COMBUSTÍVEIS",
            ";".join(ANP_HEADERS),
            ";".join(str(value) for value in anp_row()),
            ";".join(str(value) for value in anp_row(product="GLP", unit="R$ / 13 kg", price="110,00")),
            "",
        ]
        stream = io.BytesIO("\n".join(lines).encode("utf-8"))

        result = service.ingest_upload(db=db_session, stream=stream, file_name="precos.csv", content_type="text/csv")

        assert (result.inserted, result.error_count) == (2, 0)
        prices = sorted(db_session.scalars(select(PriceObservation.price)))
        assert [str(price) for price in prices] == ["5.59", "110.00"]


class TestRunAborts:
    def test_missing_anchor_fails_the_run(
        self,
        service: SpreadsheetIngestionService,
        db_session: Session,
        tmp_path: Path,
    ) -> None:
        path = tmp_path / "notes.csv"
        path.write_text("TITULO,VALOR\nA,1\n", encoding="utf-8")

        with pytest.raises(MalformedSpreadsheet):
            service.ingest_path(db=db_session, path=str(path))

        [run] = runs(db_session)
        assert run.status == IngestionRunStatus.FAILED
        assert "Header row not found" in (run.error_message or "")

    def test_missing_required_columns_fail_the_run(
        self,
        service: SpreadsheetIngestionService,
        db_session: Session,
        tmp_path: Path,
    ) -> None:
        path = tmp_path / "partial.csv"
        path.write_text("CNPJ,PRODUTO\n12.345.678/0001-90,GNV\n", encoding="utf-8")

        with pytest.raises(MalformedSpreadsheet, match="Missing required columns"):
            service.ingest_path(db=db_session, path=str(path))

    def test_missing_source_fails_the_run(
        self,
        service: SpreadsheetIngestionService,
        db_session: Session,
        tmp_path: Path,
    ) -> None:
        with pytest.raises(AcquisitionError):
            service.ingest_path(db=db_session, path=str(tmp_path / "absent.xlsx"))

        [run] = runs(db_session)
        assert run.status == IngestionRunStatus.FAILED
        assert run.source.endswith("absent.xlsx")

    def test_unexpected_error_marks_the_run_failed(
        self,
        service: SpreadsheetIngestionService,
        db_session: Session,
        workbook: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        def explode(**_: object) -> None:
            raise ZeroDivisionError("division by zero")

        monkeypatch.setattr(service, "process_file", explode)

        with pytest.raises(ZeroDivisionError):
            service.ingest_path(db=db_session, path=str(workbook))

        [run] = runs(db_session)
        assert run.status == IngestionRunStatus.FAILED
        assert run.completed_at is not None
        assert "ZeroDivisionError" in (run.error_message or "")


class TestOversizedPrice:
    def test_oversized_price_is_a_row_error(
        self,
        service: SpreadsheetIngestionService,
        db_session: Session,
        tmp_path: Path,
    ) -> None:
        path = write_anp_workbook(
            tmp_path / "oversized.xlsx",
            [
                anp_row(),
                anp_row(product="ETANOL", price="1" * 30),
            ],
        )

        result = service.ingest_path(db=db_session, path=str(path))

        assert (result.processed, result.inserted) == (1, 1)
        assert result.error_count == 1
        assert result.errors[0].row == 2
        assert result.errors[0].error.startswith("Invalid price")
        [run] = runs(db_session)
        assert run.status == IngestionRunStatus.COMPLETED
