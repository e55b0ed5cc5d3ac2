"""
app/services/spreadsheet_ingestion_service.py

Service layer for ANP spreadsheet ingestion.

    Acquirer -> sheet reader -> tabular normalizer -> intermediate CSV
             -> column layout -> row validator -> entity mapper
             -> reconciliation engine -> IngestionResult

Row-scoped failures (validation, mapping, unit writes) are folded into the
result; run-scoped failures (acquisition, malformed sheet, storage
unavailable) propagate to the caller. Every run is recorded in
``ingestion_runs``; a failure to write that log never masks the outcome of
the run itself.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable
from contextlib import AbstractContextManager
from functools import lru_cache
from typing import BinaryIO

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import get_spreadsheet_ingestion_settings
from app.domain.errors import MappingError, RunAbortedError, StorageUnavailableError
from app.domain.fuel_price import MappedFuelPrice
from app.domain.ingestion_result import Errored, IngestionResult, RowOutcome
from app.logging_utils import log_event
from app.mappers.column_layout import resolve_layout
from app.mappers.fuel_price_mapper import map_row
from app.normalizers.sheet_readers import read_first_sheet
from app.normalizers.tabular_normalizer import TabularNormalizer, read_table_csv, write_table_csv
from app.services.reconciliation_service import ReconciliationService, get_reconciliation_service
from app.services.spreadsheet_acquirer import AcquiredSpreadsheet, SpreadsheetAcquirer, get_spreadsheet_acquirer
from app.validators.row_validator import RowValidator
from db.repositories.ingestion_run_repository import IngestionRunRepository

# Row errors stored on the run log are truncated to keep the JSON payload small.
RUN_LOG_ERROR_LIMIT = 100


class SpreadsheetIngestionService:
    """
    Coordinates acquisition, normalization, validation, mapping and reconciliation.
    """

    def __init__(
        self,
        *,
        acquirer: SpreadsheetAcquirer,
        reconciler: ReconciliationService,
        normalizer: TabularNormalizer | None = None,
        validator: RowValidator | None = None,
        max_recorded_errors: int = 1000,
        log_row_errors: bool = True,
        keep_intermediate_csv: bool = False,
        logger: logging.Logger | None = None,
    ) -> None:
        self._acquirer = acquirer
        self._reconciler = reconciler
        self._normalizer = normalizer or TabularNormalizer()
        self._validator = validator or RowValidator()
        self._max_recorded_errors = max(1, max_recorded_errors)
        self._log_row_errors = log_row_errors
        self._keep_intermediate_csv = keep_intermediate_csv
        self._logger = logger or logging.getLogger(__name__)

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def ingest_url(self, *, db: Session, url: str) -> IngestionResult:
        return self._run(db=db, source=url, acquire=lambda: self._acquirer.from_url(url))

    def ingest_path(self, *, db: Session, path: str) -> IngestionResult:
        return self._run(db=db, source=path, acquire=lambda: self._acquirer.from_path(path))

    def ingest_upload(
        self,
        *,
        db: Session,
        stream: BinaryIO,
        file_name: str | None,
        content_type: str | None = None,
    ) -> IngestionResult:
        return self._run(
            db=db,
            source=f"upload:{file_name or 'upload'}",
            acquire=lambda: self._acquirer.from_stream(stream, file_name=file_name, content_type=content_type),
        )

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def process_file(self, *, db: Session, spreadsheet: AcquiredSpreadsheet) -> IngestionResult:
        """
        Normalize, validate, map and reconcile one acquired spreadsheet.
        """

        grid = read_first_sheet(spreadsheet.path)
        table = self._normalizer.normalize(grid)
        layout = resolve_layout(table.headers)

        csv_path = self._acquirer.scratch_path(prefix="anp_", suffix=".csv")
        outcomes: list[RowOutcome] = []
        mapped_rows: list[MappedFuelPrice] = []
        try:
            write_table_csv(table, csv_path)
            for row_number, raw_row in enumerate(read_table_csv(csv_path), start=1):
                verdict = self._validator.validate(raw_row=raw_row, row_number=row_number, layout=layout)
                if not verdict.is_valid or verdict.row is None:
                    error = verdict.to_error()
                    outcomes.append(self._row_error(row_number, error.message, error.data))
                    continue
                try:
                    mapped_rows.append(map_row(verdict.row))
                except MappingError as exc:
                    outcomes.append(self._row_error(row_number, exc.message, exc.data))
        finally:
            if self._keep_intermediate_csv:
                self._logger.info("Intermediate CSV kept at %s", csv_path)
            else:
                self._acquirer.discard(csv_path)

        log_event(
            self._logger,
            logging.INFO,
            "ingestion.rows_prepared",
            file_name=spreadsheet.file_name,
            rows=len(table.rows),
            mapped=len(mapped_rows),
            rejected=len(outcomes),
        )

        outcomes.extend(self._reconciler.reconcile(db=db, rows=mapped_rows))
        outcomes.sort(key=lambda outcome: outcome.row)
        return IngestionResult.fold(outcomes, max_errors=self._max_recorded_errors)

    def _run(
        self,
        *,
        db: Session,
        source: str,
        acquire: Callable[[], AbstractContextManager[AcquiredSpreadsheet]],
    ) -> IngestionResult:
        started = time.monotonic()
        run_id = self._start_run(db, source=source)
        log_event(self._logger, logging.INFO, "ingestion.started", source=source, run_id=run_id)

        file_name: str | None = None
        try:
            with acquire() as spreadsheet:
                file_name = spreadsheet.file_name
                result = self.process_file(db=db, spreadsheet=spreadsheet)
        except RunAbortedError as exc:
            db.rollback()
            self._fail_run(db, run_id, str(exc))
            log_event(self._logger, logging.ERROR, "ingestion.failed", source=source, error=str(exc))
            raise
        except SQLAlchemyError as exc:
            db.rollback()
            self._fail_run(db, run_id, f"Storage failure: {exc.__class__.__name__}")
            log_event(self._logger, logging.ERROR, "ingestion.failed", source=source, error=str(exc))
            raise StorageUnavailableError("Database error aborted the ingestion run.") from exc
        except Exception as exc:
            db.rollback()
            self._fail_run(db, run_id, f"Unexpected failure: {exc.__class__.__name__}: {exc}")
            log_event(
                self._logger,
                logging.ERROR,
                "ingestion.failed",
                source=source,
                error=str(exc),
                error_type=exc.__class__.__name__,
            )
            raise

        self._complete_run(db, run_id, result, file_name)
        log_event(
            self._logger,
            logging.INFO,
            "ingestion.completed",
            source=source,
            processed=result.processed,
            inserted=result.inserted,
            updated=result.updated,
            skipped=result.skipped,
            errors=result.error_count,
            elapsed_seconds=round(time.monotonic() - started, 3),
        )
        return result

    def _row_error(self, row_number: int, message: str, data: dict | None) -> Errored:
        if self._log_row_errors:
            self._logger.warning("Spreadsheet row rejected row=%s message=%s", row_number, message)
        return Errored(row=row_number, reason=message, data=data)

    # ------------------------------------------------------------------
    # Run log
    # ------------------------------------------------------------------

    def _start_run(self, db: Session, *, source: str) -> uuid.UUID | None:
        try:
            run = IngestionRunRepository(db).start_run(source=source)
            run_id = run.id
            db.commit()
            return run_id
        except SQLAlchemyError as exc:
            db.rollback()
            self._logger.warning("Unable to record ingestion run start source=%s: %s", source, exc)
            return None

    def _complete_run(
        self,
        db: Session,
        run_id: uuid.UUID | None,
        result: IngestionResult,
        file_name: str | None,
    ) -> None:
        if run_id is None:
            return
        try:
            IngestionRunRepository(db).mark_completed(
                run_id=run_id,
                result_payload=result.to_dict(error_limit=RUN_LOG_ERROR_LIMIT),
                file_name=file_name,
            )
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            self._logger.warning("Unable to record ingestion run completion run_id=%s: %s", run_id, exc)

    def _fail_run(self, db: Session, run_id: uuid.UUID | None, message: str) -> None:
        if run_id is None:
            return
        try:
            IngestionRunRepository(db).mark_failed(run_id=run_id, error_message=message)
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            self._logger.warning("Unable to record ingestion run failure run_id=%s: %s", run_id, exc)


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


@lru_cache(maxsize=1)
def get_spreadsheet_ingestion_service() -> SpreadsheetIngestionService:
    """
    Build and cache the ingestion service with env-driven settings.
    """
    settings = get_spreadsheet_ingestion_settings()
    return SpreadsheetIngestionService(
        acquirer=get_spreadsheet_acquirer(),
        reconciler=get_reconciliation_service(),
        normalizer=TabularNormalizer(anchor_token=settings.anchor_token),
        max_recorded_errors=settings.max_recorded_errors,
        log_row_errors=settings.log_row_errors,
        keep_intermediate_csv=settings.keep_intermediate_csv,
    )
