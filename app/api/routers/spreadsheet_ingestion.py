"""
app/api/routers/spreadsheet_ingestion.py

Spreadsheet ingestion HTTP endpoints.
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import APIRouter, Depends, HTTPException, Query, UploadFile, status
from sqlalchemy.orm import Session

from app.api.dependencies import get_spreadsheet_upload
from app.domain.errors import AcquisitionError, MalformedSpreadsheet, StorageUnavailableError
from app.domain.ingestion_result import IngestionResult
from app.schemas.spreadsheet_ingestion import (
    IngestionResultResponse,
    IngestionRunListResponse,
    IngestionRunResponse,
    SpreadsheetIngestionRequest,
)
from app.services.spreadsheet_ingestion_service import (
    SpreadsheetIngestionService,
    get_spreadsheet_ingestion_service,
)
from db.repositories.ingestion_run_repository import IngestionRunRepository
from db.session import get_db

router = APIRouter(prefix="/ingestion", tags=["ingestion"])


def _run_or_raise(run: Callable[[], IngestionResult]) -> IngestionResult:
    try:
        return run()
    except (AcquisitionError, MalformedSpreadsheet) as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except StorageUnavailableError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Fuel price store is unavailable.",
        ) from exc


@router.post("/spreadsheet", response_model=IngestionResultResponse)
def ingest_spreadsheet(
    request: SpreadsheetIngestionRequest,
    db: Session = Depends(get_db),
    ingestion_service: SpreadsheetIngestionService = Depends(get_spreadsheet_ingestion_service),
) -> IngestionResultResponse:
    """
    Download (or open) one ANP spreadsheet and reconcile it synchronously.
    """

    if request.url:
        result = _run_or_raise(lambda: ingestion_service.ingest_url(db=db, url=request.url))
    else:
        result = _run_or_raise(lambda: ingestion_service.ingest_path(db=db, path=request.path))
    return IngestionResultResponse.from_result(result)


@router.post("/spreadsheet/upload", response_model=IngestionResultResponse)
def upload_spreadsheet(
    file: UploadFile = Depends(get_spreadsheet_upload),
    db: Session = Depends(get_db),
    ingestion_service: SpreadsheetIngestionService = Depends(get_spreadsheet_ingestion_service),
) -> IngestionResultResponse:
    """
    Ingest one uploaded XLSX, XLS or CSV spreadsheet.
    """

    try:
        result = _run_or_raise(
            lambda: ingestion_service.ingest_upload(
                db=db,
                stream=file.file,
                file_name=file.filename,
                content_type=file.content_type,
            )
        )
    finally:
        file.file.close()
    return IngestionResultResponse.from_result(result)


@router.get("/runs", response_model=IngestionRunListResponse)
def list_ingestion_runs(
    limit: int = Query(default=20, ge=1, le=200),
    status_filter: str | None = Query(default=None, alias="status"),
    db: Session = Depends(get_db),
) -> IngestionRunListResponse:
    runs = IngestionRunRepository(db).list_runs(limit=limit, status=status_filter)
    return IngestionRunListResponse(runs=[IngestionRunResponse.model_validate(run) for run in runs])
