"""
app/schemas/spreadsheet_ingestion.py

Request and response schemas for spreadsheet ingestion endpoints.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from app.domain.ingestion_result import IngestionResult


class SpreadsheetIngestionRequest(BaseModel):
    """
    Source of the spreadsheet to ingest: exactly one of ``url`` or ``path``.
    """

    url: str | None = Field(default=None, description="HTTP(S) URL of the published spreadsheet")
    path: str | None = Field(default=None, description="Server-local path to an XLSX, XLS or CSV file")

    @model_validator(mode="after")
    def _exactly_one_source(self) -> SpreadsheetIngestionRequest:
        if bool(self.url) == bool(self.path):
            raise ValueError("Provide exactly one of 'url' or 'path'.")
        return self


class RowErrorResponse(BaseModel):
    """
    API response model for one rejected row.
    """

    row: int = Field(..., ge=1)
    data: dict[str, Any] | None = None
    error: str


class IngestionResultResponse(BaseModel):
    """
    API response model for an ingestion run result.
    """

    processed: int = Field(..., ge=0)
    inserted: int = Field(..., ge=0)
    updated: int = Field(..., ge=0)
    skipped: int = Field(..., ge=0)
    error_count: int = Field(..., ge=0)
    errors: list[RowErrorResponse] = Field(default_factory=list)
    summary: str

    @classmethod
    def from_result(cls, result: IngestionResult) -> IngestionResultResponse:
        return cls(
            processed=result.processed,
            inserted=result.inserted,
            updated=result.updated,
            skipped=result.skipped,
            error_count=result.error_count,
            errors=[
                RowErrorResponse(row=error.row, data=error.data, error=error.error)
                for error in result.errors
            ],
            summary=result.summary,
        )


class IngestionRunResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    source: str
    file_name: str | None = None
    status: str
    result_payload: dict[str, Any] | None = None
    error_message: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None


class IngestionRunListResponse(BaseModel):
    runs: list[IngestionRunResponse] = Field(default_factory=list)
