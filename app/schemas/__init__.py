"""
app/schemas package marker.
"""

from app.schemas.spreadsheet_ingestion import (
    IngestionResultResponse,
    IngestionRunListResponse,
    IngestionRunResponse,
    RowErrorResponse,
    SpreadsheetIngestionRequest,
)

__all__ = [
    "IngestionResultResponse",
    "IngestionRunListResponse",
    "IngestionRunResponse",
    "RowErrorResponse",
    "SpreadsheetIngestionRequest",
]
