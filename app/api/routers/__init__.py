"""
app/api/routers package marker.
"""

from app.api.routers.spreadsheet_ingestion import router as spreadsheet_ingestion_router

__all__ = [
    "spreadsheet_ingestion_router",
]
