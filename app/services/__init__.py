"""
app/services package marker.
"""

from app.services.reconciliation_service import (
    ReconciliationService,
    get_reconciliation_service,
)
from app.services.spreadsheet_acquirer import (
    AcquiredSpreadsheet,
    SpreadsheetAcquirer,
    get_spreadsheet_acquirer,
)
from app.services.spreadsheet_ingestion_service import (
    SpreadsheetIngestionService,
    get_spreadsheet_ingestion_service,
)

__all__ = [
    "AcquiredSpreadsheet",
    "ReconciliationService",
    "get_reconciliation_service",
    "SpreadsheetAcquirer",
    "get_spreadsheet_acquirer",
    "SpreadsheetIngestionService",
    "get_spreadsheet_ingestion_service",
]
