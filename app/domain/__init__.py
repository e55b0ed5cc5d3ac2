"""
app/domain package marker.
"""

from app.domain.errors import (
    AcquisitionError,
    IngestionError,
    MalformedSpreadsheet,
    MappingError,
    PersistenceError,
    RowScopedError,
    RowValidationError,
    RunAbortedError,
    StorageUnavailableError,
)
from app.domain.fuel_price import (
    FuelPriceRow,
    LocationInput,
    MappedFuelPrice,
    ObservationInput,
    ProductInput,
    StationInput,
)
from app.domain.ingestion_result import (
    Errored,
    IngestionResult,
    Inserted,
    RowError,
    RowOutcome,
    Skipped,
    Updated,
)

__all__ = [
    "AcquisitionError",
    "Errored",
    "FuelPriceRow",
    "IngestionError",
    "IngestionResult",
    "Inserted",
    "LocationInput",
    "MalformedSpreadsheet",
    "MappedFuelPrice",
    "MappingError",
    "ObservationInput",
    "PersistenceError",
    "ProductInput",
    "RowError",
    "RowOutcome",
    "RowScopedError",
    "RowValidationError",
    "RunAbortedError",
    "Skipped",
    "StationInput",
    "StorageUnavailableError",
    "Updated",
]
