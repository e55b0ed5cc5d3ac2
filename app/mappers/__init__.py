"""
app/mappers package marker.
"""

from app.mappers.column_layout import (
    CANONICAL_FIELDS,
    REQUIRED_FIELDS,
    ColumnLayout,
    MissingRequiredColumnsError,
    resolve_layout,
)
from app.mappers.fuel_price_mapper import map_row

__all__ = [
    "CANONICAL_FIELDS",
    "REQUIRED_FIELDS",
    "ColumnLayout",
    "MissingRequiredColumnsError",
    "map_row",
    "resolve_layout",
]
