"""
Model package exports.

Import all SQLAlchemy models here so metadata registration and Alembic
autogeneration work without extra imports.
"""

from db.models.ingestion_run import IngestionRun, IngestionRunStatus
from db.models.location import Location
from db.models.price_observation import PriceObservation
from db.models.product import Product, ProductCategory
from db.models.station import Station

__all__ = [
    "IngestionRun",
    "IngestionRunStatus",
    "Location",
    "PriceObservation",
    "Product",
    "ProductCategory",
    "Station",
]
