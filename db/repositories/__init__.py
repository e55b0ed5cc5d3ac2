"""
Repository layer exports.
"""

from db.repositories.ingestion_run_repository import IngestionRunRepository

__all__ = [
    "IngestionRunRepository",
]
