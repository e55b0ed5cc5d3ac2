"""
app/repositories package marker.
"""

from app.repositories.fuel_price_repository import FuelPriceRepository

__all__ = [
    "FuelPriceRepository",
]
