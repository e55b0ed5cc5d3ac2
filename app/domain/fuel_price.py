"""
app/domain/fuel_price.py

Typed records flowing between the validator, the entity mapper and the
reconciliation engine.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any


@dataclass(frozen=True)
class FuelPriceRow:
    """
    One spreadsheet row that passed validation.

    Optional text fields are None when the cell was blank.
    """

    row_number: int
    tax_id: str
    legal_name: str
    city: str
    state: str
    product: str
    collection_date: date
    trade_name: str | None = None
    address: str | None = None
    number: str | None = None
    complement: str | None = None
    neighborhood: str | None = None
    postal_code: str | None = None
    brand: str | None = None
    price: str | None = None
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)


@dataclass(frozen=True)
class LocationInput:
    natural_key: str
    state: str
    city: str
    address: str | None
    number: str | None
    complement: str | None
    neighborhood: str | None
    postal_code: str | None
    display_address: str | None = None


@dataclass(frozen=True)
class ProductInput:
    name: str
    category: str
    unit: str


@dataclass(frozen=True)
class StationInput:
    tax_id: str
    legal_name: str
    trade_name: str | None
    brand: str | None
    display_name: str
    location_key: str


@dataclass(frozen=True)
class ObservationInput:
    tax_id: str
    product_name: str
    collection_date: date
    price: Decimal | None

    @property
    def pair_key(self) -> tuple[str, str]:
        return (self.tax_id, self.product_name)

    @property
    def natural_key(self) -> tuple[str, str, date]:
        return (self.tax_id, self.product_name, self.collection_date)


@dataclass(frozen=True)
class MappedFuelPrice:
    """
    Canonical entities derived from one validated row.
    """

    row_number: int
    data: dict[str, Any]
    location: LocationInput
    product: ProductInput
    station: StationInput
    observation: ObservationInput
