"""
app/repositories/fuel_price_repository.py

Bulk lookups and chunk writes for locations, products, stations and price
observations. Lookups return plain rows (not ORM instances) so callers never
touch the identity map; writes go through ORM bulk INSERT / UPDATE by
primary key.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable, Iterator, Sequence
from typing import Any, TypeVar

from sqlalchemy import Row, and_, func, insert, select, update
from sqlalchemy.orm import Session

from db.models.location import Location
from db.models.price_observation import PriceObservation
from db.models.product import Product
from db.models.station import Station

_DEFAULT_LOOKUP_BATCH_SIZE = 500

T = TypeVar("T")

PairKey = tuple[uuid.UUID, uuid.UUID]


def _batched(values: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    step = max(1, size)
    for start in range(0, len(values), step):
        yield values[start : start + step]


class FuelPriceRepository:
    """
    Repository for natural-key resolution and batch persistence.
    """

    def __init__(self, session: Session, *, lookup_batch_size: int = _DEFAULT_LOOKUP_BATCH_SIZE) -> None:
        self._session = session
        self._lookup_batch_size = max(1, lookup_batch_size)

    # ------------------------------------------------------------------
    # Natural-key lookups
    # ------------------------------------------------------------------

    def find_location_ids(self, natural_keys: Iterable[str]) -> dict[str, uuid.UUID]:
        keys = sorted(set(natural_keys))
        found: dict[str, uuid.UUID] = {}
        for chunk in _batched(keys, self._lookup_batch_size):
            stmt = select(Location.natural_key, Location.id).where(Location.natural_key.in_(chunk))
            found.update({key: location_id for key, location_id in self._session.execute(stmt)})
        return found

    def find_product_ids(self, names: Iterable[str]) -> dict[str, uuid.UUID]:
        keys = sorted(set(names))
        found: dict[str, uuid.UUID] = {}
        for chunk in _batched(keys, self._lookup_batch_size):
            stmt = select(Product.name, Product.id).where(Product.name.in_(chunk))
            found.update({name: product_id for name, product_id in self._session.execute(stmt)})
        return found

    def find_stations(self, tax_ids: Iterable[str]) -> dict[str, Row[Any]]:
        keys = sorted(set(tax_ids))
        found: dict[str, Row[Any]] = {}
        for chunk in _batched(keys, self._lookup_batch_size):
            stmt = select(
                Station.id,
                Station.tax_id,
                Station.legal_name,
                Station.trade_name,
                Station.display_name,
                Station.brand,
                Station.location_id,
                Station.is_active,
            ).where(Station.tax_id.in_(chunk))
            found.update({row.tax_id: row for row in self._session.execute(stmt)})
        return found

    def find_latest_observations(self, pairs: Iterable[PairKey]) -> dict[PairKey, Row[Any]]:
        """
        Return the most recent observation per (station_id, product_id) pair.
        """

        wanted = set(pairs)
        station_ids = sorted({station_id for station_id, _ in wanted}, key=str)
        found: dict[PairKey, Row[Any]] = {}

        for chunk in _batched(station_ids, self._lookup_batch_size):
            latest = (
                select(
                    PriceObservation.station_id,
                    PriceObservation.product_id,
                    func.max(PriceObservation.collection_date).label("latest_date"),
                )
                .where(PriceObservation.station_id.in_(chunk))
                .group_by(PriceObservation.station_id, PriceObservation.product_id)
                .subquery()
            )
            stmt = select(
                PriceObservation.id,
                PriceObservation.station_id,
                PriceObservation.product_id,
                PriceObservation.collection_date,
                PriceObservation.price,
                PriceObservation.is_active,
            ).join(
                latest,
                and_(
                    PriceObservation.station_id == latest.c.station_id,
                    PriceObservation.product_id == latest.c.product_id,
                    PriceObservation.collection_date == latest.c.latest_date,
                ),
            )
            for row in self._session.execute(stmt):
                key = (row.station_id, row.product_id)
                if key in wanted:
                    found[key] = row
        return found

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert_locations(self, payloads: Sequence[dict[str, Any]]) -> None:
        self._insert(Location, payloads)

    def insert_products(self, payloads: Sequence[dict[str, Any]]) -> None:
        self._insert(Product, payloads)

    def insert_stations(self, payloads: Sequence[dict[str, Any]]) -> None:
        self._insert(Station, payloads)

    def update_stations(self, payloads: Sequence[dict[str, Any]]) -> None:
        self._update_by_pk(Station, payloads)

    def insert_observations(self, payloads: Sequence[dict[str, Any]]) -> None:
        self._insert(PriceObservation, payloads)

    def update_observations(self, payloads: Sequence[dict[str, Any]]) -> None:
        self._update_by_pk(PriceObservation, payloads)

    def deactivate_observations(self, observation_ids: Sequence[uuid.UUID]) -> None:
        if not observation_ids:
            return
        self._session.execute(
            update(PriceObservation)
            .where(PriceObservation.id.in_(list(observation_ids)))
            .values(is_active=False)
            .execution_options(synchronize_session=False)
        )

    def _insert(self, model: type[Any], payloads: Sequence[dict[str, Any]]) -> None:
        if not payloads:
            return
        self._session.execute(insert(model), list(payloads))

    def _update_by_pk(self, model: type[Any], payloads: Sequence[dict[str, Any]]) -> None:
        if not payloads:
            return
        self._session.execute(update(model), list(payloads))
