"""
app/services/reconciliation_service.py

Reconciles mapped spreadsheet rows against persisted state.

Flow for one batch of mapped rows:

    1. Deduplicate locations, products and stations by natural key
       (first-seen instance wins).
    2. Resolve every distinct key with one chunked IN lookup per kind and
       insert the missing entities (client-side UUIDs, chunked writes).
    3. Classify each observation in file order against an in-memory view
       of the latest observation per (station, product) pair:

           no observation for the pair            -> Inserted
           older than the pair's latest date      -> Skipped
           same date, same price                  -> Skipped
           same date, different price             -> Updated (price in place)
           newer than the pair's latest date      -> Updated (new dated row,
                                                     previous one deactivated)

    4. Write one unit per pair, in chunks of ``chunk_size`` units. Each chunk
       runs inside a SAVEPOINT and is committed on success; a failed chunk is
       rolled back and retried one unit at a time.

Rows whose unit (or whose station/product) could not be written become
``Errored``; the run carries on. Connection-level failures abort the run
with ``StorageUnavailableError``.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from functools import lru_cache
from typing import Any, Generic, TypeVar

from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import get_spreadsheet_ingestion_settings
from app.domain.errors import PersistenceError, StorageUnavailableError
from app.domain.fuel_price import LocationInput, MappedFuelPrice, ProductInput, StationInput
from app.domain.ingestion_result import Errored, Inserted, RowOutcome, Skipped, Updated
from app.logging_utils import log_event
from app.repositories.fuel_price_repository import FuelPriceRepository, PairKey

DEFAULT_CHUNK_SIZE = 500

SKIP_OLDER = "collection date is older than the latest stored observation"
SKIP_UNCHANGED = "observation already stored with the same price"

U = TypeVar("U")


# ---------------------------------------------------------------------------
# Working state
# ---------------------------------------------------------------------------


@dataclass
class _EntityIndex:
    """
    First-seen instance per natural key, plus the rows referencing it.
    """

    locations: dict[str, LocationInput] = field(default_factory=dict)
    products: dict[str, ProductInput] = field(default_factory=dict)
    stations: dict[str, StationInput] = field(default_factory=dict)

    @classmethod
    def build(cls, rows: Sequence[MappedFuelPrice]) -> _EntityIndex:
        index = cls()
        for row in rows:
            index.locations.setdefault(row.location.natural_key, row.location)
            index.products.setdefault(row.product.name, row.product)
            index.stations.setdefault(row.station.tax_id, row.station)
        return index


@dataclass
class _ResolvedEntities:
    location_ids: dict[str, uuid.UUID] = field(default_factory=dict)
    product_ids: dict[str, uuid.UUID] = field(default_factory=dict)
    station_ids: dict[str, uuid.UUID] = field(default_factory=dict)
    new_station_ids: set[uuid.UUID] = field(default_factory=set)
    new_product_ids: set[uuid.UUID] = field(default_factory=set)
    failed_products: dict[str, str] = field(default_factory=dict)
    failed_stations: dict[str, str] = field(default_factory=dict)


@dataclass
class _PairState:
    """Latest known observation for one (station, product) pair."""

    collection_date: date
    price: Decimal | None
    observation_id: uuid.UUID


@dataclass
class _WriteUnit:
    """
    All writes for one (station, product) pair, coalesced per collection date.
    """

    pair: PairKey
    new_rows: dict[uuid.UUID, dict[str, Any]] = field(default_factory=dict)
    price_updates: dict[uuid.UUID, Decimal | None] = field(default_factory=dict)
    deactivations: set[uuid.UUID] = field(default_factory=set)
    row_numbers: list[int] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.new_rows or self.price_updates or self.deactivations)


@dataclass(frozen=True)
class _ChunkFailure(Generic[U]):
    unit: U
    error: SQLAlchemyError


def _describe(exc: SQLAlchemyError) -> str:
    original = getattr(exc, "orig", None)
    text = str(original if original is not None else exc).strip()
    return text.splitlines()[0] if text else exc.__class__.__name__


def _is_unreachable(exc: SQLAlchemyError) -> bool:
    if isinstance(exc, InterfaceError):
        return True
    return isinstance(exc, DBAPIError) and exc.connection_invalidated


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class ReconciliationService:
    """
    Deduplicates, resolves and upserts mapped rows under the recency policy.
    """

    def __init__(
        self,
        *,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        lookup_batch_size: int = DEFAULT_CHUNK_SIZE,
        logger: logging.Logger | None = None,
    ) -> None:
        self._chunk_size = max(1, chunk_size)
        self._lookup_batch_size = max(1, lookup_batch_size)
        self._logger = logger or logging.getLogger(__name__)

    def reconcile(self, *, db: Session, rows: Sequence[MappedFuelPrice]) -> list[RowOutcome]:
        """
        Persist ``rows`` and return exactly one outcome per row, in row order.
        """

        if not rows:
            return []

        repository = FuelPriceRepository(db, lookup_batch_size=self._lookup_batch_size)
        index = _EntityIndex.build(rows)
        resolved = self._resolve_entities(db=db, repository=repository, index=index)

        outcomes: dict[int, RowOutcome] = {}
        candidates: list[MappedFuelPrice] = []
        for row in rows:
            reason = resolved.failed_stations.get(row.station.tax_id) or resolved.failed_products.get(row.product.name)
            if reason is not None:
                outcomes[row.row_number] = Errored(row=row.row_number, reason=reason, data=row.data)
            else:
                candidates.append(row)

        units = self._plan_writes(
            repository=repository,
            resolved=resolved,
            rows=candidates,
            outcomes=outcomes,
        )
        failures = self._run_chunked(
            db=db,
            units=units,
            write=lambda chunk: self._write_observation_units(repository, chunk),
            kind="price_observation",
        )

        rows_by_number = {row.row_number: row for row in rows}
        for failure in failures:
            message = f"Failed to persist price observation: {_describe(failure.error)}"
            for row_number in failure.unit.row_numbers:
                source = rows_by_number[row_number]
                error = PersistenceError(message, row=row_number, data=source.data)
                outcomes[row_number] = Errored(row=row_number, reason=error.message, data=error.data)

        return [outcomes[row.row_number] for row in rows]

    # ------------------------------------------------------------------
    # Entity resolution
    # ------------------------------------------------------------------

    def _resolve_entities(
        self,
        *,
        db: Session,
        repository: FuelPriceRepository,
        index: _EntityIndex,
    ) -> _ResolvedEntities:
        resolved = _ResolvedEntities()

        # Locations
        resolved.location_ids = repository.find_location_ids(index.locations)
        missing_locations = [
            (key, {"id": uuid.uuid4(), **self._location_payload(location)})
            for key, location in index.locations.items()
            if key not in resolved.location_ids
        ]
        location_failures = self._run_chunked(
            db=db,
            units=missing_locations,
            write=lambda chunk: repository.insert_locations([payload for _, payload in chunk]),
            kind="location",
        )
        failed_locations = {failure.unit[0]: _describe(failure.error) for failure in location_failures}
        for key, payload in missing_locations:
            if key not in failed_locations:
                resolved.location_ids[key] = payload["id"]

        # Products
        resolved.product_ids = repository.find_product_ids(index.products)
        missing_products = [
            (
                name,
                {
                    "id": uuid.uuid4(),
                    "name": product.name,
                    "category": product.category,
                    "unit": product.unit,
                    "is_active": True,
                },
            )
            for name, product in index.products.items()
            if name not in resolved.product_ids
        ]
        product_failures = self._run_chunked(
            db=db,
            units=missing_products,
            write=lambda chunk: repository.insert_products([payload for _, payload in chunk]),
            kind="product",
        )
        for failure in product_failures:
            resolved.failed_products[failure.unit[0]] = f"Failed to persist product: {_describe(failure.error)}"
        for name, payload in missing_products:
            if name not in resolved.failed_products:
                resolved.product_ids[name] = payload["id"]
                resolved.new_product_ids.add(payload["id"])

        # Stations
        existing_stations = repository.find_stations(index.stations)
        new_stations: list[tuple[str, dict[str, Any]]] = []
        changed_stations: list[tuple[str, dict[str, Any]]] = []
        for tax_id, station in index.stations.items():
            location_id = resolved.location_ids.get(station.location_key)
            if location_id is None:
                reason = failed_locations.get(station.location_key, "location was not resolved")
                resolved.failed_stations[tax_id] = f"Failed to persist location: {reason}"
                continue

            payload = self._station_payload(station, location_id)
            current = existing_stations.get(tax_id)
            if current is None:
                new_stations.append((tax_id, {"id": uuid.uuid4(), "tax_id": tax_id, **payload}))
                continue

            resolved.station_ids[tax_id] = current.id
            if self._station_changed(current, payload):
                changed_stations.append((tax_id, {"id": current.id, **payload}))

        station_failures = self._run_chunked(
            db=db,
            units=new_stations,
            write=lambda chunk: repository.insert_stations([payload for _, payload in chunk]),
            kind="station",
        )
        for failure in station_failures:
            resolved.failed_stations[failure.unit[0]] = f"Failed to persist station: {_describe(failure.error)}"
        for tax_id, payload in new_stations:
            if tax_id not in resolved.failed_stations:
                resolved.station_ids[tax_id] = payload["id"]
                resolved.new_station_ids.add(payload["id"])

        update_failures = self._run_chunked(
            db=db,
            units=changed_stations,
            write=lambda chunk: repository.update_stations([payload for _, payload in chunk]),
            kind="station_update",
        )
        for failure in update_failures:
            log_event(
                self._logger,
                logging.WARNING,
                "reconciliation.station_update_failed",
                tax_id=failure.unit[0],
                error=_describe(failure.error),
            )

        log_event(
            self._logger,
            logging.INFO,
            "reconciliation.entities_resolved",
            locations=len(index.locations),
            locations_created=len(missing_locations) - len(failed_locations),
            products=len(index.products),
            products_created=len(resolved.new_product_ids),
            stations=len(index.stations),
            stations_created=len(resolved.new_station_ids),
            stations_updated=len(changed_stations) - len(update_failures),
            stations_failed=len(resolved.failed_stations),
        )
        return resolved

    @staticmethod
    def _location_payload(location: LocationInput) -> dict[str, Any]:
        return {
            "natural_key": location.natural_key,
            "state": location.state,
            "city": location.city,
            "address": location.address,
            "number": location.number,
            "complement": location.complement,
            "neighborhood": location.neighborhood,
            "postal_code": location.postal_code,
            "display_address": location.display_address,
        }

    @staticmethod
    def _station_payload(station: StationInput, location_id: uuid.UUID) -> dict[str, Any]:
        return {
            "legal_name": station.legal_name,
            "trade_name": station.trade_name,
            "display_name": station.display_name,
            "brand": station.brand,
            "location_id": location_id,
            "is_active": True,
        }

    @staticmethod
    def _station_changed(current: Any, payload: dict[str, Any]) -> bool:
        return any(getattr(current, name) != value for name, value in payload.items())

    # ------------------------------------------------------------------
    # Recency policy
    # ------------------------------------------------------------------

    def _plan_writes(
        self,
        *,
        repository: FuelPriceRepository,
        resolved: _ResolvedEntities,
        rows: Sequence[MappedFuelPrice],
        outcomes: dict[int, RowOutcome],
    ) -> list[_WriteUnit]:
        pairs: dict[int, PairKey] = {
            row.row_number: (
                resolved.station_ids[row.station.tax_id],
                resolved.product_ids[row.product.name],
            )
            for row in rows
        }
        # Brand-new stations or products cannot have stored observations.
        lookup_pairs = {
            pair
            for pair in pairs.values()
            if pair[0] not in resolved.new_station_ids and pair[1] not in resolved.new_product_ids
        }
        state: dict[PairKey, _PairState] = {
            pair: _PairState(
                collection_date=latest.collection_date,
                price=latest.price,
                observation_id=latest.id,
            )
            for pair, latest in repository.find_latest_observations(lookup_pairs).items()
        }

        units: dict[PairKey, _WriteUnit] = {}
        for row in rows:
            pair = pairs[row.row_number]
            observation = row.observation
            unit = units.setdefault(pair, _WriteUnit(pair=pair))
            current = state.get(pair)

            if current is None:
                new_id = self._append_observation(unit, pair, observation.collection_date, observation.price)
                state[pair] = _PairState(observation.collection_date, observation.price, new_id)
                outcomes[row.row_number] = Inserted(row=row.row_number)
            elif observation.collection_date < current.collection_date:
                outcomes[row.row_number] = Skipped(row=row.row_number, reason=SKIP_OLDER)
                continue
            elif observation.collection_date == current.collection_date:
                if observation.price == current.price:
                    outcomes[row.row_number] = Skipped(row=row.row_number, reason=SKIP_UNCHANGED)
                    continue
                if current.observation_id in unit.new_rows:
                    unit.new_rows[current.observation_id]["price"] = observation.price
                else:
                    unit.price_updates[current.observation_id] = observation.price
                current.price = observation.price
                outcomes[row.row_number] = Updated(row=row.row_number)
            else:
                if current.observation_id in unit.new_rows:
                    unit.new_rows[current.observation_id]["is_active"] = False
                else:
                    unit.deactivations.add(current.observation_id)
                new_id = self._append_observation(unit, pair, observation.collection_date, observation.price)
                state[pair] = _PairState(observation.collection_date, observation.price, new_id)
                outcomes[row.row_number] = Updated(row=row.row_number)

            unit.row_numbers.append(row.row_number)

        return [unit for unit in units.values() if not unit.is_empty]

    @staticmethod
    def _append_observation(
        unit: _WriteUnit,
        pair: PairKey,
        collection_date: date,
        price: Decimal | None,
    ) -> uuid.UUID:
        observation_id = uuid.uuid4()
        unit.new_rows[observation_id] = {
            "id": observation_id,
            "station_id": pair[0],
            "product_id": pair[1],
            "collection_date": collection_date,
            "price": price,
            "is_active": True,
        }
        return observation_id

    @staticmethod
    def _write_observation_units(repository: FuelPriceRepository, units: Sequence[_WriteUnit]) -> None:
        # Price updates go first so a same-run deactivation of that row sticks.
        repository.update_observations(
            [
                {"id": observation_id, "price": price, "is_active": True}
                for unit in units
                for observation_id, price in unit.price_updates.items()
            ]
        )
        repository.deactivate_observations(
            [observation_id for unit in units for observation_id in unit.deactivations]
        )
        repository.insert_observations([payload for unit in units for payload in unit.new_rows.values()])

    # ------------------------------------------------------------------
    # Chunked writes with per-unit fallback
    # ------------------------------------------------------------------

    def _run_chunked(
        self,
        *,
        db: Session,
        units: Sequence[U],
        write: Callable[[Sequence[U]], None],
        kind: str,
    ) -> list[_ChunkFailure[U]]:
        """
        Write ``units`` in chunks, each inside a SAVEPOINT committed on success.

        A failed chunk is rolled back and retried one unit at a time; the
        units that still fail are returned.
        """

        failures: list[_ChunkFailure[U]] = []
        for start in range(0, len(units), self._chunk_size):
            chunk = units[start : start + self._chunk_size]
            try:
                with db.begin_nested():
                    write(chunk)
                db.commit()
                continue
            except SQLAlchemyError as exc:
                db.rollback()
                if _is_unreachable(exc):
                    raise StorageUnavailableError(f"Database unavailable while writing {kind} rows.") from exc
                log_event(
                    self._logger,
                    logging.WARNING,
                    "reconciliation.chunk_failed",
                    kind=kind,
                    chunk_start=start,
                    chunk_size=len(chunk),
                    error=_describe(exc),
                )

            chunk_failures = self._write_one_by_one(db=db, chunk=chunk, write=write, kind=kind)
            failures.extend(chunk_failures)

        return failures

    def _write_one_by_one(
        self,
        *,
        db: Session,
        chunk: Sequence[U],
        write: Callable[[Sequence[U]], None],
        kind: str,
    ) -> list[_ChunkFailure[U]]:
        failures: list[_ChunkFailure[U]] = []
        for unit in chunk:
            try:
                with db.begin_nested():
                    write([unit])
            except SQLAlchemyError as exc:
                if _is_unreachable(exc):
                    db.rollback()
                    raise StorageUnavailableError(f"Database unavailable while writing {kind} rows.") from exc
                failures.append(_ChunkFailure(unit=unit, error=exc))
        db.commit()

        if failures and len(failures) == len(chunk) and all(isinstance(f.error, OperationalError) for f in failures):
            raise StorageUnavailableError(
                f"Every {kind} write in the chunk failed at the connection level."
            ) from failures[-1].error

        log_event(
            self._logger,
            logging.INFO if not failures else logging.WARNING,
            "reconciliation.chunk_fallback_completed",
            kind=kind,
            units=len(chunk),
            failed=len(failures),
        )
        return failures


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


@lru_cache(maxsize=1)
def get_reconciliation_service() -> ReconciliationService:
    settings = get_spreadsheet_ingestion_settings()
    return ReconciliationService(
        chunk_size=settings.chunk_size,
        lookup_batch_size=settings.lookup_batch_size,
    )
