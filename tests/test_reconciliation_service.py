"""
tests/test_reconciliation_service.py

Reconciliation against an in-memory SQLite store.

Coverage
--------
- Recency policy: insert, older, unchanged, same-date price change, newer
- In-file ordering of rows that share a (station, product) pair
- Entity deduplication across a large batch
- Idempotent re-runs
- Chunk failure with per-unit fallback
- Escalation of connection-level failures
- Station attribute refresh
"""

from __future__ import annotations

import dataclasses
from datetime import date, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import func, select, update
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.orm import Session

from app.domain.errors import StorageUnavailableError
from app.domain.fuel_price import FuelPriceRow, MappedFuelPrice
from app.domain.ingestion_result import Errored, IngestionResult, Inserted, Skipped, Updated
from app.mappers.fuel_price_mapper import map_row
from app.repositories.fuel_price_repository import FuelPriceRepository
from app.services.reconciliation_service import SKIP_OLDER, SKIP_UNCHANGED, ReconciliationService
from db.models import Location, PriceObservation, Product, Station

JAN_15 = date(2024, 1, 15)
JAN_22 = date(2024, 1, 22)


def mapped(
    row_number: int,
    *,
    cnpj: str = "12345678000190",
    product: str = "GASOLINA COMUM",
    day: date = JAN_15,
    price: str | None = "5,59",
    legal_name: str = "AUTO POSTO CENTRAL LTDA",
    trade_name: str | None = None,
    address: str = "RUA DA AURORA",
    complement: str | None = None,
) -> MappedFuelPrice:
    return map_row(
        FuelPriceRow(
            row_number=row_number,
            tax_id=cnpj,
            legal_name=legal_name,
            trade_name=trade_name,
            city="RECIFE",
            state="PE",
            product=product,
            collection_date=day,
            address=address,
            number="10",
            complement=complement,
            neighborhood="BOA VISTA",
            postal_code="50050-000",
            price=price,
            raw={"row": str(row_number)},
        )
    )


def observations(session: Session) -> list[tuple[date, Decimal | None, bool]]:
    stmt = select(
        PriceObservation.collection_date,
        PriceObservation.price,
        PriceObservation.is_active,
    ).order_by(PriceObservation.collection_date)
    return [tuple(row) for row in session.execute(stmt)]


def count(session: Session, model: type) -> int:
    return session.scalar(select(func.count()).select_from(model))


@pytest.fixture()
def service() -> ReconciliationService:
    return ReconciliationService(chunk_size=500, lookup_batch_size=500)


# ---------------------------------------------------------------------------
# Recency policy
# ---------------------------------------------------------------------------


class TestRecencyPolicy:
    def test_new_pair_is_inserted(self, service: ReconciliationService, db_session: Session) -> None:
        outcomes = service.reconcile(db=db_session, rows=[mapped(1)])

        assert outcomes == [Inserted(row=1)]
        assert observations(db_session) == [(JAN_15, Decimal("5.59"), True)]
        assert count(db_session, Station) == 1
        assert count(db_session, Location) == 1
        assert count(db_session, Product) == 1

    def test_older_observation_is_skipped(self, service: ReconciliationService, db_session: Session) -> None:
        service.reconcile(db=db_session, rows=[mapped(1, day=JAN_22)])

        outcomes = service.reconcile(db=db_session, rows=[mapped(1, day=JAN_15, price="4,99")])

        assert outcomes == [Skipped(row=1, reason=SKIP_OLDER)]
        assert observations(db_session) == [(JAN_22, Decimal("5.59"), True)]

    def test_same_date_same_price_is_skipped(self, service: ReconciliationService, db_session: Session) -> None:
        service.reconcile(db=db_session, rows=[mapped(1)])

        outcomes = service.reconcile(db=db_session, rows=[mapped(1)])

        assert outcomes == [Skipped(row=1, reason=SKIP_UNCHANGED)]
        assert count(db_session, PriceObservation) == 1

    def test_same_date_new_price_updates_in_place(
        self, service: ReconciliationService, db_session: Session
    ) -> None:
        service.reconcile(db=db_session, rows=[mapped(1)])

        outcomes = service.reconcile(db=db_session, rows=[mapped(1, price="5,79")])

        assert outcomes == [Updated(row=1)]
        assert observations(db_session) == [(JAN_15, Decimal("5.79"), True)]

    def test_same_date_new_price_reactivates_latest(
        self, service: ReconciliationService, db_session: Session
    ) -> None:
        service.reconcile(db=db_session, rows=[mapped(1)])
        db_session.execute(update(PriceObservation).values(is_active=False))
        db_session.commit()

        outcomes = service.reconcile(db=db_session, rows=[mapped(1, price="5,79")])

        assert outcomes == [Updated(row=1)]
        assert observations(db_session) == [(JAN_15, Decimal("5.79"), True)]

    def test_newer_observation_supersedes_latest(
        self, service: ReconciliationService, db_session: Session
    ) -> None:
        service.reconcile(db=db_session, rows=[mapped(1)])

        outcomes = service.reconcile(db=db_session, rows=[mapped(1, day=JAN_22, price="5,79")])

        assert outcomes == [Updated(row=1)]
        assert observations(db_session) == [
            (JAN_15, Decimal("5.59"), False),
            (JAN_22, Decimal("5.79"), True),
        ]

    def test_blank_price_is_stored_as_null(self, service: ReconciliationService, db_session: Session) -> None:
        service.reconcile(db=db_session, rows=[mapped(1, price=None)])
        assert observations(db_session) == [(JAN_15, None, True)]


class TestInFileOrdering:
    def test_rows_for_one_pair_are_applied_in_file_order(
        self, service: ReconciliationService, db_session: Session
    ) -> None:
        rows = [
            mapped(1, day=JAN_15, price="5,59"),
            mapped(2, day=JAN_22, price="5,79"),
            mapped(3, day=JAN_15, price="5,00"),
        ]

        outcomes = service.reconcile(db=db_session, rows=rows)

        assert outcomes == [Inserted(row=1), Updated(row=2), Skipped(row=3, reason=SKIP_OLDER)]
        assert observations(db_session) == [
            (JAN_15, Decimal("5.59"), False),
            (JAN_22, Decimal("5.79"), True),
        ]

    def test_later_duplicate_key_wins(self, service: ReconciliationService, db_session: Session) -> None:
        rows = [mapped(1, price="5,59"), mapped(2, price="5,69")]

        outcomes = service.reconcile(db=db_session, rows=rows)

        assert outcomes == [Inserted(row=1), Updated(row=2)]
        assert observations(db_session) == [(JAN_15, Decimal("5.69"), True)]

    def test_products_are_independent_pairs(self, service: ReconciliationService, db_session: Session) -> None:
        rows = [mapped(1, product="GASOLINA"), mapped(2, product="ETANOL"), mapped(3, product="GASOLINA COMUM")]

        outcomes = service.reconcile(db=db_session, rows=rows)

        assert outcomes == [Inserted(row=1), Inserted(row=2), Skipped(row=3, reason=SKIP_UNCHANGED)]
        assert count(db_session, Product) == 2


# ---------------------------------------------------------------------------
# Deduplication and idempotence
# ---------------------------------------------------------------------------


def test_large_batch_resolves_one_station(service: ReconciliationService, db_session: Session) -> None:
    start = date(2020, 1, 1)
    rows = [mapped(index + 1, day=start + timedelta(days=index)) for index in range(500)]

    result = IngestionResult.fold(service.reconcile(db=db_session, rows=rows))

    assert (result.inserted, result.updated, result.error_count) == (1, 499, 0)
    assert count(db_session, Station) == 1
    assert count(db_session, Location) == 1
    assert count(db_session, PriceObservation) == 500
    active = db_session.scalar(
        select(func.count()).select_from(PriceObservation).where(PriceObservation.is_active.is_(True))
    )
    assert active == 1


def test_rerun_is_idempotent(db_session: Session) -> None:
    service = ReconciliationService(chunk_size=2, lookup_batch_size=2)
    rows = [
        mapped(index + 1, cnpj=f"{index + 10:02d}345678000190", address=f"RUA {index}")
        for index in range(5)
    ]

    first = IngestionResult.fold(service.reconcile(db=db_session, rows=rows))
    second = IngestionResult.fold(service.reconcile(db=db_session, rows=rows))

    assert (first.processed, first.inserted) == (5, 5)
    assert (second.processed, second.inserted, second.updated, second.skipped) == (5, 0, 0, 5)
    assert count(db_session, Station) == 5
    assert count(db_session, PriceObservation) == 5


def test_station_attributes_are_refreshed(service: ReconciliationService, db_session: Session) -> None:
    service.reconcile(db=db_session, rows=[mapped(1)])

    service.reconcile(db=db_session, rows=[mapped(1, legal_name="POSTO CENTRAL NOVO LTDA", day=JAN_22)])

    legal_names = list(db_session.scalars(select(Station.legal_name)))
    assert legal_names == ["POSTO CENTRAL NOVO LTDA"]


def test_composed_address_and_display_name_are_stored(
    service: ReconciliationService, db_session: Session
) -> None:
    service.reconcile(db=db_session, rows=[mapped(1, complement="LOJA 2")])

    assert db_session.scalar(select(Location.display_address)) == "RUA DA AURORA, 10, LOJA 2"
    assert db_session.scalar(select(Station.display_name)) == "AUTO POSTO CENTRAL LTDA"

    service.reconcile(db=db_session, rows=[mapped(1, trade_name="POSTO CENTRAL", day=JAN_22)])

    db_session.expire_all()
    assert db_session.scalar(select(Station.display_name)) == "POSTO CENTRAL"


# ---------------------------------------------------------------------------
# Chunked writes
# ---------------------------------------------------------------------------


def test_failed_unit_does_not_sink_its_chunk(db_session: Session) -> None:
    service = ReconciliationService(chunk_size=2)
    bad = mapped(2, cnpj="22345678000190", address="RUA B")
    bad = dataclasses.replace(bad, observation=dataclasses.replace(bad.observation, price=Decimal("-1.00")))
    rows = [
        mapped(1, cnpj="12345678000190", address="RUA A"),
        bad,
        mapped(3, cnpj="32345678000190", address="RUA C"),
    ]

    outcomes = service.reconcile(db=db_session, rows=rows)

    assert outcomes[0] == Inserted(row=1)
    assert outcomes[2] == Inserted(row=3)
    assert isinstance(outcomes[1], Errored)
    assert outcomes[1].reason.startswith("Failed to persist price observation")
    assert outcomes[1].data == {"row": "2"}
    assert count(db_session, PriceObservation) == 2
    assert count(db_session, Station) == 3


def test_connection_level_failures_abort_the_run(
    service: ReconciliationService,
    db_session: Session,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    def refuse(self, payloads):
        raise OperationalError("INSERT INTO price_observations", None, Exception("server closed the connection"))

    monkeypatch.setattr(FuelPriceRepository, "insert_observations", refuse)

    with pytest.raises(StorageUnavailableError):
        service.reconcile(db=db_session, rows=[mapped(1), mapped(2, cnpj="22345678000190")])


def test_interface_errors_abort_immediately(
    service: ReconciliationService,
    db_session: Session,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    calls: list[int] = []

    def unreachable(self, payloads):
        calls.append(len(payloads))
        raise InterfaceError("INSERT INTO price_observations", None, Exception("connection already closed"))

    monkeypatch.setattr(FuelPriceRepository, "insert_observations", unreachable)

    with pytest.raises(StorageUnavailableError):
        service.reconcile(db=db_session, rows=[mapped(1), mapped(2, cnpj="22345678000190")])
    assert calls == [2]


def test_empty_batch_is_a_no_op(service: ReconciliationService, db_session: Session) -> None:
    assert service.reconcile(db=db_session, rows=[]) == []
    assert count(db_session, Station) == 0
