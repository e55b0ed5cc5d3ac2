"""
tests/conftest.py

Shared fixtures: an in-memory SQLite fuel price store and small builders
for spreadsheet grids and workbooks.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from pathlib import Path
from typing import Any

import pytest
from openpyxl import Workbook
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

import db.models  # noqa: F401  registers all ORM models on Base.metadata
from db.base import Base
from db.session import build_session_factory

ANP_HEADERS: tuple[str, ...] = (
    "CNPJ",
    "RAZÃO",
    "FANTASIA",
    "ENDEREÇO",
    "NÚMERO",
    "COMPLEMENTO",
    "BAIRRO",
    "CEP",
    "MUNICÍPIO",
    "ESTADO",
    "BANDEIRA",
    "PRODUTO",
    "UNIDADE DE MEDIDA",
    "PREÇO DE REVENDA",
    "DATA DA COLETA",
)


def anp_row(
    *,
    cnpj: Any = "12.345.678/0001-90",
    legal_name: str = "AUTO POSTO BOA VIAGEM LTDA",
    trade_name: str = "POSTO BOA VIAGEM",
    address: str = "AVENIDA BOA VIAGEM",
    number: str = "100",
    complement: str = "",
    neighborhood: str = "BOA VIAGEM",
    postal_code: str = "51011-000",
    city: str = "RECIFE",
    state: str = "PE",
    brand: str = "BRANCA",
    product: str = "GASOLINA COMUM",
    unit: str = "R$ / litro",
    price: Any = "5,59",
    collection_date: Any = "15/01/2024",
) -> list[Any]:
    return [
        cnpj,
        legal_name,
        trade_name,
        address,
        number,
        complement,
        neighborhood,
        postal_code,
        city,
        state,
        brand,
        product,
        unit,
        price,
        collection_date,
    ]


def anp_record(**overrides: Any) -> dict[str, str]:
    """One normalized raw row (header -> text), as read back from the intermediate CSV."""
    return {header: str(value) for header, value in zip(ANP_HEADERS, anp_row(**overrides))}


def write_anp_workbook(path: Path, rows: Sequence[Sequence[Any]], *, preamble: bool = True) -> Path:
    workbook = Workbook()
    sheet = workbook.active
    if preamble:
        sheet.append(["LEVANTAMENTO DE PREÇOS DE COMBUSTÍVEIS"])
        sheet.append(["Período: 14/01/2024 a 20/01/2024"])
        sheet.append(["Fonte: ANP"])
    sheet.append(list(ANP_HEADERS))
    for row in rows:
        sheet.append(list(row))
    workbook.save(path)
    return path


def _enable_sqlite_savepoints(engine: Engine) -> None:
    # pysqlite defers BEGIN on its own; hand transaction control to SQLAlchemy.
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection: Any, connection_record: Any) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(connection: Any) -> None:
        connection.exec_driver_sql("BEGIN")


@pytest.fixture()
def engine() -> Iterator[Engine]:
    test_engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    _enable_sqlite_savepoints(test_engine)
    Base.metadata.create_all(test_engine)
    try:
        yield test_engine
    finally:
        Base.metadata.drop_all(test_engine)
        test_engine.dispose()


@pytest.fixture()
def session_factory(engine: Engine):
    return build_session_factory(engine)


@pytest.fixture()
def db_session(session_factory) -> Iterator[Session]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()
