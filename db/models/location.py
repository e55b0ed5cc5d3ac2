"""
db/models/location.py

Physical address shared by one or more stations.
"""

from __future__ import annotations

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class Location(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "locations"

    natural_key: Mapped[str] = mapped_column(
        String(1024),
        nullable=False,
        unique=True,
        comment="UF|MUNICIPIO|ENDERECO|NUMERO|BAIRRO|CEP, uppercased",
    )
    state: Mapped[str] = mapped_column(String(2), nullable=False)
    city: Mapped[str] = mapped_column(String(255), nullable=False)
    address: Mapped[str | None] = mapped_column(String(512), nullable=True)
    number: Mapped[str | None] = mapped_column(String(32), nullable=True)
    complement: Mapped[str | None] = mapped_column(String(255), nullable=True)
    neighborhood: Mapped[str | None] = mapped_column(String(255), nullable=True)
    display_address: Mapped[str | None] = mapped_column(
        String(1024),
        nullable=True,
        comment="street, number, complement joined with ', '",
    )
    postal_code: Mapped[str | None] = mapped_column(
        String(9),
        nullable=True,
        comment="NNNNN-NNN",
    )
    latitude: Mapped[float | None] = mapped_column(nullable=True)
    longitude: Mapped[float | None] = mapped_column(nullable=True)
