"""
db/models/station.py

Fuel station (revenda) identified by its CNPJ.
"""

from __future__ import annotations

import uuid

from sqlalchemy import ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from db.models.location import Location


class Station(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "stations"

    tax_id: Mapped[str] = mapped_column(
        String(18),
        nullable=False,
        unique=True,
        comment="CNPJ punctuated as NN.NNN.NNN/NNNN-NN",
    )
    legal_name: Mapped[str] = mapped_column(String(255), nullable=False)
    trade_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    display_name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Trade name when present, else legal name",
    )
    brand: Mapped[str | None] = mapped_column(String(120), nullable=True)
    is_active: Mapped[bool] = mapped_column(nullable=False, default=True)
    location_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("locations.id", ondelete="RESTRICT"),
        nullable=False,
    )

    location: Mapped[Location] = relationship(lazy="joined")

    __table_args__ = (
        Index("ix_stations_location_id", "location_id"),
    )
