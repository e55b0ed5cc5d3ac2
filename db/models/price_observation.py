"""
db/models/price_observation.py

Dated resale price of one product at one station.
"""

from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal

from sqlalchemy import CheckConstraint, Date, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class PriceObservation(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "price_observations"

    station_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("stations.id", ondelete="CASCADE"),
        nullable=False,
    )
    product_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("products.id", ondelete="RESTRICT"),
        nullable=False,
    )
    collection_date: Mapped[date] = mapped_column(Date, nullable=False)
    price: Mapped[Decimal | None] = mapped_column(
        nullable=True,
        comment="Resale price in BRL; NULL when the sheet had no price",
    )
    is_active: Mapped[bool] = mapped_column(
        nullable=False,
        default=True,
        comment="True only for the latest observation of the station/product pair",
    )

    __table_args__ = (
        UniqueConstraint(
            "station_id",
            "product_id",
            "collection_date",
            name="uq_price_observations_station_product_date",
        ),
        CheckConstraint("price IS NULL OR price >= 0", name="ck_price_observations_price_non_negative"),
        Index("ix_price_observations_station_product", "station_id", "product_id"),
        Index("ix_price_observations_collection_date", "collection_date"),
    )
