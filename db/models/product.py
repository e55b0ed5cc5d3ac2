"""
db/models/product.py

Fuel product catalogue keyed by canonical name.
"""

from __future__ import annotations

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class ProductCategory:
    FUEL = "FUEL"
    LPG = "LPG"
    CNG = "CNG"
    LUBRICANT = "LUBRICANT"


class Product(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "products"

    name: Mapped[str] = mapped_column(
        String(120),
        nullable=False,
        unique=True,
        comment="Canonical product name after synonym folding",
    )
    category: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default=ProductCategory.FUEL,
        comment="FUEL, LPG, CNG, LUBRICANT",
    )
    unit: Mapped[str] = mapped_column(String(16), nullable=False)
    is_active: Mapped[bool] = mapped_column(nullable=False, default=True)
