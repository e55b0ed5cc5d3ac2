"""
app/validators/row_validator.py

Row-level validation for normalized ANP spreadsheet rows.

Checks are independent and accumulate; ``validate`` never raises. A valid
row comes back as a typed ``FuelPriceRow`` so nothing downstream handles
untyped cell dictionaries.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date
from typing import Any

from app.domain.errors import MappingError, RowValidationError
from app.domain.fuel_price import FuelPriceRow
from app.mappers.column_layout import ColumnLayout
from app.mappers.fuel_price_mapper import (
    TAX_ID_LENGTH,
    clean_text,
    digits_only,
    is_repeated_digits,
    parse_collection_date,
    parse_price,
)

# Text fields that must be present and must not just repeat the header label.
_REQUIRED_TEXT_FIELDS: tuple[tuple[str, str], ...] = (
    ("city", "municipality"),
    ("product", "product"),
    ("state", "state"),
    ("legal_name", "legal name"),
)


@dataclass(frozen=True)
class RowVerdict:
    row_number: int
    errors: tuple[str, ...]
    data: dict[str, Any]
    row: FuelPriceRow | None = None

    @property
    def is_valid(self) -> bool:
        return not self.errors and self.row is not None

    def to_error(self) -> RowValidationError:
        return RowValidationError("; ".join(self.errors), row=self.row_number, data=self.data)


class RowValidator:
    """
    Validates one raw row against required-field and format rules.
    """

    def validate(
        self,
        *,
        raw_row: Mapping[str, str | None],
        row_number: int,
        layout: ColumnLayout,
    ) -> RowVerdict:
        data = {key: value for key, value in raw_row.items()}
        fields = layout.extract(raw_row)
        errors: list[str] = []

        tax_id = fields.get("tax_id")
        self._check_tax_id(tax_id, errors)

        for field, label in _REQUIRED_TEXT_FIELDS:
            self._check_required_text(
                value=fields.get(field),
                header=layout.header_for(field),
                label=label,
                errors=errors,
            )

        collection_date = self._parse_date(fields.get("collection_date"), errors)
        self._check_price(fields.get("price"), errors)

        if errors or collection_date is None:
            return RowVerdict(row_number=row_number, errors=tuple(errors), data=data)

        row = FuelPriceRow(
            row_number=row_number,
            tax_id=str(tax_id).strip(),
            legal_name=clean_text(fields.get("legal_name")) or "",
            city=clean_text(fields.get("city")) or "",
            state=clean_text(fields.get("state")) or "",
            product=clean_text(fields.get("product")) or "",
            collection_date=collection_date,
            trade_name=clean_text(fields.get("trade_name")),
            address=clean_text(fields.get("address")),
            number=clean_text(fields.get("number")),
            complement=clean_text(fields.get("complement")),
            neighborhood=clean_text(fields.get("neighborhood")),
            postal_code=clean_text(fields.get("postal_code")),
            brand=clean_text(fields.get("brand")),
            price=clean_text(fields.get("price")),
            raw=data,
        )
        return RowVerdict(row_number=row_number, errors=(), data=data, row=row)

    @staticmethod
    def is_blank_row(raw_row: Mapping[str, Any]) -> bool:
        return all(value is None or not str(value).strip() for value in raw_row.values())

    def _check_tax_id(self, value: str | None, errors: list[str]) -> None:
        if self._is_blank(value):
            errors.append("Invalid CNPJ: value is missing.")
            return
        digits = digits_only(value)
        if len(digits) != TAX_ID_LENGTH:
            errors.append(f"Invalid CNPJ: {value!r} does not have {TAX_ID_LENGTH} digits.")
        elif is_repeated_digits(digits):
            errors.append(f"Invalid CNPJ: {value!r} repeats a single digit.")

    def _check_required_text(
        self,
        *,
        value: str | None,
        header: str | None,
        label: str,
        errors: list[str],
    ) -> None:
        if self._is_blank(value):
            errors.append(f"Invalid {label}: value is missing.")
            return
        if header is not None and str(value).strip().casefold() == header.strip().casefold():
            errors.append(f"Invalid {label}: {value!r} repeats the column header.")

    def _parse_date(self, value: str | None, errors: list[str]) -> date | None:
        try:
            return parse_collection_date(value)
        except MappingError as exc:
            errors.append(f"Invalid date: {exc.message}")
            return None

    def _check_price(self, value: str | None, errors: list[str]) -> None:
        if self._is_blank(value):
            return
        try:
            parse_price(value)
        except MappingError as exc:
            errors.append(f"Invalid price: {exc.message}")

    @staticmethod
    def _is_blank(value: Any) -> bool:
        return value is None or str(value).strip() == ""
