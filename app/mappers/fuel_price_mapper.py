"""
app/mappers/fuel_price_mapper.py

Canonicalization of validated spreadsheet rows into domain entities.

Every function here is pure. Invalid input raises ``MappingError``; blank
optional input maps to None.
"""

from __future__ import annotations

import re
import unicodedata
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from app.domain.errors import MappingError
from app.domain.fuel_price import (
    FuelPriceRow,
    LocationInput,
    MappedFuelPrice,
    ObservationInput,
    ProductInput,
    StationInput,
)
from db.models.product import ProductCategory

TAX_ID_LENGTH = 14
POSTAL_CODE_LENGTH = 8
MIN_YEAR = 1900
MAX_YEAR = 2100

_NON_DIGITS = re.compile(r"\D")
_REPEATED_DIGITS = re.compile(r"^(\d)\1{13}$")
_PRICE_NOISE = re.compile(r"R\$|\s")
_PRICE_SHAPE = re.compile(r"-?[\d.,]+")
_PRICE_QUANTUM = Decimal("0.01")
# Largest value a NUMERIC(10, 2) column holds.
MAX_PRICE = Decimal("99999999.99")

# (pattern, day group, month group, year group), tried in order.
_DATE_PATTERNS: tuple[tuple[re.Pattern[str], int, int, int], ...] = (
    (re.compile(r"^(\d{2})/(\d{2})/(\d{4})$"), 1, 2, 3),
    (re.compile(r"^(\d{4})-(\d{2})-(\d{2})$"), 3, 2, 1),
    (re.compile(r"^(\d{2})-(\d{2})-(\d{4})$"), 1, 2, 3),
    (re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$"), 1, 2, 3),
)

_SERIES_SUFFIX = re.compile(r"\bS[\s-]?(\d+)\b")

PRODUCT_SYNONYMS: dict[str, str] = {
    "ALCOOL": "ETANOL",
    "ALCOOL HIDRATADO": "ETANOL",
    "ETANOL HIDRATADO": "ETANOL",
    "ETANOL COMUM": "ETANOL",
    "ETANOL ADITIVADO": "ETANOL ADITIVADO",
    "GASOLINA COMUM": "GASOLINA",
    "GASOLINA C": "GASOLINA",
    "GASOLINA C COMUM": "GASOLINA",
    "GASOLINA C ADITIVADA": "GASOLINA ADITIVADA",
    "OLEO DIESEL": "DIESEL",
    "OLEO DIESEL COMUM": "DIESEL",
    "DIESEL COMUM": "DIESEL",
    "DIESEL S500": "DIESEL",
    "OLEO DIESEL S500": "DIESEL",
    "OLEO DIESEL S10": "DIESEL S10",
    "GLP P13": "GLP",
    "GAS LIQUEFEITO DE PETROLEO": "GLP",
    "GAS DE COZINHA": "GLP",
    "GAS NATURAL VEICULAR": "GNV",
    "GAS NATURAL": "GNV",
}

_CATEGORY_UNITS: dict[str, str] = {
    ProductCategory.LPG: "kg",
    ProductCategory.CNG: "m³",
}
DEFAULT_UNIT = "L"


# ---------------------------------------------------------------------------
# Text helpers
# ---------------------------------------------------------------------------


def clean_text(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = " ".join(str(value).split())
    return stripped or None


def fold_accents(value: str) -> str:
    decomposed = unicodedata.normalize("NFKD", value)
    return "".join(char for char in decomposed if not unicodedata.combining(char))


def digits_only(value: str | None) -> str:
    return _NON_DIGITS.sub("", value or "")


# ---------------------------------------------------------------------------
# Tax id (CNPJ) and postal code (CEP)
# ---------------------------------------------------------------------------


def format_tax_id(digits: str) -> str:
    """Punctuate 14 digits as NN.NNN.NNN/NNNN-NN."""
    return f"{digits[:2]}.{digits[2:5]}.{digits[5:8]}/{digits[8:12]}-{digits[12:]}"


def is_repeated_digits(digits: str) -> bool:
    return bool(_REPEATED_DIGITS.match(digits))


def normalize_tax_id(value: str | None) -> str:
    digits = digits_only(value)
    if len(digits) != TAX_ID_LENGTH:
        raise MappingError(f"Invalid CNPJ {value!r}: expected {TAX_ID_LENGTH} digits, got {len(digits)}.")
    return format_tax_id(digits)


def normalize_postal_code(value: str | None) -> str | None:
    digits = digits_only(value)
    if len(digits) != POSTAL_CODE_LENGTH:
        return None
    return f"{digits[:5]}-{digits[5:]}"


# ---------------------------------------------------------------------------
# Dates and prices
# ---------------------------------------------------------------------------


def _checked_date(year: int, month: int, day: int, raw: str) -> date:
    if not MIN_YEAR <= year <= MAX_YEAR:
        raise MappingError(f"Invalid collection date {raw!r}: year out of range.")
    try:
        return date(year, month, day)
    except ValueError as exc:
        raise MappingError(f"Invalid collection date {raw!r}: {exc}.") from exc


def parse_collection_date(value: str | None) -> date:
    """
    Parse DD/MM/YYYY, YYYY-MM-DD or DD-MM-YYYY, then any ISO date/datetime.
    Impossible calendar dates such as 31/02/2024 are rejected.
    """

    raw = (value or "").strip()
    if not raw:
        raise MappingError("Collection date is required.")

    for pattern, day_group, month_group, year_group in _DATE_PATTERNS:
        match = pattern.match(raw)
        if match:
            return _checked_date(
                int(match.group(year_group)),
                int(match.group(month_group)),
                int(match.group(day_group)),
                raw,
            )

    normalized = raw[:-1] + "+00:00" if raw.endswith("Z") else raw
    try:
        parsed = datetime.fromisoformat(normalized).date()
    except ValueError as exc:
        raise MappingError(f"Invalid collection date {raw!r}.") from exc
    return _checked_date(parsed.year, parsed.month, parsed.day, raw)


def parse_price(value: str | None) -> Decimal | None:
    """
    Parse a Brazilian-formatted price ("R$ 5,59", "1.234,56").

    Blank or unparseable input yields None; negative prices and amounts
    beyond ``MAX_PRICE`` raise.
    """

    if value is None:
        return None
    cleaned = _PRICE_NOISE.sub("", str(value))
    if not _PRICE_SHAPE.fullmatch(cleaned):
        return None
    if "," in cleaned:
        cleaned = cleaned.replace(".", "").replace(",", ".")

    try:
        price = Decimal(cleaned)
        if price < 0:
            raise MappingError(f"Negative price {value!r} is not allowed.")
        if price > MAX_PRICE:
            raise MappingError(f"Price {value!r} exceeds the maximum of {MAX_PRICE}.")
        return price.quantize(_PRICE_QUANTUM, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        return None


# ---------------------------------------------------------------------------
# Products
# ---------------------------------------------------------------------------


def canonical_product_name(value: str | None) -> str:
    text = clean_text(value)
    if text is None:
        raise MappingError("Product name is required.")
    folded = fold_accents(text).upper()
    folded = _SERIES_SUFFIX.sub(lambda match: f"S{match.group(1)}", folded)
    return PRODUCT_SYNONYMS.get(folded, folded)


def product_category(name: str) -> str:
    if name == "GLP":
        return ProductCategory.LPG
    if name == "GNV":
        return ProductCategory.CNG
    if "LUBRIFICANTE" in name:
        return ProductCategory.LUBRICANT
    return ProductCategory.FUEL


def build_product(value: str | None) -> ProductInput:
    name = canonical_product_name(value)
    category = product_category(name)
    return ProductInput(name=name, category=category, unit=_CATEGORY_UNITS.get(category, DEFAULT_UNIT))


# ---------------------------------------------------------------------------
# Locations and stations
# ---------------------------------------------------------------------------


def compose_address(street: str | None, number: str | None, complement: str | None) -> str | None:
    parts = [part for part in (clean_text(street), clean_text(number), clean_text(complement)) if part]
    return ", ".join(parts) or None


def location_natural_key(
    *,
    state: str | None,
    city: str | None,
    address: str | None,
    number: str | None,
    neighborhood: str | None,
    postal_code: str | None,
) -> str:
    segments = (state, city, address, number, neighborhood, postal_code)
    return "|".join((clean_text(segment) or "").upper() for segment in segments)


def build_location(row: FuelPriceRow) -> LocationInput:
    state = (clean_text(row.state) or "").upper()
    city = clean_text(row.city) or ""
    address = clean_text(row.address)
    number = clean_text(row.number)
    complement = clean_text(row.complement)
    neighborhood = clean_text(row.neighborhood)
    postal_code = normalize_postal_code(row.postal_code)
    return LocationInput(
        natural_key=location_natural_key(
            state=state,
            city=city,
            address=address,
            number=number,
            neighborhood=neighborhood,
            postal_code=postal_code,
        ),
        state=state,
        city=city,
        address=address,
        number=number,
        complement=complement,
        neighborhood=neighborhood,
        postal_code=postal_code,
        display_address=compose_address(address, number, complement),
    )


def build_station(row: FuelPriceRow, *, tax_id: str, location_key: str) -> StationInput:
    legal_name = clean_text(row.legal_name)
    if legal_name is None:
        raise MappingError("Legal name is required.")
    trade_name = clean_text(row.trade_name)
    return StationInput(
        tax_id=tax_id,
        legal_name=legal_name,
        trade_name=trade_name,
        brand=clean_text(row.brand),
        display_name=trade_name or legal_name,
        location_key=location_key,
    )


# ---------------------------------------------------------------------------
# Row mapping
# ---------------------------------------------------------------------------


def map_row(row: FuelPriceRow) -> MappedFuelPrice:
    """
    Map one validated row to its location, product, station and observation.
    """

    try:
        tax_id = normalize_tax_id(row.tax_id)
        location = build_location(row)
        product = build_product(row.product)
        station = build_station(row, tax_id=tax_id, location_key=location.natural_key)
        observation = ObservationInput(
            tax_id=tax_id,
            product_name=product.name,
            collection_date=row.collection_date,
            price=parse_price(row.price),
        )
    except MappingError as exc:
        raise MappingError(exc.message, row=row.row_number, data=row.raw) from exc

    return MappedFuelPrice(
        row_number=row.row_number,
        data=row.raw,
        location=location,
        product=product,
        station=station,
        observation=observation,
    )
