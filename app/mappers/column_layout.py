"""
app/mappers/column_layout.py

Resolution of ANP spreadsheet headers to canonical row fields.
"""

from __future__ import annotations

import unicodedata
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from app.domain.errors import MalformedSpreadsheet

CANONICAL_FIELDS: tuple[str, ...] = (
    "tax_id",
    "legal_name",
    "trade_name",
    "address",
    "number",
    "complement",
    "neighborhood",
    "postal_code",
    "city",
    "state",
    "brand",
    "product",
    "price",
    "collection_date",
)

REQUIRED_FIELDS: tuple[str, ...] = (
    "tax_id",
    "legal_name",
    "city",
    "state",
    "product",
    "collection_date",
)

DEFAULT_COLUMN_ALIASES: dict[str, tuple[str, ...]] = {
    "tax_id": ("CNPJ", "CNPJ DA REVENDA"),
    "legal_name": ("RAZÃO", "RAZÃO SOCIAL", "REVENDA", "NOME DA REVENDA"),
    "trade_name": ("FANTASIA", "NOME FANTASIA"),
    "address": ("ENDEREÇO", "NOME DA RUA", "LOGRADOURO"),
    "number": ("NÚMERO", "NÚMERO RUA", "NUM"),
    "complement": ("COMPLEMENTO",),
    "neighborhood": ("BAIRRO",),
    "postal_code": ("CEP",),
    "city": ("MUNICÍPIO", "CIDADE"),
    "state": ("ESTADO", "UF", "ESTADO - SIGLA"),
    "brand": ("BANDEIRA",),
    "product": ("PRODUTO",),
    "price": ("PREÇO DE REVENDA", "VALOR DE VENDA", "PREÇO"),
    "collection_date": ("DATA DA COLETA", "DATA"),
}


def normalize_header(header: str) -> str:
    """
    Case-insensitive, accent-insensitive, whitespace-collapsed header key.
    """

    decomposed = unicodedata.normalize("NFKD", header)
    folded = "".join(char for char in decomposed if not unicodedata.combining(char))
    return " ".join(folded.casefold().split())


class MissingRequiredColumnsError(MalformedSpreadsheet):
    """
    Raised when required fields cannot be mapped from the sheet headers.
    """

    def __init__(self, missing: Sequence[str], headers: Sequence[str]) -> None:
        headers_csv = ", ".join(headers) if headers else "<none>"
        super().__init__(
            f"Missing required columns: {', '.join(missing)}. Sheet headers: {headers_csv}"
        )
        self.missing = tuple(missing)
        self.headers = tuple(headers)


@dataclass(frozen=True)
class ColumnLayout:
    """
    Resolved mapping between canonical field names and sheet headers.
    """

    field_to_header: dict[str, str]
    source_headers: tuple[str, ...]

    def header_for(self, field: str) -> str | None:
        return self.field_to_header.get(field)

    def extract(self, raw_row: Mapping[str, str | None]) -> dict[str, str | None]:
        return {
            field: raw_row.get(header)
            for field, header in self.field_to_header.items()
        }


def resolve_layout(
    headers: Sequence[str],
    *,
    aliases: Mapping[str, Sequence[str]] | None = None,
    required_fields: Sequence[str] = REQUIRED_FIELDS,
) -> ColumnLayout:
    """
    Match sheet headers to canonical fields by trimmed, case-insensitive text.
    The first alias that matches wins; unknown headers are ignored.
    """

    alias_map = aliases or DEFAULT_COLUMN_ALIASES
    lookup: dict[str, str] = {}
    for header in headers:
        key = normalize_header(header)
        if key and key not in lookup:
            lookup[key] = header

    field_to_header: dict[str, str] = {}
    for field in CANONICAL_FIELDS:
        for candidate in alias_map.get(field, ()):
            match = lookup.get(normalize_header(candidate))
            if match is not None:
                field_to_header[field] = match
                break

    missing = [field for field in required_fields if field not in field_to_header]
    if missing:
        raise MissingRequiredColumnsError(missing=missing, headers=headers)

    return ColumnLayout(field_to_header=field_to_header, source_headers=tuple(headers))
