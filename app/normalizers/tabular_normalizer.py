"""
app/normalizers/tabular_normalizer.py

Turns a loosely structured worksheet grid into a clean rectangular table.

The ANP sheets open with a few lines of preamble (title, period, source
notes) above the real header row, so the header is located by scanning for
an anchor label (``CNPJ`` by default) instead of assuming row one.

Cell display resolution, in order of precedence:

    a. reader-rendered text, when non-empty
    b. numeric value under a punctuated identifier format
       (e.g. ``00"."000"."000"/"0000"-"00``): rebuilt from the digits
    c. string cells: the literal value
    d. integral numbers of 11-14 digits: zero-padded and punctuated as a CNPJ
    e. anything else: stringified (integral floats without ``.0``)
"""

from __future__ import annotations

import csv
import logging
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from pathlib import Path

from app.domain.errors import MalformedSpreadsheet
from app.logging_utils import log_event
from app.mappers.fuel_price_mapper import TAX_ID_LENGTH, format_tax_id
from app.normalizers.sheet_readers import CellKind, SheetCell, SheetGrid

DEFAULT_ANCHOR_TOKEN = "CNPJ"

_DIGIT_PLACEHOLDERS = frozenset("0#?")
_UNAMBIGUOUS_SEPARATORS = frozenset("-/ ")
_MIN_IDENTIFIER_DIGITS = 5
_TAX_ID_MIN_DIGITS = 11
_CSV_SPECIAL_CHARS = frozenset(',";\r\n')


@dataclass(frozen=True)
class NormalizedTable:
    headers: tuple[str, ...]
    rows: tuple[tuple[str, ...], ...]
    header_row_index: int

    def records(self) -> Iterator[dict[str, str]]:
        for row in self.rows:
            yield dict(zip(self.headers, row))


# ---------------------------------------------------------------------------
# Display format helpers
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class _FormatToken:
    is_digit: bool
    text: str


def _tokenize_identifier_format(pattern: str) -> list[_FormatToken] | None:
    """
    Tokenize the first section of a number format made only of digit
    placeholders and literal separators. Returns None for anything else.
    """

    section = pattern.split(";", 1)[0]
    tokens: list[_FormatToken] = []
    explicit_literals = 0
    dots = 0
    other_separators = 0
    index = 0

    while index < len(section):
        char = section[index]
        if char == '"':
            end = section.find('"', index + 1)
            if end == -1:
                return None
            tokens.append(_FormatToken(is_digit=False, text=section[index + 1 : end]))
            explicit_literals += 1
            index = end + 1
            continue
        if char == "\\" and index + 1 < len(section):
            tokens.append(_FormatToken(is_digit=False, text=section[index + 1]))
            explicit_literals += 1
            index += 2
            continue
        if char in _DIGIT_PLACEHOLDERS:
            tokens.append(_FormatToken(is_digit=True, text=char))
        elif char == ".":
            dots += 1
            tokens.append(_FormatToken(is_digit=False, text=char))
        elif char in _UNAMBIGUOUS_SEPARATORS:
            other_separators += 1
            tokens.append(_FormatToken(is_digit=False, text=char))
        else:
            return None
        index += 1

    digit_count = sum(1 for token in tokens if token.is_digit)
    if digit_count < _MIN_IDENTIFIER_DIGITS:
        return None
    # A single bare "." is a decimal point, not an identifier separator.
    if not explicit_literals and not other_separators and dots < 2:
        return None
    return tokens


def _integral_digits(value: object) -> str | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if isinstance(value, float) and not value.is_integer():
        return None
    number = int(value)
    if number < 0:
        return None
    return str(number)


def rebuild_from_pattern(value: object, pattern: str | None) -> str | None:
    """
    Render an integral number through a punctuated identifier format,
    e.g. ``12345678000190`` with ``00"."000"."000"/"0000"-"00``.
    """

    if not pattern:
        return None
    tokens = _tokenize_identifier_format(pattern)
    digits = _integral_digits(value)
    if tokens is None or digits is None:
        return None

    slots = sum(1 for token in tokens if token.is_digit)
    if len(digits) > slots:
        return None

    remaining = iter(digits.zfill(slots))
    return "".join(next(remaining) if token.is_digit else token.text for token in tokens)


def _stringify(value: object) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def cell_display_text(cell: SheetCell) -> str:
    if cell.is_blank:
        return ""

    if cell.text and cell.text.strip():
        return cell.text.strip()

    if cell.kind == CellKind.NUMBER:
        rebuilt = rebuild_from_pattern(cell.value, cell.number_format)
        if rebuilt is not None:
            return rebuilt

    if cell.kind == CellKind.STRING:
        return str(cell.value).strip()

    if cell.kind == CellKind.NUMBER:
        digits = _integral_digits(cell.value)
        if digits is not None and _TAX_ID_MIN_DIGITS <= len(digits) <= TAX_ID_LENGTH:
            return format_tax_id(digits.zfill(TAX_ID_LENGTH))

    return _stringify(cell.value).strip()


def escape_csv_field(value: str) -> str:
    if any(char in _CSV_SPECIAL_CHARS for char in value):
        return '"' + value.replace('"', '""') + '"'
    return value


# ---------------------------------------------------------------------------
# Normalizer
# ---------------------------------------------------------------------------


class TabularNormalizer:
    """
    Locates the header row by anchor token and extracts a rectangular table.
    """

    def __init__(
        self,
        *,
        anchor_token: str = DEFAULT_ANCHOR_TOKEN,
        logger: logging.Logger | None = None,
    ) -> None:
        if not anchor_token.strip():
            raise ValueError("anchor_token must not be blank.")
        self._anchor = anchor_token.strip().casefold()
        self._logger = logger or logging.getLogger(__name__)

    def normalize(self, grid: SheetGrid) -> NormalizedTable:
        header_index = self.find_header_row(grid)
        header_cells = grid[header_index]

        columns: list[int] = []
        headers: list[str] = []
        for col_index, cell in enumerate(header_cells):
            label = cell_display_text(cell)
            if not label:
                continue
            columns.append(col_index)
            headers.append(self._unique_label(label, headers))

        rows: list[tuple[str, ...]] = []
        dropped = 0
        for raw_row in grid[header_index + 1 :]:
            values = tuple(self._cell_text(raw_row, col_index) for col_index in columns)
            if not any(values):
                dropped += 1
                continue
            rows.append(values)

        log_event(
            self._logger,
            logging.INFO,
            "spreadsheet.normalized",
            header_row=header_index + 1,
            columns=len(headers),
            rows=len(rows),
            blank_rows_dropped=dropped,
        )
        return NormalizedTable(headers=tuple(headers), rows=tuple(rows), header_row_index=header_index)

    def find_header_row(self, grid: SheetGrid) -> int:
        for row_index, row in enumerate(grid):
            for cell in row:
                if cell_display_text(cell).casefold() == self._anchor:
                    return row_index
        raise MalformedSpreadsheet(
            f"Header row not found: no cell matches the anchor token {self._anchor.upper()!r}."
        )

    @staticmethod
    def _cell_text(row: Sequence[SheetCell], col_index: int) -> str:
        if col_index >= len(row):
            return ""
        return cell_display_text(row[col_index])

    @staticmethod
    def _unique_label(label: str, existing: Sequence[str]) -> str:
        candidate = label
        suffix = 1
        while candidate in existing:
            suffix += 1
            candidate = f"{label}_{suffix}"
        return candidate


# ---------------------------------------------------------------------------
# Intermediate CSV
# ---------------------------------------------------------------------------


def write_table_csv(table: NormalizedTable, destination: Path) -> Path:
    """
    Persist the table as UTF-8 CSV: one header line, fields quoted only
    when they contain a comma, quote, semicolon or line break.
    """

    with destination.open("w", encoding="utf-8", newline="") as handle:
        handle.write(",".join(escape_csv_field(header) for header in table.headers) + "\n")
        for row in table.rows:
            handle.write(",".join(escape_csv_field(value) for value in row) + "\n")
    return destination


def read_table_csv(source: Path) -> Iterator[dict[str, str]]:
    with source.open("r", encoding="utf-8", newline="") as handle:
        reader = csv.DictReader(handle)
        for record in reader:
            yield {key: (value or "") for key, value in record.items() if key is not None}
