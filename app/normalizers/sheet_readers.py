"""
app/normalizers/sheet_readers.py

Read the first worksheet of an XLSX, XLS or CSV file into a grid of typed
cells. Nothing here interprets the content; header detection and display
resolution live in the tabular normalizer.
"""

from __future__ import annotations

import csv
import io
import logging
import os
import zipfile
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path
from typing import Any

import xlrd
from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from app.domain.errors import MalformedSpreadsheet

logger = logging.getLogger(__name__)

_CSV_ENCODINGS: tuple[str, ...] = ("utf-8-sig", "cp1252")
_CSV_DELIMITERS = ",;\t"


class CellKind:
    BLANK = "blank"
    STRING = "string"
    NUMBER = "number"
    DATE = "date"
    BOOLEAN = "boolean"


@dataclass(frozen=True)
class SheetCell:
    """
    One worksheet cell.

    ``text`` is the reader-rendered display text when the source supplies
    one; ``number_format`` is the cell's display format code, if any.
    """

    value: Any
    kind: str
    number_format: str | None = None
    text: str | None = None

    @property
    def is_blank(self) -> bool:
        if self.kind == CellKind.BLANK or self.value is None:
            return True
        return isinstance(self.value, str) and not self.value.strip()


BLANK_CELL = SheetCell(value=None, kind=CellKind.BLANK)

SheetGrid = list[list[SheetCell]]


def _render_date(value: date | datetime) -> str:
    if isinstance(value, datetime):
        value = value.date()
    return value.isoformat()


def _string_cell(value: str) -> SheetCell:
    if not value.strip():
        return BLANK_CELL
    return SheetCell(value=value, kind=CellKind.STRING)


# ---------------------------------------------------------------------------
# XLSX (openpyxl)
# ---------------------------------------------------------------------------


def _openpyxl_cell(cell: Any) -> SheetCell:
    value = getattr(cell, "value", None)
    if value is None:
        return BLANK_CELL
    number_format = getattr(cell, "number_format", None)
    if number_format == "General":
        number_format = None
    if isinstance(value, bool):
        return SheetCell(value=value, kind=CellKind.BOOLEAN, text="TRUE" if value else "FALSE")
    if isinstance(value, (datetime, date)):
        return SheetCell(
            value=value,
            kind=CellKind.DATE,
            number_format=number_format,
            text=_render_date(value),
        )
    if isinstance(value, (int, float)):
        return SheetCell(value=value, kind=CellKind.NUMBER, number_format=number_format)
    return _string_cell(str(value))


def read_xlsx(path: Path) -> SheetGrid:
    try:
        workbook = load_workbook(path, read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError) as exc:
        raise MalformedSpreadsheet(f"Unable to open XLSX workbook: {exc}") from exc

    try:
        if not workbook.worksheets:
            raise MalformedSpreadsheet("Workbook has no worksheets.")
        sheet = workbook.worksheets[0]
        return [[_openpyxl_cell(cell) for cell in row] for row in sheet.iter_rows()]
    finally:
        workbook.close()


# ---------------------------------------------------------------------------
# XLS (xlrd)
# ---------------------------------------------------------------------------


def _xlrd_number_format(book: Any, xf_index: int) -> str | None:
    try:
        xf = book.xf_list[xf_index]
        format_str = book.format_map[xf.format_key].format_str
    except (IndexError, KeyError, AttributeError):
        return None
    if not format_str or format_str == "General":
        return None
    return format_str


def _xlrd_cell(book: Any, cell: Any) -> SheetCell:
    ctype = cell.ctype
    if ctype in (xlrd.XL_CELL_EMPTY, xlrd.XL_CELL_BLANK, xlrd.XL_CELL_ERROR):
        return BLANK_CELL
    if ctype == xlrd.XL_CELL_TEXT:
        return _string_cell(str(cell.value))
    if ctype == xlrd.XL_CELL_BOOLEAN:
        flag = bool(cell.value)
        return SheetCell(value=flag, kind=CellKind.BOOLEAN, text="TRUE" if flag else "FALSE")

    number_format = _xlrd_number_format(book, cell.xf_index)
    if ctype == xlrd.XL_CELL_DATE:
        try:
            moment = xlrd.xldate_as_datetime(cell.value, book.datemode)
        except (ValueError, OverflowError, xlrd.xldate.XLDateError):
            return SheetCell(value=cell.value, kind=CellKind.NUMBER, number_format=number_format)
        return SheetCell(
            value=moment,
            kind=CellKind.DATE,
            number_format=number_format,
            text=_render_date(moment),
        )
    return SheetCell(value=cell.value, kind=CellKind.NUMBER, number_format=number_format)


def read_xls(path: Path) -> SheetGrid:
    try:
        book = xlrd.open_workbook(os.fspath(path), formatting_info=True)
    except (xlrd.XLRDError, OSError, AssertionError) as exc:
        raise MalformedSpreadsheet(f"Unable to open XLS workbook: {exc}") from exc

    try:
        if book.nsheets < 1:
            raise MalformedSpreadsheet("Workbook has no worksheets.")
        sheet = book.sheet_by_index(0)
        return [
            [_xlrd_cell(book, sheet.cell(row_index, col_index)) for col_index in range(sheet.ncols)]
            for row_index in range(sheet.nrows)
        ]
    finally:
        book.release_resources()


# ---------------------------------------------------------------------------
# CSV
# ---------------------------------------------------------------------------


def _decode_csv(raw: bytes) -> str:
    for encoding in _CSV_ENCODINGS:
        try:
            return raw.decode(encoding)
        except UnicodeDecodeError:
            continue
    raise MalformedSpreadsheet("CSV must be UTF-8 or Windows-1252 encoded.")


def read_csv(path: Path) -> SheetGrid:
    try:
        text = _decode_csv(path.read_bytes())
    except OSError as exc:
        raise MalformedSpreadsheet(f"Unable to read CSV file: {exc}") from exc

    sample = text[:8192]
    reader_options: dict[str, Any]
    try:
        reader_options = {"dialect": csv.Sniffer().sniff(sample, delimiters=_CSV_DELIMITERS)}
    except csv.Error:
        # Preamble lines defeat the sniffer; fall back to the most frequent candidate.
        reader_options = {"delimiter": max(_CSV_DELIMITERS, key=sample.count)}

    try:
        return [
            [_string_cell(value) for value in record]
            for record in csv.reader(io.StringIO(text, newline=""), **reader_options)
        ]
    except csv.Error as exc:
        raise MalformedSpreadsheet(f"Invalid CSV format: {exc}") from exc


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------

SHEET_READERS: dict[str, Callable[[Path], SheetGrid]] = {
    ".xlsx": read_xlsx,
    ".xlsm": read_xlsx,
    ".xls": read_xls,
    ".csv": read_csv,
}


def read_first_sheet(path: Path) -> SheetGrid:
    """
    Read the first worksheet of ``path``, dispatching on its extension.
    """

    reader = SHEET_READERS.get(path.suffix.lower())
    if reader is None:
        raise MalformedSpreadsheet(f"Unsupported spreadsheet extension: {path.suffix or '<none>'}")
    grid = reader(path)
    logger.debug("Read %d rows from %s", len(grid), path.name)
    return grid
