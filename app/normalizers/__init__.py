"""
app/normalizers package marker.
"""

from app.normalizers.sheet_readers import BLANK_CELL, CellKind, SheetCell, SheetGrid, read_first_sheet
from app.normalizers.tabular_normalizer import (
    NormalizedTable,
    TabularNormalizer,
    cell_display_text,
    read_table_csv,
    write_table_csv,
)

__all__ = [
    "BLANK_CELL",
    "CellKind",
    "NormalizedTable",
    "SheetCell",
    "SheetGrid",
    "TabularNormalizer",
    "cell_display_text",
    "read_first_sheet",
    "read_table_csv",
    "write_table_csv",
]
