"""
app/validators package marker.
"""

from app.validators.row_validator import RowValidator, RowVerdict

__all__ = [
    "RowValidator",
    "RowVerdict",
]
