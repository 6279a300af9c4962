# report_format.py
"""Cell formatting shared by summary and detail tables."""

from __future__ import annotations

from typing import Any

import pandas as pd


def _to_float(value: Any) -> float:
    try:
        out = float(value)
    except (TypeError, ValueError):
        return 0.0
    return 0.0 if pd.isna(out) else out


def format_number(value: Any, decimals: int = 2) -> str:
    """Thousands separators and a fixed number of decimals: 1234.5 -> '1,234.50'."""
    return f"{_to_float(value):,.{decimals}f}"


def format_currency(value: Any) -> str:
    """Currency cells always carry exactly two decimals."""
    return format_number(value, 2)


def format_percent(value: Any, decimals: int = 1) -> str:
    return f"{format_number(value, decimals)}%"


def format_count(value: Any) -> str:
    return f"{int(round(_to_float(value))):,}"


def format_date(value: Any) -> str:
    """dd/mm/yyyy, or '-' when the value is missing or unparseable."""
    if value is None or value == "":
        return "-"
    ts = pd.to_datetime(value, errors="coerce", dayfirst=False)
    if pd.isna(ts):
        return "-"
    return ts.strftime("%d/%m/%Y")


def status_label(value: Any, default: str = "pending") -> str:
    """Short categorical label for status cells: 'in_progress' -> 'IN PROGRESS'."""
    text = str(value or default).strip() or default
    return text.replace("_", " ").replace("-", " ").upper()[:16]


def text_cell(value: Any, default: str = "-") -> str:
    if value is None:
        return default
    text = str(value).strip()
    return text or default
