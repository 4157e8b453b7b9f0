"""Shared parsing utilities for spreadsheet ingestion."""
from __future__ import annotations

import calendar
import hashlib
import re
from decimal import Decimal, InvalidOperation
from io import BytesIO
from pathlib import Path

import pandas as pd

from ggr_monitor.domain.errors import RowValidationError
from ggr_monitor.domain.models import Cell, EmptyCell, NumberCell, ReportingPeriod


def ensure_bytes(source: BytesIO | Path | bytes | bytearray) -> bytes:
    if isinstance(source, (bytes, bytearray)):
        return bytes(source)
    if isinstance(source, BytesIO):
        return source.getvalue()
    if isinstance(source, Path):
        return source.read_bytes()
    raise TypeError(f"Unsupported source type: {type(source)!r}")


def compute_file_hash(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def normalize_label(value: object) -> str:
    """Lowercase a header label and collapse internal whitespace."""
    if value is None:
        return ""
    return re.sub(r"\s+", " ", str(value)).strip().lower()


_CURRENCY_AFFIX = re.compile(
    r"^(?:[A-Z]{3}\.?|MK|K|[$€£¥₦₹])\s*|\s+[A-Z]{3}$|\s*[$€£¥₦₹]$", re.IGNORECASE
)


def parse_amount(cell: Cell) -> Decimal:
    """Parse a money cell, tolerating separators, currency marks and (negatives).

    Blank cells read as zero; text that is not a number raises RowValidationError.
    """
    if isinstance(cell, EmptyCell):
        return Decimal("0")
    if isinstance(cell, NumberCell):
        result = Decimal(str(cell.value))
        if not result.is_finite():
            raise RowValidationError(f"non-finite number {cell.value!r}")
        return result

    s = cell.value.strip()
    if not s or s in {"-", "–"}:
        return Decimal("0")
    negative = False
    if s.startswith("(") and s.endswith(")"):
        negative = True
        s = s[1:-1].strip()
    if s.startswith("-"):
        negative = not negative
        s = s[1:].strip()
    s = _CURRENCY_AFFIX.sub("", s)
    if s.startswith("-"):
        negative = not negative
        s = s[1:]
    for ch in [",", " ", " ", "'"]:
        s = s.replace(ch, "")
    try:
        result = Decimal(s)
    except InvalidOperation as exc:
        raise RowValidationError(f"cannot read {cell.value!r} as a number") from exc
    if not result.is_finite():
        raise RowValidationError(f"cannot read {cell.value!r} as a number")
    return -result if negative else result


def parse_count(cell: Cell) -> int:
    value = parse_amount(cell)
    if value != value.to_integral_value():
        raise RowValidationError(f"count {cell.as_text()!r} is not a whole number")
    return int(value)


_MONTH_NAMES = {
    name.lower(): index
    for index, name in enumerate(calendar.month_name)
    if name
}
_MONTH_NAMES.update({name.lower(): index for index, name in enumerate(calendar.month_abbr) if name})
_MONTH_NAMES["sept"] = 9

MIN_YEAR = 1900
MAX_YEAR = 2100

_YEAR_MONTH = re.compile(r"^(\d{4})[-/.](\d{1,2})(?:[-/.]\d{1,2})?(?:[ T].*)?$")
_MONTH_YEAR = re.compile(r"^(\d{1,2})[-/.](\d{4}|\d{2})$")
_NAMED_MONTH = re.compile(r"^([A-Za-z]+)[\s,\-/.']*(\d{4}|\d{2})$")


def _year(digits: str) -> int:
    year = int(digits)
    return 2000 + year if len(digits) == 2 else year


def _period(year: int, month: int, text: str) -> ReportingPeriod:
    if not MIN_YEAR <= year <= MAX_YEAR:
        raise RowValidationError(f"year {year} in {text!r} is outside {MIN_YEAR}-{MAX_YEAR}")
    try:
        return ReportingPeriod(year, month)
    except ValueError as exc:
        raise RowValidationError(f"cannot read {text!r} as a reporting month") from exc


def parse_period(cell: Cell) -> ReportingPeriod | None:
    """Read a reporting month from the common shapes operators type into sheets.

    Two-digit years are read as 20YY.
    """
    if cell.is_blank:
        return None
    text = cell.as_text()

    match = _YEAR_MONTH.match(text)
    if match:
        return _period(int(match.group(1)), int(match.group(2)), text)
    match = _MONTH_YEAR.match(text)
    if match:
        return _period(_year(match.group(2)), int(match.group(1)), text)
    match = _NAMED_MONTH.match(text)
    if match and match.group(1).lower() in _MONTH_NAMES:
        return _period(_year(match.group(2)), _MONTH_NAMES[match.group(1).lower()], text)

    parsed = pd.to_datetime(text, errors="coerce", dayfirst=True)
    if pd.isna(parsed):
        raise RowValidationError(f"cannot read {text!r} as a reporting month")
    return _period(parsed.year, parsed.month, text)


def cell_text(cell: Cell) -> str | None:
    text = cell.as_text()
    return text or None
