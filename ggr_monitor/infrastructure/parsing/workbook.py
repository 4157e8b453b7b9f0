"""Decode uploaded spreadsheets (xlsx, xls, ods, csv) into a raw cell grid."""
from __future__ import annotations

import numbers
from datetime import date, datetime
from io import BytesIO
from pathlib import Path, PurePath
from typing import Any

import pandas as pd

from ggr_monitor.config import SETTINGS
from ggr_monitor.domain.errors import DecodeError
from ggr_monitor.domain.models import EMPTY, Cell, EmptyCell, NumberCell, RawGrid, TextCell
from ggr_monitor.infrastructure.parsing.utils import ensure_bytes
from ggr_monitor.logging_config import get_logger

logger = get_logger(__name__)

EXCEL_ENGINES = {
    "xlsx": "openpyxl",
    "xlsm": "openpyxl",
    "xls": "xlrd",
    "ods": "odf",
}
SUPPORTED_EXTENSIONS = frozenset(EXCEL_ENGINES) | {"csv"}

_ZIP_MAGIC = b"PK\x03\x04"
_OLE2_MAGIC = b"\xd0\xcf\x11\xe0"
_ODS_MIMETYPE = b"application/vnd.oasis.opendocument.spreadsheet"


def infer_extension(data: bytes, extension: str | None = None, filename: str | None = None) -> str:
    """Declared extension wins, then the filename suffix, then the leading bytes."""
    if extension:
        return extension.strip().lstrip(".").lower()
    if filename:
        suffix = PurePath(filename).suffix.lstrip(".").lower()
        if suffix:
            return suffix
    if data.startswith(_ZIP_MAGIC):
        return "ods" if _ODS_MIMETYPE in data[:256] else "xlsx"
    if data.startswith(_OLE2_MAGIC):
        return "xls"
    return "csv"


def to_cell(value: Any) -> Cell:
    if value is None or pd.isna(value):
        return EMPTY
    if isinstance(value, bool):
        return TextCell(str(value).upper())
    if isinstance(value, numbers.Real):
        return NumberCell(float(value))
    if isinstance(value, (datetime, date)):
        return TextCell(value.isoformat())
    return TextCell(str(value))


def _trim_trailing(rows: list[tuple[Cell, ...]]) -> list[tuple[Cell, ...]]:
    while rows and all(isinstance(cell, EmptyCell) for cell in rows[-1]):
        rows.pop()
    return rows


def _read_excel(buffer: BytesIO, engine: str) -> pd.DataFrame:
    with pd.ExcelFile(buffer, engine=engine) as xls:
        if not xls.sheet_names:
            raise DecodeError("workbook has no sheets")
        return pd.read_excel(xls, sheet_name=xls.sheet_names[0], header=None, dtype=object)


def _trailing_blank_lines(data: bytes) -> int:
    count = 0
    for line in reversed(data.splitlines()):
        if line.strip():
            break
        count += 1
    return count


def _read_csv(data: bytes) -> pd.DataFrame:
    try:
        frame = pd.read_csv(BytesIO(data), header=None, dtype=str, keep_default_na=False, skip_blank_lines=False)
    except pd.errors.EmptyDataError:
        return pd.DataFrame()
    # Blank source lines read as empty strings; drop the ones closing the file.
    blank_tail = _trailing_blank_lines(data)
    if blank_tail:
        frame = frame.iloc[: max(len(frame) - blank_tail, 0)]
    return frame


def decode_workbook(
    source: BytesIO | Path | bytes | bytearray,
    extension: str | None = None,
    filename: str | None = None,
    max_bytes: int = SETTINGS.max_file_bytes,
    max_rows: int | None = None,
) -> RawGrid:
    """Read the first worksheet of ``source`` as tagged cells, row-major.

    Values are kept as the sheet holds them; only dates are rendered as ISO
    text. Trailing rows with no cells at all are dropped, as are blank lines
    closing a CSV file.
    """
    data = ensure_bytes(source)
    if filename is None and isinstance(source, Path):
        filename = source.name
    if len(data) > max_bytes:
        raise DecodeError(f"file is {len(data)} bytes, limit is {max_bytes}", filename)

    kind = infer_extension(data, extension, filename)
    if kind not in SUPPORTED_EXTENSIONS:
        raise DecodeError(f"unsupported file type {kind!r}", filename)

    try:
        if kind == "csv":
            frame = _read_csv(data)
        else:
            frame = _read_excel(BytesIO(data), EXCEL_ENGINES[kind])
    except DecodeError as exc:
        logger.warning("decode_failed", filename=filename, extension=kind, error=str(exc))
        raise DecodeError(exc.reason, filename) from exc
    except Exception as exc:
        logger.warning("decode_failed", filename=filename, extension=kind, error=str(exc))
        raise DecodeError(f"cannot read {kind} content: {exc}", filename) from exc

    rows = [tuple(to_cell(value) for value in record) for record in frame.itertuples(index=False, name=None)]
    rows = _trim_trailing(rows)
    if max_rows is not None and len(rows) > max_rows:
        raise DecodeError(f"sheet has {len(rows)} rows, limit is {max_rows}", filename)
    return RawGrid(rows=tuple(rows))
