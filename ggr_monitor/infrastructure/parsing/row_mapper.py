"""Map a decoded grid onto typed rows using a configurable header table."""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Mapping

from ggr_monitor.config import SETTINGS
from ggr_monitor.domain.errors import RowValidationError
from ggr_monitor.domain.models import Cell, InvalidRow, MappedRow, MappingResult, RawGrid
from ggr_monitor.infrastructure.parsing.utils import (
    cell_text,
    normalize_label,
    parse_amount,
    parse_count,
    parse_period,
)


def _optional_amount(cell: Cell) -> Decimal | None:
    if cell.is_blank:
        return None
    return parse_amount(cell)


@dataclass(frozen=True)
class FieldSpec:
    name: str
    parser: Callable[[Cell], Any]
    required: bool = False


FIELD_SPECS: tuple[FieldSpec, ...] = (
    FieldSpec("operator_name", cell_text),
    FieldSpec("operator_id", cell_text),
    FieldSpec("period", parse_period),
    FieldSpec("game_type", cell_text),
    FieldSpec("bet_count", parse_count),
    FieldSpec("stake", parse_amount, required=True),
    FieldSpec("payout", parse_amount, required=True),
    FieldSpec("cancelled", parse_amount),
    FieldSpec("open_tickets", parse_amount),
    FieldSpec("opening_balance", _optional_amount),
    FieldSpec("closing_balance", _optional_amount),
)


def resolve_columns(header: tuple[Cell, ...], header_mapping: Mapping[str, str]) -> dict[str, int]:
    """Field name -> column index; the left-most matching column wins."""
    columns: dict[str, int] = {}
    for index, cell in enumerate(header):
        field_name = header_mapping.get(normalize_label(cell.as_text()))
        if field_name and field_name not in columns:
            columns[field_name] = index
    return columns


class RowMapper:
    def __init__(self, header_mapping: Mapping[str, str] | None = None) -> None:
        if header_mapping is None:
            header_mapping = SETTINGS.header_mapping
        self._header_mapping = {normalize_label(label): field for label, field in header_mapping.items()}

    def map(self, grid: RawGrid) -> MappingResult:
        if not grid.rows:
            return MappingResult()

        columns = resolve_columns(grid.header, self._header_mapping)
        missing = [spec.name for spec in FIELD_SPECS if spec.required and spec.name not in columns]

        valid: list[MappedRow] = []
        invalid: list[InvalidRow] = []
        for row_index, row in enumerate(grid.data_rows, start=1):
            if self._is_spacer(row, columns):
                continue
            operator_name = self._operator_name(row, columns)
            if missing:
                reason = "missing required column: " + ", ".join(missing)
                invalid.append(InvalidRow(row_index, reason, operator_name))
                continue
            try:
                valid.append(self._map_row(row_index, row, columns))
            except RowValidationError as exc:
                invalid.append(InvalidRow(row_index, str(exc), operator_name))

        return MappingResult(valid_rows=tuple(valid), invalid_rows=tuple(invalid))

    @staticmethod
    def _cell(row: tuple[Cell, ...], index: int | None) -> Cell | None:
        if index is None or index >= len(row):
            return None
        return row[index]

    def _is_spacer(self, row: tuple[Cell, ...], columns: dict[str, int]) -> bool:
        if "operator_name" in columns:
            cell = self._cell(row, columns["operator_name"])
            return cell is None or cell.is_blank
        return all(cell.is_blank for cell in row)

    def _operator_name(self, row: tuple[Cell, ...], columns: dict[str, int]) -> str | None:
        cell = self._cell(row, columns.get("operator_name"))
        return cell_text(cell) if cell is not None else None

    def _map_row(self, row_index: int, row: tuple[Cell, ...], columns: dict[str, int]) -> MappedRow:
        values: dict[str, Any] = {}
        for spec in FIELD_SPECS:
            cell = self._cell(row, columns.get(spec.name))
            if cell is None:
                continue
            try:
                values[spec.name] = spec.parser(cell)
            except RowValidationError as exc:
                raise RowValidationError(f"{spec.name}: {exc}") from exc
        return MappedRow(row_index=row_index, **values)
