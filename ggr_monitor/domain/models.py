"""Domain models for the gaming revenue ingestion pipeline.

These dataclasses capture the canonical schema for raw grids, mapped rows and
the report records every downstream view is derived from.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Iterator, Sequence, Union

ZERO = Decimal("0")


@dataclass(frozen=True, slots=True)
class EmptyCell:
    """A cell the source left without any value."""

    @property
    def is_blank(self) -> bool:
        return True

    def as_text(self) -> str:
        return ""


@dataclass(frozen=True, slots=True)
class TextCell:
    value: str

    @property
    def is_blank(self) -> bool:
        return not self.value.strip()

    def as_text(self) -> str:
        return self.value.strip()


@dataclass(frozen=True, slots=True)
class NumberCell:
    value: float

    @property
    def is_blank(self) -> bool:
        return False

    def as_text(self) -> str:
        if float(self.value).is_integer():
            return str(int(self.value))
        return repr(float(self.value))


Cell = Union[EmptyCell, TextCell, NumberCell]
EMPTY = EmptyCell()


@dataclass(frozen=True)
class RawGrid:
    """First worksheet of an uploaded file, read row-major."""

    rows: tuple[tuple[Cell, ...], ...] = ()

    @property
    def header(self) -> tuple[Cell, ...]:
        return self.rows[0] if self.rows else ()

    @property
    def data_rows(self) -> tuple[tuple[Cell, ...], ...]:
        return self.rows[1:]

    def __len__(self) -> int:
        return len(self.rows)


@dataclass(frozen=True, order=True)
class ReportingPeriod:
    """One calendar month of operator activity."""

    year: int
    month: int

    def __post_init__(self) -> None:
        if not 1 <= self.month <= 12:
            raise ValueError(f"Month out of range: {self.month}")

    @property
    def key(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"

    def next(self) -> ReportingPeriod:
        if self.month == 12:
            return ReportingPeriod(self.year + 1, 1)
        return ReportingPeriod(self.year, self.month + 1)

    @classmethod
    def from_key(cls, key: str) -> ReportingPeriod:
        year, month = key.strip().split("-", 1)
        return cls(int(year), int(month))

    def __str__(self) -> str:
        return self.key


def iter_periods(start: ReportingPeriod, end: ReportingPeriod) -> Iterator[ReportingPeriod]:
    """Yield every month from ``start`` to ``end`` inclusive."""
    current = start
    while current <= end:
        yield current
        current = current.next()


class Channel(str, Enum):
    ONLINE = "online"
    OFFLINE = "offline"


class ReportStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


@dataclass(frozen=True)
class MappedRow:
    """A typed candidate record extracted from one data row of a grid."""

    row_index: int
    operator_name: str | None = None
    operator_id: str | None = None
    period: ReportingPeriod | None = None
    game_type: str | None = None
    bet_count: int = 0
    stake: Decimal = ZERO
    payout: Decimal = ZERO
    cancelled: Decimal = ZERO
    open_tickets: Decimal = ZERO
    opening_balance: Decimal | None = None
    closing_balance: Decimal | None = None


@dataclass(frozen=True)
class InvalidRow:
    row_index: int
    reason: str
    operator_name: str | None = None


@dataclass(frozen=True)
class MappingResult:
    valid_rows: Sequence[MappedRow] = field(default_factory=tuple)
    invalid_rows: Sequence[InvalidRow] = field(default_factory=tuple)


@dataclass(frozen=True)
class GameBreakdown:
    game_type: str
    bet_count: int
    stake: Decimal
    winnings: Decimal
    ggr: Decimal
    ggr_percentage: Decimal
    det_levy: Decimal
    gaming_tax: Decimal
    net_revenue: Decimal
    flags: tuple[str, ...] = ()


@dataclass(frozen=True)
class ReportKey:
    operator_id: str
    regulator_id: str | None
    year: int
    month: int
    channel: Channel


@dataclass(frozen=True)
class ReviewMetadata:
    reviewer: str | None
    reviewed_at: datetime
    notes: str | None = None


@dataclass(frozen=True)
class ReportRecord:
    """One operator's figures for one reporting period from one submission."""

    report_id: str
    operator_id: str
    operator_name: str
    period: ReportingPeriod
    channel: Channel
    game_breakdown: tuple[GameBreakdown, ...]
    total_stake: Decimal
    total_winnings: Decimal
    total_bet_count: int
    total_ggr: Decimal
    overall_ggr_percentage: Decimal
    total_gaming_tax: Decimal
    total_det_levy: Decimal
    total_net_revenue: Decimal
    submitted_at: datetime
    regulator_id: str | None = None
    total_cancelled: Decimal = ZERO
    total_open_tickets: Decimal = ZERO
    opening_balance: Decimal | None = None
    closing_balance: Decimal | None = None
    balance_difference: Decimal | None = None
    status: ReportStatus = ReportStatus.PENDING
    review: ReviewMetadata | None = None
    invalid_rows: tuple[InvalidRow, ...] = ()
    calculation_flags: tuple[str, ...] = ()
    file_hash: str = ""
    source_filename: str | None = None

    @property
    def year(self) -> int:
        return self.period.year

    @property
    def month(self) -> int:
        return self.period.month

    def key(self) -> ReportKey:
        return ReportKey(
            operator_id=self.operator_id,
            regulator_id=self.regulator_id,
            year=self.period.year,
            month=self.period.month,
            channel=self.channel,
        )


@dataclass(frozen=True)
class OperatorRef:
    operator_id: str
    operator_name: str


@dataclass(frozen=True)
class RegulatorRef:
    regulator_id: str
    regulator_name: str
