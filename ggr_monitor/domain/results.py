"""Domain-level results: quality issues and analytics views."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Mapping, Sequence, Union

from .models import ZERO, ReportingPeriod


@dataclass(frozen=True)
class MissingMonth:
    operator_id: str
    expected_period: ReportingPeriod
    issue_type: str = "missing_month"

    @property
    def message(self) -> str:
        return f"Missing report for {self.expected_period.key}"


@dataclass(frozen=True)
class InvalidRowIssue:
    report_id: str
    issue_description: str
    issue_type: str = "invalid_row"

    @property
    def message(self) -> str:
        return self.issue_description


@dataclass(frozen=True)
class BalanceDiscrepancy:
    report_id: str
    opening_balance: Decimal
    closing_balance: Decimal
    expected_closing_balance: Decimal
    difference: Decimal
    issue_type: str = "balance_discrepancy"

    @property
    def message(self) -> str:
        return (
            f"Closing balance {self.closing_balance} differs from expected "
            f"{self.expected_closing_balance} by {self.difference}"
        )


DataQualityIssue = Union[MissingMonth, InvalidRowIssue, BalanceDiscrepancy]


@dataclass(frozen=True)
class DataQualityReport:
    generated_at: datetime
    missing_months: Sequence[MissingMonth] = field(default_factory=tuple)
    invalid_rows: Sequence[InvalidRowIssue] = field(default_factory=tuple)
    balance_discrepancies: Sequence[BalanceDiscrepancy] = field(default_factory=tuple)
    records_scanned: int = 0

    @property
    def total_issues(self) -> int:
        return len(self.missing_months) + len(self.invalid_rows) + len(self.balance_discrepancies)

    def has_issues(self) -> bool:
        return self.total_issues > 0

    def iter_all_issues(self) -> Iterable[DataQualityIssue]:
        yield from self.missing_months
        yield from self.invalid_rows
        yield from self.balance_discrepancies


@dataclass(frozen=True)
class MonthlyTrend:
    period: ReportingPeriod
    total_ggr: Decimal = ZERO
    total_stake: Decimal = ZERO
    total_winnings: Decimal = ZERO
    total_bet_count: int = 0
    total_det_levy: Decimal = ZERO
    total_gaming_tax: Decimal = ZERO
    report_count: int = 0

    @property
    def month(self) -> str:
        return self.period.key


@dataclass(frozen=True)
class OperatorPerformance:
    operator_name: str
    total_ggr: Decimal
    total_stake: Decimal
    report_count: int


@dataclass(frozen=True)
class ProductBreakdown:
    game_type: str
    total_ggr: Decimal
    total_stake: Decimal
    total_bet_count: int


@dataclass(frozen=True)
class DashboardAnalytics:
    monthly_trends: Sequence[MonthlyTrend]
    operator_performance: Sequence[OperatorPerformance]
    product_breakdown: Sequence[ProductBreakdown]
    total_reports: int


TOTAL_LABEL = "Total"


@dataclass(frozen=True)
class RegulatorMonthlyRow:
    month: str
    stake: Decimal = ZERO
    payout: Decimal = ZERO
    cancelled: Decimal = ZERO
    open_tickets: Decimal = ZERO
    ggr: Decimal = ZERO
    ggr_pct: Decimal = ZERO
    percent_from_stake: Decimal = ZERO
    percent_from_ggr: Decimal = ZERO
    gaming_tax: Decimal = ZERO
    det_levy: Decimal = ZERO
    report_count: int = 0

    @property
    def is_total(self) -> bool:
        return self.month == TOTAL_LABEL


@dataclass(frozen=True)
class PivotRow:
    operator: str
    values: Mapping[str, Decimal]
    total: Decimal

    def get(self, month_key: str) -> Decimal:
        return self.values.get(month_key, ZERO)


@dataclass(frozen=True)
class PivotTable:
    columns: tuple[str, ...] = ()
    rows: tuple[PivotRow, ...] = ()

    def row_for(self, operator: str) -> PivotRow | None:
        for row in self.rows:
            if row.operator == operator:
                return row
        return None


@dataclass(frozen=True)
class MergedOperatorRow:
    operator: str
    stake: Mapping[str, Decimal]
    ggr: Mapping[str, Decimal]
    payout: Mapping[str, Decimal]
    ggr_pct: Mapping[str, Decimal]
    total_stake: Decimal
    total_payout: Decimal
    total_ggr_pct: Decimal


@dataclass(frozen=True)
class ChannelPivots:
    stake: PivotTable
    ggr: PivotTable


@dataclass(frozen=True)
class RegulatorAnalytics:
    regulator_id: str | None
    regulator_name: str
    online_monthly: Sequence[RegulatorMonthlyRow]
    offline_monthly: Sequence[RegulatorMonthlyRow]
    combined_monthly: Sequence[RegulatorMonthlyRow]
    online: ChannelPivots
    offline: ChannelPivots

    @property
    def month_columns(self) -> tuple[str, ...]:
        return self.online.stake.columns


@dataclass(frozen=True)
class Discrepancy:
    field: str
    report_value: Decimal
    ems_value: Decimal
    difference: Decimal
    percent_difference: Decimal | None = None


@dataclass(frozen=True)
class EmsComparison:
    report_id: str
    operator_name: str
    period: ReportingPeriod
    match_status: str
    discrepancies: Sequence[Discrepancy] = field(default_factory=tuple)

    @property
    def matched(self) -> bool:
        return self.match_status == "matched"


@dataclass(frozen=True)
class ForecastPoint:
    period: ReportingPeriod
    ggr: Decimal


@dataclass(frozen=True)
class OperatorForecast:
    operator_name: str
    history: Sequence[MonthlyTrend]
    forecast: Sequence[ForecastPoint]
