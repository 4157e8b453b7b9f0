"""Rollups over approved report records: trends, rankings and regulator tables."""
from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, Mapping, Sequence

from .errors import AggregationInputError
from .models import ZERO, Channel, ReportingPeriod, ReportRecord, ReportStatus, RegulatorRef
from .results import (
    TOTAL_LABEL,
    ChannelPivots,
    DashboardAnalytics,
    MergedOperatorRow,
    MonthlyTrend,
    OperatorPerformance,
    PivotRow,
    PivotTable,
    ProductBreakdown,
    RegulatorAnalytics,
    RegulatorMonthlyRow,
)

ALL_OPERATORS = "all"
UNASSIGNED_REGULATOR = "Unassigned"


def _parse_period(value: object, label: str) -> ReportingPeriod | None:
    if value is None or value == "":
        return None
    if isinstance(value, ReportingPeriod):
        return value
    if isinstance(value, (date, datetime)):
        return ReportingPeriod(value.year, value.month)
    try:
        return ReportingPeriod.from_key(str(value))
    except ValueError as exc:
        raise AggregationInputError(f"{label} must look like YYYY-MM, got {value!r}") from exc


def _parse_channel(value: object) -> Channel | None:
    if value is None or value == "" or value == "all":
        return None
    try:
        return Channel(str(value).strip().lower())
    except ValueError as exc:
        raise AggregationInputError(f"Unknown channel {value!r}") from exc


@dataclass(frozen=True)
class ReportFilter:
    operator_id: str = ALL_OPERATORS
    regulator_id: str | None = None
    start: ReportingPeriod | None = None
    end: ReportingPeriod | None = None
    channel: Channel | None = None
    include_all_statuses: bool = False

    def __post_init__(self) -> None:
        if not isinstance(self.operator_id, str) or not self.operator_id.strip():
            raise AggregationInputError("operator_id must be an operator id or 'all'")
        if self.start is not None and self.end is not None and self.start > self.end:
            raise AggregationInputError(f"start {self.start} is after end {self.end}")

    @classmethod
    def from_params(
        cls,
        operator: object = ALL_OPERATORS,
        regulator: object = None,
        start: object = None,
        end: object = None,
        channel: object = None,
        include_all_statuses: bool = False,
    ) -> ReportFilter:
        """Build a filter from loosely typed query parameters."""
        operator_id = ALL_OPERATORS if operator is None else str(operator).strip()
        regulator_id = None if regulator in (None, "", "all") else str(regulator).strip()
        return cls(
            operator_id=operator_id,
            regulator_id=regulator_id,
            start=_parse_period(start, "start"),
            end=_parse_period(end, "end"),
            channel=_parse_channel(channel),
            include_all_statuses=include_all_statuses,
        )

    def matches(self, record: ReportRecord) -> bool:
        if not self.include_all_statuses and record.status != ReportStatus.APPROVED:
            return False
        if self.operator_id != ALL_OPERATORS and record.operator_id != self.operator_id:
            return False
        if self.regulator_id is not None and record.regulator_id != self.regulator_id:
            return False
        if self.channel is not None and record.channel != self.channel:
            return False
        if self.start is not None and record.period < self.start:
            return False
        if self.end is not None and record.period > self.end:
            return False
        return True

    def apply(self, records: Iterable[ReportRecord]) -> list[ReportRecord]:
        return [record for record in records if self.matches(record)]


def percentage_growth(previous: Decimal, current: Decimal) -> Decimal | None:
    """Month-over-month growth in percent; None when there is no base to grow from."""
    if previous == 0:
        return None
    return (current - previous) / abs(previous) * 100


def _ratio(numerator: Decimal, denominator: Decimal) -> Decimal:
    if denominator == 0:
        return ZERO
    return numerator / denominator


@dataclass
class _MonthTotals:
    stake: Decimal = ZERO
    payout: Decimal = ZERO
    cancelled: Decimal = ZERO
    open_tickets: Decimal = ZERO
    ggr: Decimal = ZERO
    gaming_tax: Decimal = ZERO
    det_levy: Decimal = ZERO
    report_count: int = 0

    def add_record(self, record: ReportRecord) -> None:
        self.stake += record.total_stake
        self.payout += record.total_winnings
        self.cancelled += record.total_cancelled
        self.open_tickets += record.total_open_tickets
        self.ggr += record.total_ggr
        self.gaming_tax += record.total_gaming_tax
        self.det_levy += record.total_det_levy
        self.report_count += 1

    def merged(self, other: _MonthTotals) -> _MonthTotals:
        return _MonthTotals(
            stake=self.stake + other.stake,
            payout=self.payout + other.payout,
            cancelled=self.cancelled + other.cancelled,
            open_tickets=self.open_tickets + other.open_tickets,
            ggr=self.ggr + other.ggr,
            gaming_tax=self.gaming_tax + other.gaming_tax,
            det_levy=self.det_levy + other.det_levy,
            report_count=self.report_count + other.report_count,
        )


def _monthly_table(by_period: Mapping[ReportingPeriod, _MonthTotals]) -> list[RegulatorMonthlyRow]:
    if not by_period:
        return []
    total = _MonthTotals()
    for totals in by_period.values():
        total = total.merged(totals)

    def to_row(label: str, totals: _MonthTotals) -> RegulatorMonthlyRow:
        return RegulatorMonthlyRow(
            month=label,
            stake=totals.stake,
            payout=totals.payout,
            cancelled=totals.cancelled,
            open_tickets=totals.open_tickets,
            ggr=totals.ggr,
            ggr_pct=_ratio(totals.ggr, totals.stake),
            percent_from_stake=_ratio(totals.stake, total.stake),
            percent_from_ggr=_ratio(totals.ggr, total.ggr),
            gaming_tax=totals.gaming_tax,
            det_levy=totals.det_levy,
            report_count=totals.report_count,
        )

    rows = [to_row(period.key, by_period[period]) for period in sorted(by_period)]
    rows.append(to_row(TOTAL_LABEL, total))
    return rows


def _pivot(records: Iterable[ReportRecord], attribute: str) -> dict[str, dict[str, Decimal]]:
    table: dict[str, dict[str, Decimal]] = defaultdict(lambda: defaultdict(lambda: ZERO))
    for record in records:
        table[record.operator_name][record.period.key] += getattr(record, attribute)
    return table


def _pivot_table(raw: Mapping[str, Mapping[str, Decimal]], columns: tuple[str, ...]) -> PivotTable:
    rows = []
    for operator, values in raw.items():
        filled = {column: values.get(column, ZERO) for column in columns}
        rows.append(PivotRow(operator=operator, values=filled, total=sum(filled.values(), ZERO)))
    rows.sort(key=lambda row: (-row.total, row.operator))
    return PivotTable(columns=columns, rows=tuple(rows))


def merge_operator_metrics(stake: PivotTable, ggr: PivotTable) -> list[MergedOperatorRow]:
    """Derive payout and GGR% per operator and month from the stake and GGR pivots."""
    merged: list[MergedOperatorRow] = []
    for stake_row in stake.rows:
        ggr_row = ggr.row_for(stake_row.operator)
        ggr_values = {m: (ggr_row.get(m) if ggr_row else ZERO) for m in stake.columns}
        ggr_total = ggr_row.total if ggr_row else ZERO
        merged.append(
            MergedOperatorRow(
                operator=stake_row.operator,
                stake={m: stake_row.get(m) for m in stake.columns},
                ggr=ggr_values,
                payout={m: stake_row.get(m) - ggr_values[m] for m in stake.columns},
                ggr_pct={
                    m: (ggr_values[m] / stake_row.get(m) if stake_row.get(m) > 0 else ZERO)
                    for m in stake.columns
                },
                total_stake=stake_row.total,
                total_payout=stake_row.total - ggr_total,
                total_ggr_pct=ggr_total / stake_row.total if stake_row.total > 0 else ZERO,
            )
        )
    return merged


@dataclass
class AggregationEngine:
    """Pure rollups over a snapshot of report records."""

    regulators: Sequence[RegulatorRef] = field(default_factory=tuple)

    def monthly_trends(self, records: Iterable[ReportRecord]) -> list[MonthlyTrend]:
        buckets: dict[ReportingPeriod, list[ReportRecord]] = defaultdict(list)
        for record in records:
            buckets[record.period].append(record)
        return [
            MonthlyTrend(
                period=period,
                total_ggr=sum((r.total_ggr for r in members), ZERO),
                total_stake=sum((r.total_stake for r in members), ZERO),
                total_winnings=sum((r.total_winnings for r in members), ZERO),
                total_bet_count=sum(r.total_bet_count for r in members),
                total_det_levy=sum((r.total_det_levy for r in members), ZERO),
                total_gaming_tax=sum((r.total_gaming_tax for r in members), ZERO),
                report_count=len(members),
            )
            for period, members in sorted(buckets.items())
        ]

    def operator_performance(self, records: Iterable[ReportRecord]) -> list[OperatorPerformance]:
        ggr: dict[str, Decimal] = defaultdict(lambda: ZERO)
        stake: dict[str, Decimal] = defaultdict(lambda: ZERO)
        counts: dict[str, int] = defaultdict(int)
        for record in records:
            ggr[record.operator_name] += record.total_ggr
            stake[record.operator_name] += record.total_stake
            counts[record.operator_name] += 1
        ranking = [
            OperatorPerformance(operator_name=name, total_ggr=ggr[name], total_stake=stake[name], report_count=counts[name])
            for name in counts
        ]
        ranking.sort(key=lambda item: (-item.total_ggr, item.operator_name))
        return ranking

    def product_breakdown(self, records: Iterable[ReportRecord]) -> list[ProductBreakdown]:
        ggr: dict[str, Decimal] = defaultdict(lambda: ZERO)
        stake: dict[str, Decimal] = defaultdict(lambda: ZERO)
        bets: dict[str, int] = defaultdict(int)
        for record in records:
            for breakdown in record.game_breakdown:
                ggr[breakdown.game_type] += breakdown.ggr
                stake[breakdown.game_type] += breakdown.stake
                bets[breakdown.game_type] += breakdown.bet_count
        products = [
            ProductBreakdown(game_type=name, total_ggr=ggr[name], total_stake=stake[name], total_bet_count=bets[name])
            for name in bets
        ]
        products.sort(key=lambda item: (-item.total_ggr, item.game_type))
        return products

    def dashboard(self, records: Iterable[ReportRecord], report_filter: ReportFilter | None = None) -> DashboardAnalytics:
        selected = (report_filter or ReportFilter()).apply(records)
        return DashboardAnalytics(
            monthly_trends=self.monthly_trends(selected),
            operator_performance=self.operator_performance(selected),
            product_breakdown=self.product_breakdown(selected),
            total_reports=len(selected),
        )

    def regulator_analytics(
        self, records: Iterable[ReportRecord], report_filter: ReportFilter | None = None
    ) -> list[RegulatorAnalytics]:
        selected = (report_filter or ReportFilter()).apply(records)
        names = {ref.regulator_id: ref.regulator_name for ref in self.regulators}

        by_regulator: dict[str | None, list[ReportRecord]] = defaultdict(list)
        for record in selected:
            by_regulator[record.regulator_id].append(record)

        analytics = [
            self._regulator_tables(regulator_id, names.get(regulator_id or "", regulator_id or UNASSIGNED_REGULATOR), members)
            for regulator_id, members in by_regulator.items()
        ]
        analytics.sort(key=lambda item: item.regulator_name)
        return analytics

    def _regulator_tables(
        self, regulator_id: str | None, regulator_name: str, records: Sequence[ReportRecord]
    ) -> RegulatorAnalytics:
        online = [r for r in records if r.channel == Channel.ONLINE]
        offline = [r for r in records if r.channel == Channel.OFFLINE]

        online_months: dict[ReportingPeriod, _MonthTotals] = defaultdict(_MonthTotals)
        offline_months: dict[ReportingPeriod, _MonthTotals] = defaultdict(_MonthTotals)
        for record in online:
            online_months[record.period].add_record(record)
        for record in offline:
            offline_months[record.period].add_record(record)
        combined_months = {
            period: online_months.get(period, _MonthTotals()).merged(offline_months.get(period, _MonthTotals()))
            for period in set(online_months) | set(offline_months)
        }

        raw = {
            "online_stake": _pivot(online, "total_stake"),
            "online_ggr": _pivot(online, "total_ggr"),
            "offline_stake": _pivot(offline, "total_stake"),
            "offline_ggr": _pivot(offline, "total_ggr"),
        }
        columns = tuple(sorted({month for table in raw.values() for values in table.values() for month in values}))

        return RegulatorAnalytics(
            regulator_id=regulator_id,
            regulator_name=regulator_name,
            online_monthly=_monthly_table(online_months),
            offline_monthly=_monthly_table(offline_months),
            combined_monthly=_monthly_table(combined_months),
            online=ChannelPivots(
                stake=_pivot_table(raw["online_stake"], columns),
                ggr=_pivot_table(raw["online_ggr"], columns),
            ),
            offline=ChannelPivots(
                stake=_pivot_table(raw["offline_stake"], columns),
                ggr=_pivot_table(raw["offline_ggr"], columns),
            ),
        )
