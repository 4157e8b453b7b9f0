"""Derived-field computation: GGR, levies and report assembly."""
from __future__ import annotations

import hashlib
import re
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Mapping, Sequence

from .errors import CalculationError
from .models import (
    ZERO,
    Channel,
    GameBreakdown,
    InvalidRow,
    MappedRow,
    MappingResult,
    ReportingPeriod,
    ReportRecord,
)

DEFAULT_GAME_TYPE = "All Games"


@dataclass(frozen=True)
class LevyRates:
    gaming_tax: Decimal = Decimal("0.20")
    det_levy: Decimal = Decimal("0.05")


DEFAULT_LEVY_RATES = LevyRates()


@dataclass(frozen=True)
class SubmissionContext:
    """Facts about a submission that the sheet itself may not carry."""

    submitted_at: datetime
    channel: Channel = Channel.ONLINE
    operator_id: str | None = None
    operator_name: str | None = None
    regulator_id: str | None = None
    period: ReportingPeriod | None = None
    file_hash: str = ""
    filename: str | None = None
    opening_balance: Decimal | None = None
    closing_balance: Decimal | None = None
    operator_lookup: Mapping[str, str] = field(default_factory=dict)

    def resolve_operator_id(self, name: str | None) -> str | None:
        if not name:
            return None
        return self.operator_lookup.get(name.strip().lower())


def ggr_percentage(ggr: Decimal, stake: Decimal) -> Decimal:
    if stake == 0:
        return ZERO
    return ggr / stake


def _check_amounts(bet_count: int, stake: Decimal, winnings: Decimal) -> None:
    if stake < 0:
        raise CalculationError(f"negative stake {stake}")
    if winnings < 0:
        raise CalculationError(f"negative winnings {winnings}")
    if bet_count < 0:
        raise CalculationError(f"negative bet count {bet_count}")


def compute_breakdown(
    game_type: str,
    bet_count: int,
    stake: Decimal,
    winnings: Decimal,
    rates: LevyRates = DEFAULT_LEVY_RATES,
) -> GameBreakdown:
    flags: tuple[str, ...] = ()
    try:
        _check_amounts(bet_count, stake, winnings)
    except CalculationError as exc:
        flags = (f"{game_type}: {exc}",)

    ggr = stake - winnings
    percentage = ggr_percentage(ggr, stake)
    gaming_tax = rates.gaming_tax * ggr
    det_levy = rates.det_levy * ggr
    net_revenue = ggr - gaming_tax - det_levy
    return GameBreakdown(
        game_type=game_type,
        bet_count=bet_count,
        stake=stake,
        winnings=winnings,
        ggr=ggr,
        ggr_percentage=percentage,
        det_levy=det_levy,
        gaming_tax=gaming_tax,
        net_revenue=net_revenue,
        flags=flags,
    )


def breakdowns_from_rows(
    rows: Iterable[MappedRow], rates: LevyRates = DEFAULT_LEVY_RATES
) -> tuple[GameBreakdown, ...]:
    """Group rows by game type, in first-seen order, and compute each group."""
    groups: OrderedDict[str, list[MappedRow]] = OrderedDict()
    for row in rows:
        game_type = row.game_type or DEFAULT_GAME_TYPE
        groups.setdefault(game_type, []).append(row)

    return tuple(
        compute_breakdown(
            game_type,
            bet_count=sum(r.bet_count for r in members),
            stake=sum((r.stake for r in members), ZERO),
            winnings=sum((r.payout for r in members), ZERO),
            rates=rates,
        )
        for game_type, members in groups.items()
    )


@dataclass(frozen=True)
class ReportTotals:
    stake: Decimal = ZERO
    winnings: Decimal = ZERO
    bet_count: int = 0
    ggr: Decimal = ZERO
    ggr_percentage: Decimal = ZERO
    gaming_tax: Decimal = ZERO
    det_levy: Decimal = ZERO
    net_revenue: Decimal = ZERO


def aggregate_totals(breakdowns: Sequence[GameBreakdown]) -> ReportTotals:
    stake = sum((b.stake for b in breakdowns), ZERO)
    ggr = sum((b.ggr for b in breakdowns), ZERO)
    return ReportTotals(
        stake=stake,
        winnings=sum((b.winnings for b in breakdowns), ZERO),
        bet_count=sum(b.bet_count for b in breakdowns),
        ggr=ggr,
        ggr_percentage=ggr_percentage(ggr, stake),
        gaming_tax=sum((b.gaming_tax for b in breakdowns), ZERO),
        det_levy=sum((b.det_levy for b in breakdowns), ZERO),
        net_revenue=sum((b.net_revenue for b in breakdowns), ZERO),
    )


def balance_difference(
    opening_balance: Decimal | None, closing_balance: Decimal | None, ggr: Decimal
) -> Decimal | None:
    if opening_balance is None or closing_balance is None:
        return None
    return closing_balance - (opening_balance + ggr)


def slugify_operator(name: str) -> str:
    slug = re.sub(r"[^0-9a-z]+", "-", name.strip().lower()).strip("-")
    return slug or "operator"


def make_report_id(
    operator_id: str,
    regulator_id: str | None,
    period: ReportingPeriod,
    channel: Channel,
    file_hash: str,
) -> str:
    """Deterministic id so reprocessing the same file overwrites its own record."""
    digest = hashlib.sha256(
        "|".join([operator_id, regulator_id or "", period.key, channel.value, file_hash]).encode("utf-8")
    ).hexdigest()
    return f"{operator_id}-{period.key}-{channel.value}-{digest[:10]}"


def _first_present(values: Iterable[Decimal | None]) -> Decimal | None:
    for value in values:
        if value is not None:
            return value
    return None


def assemble_reports(
    mapping: MappingResult,
    context: SubmissionContext,
    rates: LevyRates = DEFAULT_LEVY_RATES,
) -> tuple[list[ReportRecord], list[InvalidRow]]:
    """Build one report per (operator, period) found among the valid rows.

    Returns the records plus any rows that could not be turned into a record
    because they lack an operator or a reporting period. Invalid rows are
    attached to the record of the operator they name; rows naming no known
    operator are attached to the first record.
    """
    groups: OrderedDict[tuple[str, ReportingPeriod], list[MappedRow]] = OrderedDict()
    display_names: dict[str, str] = {}
    rejected: list[InvalidRow] = []

    for row in mapping.valid_rows:
        name = row.operator_name or context.operator_name
        operator_id = row.operator_id or context.resolve_operator_id(row.operator_name)
        if operator_id is None and not row.operator_name:
            operator_id = context.operator_id
        if operator_id is None and name:
            operator_id = slugify_operator(name)
        period = row.period or context.period
        if operator_id is None:
            rejected.append(InvalidRow(row.row_index, "no operator for row"))
            continue
        if period is None:
            rejected.append(InvalidRow(row.row_index, "no reporting period for row", name))
            continue
        display_names.setdefault(operator_id, name or operator_id)
        groups.setdefault((operator_id, period), []).append(row)

    invalid_rows = list(mapping.invalid_rows) + rejected
    by_name: dict[str, list[InvalidRow]] = {}
    unattributed: list[InvalidRow] = []
    known_names = {name.lower(): operator_id for operator_id, name in display_names.items()}
    for invalid in invalid_rows:
        owner = known_names.get((invalid.operator_name or "").strip().lower())
        if owner is None:
            unattributed.append(invalid)
        else:
            by_name.setdefault(owner, []).append(invalid)

    records: list[ReportRecord] = []
    for index, ((operator_id, period), rows) in enumerate(groups.items()):
        breakdowns = breakdowns_from_rows(rows, rates)
        totals = aggregate_totals(breakdowns)
        opening = _first_present(r.opening_balance for r in rows)
        closing = _first_present(r.closing_balance for r in rows)
        if opening is None:
            opening = context.opening_balance
        if closing is None:
            closing = context.closing_balance
        attached = list(by_name.pop(operator_id, []))
        if index == 0:
            attached.extend(unattributed)
        attached.sort(key=lambda item: item.row_index)
        flags = tuple(flag for breakdown in breakdowns for flag in breakdown.flags)

        records.append(
            ReportRecord(
                report_id=make_report_id(operator_id, context.regulator_id, period, context.channel, context.file_hash),
                operator_id=operator_id,
                operator_name=display_names[operator_id],
                period=period,
                channel=context.channel,
                regulator_id=context.regulator_id,
                game_breakdown=breakdowns,
                total_stake=totals.stake,
                total_winnings=totals.winnings,
                total_bet_count=totals.bet_count,
                total_ggr=totals.ggr,
                overall_ggr_percentage=totals.ggr_percentage,
                total_gaming_tax=totals.gaming_tax,
                total_det_levy=totals.det_levy,
                total_net_revenue=totals.net_revenue,
                total_cancelled=sum((r.cancelled for r in rows), ZERO),
                total_open_tickets=sum((r.open_tickets for r in rows), ZERO),
                opening_balance=opening,
                closing_balance=closing,
                balance_difference=balance_difference(opening, closing, totals.ggr),
                submitted_at=context.submitted_at,
                invalid_rows=tuple(attached),
                calculation_flags=flags,
                file_hash=context.file_hash,
                source_filename=context.filename,
            )
        )

    leftover = unattributed if not records else []
    return records, leftover
