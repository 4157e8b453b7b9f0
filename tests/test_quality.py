from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal

from ggr_monitor.domain.calculator import compute_breakdown
from ggr_monitor.domain.models import (
    Channel,
    InvalidRow,
    ReportingPeriod,
    ReportRecord,
    ReportStatus,
)
from ggr_monitor.domain.quality import RULE_REGISTRY, DataQualityEngine, MissingMonthRule
from ggr_monitor.domain.results import MissingMonth


def make_record(
    operator_id: str,
    year: int,
    month: int,
    stake: str = "1000",
    winnings: str = "600",
    opening: str | None = None,
    closing: str | None = None,
    status: ReportStatus = ReportStatus.APPROVED,
) -> ReportRecord:
    breakdown = compute_breakdown("All Games", 1, Decimal(stake), Decimal(winnings))
    return ReportRecord(
        report_id=f"{operator_id}-{year}-{month:02d}",
        operator_id=operator_id,
        operator_name=operator_id.title(),
        period=ReportingPeriod(year, month),
        channel=Channel.ONLINE,
        game_breakdown=(breakdown,),
        total_stake=breakdown.stake,
        total_winnings=breakdown.winnings,
        total_bet_count=1,
        total_ggr=breakdown.ggr,
        overall_ggr_percentage=breakdown.ggr_percentage,
        total_gaming_tax=breakdown.gaming_tax,
        total_det_levy=breakdown.det_levy,
        total_net_revenue=breakdown.net_revenue,
        submitted_at=datetime(2024, 5, 1, tzinfo=timezone.utc),
        opening_balance=Decimal(opening) if opening is not None else None,
        closing_balance=Decimal(closing) if closing is not None else None,
        status=status,
    )


def test_missing_months_between_first_and_last_report():
    records = [make_record("acme", 2024, 1), make_record("acme", 2024, 4)]

    report = DataQualityEngine().scan(records)

    assert {issue.expected_period for issue in report.missing_months} == {
        ReportingPeriod(2024, 2),
        ReportingPeriod(2024, 3),
    }
    assert all(issue.operator_id == "acme" for issue in report.missing_months)


def test_single_report_operator_has_no_missing_months():
    report = DataQualityEngine().scan([make_record("acme", 2024, 1)])

    assert report.missing_months == ()


def test_missing_months_span_year_boundary():
    records = [make_record("acme", 2023, 11), make_record("acme", 2024, 2)]

    report = DataQualityEngine().scan(records)

    assert [issue.expected_period.key for issue in report.missing_months] == ["2023-12", "2024-01"]


def test_balance_scenario_flags_only_march():
    january = make_record("acme", 2024, 1, opening="0", closing="400")
    march = make_record("acme", 2024, 3, opening="100", closing="1000")

    report = DataQualityEngine().scan([january, march])

    assert len(report.balance_discrepancies) == 1
    issue = report.balance_discrepancies[0]
    assert issue.report_id == march.report_id
    assert issue.expected_closing_balance == Decimal("500")
    assert issue.difference == Decimal("500")


def test_balance_within_tolerance_is_accepted():
    record = make_record("acme", 2024, 1, opening="0", closing="400.01")

    report = DataQualityEngine().scan([record])

    assert report.balance_discrepancies == ()


def test_records_without_balances_are_skipped():
    report = DataQualityEngine().scan([make_record("acme", 2024, 1)])

    assert report.balance_discrepancies == ()
    assert report.records_scanned == 1


def test_invalid_rows_are_reported_with_sheet_row_number():
    record = replace(
        make_record("acme", 2024, 1),
        invalid_rows=(InvalidRow(3, "stake: cannot read 'x' as a number", "Acme"),),
    )

    report = DataQualityEngine().scan([record])

    (issue,) = report.invalid_rows
    assert issue.report_id == record.report_id
    assert issue.issue_description == "Row 4: stake: cannot read 'x' as a number"


def test_only_approved_reports_are_scanned_by_default():
    records = [
        make_record("acme", 2024, 1),
        make_record("acme", 2024, 4, status=ReportStatus.PENDING),
    ]

    assert DataQualityEngine().scan(records).missing_months == ()
    assert len(DataQualityEngine().scan(records, include_all_statuses=True).missing_months) == 2


def test_total_issues_counts_every_list():
    records = [
        make_record("acme", 2024, 1, opening="0", closing="0"),
        replace(make_record("acme", 2024, 3), invalid_rows=(InvalidRow(1, "bad"),)),
    ]

    report = DataQualityEngine().scan(records)

    assert report.total_issues == 3
    assert report.has_issues()
    assert len(list(report.iter_all_issues())) == 3


def test_operator_universe_limits_missing_month_checks():
    records = [
        make_record("acme", 2024, 1),
        make_record("acme", 2024, 3),
        make_record("beta", 2024, 1),
        make_record("beta", 2024, 3),
    ]

    report = DataQualityEngine().scan(records, operator_universe={"beta"})

    assert [issue.operator_id for issue in report.missing_months] == ["beta"]


def test_engine_accepts_custom_rules():
    class EveryReportRule:
        name = "every_report"

        def evaluate(self, records, context):
            return [MissingMonth(operator_id=r.operator_id, expected_period=r.period) for r in records]

    engine = DataQualityEngine(rules=[EveryReportRule(), MissingMonthRule()])

    report = engine.scan([make_record("acme", 2024, 1)])

    assert len(report.missing_months) == 1
    assert set(RULE_REGISTRY) == {"missing_months", "invalid_rows", "balance_reconciliation"}
