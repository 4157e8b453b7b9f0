"""Cross-check of reported GGR against figures from the electronic monitoring system."""
from __future__ import annotations

from decimal import Decimal

from .models import ReportRecord
from .results import Discrepancy, EmsComparison

DEFAULT_EMS_TOLERANCE_PCT = Decimal("2")


def percent_difference(report_value: Decimal, ems_value: Decimal) -> Decimal | None:
    if report_value == 0:
        return None if ems_value != 0 else Decimal("0")
    return abs(ems_value - report_value) / abs(report_value) * 100


def compare_with_ems(
    record: ReportRecord,
    ems_ggr: Decimal,
    tolerance_pct: Decimal = DEFAULT_EMS_TOLERANCE_PCT,
) -> EmsComparison:
    """Match when the EMS GGR is within ``tolerance_pct`` percent of the report's GGR."""
    pct = percent_difference(record.total_ggr, ems_ggr)
    if pct is not None and pct <= tolerance_pct:
        return EmsComparison(
            report_id=record.report_id,
            operator_name=record.operator_name,
            period=record.period,
            match_status="matched",
        )
    return EmsComparison(
        report_id=record.report_id,
        operator_name=record.operator_name,
        period=record.period,
        match_status="mismatch",
        discrepancies=(
            Discrepancy(
                field="GGR",
                report_value=record.total_ggr,
                ems_value=ems_ggr,
                difference=ems_ggr - record.total_ggr,
                percent_difference=pct,
            ),
        ),
    )
