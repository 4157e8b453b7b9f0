"""Export helpers for data-quality issues."""
from __future__ import annotations

import csv
import io
from typing import Sequence

from ggr_monitor.domain.results import (
    BalanceDiscrepancy,
    DataQualityIssue,
    DataQualityReport,
    InvalidRowIssue,
    MissingMonth,
)

FIELDNAMES = ["issue_type", "operator_id", "report_id", "period", "message", "difference"]


def issues_to_rows(issues: Sequence[DataQualityIssue]) -> list[dict[str, str]]:
    rows: list[dict[str, str]] = []
    for item in issues:
        row = dict.fromkeys(FIELDNAMES, "")
        row["issue_type"] = item.issue_type
        row["message"] = item.message
        if isinstance(item, MissingMonth):
            row["operator_id"] = item.operator_id
            row["period"] = item.expected_period.key
        elif isinstance(item, InvalidRowIssue):
            row["report_id"] = item.report_id
        elif isinstance(item, BalanceDiscrepancy):
            row["report_id"] = item.report_id
            row["difference"] = str(item.difference)
        rows.append(row)
    return rows


def render_csv(report: DataQualityReport) -> bytes:
    rows = issues_to_rows(tuple(report.iter_all_issues()))
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=FIELDNAMES)
    writer.writeheader()
    writer.writerows(rows)
    return buffer.getvalue().encode("utf-8")
