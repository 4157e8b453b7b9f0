"""Data-quality rules and the engine that runs them."""
from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Collection, Iterable, Protocol, Sequence

from ggr_monitor.logging_config import get_logger

from .errors import QualityCheckError
from .models import ReportingPeriod, ReportRecord, ReportStatus, iter_periods
from .results import (
    BalanceDiscrepancy,
    DataQualityIssue,
    DataQualityReport,
    InvalidRowIssue,
    MissingMonth,
)

logger = get_logger(__name__)

DEFAULT_BALANCE_TOLERANCE = Decimal("0.01")


@dataclass(frozen=True)
class QualityContext:
    balance_tolerance: Decimal = DEFAULT_BALANCE_TOLERANCE
    operator_universe: Collection[str] | None = None


class QualityRule(Protocol):
    name: str

    def evaluate(self, records: Sequence[ReportRecord], context: QualityContext) -> list[DataQualityIssue]:
        ...


RULE_REGISTRY: dict[str, Callable[[], QualityRule]] = {}


def register_rule(name: str) -> Callable[[type], type]:
    def decorator(cls: type) -> type:
        cls.name = name
        RULE_REGISTRY[name] = cls
        return cls

    return decorator


def default_rules() -> list[QualityRule]:
    return [factory() for factory in RULE_REGISTRY.values()]


@register_rule("missing_months")
class MissingMonthRule:
    """Every month between an operator's first and latest report must be present."""

    def evaluate(self, records: Sequence[ReportRecord], context: QualityContext) -> list[DataQualityIssue]:
        periods_by_operator: dict[str, set[ReportingPeriod]] = defaultdict(set)
        for record in records:
            if context.operator_universe is not None and record.operator_id not in context.operator_universe:
                continue
            periods_by_operator[record.operator_id].add(record.period)

        issues: list[DataQualityIssue] = []
        for operator_id in sorted(periods_by_operator):
            seen = periods_by_operator[operator_id]
            if len(seen) < 2:
                continue
            for period in iter_periods(min(seen), max(seen)):
                if period not in seen:
                    issues.append(MissingMonth(operator_id=operator_id, expected_period=period))
        return issues


@register_rule("invalid_rows")
class InvalidRowRule:
    def evaluate(self, records: Sequence[ReportRecord], context: QualityContext) -> list[DataQualityIssue]:
        issues: list[DataQualityIssue] = []
        for record in records:
            for invalid in record.invalid_rows:
                issues.append(
                    InvalidRowIssue(
                        report_id=record.report_id,
                        issue_description=f"Row {invalid.row_index + 1}: {invalid.reason}",
                    )
                )
        return issues


@register_rule("balance_reconciliation")
class BalanceReconciliationRule:
    """Closing balance must equal opening balance plus GGR, within tolerance."""

    def evaluate(self, records: Sequence[ReportRecord], context: QualityContext) -> list[DataQualityIssue]:
        issues: list[DataQualityIssue] = []
        for record in records:
            try:
                issue = self._check(record, context.balance_tolerance)
            except QualityCheckError as exc:
                logger.info("balance_check_skipped", report_id=record.report_id, reason=str(exc))
                continue
            if issue is not None:
                issues.append(issue)
        return issues

    @staticmethod
    def _check(record: ReportRecord, tolerance: Decimal) -> BalanceDiscrepancy | None:
        if record.opening_balance is None or record.closing_balance is None:
            raise QualityCheckError("opening or closing balance missing")
        expected = record.opening_balance + record.total_ggr
        difference = record.closing_balance - expected
        if abs(difference) <= tolerance:
            return None
        return BalanceDiscrepancy(
            report_id=record.report_id,
            opening_balance=record.opening_balance,
            closing_balance=record.closing_balance,
            expected_closing_balance=expected,
            difference=difference,
        )


@dataclass
class DataQualityEngine:
    rules: list[QualityRule] = field(default_factory=default_rules)
    balance_tolerance: Decimal = DEFAULT_BALANCE_TOLERANCE

    def scan(
        self,
        records: Iterable[ReportRecord],
        include_all_statuses: bool = False,
        operator_universe: Collection[str] | None = None,
    ) -> DataQualityReport:
        selected = [
            record
            for record in records
            if include_all_statuses or record.status == ReportStatus.APPROVED
        ]
        context = QualityContext(
            balance_tolerance=self.balance_tolerance,
            operator_universe=set(operator_universe) if operator_universe is not None else None,
        )

        missing: list[MissingMonth] = []
        invalid: list[InvalidRowIssue] = []
        balances: list[BalanceDiscrepancy] = []
        for rule in self.rules:
            for issue in rule.evaluate(selected, context):
                if isinstance(issue, MissingMonth):
                    missing.append(issue)
                elif isinstance(issue, InvalidRowIssue):
                    invalid.append(issue)
                elif isinstance(issue, BalanceDiscrepancy):
                    balances.append(issue)
                else:
                    raise TypeError(f"Rule {rule.name} produced unsupported issue {issue!r}")

        report = DataQualityReport(
            generated_at=datetime.now(timezone.utc),
            missing_months=tuple(missing),
            invalid_rows=tuple(invalid),
            balance_discrepancies=tuple(balances),
            records_scanned=len(selected),
        )
        logger.info(
            "quality_scan_completed",
            records=len(selected),
            missing_months=len(missing),
            invalid_rows=len(invalid),
            balance_discrepancies=len(balances),
        )
        return report
