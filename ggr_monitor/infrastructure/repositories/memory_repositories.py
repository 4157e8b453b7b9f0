"""In-process repository adapters for report records and reference data."""
from __future__ import annotations

import threading
from dataclasses import replace
from typing import Sequence

from ggr_monitor.domain import review
from ggr_monitor.domain.aggregation import ReportFilter
from ggr_monitor.domain.errors import ReportNotFoundError
from ggr_monitor.domain.models import OperatorRef, RegulatorRef, ReportKey, ReportRecord, ReportStatus
from ggr_monitor.logging_config import get_logger

logger = get_logger(__name__)


class InMemoryReportRepository:
    """Keeps one current record per report key plus the records it superseded."""

    def __init__(self, records: Sequence[ReportRecord] = ()) -> None:
        self._lock = threading.Lock()
        self._current: dict[ReportKey, ReportRecord] = {}
        self._history: dict[ReportKey, list[ReportRecord]] = {}
        self._by_id: dict[str, ReportRecord] = {}
        for record in records:
            self.save(record)

    def fetch_report_records(self, report_filter: ReportFilter | None = None) -> list[ReportRecord]:
        with self._lock:
            records = list(self._current.values())
        if report_filter is None:
            return records
        return report_filter.apply(records)

    def get(self, report_id: str) -> ReportRecord:
        with self._lock:
            try:
                return self._by_id[report_id]
            except KeyError:
                raise ReportNotFoundError(report_id) from None

    def save(self, record: ReportRecord) -> ReportRecord:
        key = record.key()
        with self._lock:
            existing = self._current.get(key)
            if existing is not None and existing.report_id == record.report_id:
                # Same file processed again: keep the review outcome.
                record = replace(record, status=existing.status, review=existing.review)
            elif existing is not None:
                self._history.setdefault(key, []).append(existing)
                logger.info(
                    "report_superseded",
                    report_id=existing.report_id,
                    superseded_by=record.report_id,
                    previous_status=existing.status.value,
                )
            self._current[key] = record
            self._by_id[record.report_id] = record
        return record

    def history(self, key: ReportKey) -> list[ReportRecord]:
        with self._lock:
            return list(self._history.get(key, ()))

    def apply_review(
        self,
        report_id: str,
        decision: ReportStatus | str,
        notes: str | None = None,
        reviewer: str | None = None,
    ) -> ReportRecord:
        with self._lock:
            try:
                record = self._by_id[report_id]
            except KeyError:
                raise ReportNotFoundError(report_id) from None
            updated = review.apply_review(record, decision, notes=notes, reviewer=reviewer)
            if updated is record:
                return record
            self._by_id[report_id] = updated
            key = updated.key()
            if self._current.get(key) is record:
                self._current[key] = updated
            else:
                self._history[key] = [updated if item is record else item for item in self._history.get(key, [])]
        logger.info("report_reviewed", report_id=report_id, status=updated.status.value, reviewer=reviewer)
        return updated


class StaticReferenceCatalog:
    def __init__(
        self,
        operators: Sequence[OperatorRef] = (),
        regulators: Sequence[RegulatorRef] = (),
    ) -> None:
        self._operators = tuple(operators)
        self._regulators = tuple(regulators)

    def get_operator_catalog(self) -> list[OperatorRef]:
        return list(self._operators)

    def get_regulator_catalog(self) -> list[RegulatorRef]:
        return list(self._regulators)
