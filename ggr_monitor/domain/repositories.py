"""Repository and collaborator interfaces anchoring the domain layer."""
from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, Sequence

from .models import OperatorRef, RegulatorRef, ReportKey, ReportRecord, ReportStatus
from .results import ForecastPoint, MonthlyTrend

if TYPE_CHECKING:
    from .aggregation import ReportFilter


class ReportRecordRepository(Protocol):
    """Read and review access to persisted report records."""

    def fetch_report_records(self, report_filter: ReportFilter | None = None) -> Sequence[ReportRecord]:
        ...

    def get(self, report_id: str) -> ReportRecord:
        ...

    def save(self, record: ReportRecord) -> ReportRecord:
        ...

    def history(self, key: ReportKey) -> Sequence[ReportRecord]:
        ...

    def apply_review(
        self,
        report_id: str,
        decision: ReportStatus | str,
        notes: str | None = None,
        reviewer: str | None = None,
    ) -> ReportRecord:
        ...


class SubmissionRepository(Protocol):
    """Keeps uploaded spreadsheets so they can be re-parsed or previewed."""

    def store_raw_submission(self, report_id: str, filename: str, content: bytes) -> None:
        ...

    def fetch_raw_submission(self, report_id: str) -> bytes:
        ...


class ReferenceCatalog(Protocol):
    def get_operator_catalog(self) -> Sequence[OperatorRef]:
        ...

    def get_regulator_catalog(self) -> Sequence[RegulatorRef]:
        ...


class Forecaster(Protocol):
    """Black-box model turning a monthly series into predicted points."""

    def predict(self, series: Sequence[MonthlyTrend], horizon: int) -> Sequence[ForecastPoint]:
        ...
