"""Application-level DTOs for submission ingestion and analytics."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Sequence

from ggr_monitor.domain.models import Channel, InvalidRow, ReportingPeriod, ReportRecord
from ggr_monitor.domain.results import DashboardAnalytics, DataQualityReport


@dataclass(slots=True, frozen=True)
class SubmissionRequest:
    """One uploaded file plus whatever the uploader told us about it."""

    filename: str
    content: bytes
    channel: Channel = Channel.ONLINE
    operator_id: str | None = None
    operator_name: str | None = None
    regulator_id: str | None = None
    period: ReportingPeriod | None = None
    extension: str | None = None
    opening_balance: Decimal | None = None
    closing_balance: Decimal | None = None
    submitted_at: datetime | None = None


@dataclass(slots=True, frozen=True)
class IngestionResult:
    filename: str
    records: Sequence[ReportRecord]
    unassigned_invalid_rows: Sequence[InvalidRow] = ()

    @property
    def report_ids(self) -> list[str]:
        return [record.report_id for record in self.records]


@dataclass(slots=True, frozen=True)
class FileOutcome:
    index: int
    filename: str
    result: IngestionResult | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(slots=True, frozen=True)
class AnalyticsSnapshot:
    quality: DataQualityReport
    dashboard: DashboardAnalytics


@dataclass(slots=True, frozen=True)
class SubmissionPreview:
    report_id: str
    rows: Sequence[Sequence[str]]
    total_rows: int
