"""Application services orchestrating ingestion, review and analytics."""
from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, localcontext
from typing import Mapping, Sequence

from ggr_monitor.application.dto import (
    AnalyticsSnapshot,
    FileOutcome,
    IngestionResult,
    SubmissionPreview,
    SubmissionRequest,
)
from ggr_monitor.config import SETTINGS, Settings
from ggr_monitor.domain.aggregation import AggregationEngine, ReportFilter
from ggr_monitor.domain.calculator import SubmissionContext, assemble_reports
from ggr_monitor.domain.errors import AggregationInputError
from ggr_monitor.domain.models import MappingResult, ReportRecord, ReportStatus
from ggr_monitor.domain.quality import DataQualityEngine
from ggr_monitor.domain.reconciliation import compare_with_ems
from ggr_monitor.domain.repositories import (
    Forecaster,
    ReferenceCatalog,
    ReportRecordRepository,
    SubmissionRepository,
)
from ggr_monitor.domain.results import (
    DashboardAnalytics,
    DataQualityReport,
    EmsComparison,
    OperatorForecast,
    RegulatorAnalytics,
)
from ggr_monitor.infrastructure.parsing.row_mapper import RowMapper
from ggr_monitor.infrastructure.parsing.utils import compute_file_hash
from ggr_monitor.infrastructure.parsing.workbook import decode_workbook
from ggr_monitor.logging_config import get_logger

logger = get_logger(__name__)

ALL_OPERATORS_LABEL = "All operators"


def _operator_universe(catalog: ReferenceCatalog | None) -> set[str] | None:
    if catalog is None:
        return None
    operators = catalog.get_operator_catalog()
    return {ref.operator_id for ref in operators} if operators else None


@dataclass(slots=True)
class IngestionContext:
    report_repository: ReportRecordRepository
    submission_repository: SubmissionRepository | None = None
    catalog: ReferenceCatalog | None = None
    row_mapper: RowMapper = field(default_factory=RowMapper)
    settings: Settings = SETTINGS


class IngestSubmissionUseCase:
    """Decode, map, compute and persist a single uploaded file.

    A DecodeError propagates before anything is stored.
    """

    def __init__(self, context: IngestionContext) -> None:
        self._context = context

    def execute(self, request: SubmissionRequest) -> IngestionResult:
        return self.record(request, self.prepare(request))

    def prepare(self, request: SubmissionRequest) -> MappingResult:
        settings = self._context.settings
        grid = decode_workbook(
            request.content,
            extension=request.extension,
            filename=request.filename,
            max_bytes=settings.max_file_bytes,
            max_rows=settings.max_rows,
        )
        return self._context.row_mapper.map(grid)

    def record(self, request: SubmissionRequest, mapping: MappingResult) -> IngestionResult:
        settings = self._context.settings
        submission = SubmissionContext(
            submitted_at=request.submitted_at or datetime.now(timezone.utc),
            channel=request.channel,
            operator_id=request.operator_id,
            operator_name=request.operator_name,
            regulator_id=request.regulator_id,
            period=request.period,
            file_hash=compute_file_hash(request.content),
            filename=request.filename,
            opening_balance=request.opening_balance,
            closing_balance=request.closing_balance,
            operator_lookup=self._operator_lookup(),
        )
        with localcontext(settings.decimal_context):
            records, leftover = assemble_reports(
                mapping, submission, settings.levy_rates_for(request.regulator_id)
            )

        saved = [self._context.report_repository.save(record) for record in records]
        if self._context.submission_repository is not None:
            for record in saved:
                self._context.submission_repository.store_raw_submission(
                    record.report_id, request.filename, request.content
                )

        logger.info(
            "submission_ingested",
            filename=request.filename,
            reports=len(saved),
            valid_rows=len(mapping.valid_rows),
            invalid_rows=len(mapping.invalid_rows),
        )
        return IngestionResult(filename=request.filename, records=saved, unassigned_invalid_rows=tuple(leftover))

    def _operator_lookup(self) -> dict[str, str]:
        catalog = self._context.catalog
        if catalog is None:
            return {}
        return {ref.operator_name.strip().lower(): ref.operator_id for ref in catalog.get_operator_catalog()}


class BatchIngestUseCase:
    """Ingest several files; one failing file never affects the others."""

    def __init__(self, ingest: IngestSubmissionUseCase, max_workers: int = SETTINGS.batch_workers) -> None:
        self._ingest = ingest
        self._max_workers = max_workers

    def execute(self, requests: Sequence[SubmissionRequest]) -> list[FileOutcome]:
        prepared: dict[int, MappingResult | Exception] = {}
        if requests:
            with ThreadPoolExecutor(max_workers=self._max_workers) as executor:
                future_to_index = {
                    executor.submit(self._ingest.prepare, request): index
                    for index, request in enumerate(requests)
                }
                for future in as_completed(future_to_index):
                    index = future_to_index[future]
                    try:
                        prepared[index] = future.result()
                    except Exception as exc:
                        prepared[index] = exc

        # Records are assembled and saved in upload order.
        outcomes: list[FileOutcome] = []
        for index, request in enumerate(requests):
            item = prepared[index]
            if isinstance(item, Exception):
                outcomes.append(self._failure(index, request, item))
                continue
            try:
                result = self._ingest.record(request, item)
            except Exception as exc:
                outcomes.append(self._failure(index, request, exc))
                continue
            outcomes.append(FileOutcome(index=index, filename=request.filename, result=result))

        logger.info(
            "batch_ingested",
            files=len(requests),
            failed=sum(1 for outcome in outcomes if not outcome.ok),
        )
        return outcomes

    @staticmethod
    def _failure(index: int, request: SubmissionRequest, exc: Exception) -> FileOutcome:
        logger.error("file_processing_failed", filename=request.filename, error=str(exc))
        return FileOutcome(index=index, filename=request.filename, error=str(exc))


class DataQualityScanUseCase:
    def __init__(
        self,
        repository: ReportRecordRepository,
        engine: DataQualityEngine | None = None,
        catalog: ReferenceCatalog | None = None,
    ) -> None:
        self._repository = repository
        self._engine = engine or DataQualityEngine(balance_tolerance=SETTINGS.balance_tolerance)
        self._catalog = catalog

    def execute(self, include_all_statuses: bool = False) -> DataQualityReport:
        return self._engine.scan(
            self._repository.fetch_report_records(),
            include_all_statuses=include_all_statuses,
            operator_universe=_operator_universe(self._catalog),
        )


class AnalyticsUseCase:
    def __init__(self, repository: ReportRecordRepository, engine: AggregationEngine | None = None) -> None:
        self._repository = repository
        self._engine = engine or AggregationEngine()

    def dashboard(self, report_filter: ReportFilter | None = None) -> DashboardAnalytics:
        return self._engine.dashboard(self._repository.fetch_report_records(), report_filter)

    def regulator_analytics(self, report_filter: ReportFilter | None = None) -> list[RegulatorAnalytics]:
        return self._engine.regulator_analytics(self._repository.fetch_report_records(), report_filter)


class SnapshotUseCase:
    """Quality scan and dashboard computed side by side over one fetched snapshot."""

    def __init__(
        self,
        repository: ReportRecordRepository,
        quality_engine: DataQualityEngine | None = None,
        aggregation_engine: AggregationEngine | None = None,
        catalog: ReferenceCatalog | None = None,
    ) -> None:
        self._repository = repository
        self._quality_engine = quality_engine or DataQualityEngine(balance_tolerance=SETTINGS.balance_tolerance)
        self._aggregation_engine = aggregation_engine or AggregationEngine()
        self._catalog = catalog

    def execute(self, report_filter: ReportFilter | None = None) -> AnalyticsSnapshot:
        report_filter = report_filter or ReportFilter()
        records = tuple(self._repository.fetch_report_records())
        universe = _operator_universe(self._catalog)
        with ThreadPoolExecutor(max_workers=2) as executor:
            quality = executor.submit(
                self._quality_engine.scan,
                records,
                include_all_statuses=report_filter.include_all_statuses,
                operator_universe=universe,
            )
            dashboard = executor.submit(self._aggregation_engine.dashboard, records, report_filter)
            return AnalyticsSnapshot(quality=quality.result(), dashboard=dashboard.result())


class ReviewReportUseCase:
    def __init__(self, repository: ReportRecordRepository) -> None:
        self._repository = repository

    def execute(
        self,
        report_id: str,
        decision: ReportStatus | str,
        notes: str | None = None,
        reviewer: str | None = None,
    ) -> ReportRecord:
        return self._repository.apply_review(report_id, decision, notes=notes, reviewer=reviewer)


class PreviewSubmissionUseCase:
    def __init__(self, submissions: SubmissionRepository, max_rows: int = SETTINGS.preview_rows) -> None:
        self._submissions = submissions
        self._max_rows = max_rows

    def execute(self, report_id: str) -> SubmissionPreview:
        grid = decode_workbook(self._submissions.fetch_raw_submission(report_id))
        rows = [tuple(cell.as_text() for cell in row) for row in grid.rows[: self._max_rows]]
        return SubmissionPreview(report_id=report_id, rows=rows, total_rows=len(grid))


class ForecastUseCase:
    def __init__(
        self,
        repository: ReportRecordRepository,
        forecaster: Forecaster,
        engine: AggregationEngine | None = None,
    ) -> None:
        self._repository = repository
        self._forecaster = forecaster
        self._engine = engine or AggregationEngine()

    def execute(
        self,
        horizon: int,
        report_filter: ReportFilter | None = None,
        per_operator: bool = False,
    ) -> list[OperatorForecast]:
        if horizon <= 0:
            raise AggregationInputError(f"forecast horizon must be positive, got {horizon}")
        selected = (report_filter or ReportFilter()).apply(self._repository.fetch_report_records())

        if not per_operator:
            groups = {ALL_OPERATORS_LABEL: selected}
        else:
            groups = {}
            for record in selected:
                groups.setdefault(record.operator_name, []).append(record)

        forecasts = []
        for name in sorted(groups):
            history = self._engine.monthly_trends(groups[name])
            if not history:
                continue
            points = self._forecaster.predict(history, horizon)
            forecasts.append(OperatorForecast(operator_name=name, history=history, forecast=tuple(points)))
        return forecasts


class ReconcileWithEmsUseCase:
    """Compare reported GGR with EMS figures; matches may be approved on the spot."""

    def __init__(
        self,
        repository: ReportRecordRepository,
        tolerance_pct: Decimal = SETTINGS.ems_tolerance_pct,
        auto_approve: bool = False,
    ) -> None:
        self._repository = repository
        self._tolerance_pct = tolerance_pct
        self._auto_approve = auto_approve

    def execute(self, ems_ggr: Mapping[str, Decimal], reviewer: str | None = None) -> list[EmsComparison]:
        comparisons = []
        for report_id, figure in ems_ggr.items():
            record = self._repository.get(report_id)
            comparison = compare_with_ems(record, figure, self._tolerance_pct)
            comparisons.append(comparison)
            if not comparison.matched:
                logger.warning(
                    "ems_mismatch",
                    report_id=report_id,
                    report_ggr=str(record.total_ggr),
                    ems_ggr=str(figure),
                )
            elif self._auto_approve and record.status == ReportStatus.PENDING:
                self._repository.apply_review(
                    report_id,
                    ReportStatus.APPROVED,
                    notes="GGR matches EMS within tolerance",
                    reviewer=reviewer,
                )
        return comparisons
