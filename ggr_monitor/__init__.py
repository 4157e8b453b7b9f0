"""Ingestion, quality checks and rollups for operator gaming revenue returns."""
from ggr_monitor.application.use_cases import (
    BatchIngestUseCase,
    IngestionContext,
    IngestSubmissionUseCase,
    SnapshotUseCase,
)
from ggr_monitor.domain.aggregation import AggregationEngine, ReportFilter
from ggr_monitor.domain.quality import DataQualityEngine
from ggr_monitor.infrastructure.parsing.row_mapper import RowMapper
from ggr_monitor.infrastructure.parsing.workbook import decode_workbook
from ggr_monitor.infrastructure.repositories.memory_repositories import (
    InMemoryReportRepository,
    StaticReferenceCatalog,
)

__all__ = [
    "AggregationEngine",
    "BatchIngestUseCase",
    "DataQualityEngine",
    "InMemoryReportRepository",
    "IngestionContext",
    "IngestSubmissionUseCase",
    "ReportFilter",
    "RowMapper",
    "SnapshotUseCase",
    "StaticReferenceCatalog",
    "decode_workbook",
]
