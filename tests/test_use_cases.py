from decimal import Decimal
from pathlib import Path

import pytest

from ggr_monitor.application.dto import SubmissionRequest
from ggr_monitor.application.use_cases import (
    AnalyticsUseCase,
    BatchIngestUseCase,
    DataQualityScanUseCase,
    ForecastUseCase,
    IngestionContext,
    IngestSubmissionUseCase,
    PreviewSubmissionUseCase,
    ReconcileWithEmsUseCase,
    ReviewReportUseCase,
    SnapshotUseCase,
)
from ggr_monitor.domain.aggregation import ReportFilter
from ggr_monitor.domain.errors import AggregationInputError, DecodeError, ReviewTransitionError
from ggr_monitor.domain.models import OperatorRef, ReportingPeriod, ReportStatus
from ggr_monitor.domain.results import ForecastPoint
from ggr_monitor.infrastructure.archive.file_repository import FileSystemSubmissionRepository
from ggr_monitor.infrastructure.repositories.memory_repositories import (
    InMemoryReportRepository,
    StaticReferenceCatalog,
)


def csv_return(*lines: str) -> bytes:
    return ("Operator,Month,Stake,Payout,Opening Balance,Closing Balance\n" + "\n".join(lines) + "\n").encode()


def make_ingest(repository: InMemoryReportRepository, **kwargs) -> IngestSubmissionUseCase:
    return IngestSubmissionUseCase(IngestionContext(report_repository=repository, **kwargs))


def test_batch_with_corrupt_middle_file():
    repository = InMemoryReportRepository()
    requests = [
        SubmissionRequest("jan.csv", csv_return("Acme,2024-01,1000,600,0,400")),
        SubmissionRequest("broken.xlsx", b"this is not a workbook"),
        SubmissionRequest("feb.csv", csv_return("Acme,2024-02,800,500,400,700")),
    ]

    outcomes = BatchIngestUseCase(make_ingest(repository)).execute(requests)

    assert [outcome.index for outcome in outcomes] == [0, 1, 2]
    assert [outcome.ok for outcome in outcomes] == [True, False, True]
    assert "broken.xlsx" in outcomes[1].error
    assert outcomes[1].result is None
    assert outcomes[0].result.records[0].total_ggr == Decimal("400")
    assert outcomes[2].result.records[0].period == ReportingPeriod(2024, 2)
    assert len(repository.fetch_report_records()) == 2


def test_single_ingest_surfaces_decode_error():
    repository = InMemoryReportRepository()

    with pytest.raises(DecodeError):
        make_ingest(repository).execute(SubmissionRequest("broken.xls", b"\xd0\xcf\x11\xe0garbage"))

    assert repository.fetch_report_records() == []


def test_ingest_with_context_for_sheet_without_operator_column():
    repository = InMemoryReportRepository()
    request = SubmissionRequest(
        "acme.csv",
        b"Stake,Payout\n1000,600\n",
        operator_name="Acme",
        period=ReportingPeriod(2024, 1),
        regulator_id="mgb",
    )

    (record,) = make_ingest(repository).execute(request).records

    assert record.operator_name == "Acme"
    assert record.regulator_id == "mgb"
    assert record.status == ReportStatus.PENDING
    assert record.total_gaming_tax == Decimal("80")


def test_catalog_ids_are_used_for_operator_names():
    repository = InMemoryReportRepository()
    catalog = StaticReferenceCatalog(operators=[OperatorRef("op-42", "Acme")])

    result = make_ingest(repository, catalog=catalog).execute(
        SubmissionRequest("jan.csv", csv_return("acme,2024-01,10,5,,"))
    )

    assert result.records[0].operator_id == "op-42"


def test_invalid_rows_surface_in_quality_scan():
    repository = InMemoryReportRepository()
    content = csv_return("Acme,2024-01,1000,600,0,400", "Acme,2024-01,n/a,10,,")
    make_ingest(repository).execute(SubmissionRequest("jan.csv", content))

    report = DataQualityScanUseCase(repository).execute(include_all_statuses=True)

    (issue,) = report.invalid_rows
    assert issue.issue_description.startswith("Row 3: stake")
    assert report.balance_discrepancies == ()


def test_review_flow():
    repository = InMemoryReportRepository()
    (record,) = make_ingest(repository).execute(SubmissionRequest("jan.csv", csv_return("Acme,2024-01,10,5,,"))).records
    review = ReviewReportUseCase(repository)

    approved = review.execute(record.report_id, "approved", reviewer="alice")
    again = review.execute(record.report_id, ReportStatus.APPROVED, reviewer="bob")

    assert approved.status == ReportStatus.APPROVED
    assert again.review.reviewer == "alice"
    with pytest.raises(ReviewTransitionError):
        review.execute(record.report_id, ReportStatus.REJECTED, notes="late")


def test_rejection_requires_notes():
    repository = InMemoryReportRepository()
    (record,) = make_ingest(repository).execute(SubmissionRequest("jan.csv", csv_return("Acme,2024-01,10,5,,"))).records

    with pytest.raises(ReviewTransitionError):
        repository.apply_review(record.report_id, ReportStatus.REJECTED)

    rejected = repository.apply_review(record.report_id, ReportStatus.REJECTED, notes="figures do not add up")
    assert rejected.review.notes == "figures do not add up"


def test_unknown_review_decision_is_a_transition_error():
    repository = InMemoryReportRepository()
    (record,) = make_ingest(repository).execute(SubmissionRequest("jan.csv", csv_return("Acme,2024-01,10,5,,"))).records

    with pytest.raises(ReviewTransitionError):
        ReviewReportUseCase(repository).execute(record.report_id, "maybe")

    assert repository.get(record.report_id).status == ReportStatus.PENDING


def test_resubmission_supersedes_pending_record():
    repository = InMemoryReportRepository()
    ingest = make_ingest(repository)
    (first,) = ingest.execute(SubmissionRequest("jan.csv", csv_return("Acme,2024-01,10,5,,"))).records
    (second,) = ingest.execute(SubmissionRequest("jan-v2.csv", csv_return("Acme,2024-01,20,5,,"))).records

    current = repository.fetch_report_records()

    assert [record.report_id for record in current] == [second.report_id]
    assert [record.report_id for record in repository.history(second.key())] == [first.report_id]
    assert repository.get(first.report_id).total_stake == Decimal("10")


def test_reprocessing_same_file_keeps_review():
    repository = InMemoryReportRepository()
    ingest = make_ingest(repository)
    request = SubmissionRequest("jan.csv", csv_return("Acme,2024-01,10,5,,"))
    (record,) = ingest.execute(request).records
    repository.apply_review(record.report_id, ReportStatus.APPROVED)

    (again,) = ingest.execute(request).records

    assert again.report_id == record.report_id
    assert again.status == ReportStatus.APPROVED
    assert repository.history(record.key()) == []


def test_snapshot_and_analytics_share_the_filter():
    repository = InMemoryReportRepository()
    ingest = make_ingest(repository)
    for month, opening, closing in (("2024-01", "0", "400"), ("2024-03", "100", "1000")):
        line = f"Acme,{month},1000,600,{opening},{closing}"
        (record,) = ingest.execute(SubmissionRequest(f"{month}.csv", csv_return(line))).records
        repository.apply_review(record.report_id, ReportStatus.APPROVED)

    snapshot = SnapshotUseCase(repository).execute(ReportFilter())
    dashboard = AnalyticsUseCase(repository).dashboard()

    assert [issue.expected_period.key for issue in snapshot.quality.missing_months] == ["2024-02"]
    assert [issue.difference for issue in snapshot.quality.balance_discrepancies] == [Decimal("500")]
    assert snapshot.dashboard == dashboard
    assert [trend.month for trend in dashboard.monthly_trends] == ["2024-01", "2024-03"]


class FlatForecaster:
    def __init__(self) -> None:
        self.calls = []

    def predict(self, series, horizon):
        self.calls.append((tuple(series), horizon))
        period = series[-1].period
        points = []
        for _ in range(horizon):
            period = period.next()
            points.append(ForecastPoint(period=period, ggr=series[-1].total_ggr))
        return points


def test_forecast_per_operator():
    repository = InMemoryReportRepository()
    ingest = make_ingest(repository)
    content = csv_return("Acme,2024-01,1000,600,,", "Beta,2024-01,500,100,,", "Acme,2024-02,900,600,,")
    ingest.execute(SubmissionRequest("q1.csv", content))
    forecaster = FlatForecaster()

    forecasts = ForecastUseCase(repository, forecaster).execute(
        2, ReportFilter(include_all_statuses=True), per_operator=True
    )

    assert [item.operator_name for item in forecasts] == ["Acme", "Beta"]
    acme = forecasts[0]
    assert [point.period.key for point in acme.forecast] == ["2024-03", "2024-04"]
    assert acme.forecast[0].ggr == Decimal("300")
    assert len(forecaster.calls) == 2


def test_forecast_rejects_non_positive_horizon():
    with pytest.raises(AggregationInputError):
        ForecastUseCase(InMemoryReportRepository(), FlatForecaster()).execute(0)


def test_ems_reconciliation_auto_approves_matches():
    repository = InMemoryReportRepository()
    content = csv_return("Acme,2024-01,1000,600,,", "Beta,2024-01,1000,500,,")
    acme, beta = make_ingest(repository).execute(SubmissionRequest("jan.csv", content)).records

    comparisons = ReconcileWithEmsUseCase(repository, auto_approve=True).execute(
        {acme.report_id: Decimal("405"), beta.report_id: Decimal("400")}
    )

    assert [c.match_status for c in comparisons] == ["matched", "mismatch"]
    (discrepancy,) = comparisons[1].discrepancies
    assert discrepancy.difference == Decimal("-100")
    assert discrepancy.percent_difference == Decimal("20")
    assert repository.get(acme.report_id).status == ReportStatus.APPROVED
    assert repository.get(beta.report_id).status == ReportStatus.PENDING


def test_preview_reads_stored_submission(tmp_path: Path):
    repository = InMemoryReportRepository()
    submissions = FileSystemSubmissionRepository(tmp_path / "uploads")
    lines = [f"Acme,2024-01,{n},0,," for n in range(40)]
    (record,) = make_ingest(repository, submission_repository=submissions).execute(
        SubmissionRequest("big.csv", csv_return(*lines))
    ).records

    preview = PreviewSubmissionUseCase(submissions).execute(record.report_id)

    assert preview.total_rows == 41
    assert len(preview.rows) == 30
    assert preview.rows[0][0] == "Operator"
