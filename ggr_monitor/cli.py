"""Command-line entrypoint for ingesting and checking operator returns."""
from __future__ import annotations

import argparse
import sys
from pathlib import Path

from ggr_monitor.application.dto import SubmissionRequest
from ggr_monitor.application.use_cases import (
    BatchIngestUseCase,
    IngestionContext,
    IngestSubmissionUseCase,
    ReviewReportUseCase,
    SnapshotUseCase,
)
from ggr_monitor.domain.aggregation import ReportFilter, percentage_growth
from ggr_monitor.domain.models import Channel, ReportingPeriod, ReportStatus
from ggr_monitor.infrastructure.repositories.memory_repositories import InMemoryReportRepository
from ggr_monitor.presentation.quality_report import render_csv


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="ggr-monitor", description="Ingest operator revenue returns and check them")
    subparsers = parser.add_subparsers(dest="command", required=True)

    scan = subparsers.add_parser("scan", help="Ingest files and print quality and trend summaries")
    scan.add_argument("files", nargs="+", type=Path, help="Spreadsheets to ingest (xlsx, xls, ods, csv)")
    scan.add_argument("--operator", type=str, help="Operator name when the sheet has no operator column")
    scan.add_argument("--period", type=str, help="Reporting month (YYYY-MM) when the sheet has none")
    scan.add_argument("--channel", choices=[c.value for c in Channel], default=Channel.ONLINE.value)
    scan.add_argument("--regulator", type=str, help="Regulator id the returns were filed with")
    scan.add_argument("--approve", action="store_true", help="Approve every ingested report before summarising")
    scan.add_argument("--issues-csv", type=Path, help="Write the data-quality issues to this CSV file")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv if argv is not None else sys.argv[1:])

    try:
        period = ReportingPeriod.from_key(args.period) if args.period else None
    except ValueError:
        print(f"Invalid --period {args.period!r}; expected YYYY-MM", file=sys.stderr)
        return 2

    repository = InMemoryReportRepository()
    ingest = IngestSubmissionUseCase(IngestionContext(report_repository=repository))
    requests = [
        SubmissionRequest(
            filename=path.name,
            content=path.read_bytes(),
            channel=Channel(args.channel),
            operator_name=args.operator,
            regulator_id=args.regulator,
            period=period,
        )
        for path in args.files
    ]
    outcomes = BatchIngestUseCase(ingest).execute(requests)

    print("Ingestion")
    print("=========")
    for outcome in outcomes:
        if outcome.ok:
            print(f"- {outcome.filename}: {len(outcome.result.records)} report(s)")
        else:
            print(f"- {outcome.filename}: FAILED ({outcome.error})")

    if args.approve:
        review = ReviewReportUseCase(repository)
        for record in repository.fetch_report_records():
            review.execute(record.report_id, ReportStatus.APPROVED, reviewer="cli")

    snapshot = SnapshotUseCase(repository).execute(ReportFilter(include_all_statuses=not args.approve))

    quality = snapshot.quality
    print("\nData Quality")
    print("============")
    print(f"Reports scanned: {quality.records_scanned}")
    print(f"Missing months: {len(quality.missing_months)}")
    print(f"Invalid rows: {len(quality.invalid_rows)}")
    print(f"Balance discrepancies: {len(quality.balance_discrepancies)}")
    for issue in quality.iter_all_issues():
        print(f"- {issue.issue_type}: {issue.message}")

    print("\nMonthly Trends")
    print("==============")
    previous = None
    for trend in snapshot.dashboard.monthly_trends:
        growth = percentage_growth(previous, trend.total_ggr) if previous is not None else None
        growth_text = f" ({growth:+.1f}%)" if growth is not None else ""
        print(f"{trend.month}: GGR {trend.total_ggr:,.2f} on stake {trend.total_stake:,.2f}{growth_text}")
        previous = trend.total_ggr

    print("\nOperator Ranking")
    print("================")
    for position, item in enumerate(snapshot.dashboard.operator_performance, start=1):
        print(f"{position}. {item.operator_name}: GGR {item.total_ggr:,.2f} across {item.report_count} report(s)")

    if args.issues_csv:
        args.issues_csv.write_bytes(render_csv(quality))

    return 0 if all(outcome.ok for outcome in outcomes) else 1


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
