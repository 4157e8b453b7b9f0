"""Report lifecycle transitions."""
from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone

from .errors import ReviewTransitionError
from .models import ReportRecord, ReportStatus, ReviewMetadata

REVIEW_DECISIONS = (ReportStatus.APPROVED, ReportStatus.REJECTED)


def apply_review(
    record: ReportRecord,
    decision: ReportStatus | str,
    notes: str | None = None,
    reviewer: str | None = None,
    reviewed_at: datetime | None = None,
) -> ReportRecord:
    """Move a pending record to approved or rejected.

    Repeating the decision a record already carries returns it unchanged, so
    callers may retry safely.
    """
    try:
        decision = ReportStatus(decision)
    except ValueError as exc:
        raise ReviewTransitionError(f"unknown review decision {decision!r}") from exc
    if decision not in REVIEW_DECISIONS:
        raise ReviewTransitionError(f"{decision.value} is not a review decision")
    if record.status == decision:
        return record
    if record.status != ReportStatus.PENDING:
        raise ReviewTransitionError(
            f"Report {record.report_id} is already {record.status.value}; cannot mark it {decision.value}"
        )
    if decision == ReportStatus.REJECTED and not (notes or "").strip():
        raise ReviewTransitionError("A rejection requires a reason")

    return replace(
        record,
        status=decision,
        review=ReviewMetadata(
            reviewer=reviewer,
            reviewed_at=reviewed_at or datetime.now(timezone.utc),
            notes=notes,
        ),
    )
