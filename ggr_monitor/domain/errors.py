"""Exception taxonomy shared by every layer."""
from __future__ import annotations


class GgrMonitorError(Exception):
    """Base class for all errors raised by the package."""


class DecodeError(GgrMonitorError):
    """The uploaded buffer could not be turned into a grid."""

    def __init__(self, message: str, filename: str | None = None) -> None:
        self.reason = message
        self.filename = filename
        if filename:
            message = f"{filename}: {message}"
        super().__init__(message)


class RowValidationError(GgrMonitorError):
    """A single data row could not be mapped."""


class CalculationError(GgrMonitorError):
    """Numeric state that cannot be a legitimate report figure."""


class QualityCheckError(GgrMonitorError):
    """A quality rule could not evaluate one record."""


class AggregationInputError(GgrMonitorError, ValueError):
    """Filter or query parameters are malformed."""


class ReviewTransitionError(GgrMonitorError):
    """A review decision is not allowed from the record's current status."""


class ReportNotFoundError(GgrMonitorError, KeyError):
    def __str__(self) -> str:
        return f"Unknown report id: {self.args[0]}" if self.args else "Unknown report id"
