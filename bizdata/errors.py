"""
Error taxonomy for the data layer.

Adapters translate driver and HTTP failures into these types before they
cross the repository boundary. Absence is never an error: lookups return
None and deletes return False.
"""

from __future__ import annotations


class BackendError(Exception):
    """Base class for every failure surfaced by a backend adapter."""

    retryable: bool = False


class BackendUnavailable(BackendError):
    """Transient connectivity failure or timeout. Safe to retry reads."""

    retryable = True


class InvalidQuery(BackendError):
    """Malformed filter, sort field, or write payload. A caller bug."""


class PermissionDenied(BackendError):
    """The backend refused the operation for the current credentials."""


class PartialAggregationFailure(BackendError):
    """An aggregate completed with zero-substituted dependents."""

    def __init__(self, warnings: int, cancelled: bool = False) -> None:
        self.warnings = warnings
        self.cancelled = cancelled
        detail = f"{warnings} dependent fetch(es) failed"
        if cancelled:
            detail += "; aggregation was cancelled before completion"
        super().__init__(detail)
