"""
Exception taxonomy for the delta engine.

Each error carries a message plus an ``error_details`` dictionary with
the values that caused it. Recovery is always the caller's decision:
a RangeError or StaleDeltaError means "ask for a fresh diff", never
"retry the same mutation".
"""

from __future__ import annotations

from typing import Any, Optional


class DeltaError(Exception):
    """Base class for delta engine errors."""

    def __init__(self, message: str, error_details: Optional[dict[str, Any]] = None) -> None:
        """
        Initialize the delta error.

        Args:
            message: Human readable error message
            error_details: Values describing the failure
        """
        super().__init__(message)
        self.message = message
        self.error_details = error_details or {}


class MalformedEditScriptError(DeltaError):
    """An edit script is not ordered, overlaps itself or exceeds the texts."""


class RangeError(DeltaError, IndexError):
    """An offset or index lies outside the current bounds."""


class StaleDeltaError(DeltaError):
    """A delta is no longer part of the model's current delta list."""


class DeltaStateError(DeltaError):
    """The delta's status does not allow the requested operation."""


class BaseMismatchError(DeltaError):
    """Two diffs that should share a base text do not."""


class CancelledException(Exception):
    """Raised when a computation is cancelled."""
    pass
