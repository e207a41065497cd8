"""SafeRoute Backend — Error types"""

from typing import Any, Optional


class SafeRouteError(Exception):
    """Base class for errors surfaced by the scoring core."""

    code = "SAFEROUTE_ERROR"

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class DataInitializationError(SafeRouteError):
    """The crime dataset could not be generated or indexed. Fatal."""

    code = "DATA_INITIALIZATION_FAILED"


class ScoringComputationError(SafeRouteError):
    """Unexpected internal fault while scoring. Never retried internally."""

    code = "SCORING_FAILED"


class InvalidInputError(SafeRouteError):
    """Input rejected before any computation began."""

    code = "INVALID_INPUT"
