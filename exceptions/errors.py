"""
Custom exception classes for the application.

The evaluators report data-quality problems (missing ETA, past-due PO line,
no demand) inside their results and never raise for them. Exceptions are
reserved for caller mistakes on write-style helpers and for per-assembly
failures captured by the batch runner.
"""

from typing import Optional, Any
from datetime import datetime, timezone


class AppError(Exception):
    """
    Base exception for all application errors.

    All custom exceptions inherit from this.

    Attributes:
        code: Error code (e.g., "RECONCILE_EXCEEDS_SLACK")
        message: Human-readable message
        status_code: HTTP-style status code for callers that surface it
        details: Additional context
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: Optional[dict[str, Any]] = None
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to API response format."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
                "timestamp": self.timestamp
            }
        }


class ValidationError(AppError):
    """Validation failed (422)."""

    def __init__(
        self,
        message: str,
        code: str = "VALIDATION_ERROR",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=422,
            details=details
        )


# ===================
# RECONCILE ERRORS
# ===================

class ReconcileSlackError(ValidationError):
    """Requested reconcile breakdown exceeds the remaining slack at a stage."""

    def __init__(
        self,
        stage: str,
        message: str,
        variant_index: Optional[int] = None,
        remaining: Optional[Any] = None
    ):
        details: dict[str, Any] = {"stage": stage}
        if variant_index is not None:
            details["variant_index"] = variant_index
        if remaining is not None:
            details["remaining"] = str(remaining)
        super().__init__(
            code="RECONCILE_EXCEEDS_SLACK",
            message=message,
            details=details
        )


# ===================
# BATCH EVALUATION ERRORS
# ===================

class AssemblyEvaluationError(AppError):
    """Computing one assembly failed; the rest of the batch continues."""

    def __init__(self, assembly_id: int, message: str):
        super().__init__(
            code="ASSEMBLY_EVALUATION_FAILED",
            message=message,
            status_code=500,
            details={"assembly_id": assembly_id}
        )
