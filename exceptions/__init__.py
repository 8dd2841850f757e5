"""
Custom exceptions module.
"""

from exceptions.errors import (
    # Base exceptions
    AppError,
    ValidationError,

    # Reconcile
    ReconcileSlackError,

    # Batch evaluation
    AssemblyEvaluationError,
)

__all__ = [
    # Base
    "AppError",
    "ValidationError",

    # Reconcile
    "ReconcileSlackError",

    # Batch evaluation
    "AssemblyEvaluationError",
]
