"""Employee terminations and final settlement."""

from payroll_modules.termination.models import (
    Termination,
    TerminationIssue,
    TerminationPreview,
    TerminationStatus,
)
from payroll_modules.termination.service import TerminationService

__all__ = [
    "Termination",
    "TerminationIssue",
    "TerminationPreview",
    "TerminationService",
    "TerminationStatus",
]
