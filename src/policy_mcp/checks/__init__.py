"""Read-only format checks and duplicate validation."""

from policy_mcp.checks.checker import check_policy_content, check_policy_file, format_check_result
from policy_mcp.checks.models import (
    CheckIssue,
    CheckResult,
    DuplicateSection,
    ReferenceReport,
    ValidationResult,
)
from policy_mcp.checks.validator import (
    format_duplicate_errors,
    validate_from_index,
    validate_references,
)

__all__ = [
    "CheckIssue",
    "CheckResult",
    "DuplicateSection",
    "ReferenceReport",
    "ValidationResult",
    "check_policy_content",
    "check_policy_file",
    "format_check_result",
    "format_duplicate_errors",
    "validate_from_index",
    "validate_references",
]
