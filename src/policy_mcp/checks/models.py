"""Typed models for format checks and duplicate validation."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

Severity = Literal["error", "warning"]


@dataclass(slots=True, frozen=True)
class CheckIssue:
    """One problem found in a policy file, 1-based line."""

    line: int
    severity: Severity
    code: str
    message: str


@dataclass(slots=True, frozen=True)
class CheckResult:
    valid: bool
    errors: int
    warnings: int
    issues: tuple[CheckIssue, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, object]:
        return {
            "valid": self.valid,
            "errors": self.errors,
            "warnings": self.warnings,
            "issues": [
                {
                    "line": issue.line,
                    "severity": issue.severity,
                    "code": issue.code,
                    "message": issue.message,
                }
                for issue in self.issues
            ],
        }


@dataclass(slots=True, frozen=True)
class DuplicateSection:
    """A reference declared by more than one file."""

    section: str
    files: tuple[str, ...]


@dataclass(slots=True, frozen=True)
class ValidationResult:
    valid: bool
    errors: tuple[DuplicateSection, ...] = field(default_factory=tuple)


@dataclass(slots=True, frozen=True)
class ReferenceReport:
    """Outcome of validating a list of requested references."""

    valid: bool
    checked: int
    invalid: tuple[str, ...]
    details: tuple[str, ...]
    duplicates: tuple[DuplicateSection, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, object]:
        return {
            "valid": self.valid,
            "checked": self.checked,
            "invalid": list(self.invalid),
            "details": list(self.details),
            "duplicates": [
                {"section": item.section, "files": list(item.files)} for item in self.duplicates
            ],
        }
