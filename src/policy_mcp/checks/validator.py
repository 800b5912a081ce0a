"""Duplicate detection over the index and per-reference validation."""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from policy_mcp.checks.models import DuplicateSection, ReferenceReport, ValidationResult
from policy_mcp.index import SectionIndex
from policy_mcp.notation import sort_references
from policy_mcp.resolver import expand_requested


def validate_from_index(index: SectionIndex) -> ValidationResult:
    """Report every reference that more than one file declares."""
    if not index.duplicates:
        return ValidationResult(valid=True)
    errors = tuple(
        DuplicateSection(section=reference, files=index.duplicates[reference])
        for reference in sort_references(index.duplicates)
    )
    return ValidationResult(valid=False, errors=errors)


def format_duplicate_errors(errors: Sequence[DuplicateSection]) -> str:
    lines = ["Duplicate section IDs detected:"]
    for error in errors:
        lines.append(f"  - {error.section} appears in: {', '.join(error.files)}")
    return "\n".join(lines)


def validate_references(references: Iterable[str], index: SectionIndex) -> ReferenceReport:
    """Check that each requested reference exists in exactly one file.

    Wildcards and ranges are expanded first. ``valid`` reflects only the
    requested references; index-wide duplicates are reported in ``details``
    and ``duplicates`` regardless.
    """
    requested = list(references)
    global_result = validate_from_index(index)
    details: list[str] = []
    if not global_result.valid:
        details.append("Global validation errors:")
        details.append(format_duplicate_errors(global_result.errors))

    invalid: list[str] = []
    for reference in expand_requested(requested, index):
        duplicate_files = index.duplicates.get(reference)
        if duplicate_files is not None:
            invalid.append(reference)
            listing = "\n".join(f"  - {path}" for path in duplicate_files)
            details.append(f"{reference}: Found in multiple files:\n{listing}")
            continue
        if reference not in index.lookup:
            invalid.append(reference)
            details.append(f"{reference}: Section not found in policy files")

    return ReferenceReport(
        valid=not invalid,
        checked=len(requested),
        invalid=tuple(invalid),
        details=tuple(details),
        duplicates=global_result.errors,
    )
