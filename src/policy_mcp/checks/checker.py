"""Structural format checks for a single policy file."""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Final

from policy_mcp.checks.models import CheckIssue, CheckResult
from policy_mcp.notation import SECTION_SIGN, FenceTracker, base_prefix, match_section_header

_CANDIDATE_RE: Final[re.Pattern[str]] = re.compile(r"^#{2,}\s*\{" + SECTION_SIGN)

MALFORMED_SECTION = "MALFORMED_SECTION"
WRONG_HEADING_LEVEL = "WRONG_HEADING_LEVEL"
ORPHAN_SUBSECTION = "ORPHAN_SUBSECTION"
NUMBERING_GAP = "NUMBERING_GAP"
MIXED_PREFIX = "MIXED_PREFIX"
UNCLOSED_FENCE = "UNCLOSED_FENCE"


@dataclass(slots=True, frozen=True)
class _SeenHeader:
    line: int
    prefix: str
    numbers: tuple[int, ...]

    @property
    def label(self) -> str:
        return f"{SECTION_SIGN}{self.prefix}." + ".".join(str(n) for n in self.numbers)


def check_policy_file(path: str | Path) -> CheckResult:
    """Read and check one file."""
    return check_policy_content(Path(path).read_text(encoding="utf-8"))


def check_policy_content(content: str) -> CheckResult:
    """Check section headers, numbering and fences in policy text.

    Lines inside fenced code are ignored. Issues come back sorted by line.
    """
    issues: list[CheckIssue] = []
    headers: list[_SeenHeader] = []
    detected_base: str | None = None
    tracker = FenceTracker()

    for line in content.split("\n"):
        if tracker.is_code(line):
            continue
        line_number = tracker.line_number
        if _CANDIDATE_RE.match(line) is None:
            continue
        header = match_section_header(line)
        if header is None:
            issues.append(
                CheckIssue(
                    line=line_number,
                    severity="error",
                    code=MALFORMED_SECTION,
                    message=(
                        "Malformed section header. Expected format: "
                        f"## {{{SECTION_SIGN}PREFIX.NUMBER}} or ### {{{SECTION_SIGN}PREFIX.N.M}}"
                    ),
                )
            )
            continue

        base = base_prefix(header.prefix)
        if detected_base is None:
            detected_base = base
        elif base != detected_base:
            issues.append(
                CheckIssue(
                    line=line_number,
                    severity="warning",
                    code=MIXED_PREFIX,
                    message=(
                        f"Mixed prefixes in file: {header.prefix} "
                        f"(expected {detected_base} or {detected_base}-*)"
                    ),
                )
            )

        hashes = "#" * header.depth
        if header.is_top_level and header.depth != 2:
            issues.append(
                CheckIssue(
                    line=line_number,
                    severity="error",
                    code=WRONG_HEADING_LEVEL,
                    message=(
                        f"Whole section {header.reference} should use ## (level 2), "
                        f"found {hashes} (level {header.depth})"
                    ),
                )
            )
        elif not header.is_top_level and header.depth < 3:
            issues.append(
                CheckIssue(
                    line=line_number,
                    severity="error",
                    code=WRONG_HEADING_LEVEL,
                    message=(
                        f"Subsection {header.reference} should use ### or deeper (level 3+), "
                        f"found {hashes} (level {header.depth})"
                    ),
                )
            )
        headers.append(
            _SeenHeader(
                line=line_number,
                prefix=header.prefix,
                numbers=tuple(int(part) for part in header.path.split(".")),
            )
        )

    if tracker.in_fence and tracker.opened_at is not None:
        issues.append(
            CheckIssue(
                line=tracker.opened_at,
                severity="error",
                code=UNCLOSED_FENCE,
                message=f"Code block opened at line {tracker.opened_at} is never closed",
            )
        )

    issues.extend(_orphan_issues(headers))
    issues.extend(_numbering_issues(headers))
    issues.sort(key=lambda issue: issue.line)
    errors = sum(1 for issue in issues if issue.severity == "error")
    warnings = len(issues) - errors
    return CheckResult(valid=errors == 0, errors=errors, warnings=warnings, issues=tuple(issues))


def _orphan_issues(headers: Sequence[_SeenHeader]) -> list[CheckIssue]:
    whole = {(item.prefix, item.numbers[0]) for item in headers if len(item.numbers) == 1}
    issues: list[CheckIssue] = []
    for item in headers:
        if len(item.numbers) == 1 or (item.prefix, item.numbers[0]) in whole:
            continue
        parent = f"{SECTION_SIGN}{item.prefix}.{item.numbers[0]}"
        issues.append(
            CheckIssue(
                line=item.line,
                severity="error",
                code=ORPHAN_SUBSECTION,
                message=f"Subsection {item.label} has no parent section {parent}",
            )
        )
    return issues


def _numbering_issues(headers: Sequence[_SeenHeader]) -> list[CheckIssue]:
    whole: dict[str, dict[int, int]] = {}
    subsections: dict[str, dict[int, int]] = {}
    for item in headers:
        if len(item.numbers) == 1:
            scope = f"{SECTION_SIGN}{item.prefix}"
            whole.setdefault(scope, {}).setdefault(item.numbers[0], item.line)
        elif len(item.numbers) == 2:
            parent = f"{SECTION_SIGN}{item.prefix}.{item.numbers[0]}"
            subsections.setdefault(parent, {}).setdefault(item.numbers[1], item.line)

    issues: list[CheckIssue] = []
    for scope, seen in whole.items():
        issues.extend(_sequence_issues(scope, seen, subsection=False))
    for scope, seen in subsections.items():
        issues.extend(_sequence_issues(scope, seen, subsection=True))
    return issues


def _sequence_issues(scope: str, seen: dict[int, int], subsection: bool) -> list[CheckIssue]:
    """Report a start other than 1 and every gap among sibling numbers.

    ``seen`` maps each number to the line of its first header.
    """
    numbers = sorted(seen)
    dot = "." if subsection else ""
    issues: list[CheckIssue] = []
    if numbers[0] != 1:
        if subsection:
            message = f"Subsections under {scope} start at .{numbers[0]} instead of .1"
        else:
            message = f"Sections for {scope} start at {numbers[0]} instead of 1"
        issues.append(
            CheckIssue(line=seen[numbers[0]], severity="error", code=NUMBERING_GAP, message=message)
        )
    for previous, current in zip(numbers, numbers[1:]):
        if current == previous + 1:
            continue
        missing = str(previous + 1) if current - previous == 2 else f"{previous + 1}-{current - 1}"
        noun = "subsections" if subsection else "numbering"
        issues.append(
            CheckIssue(
                line=seen[current],
                severity="error",
                code=NUMBERING_GAP,
                message=f"Gap in {scope} {noun}: missing {dot}{missing} before {dot}{current}",
            )
        )
    return issues


def format_check_result(result: CheckResult, file_path: str) -> str:
    """Render a check result as a short human-readable report."""
    if result.valid and result.warnings == 0:
        return f"✓ {file_path}: OK"
    lines = [f"{'⚠' if result.valid else '✗'} {file_path}"]
    for issue in result.issues:
        icon = "  ✗" if issue.severity == "error" else "  ⚠"
        lines.append(f"{icon} Line {issue.line}: [{issue.code}] {issue.message}")
    lines.append("")
    lines.append(f"  {result.errors} error(s), {result.warnings} warning(s)")
    return "\n".join(lines)
