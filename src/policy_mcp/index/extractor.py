"""Boundary-based section extraction and section header scanning."""

from __future__ import annotations

from pathlib import Path

from policy_mcp.notation import (
    FenceTracker,
    is_end_marker,
    is_section_marker,
    match_section_header,
)


def scan_section_references(text: str) -> tuple[str, ...]:
    """Return references of every section-opening header outside fenced code, in file order."""
    tracker = FenceTracker()
    found: list[str] = []
    for line in text.split("\n"):
        if tracker.is_code(line):
            continue
        header = match_section_header(line)
        if header is not None and header.opens_section:
            found.append(header.reference)
    return tuple(found)


def read_file_references(path: str | Path) -> tuple[str, ...]:
    """Read one policy file and scan it for section headers."""
    text = Path(path).read_text(encoding="utf-8")
    return scan_section_references(text)


def extract_section(text: str, prefix: str, path: str) -> str:
    """Return the header line and body of ``§prefix.path`` from text, or "" when absent.

    A top-level section runs until the next depth-2 header of the same
    prefix, the ``{§END}`` marker or end of file. A subsection runs until any
    section marker, ``{§END}`` or end of file. Markers inside fenced code
    never start or stop a section.
    """
    return extract_section_from_lines(text.split("\n"), prefix, path)


def extract_section_from_lines(lines: list[str], prefix: str, path: str) -> str:
    top_level = "." not in path
    tracker = FenceTracker()
    extracted: list[str] = []
    in_range = False
    for line in lines:
        if tracker.is_code(line):
            if in_range:
                extracted.append(line)
            continue
        if not in_range:
            header = match_section_header(line)
            if (
                header is not None
                and header.opens_section
                and header.prefix == prefix
                and header.path == path
            ):
                in_range = True
                extracted.append(line)
            continue
        if _stops_section(line, prefix, top_level):
            break
        extracted.append(line)
    return "\n".join(extracted)


def _stops_section(line: str, prefix: str, top_level: bool) -> bool:
    if is_end_marker(line):
        return True
    if not top_level:
        return is_section_marker(line)
    header = match_section_header(line)
    return header is not None and header.depth == 2 and header.prefix == prefix
