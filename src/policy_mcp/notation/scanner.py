"""Embedded reference detection that ignores fenced and inline code."""

from __future__ import annotations

import re
from typing import Final

from policy_mcp.notation.fences import FenceTracker
from policy_mcp.notation.parser import END_PREFIX, PREFIX_PATTERN, SECTION_SIGN

_INLINE_CODE_RE: Final[re.Pattern[str]] = re.compile(r"`[^`]*`")
_EMBEDDED_RE: Final[re.Pattern[str]] = re.compile(
    SECTION_SIGN
    + r"(?P<prefix>"
    + PREFIX_PATTERN
    + r")(?:\.(?P<path>[0-9]+(?:\.[0-9]+)*(?:-[0-9]+(?:\.[0-9]+)*)?)|(?![.\w-]))"
)


def strip_code(text: str) -> str:
    """Drop fenced blocks (delimiters included) and inline code spans from text."""
    tracker = FenceTracker()
    kept = [line for line in text.split("\n") if not tracker.is_code(line)]
    return _INLINE_CODE_RE.sub("", "\n".join(kept))


def find_embedded_references(text: str) -> list[str]:
    """Return every reference outside code, in order of appearance, duplicates kept.

    Numbered references keep any range suffix (``§APP.4.1-3``) for later
    expansion. Bare prefixes are returned as wildcards, except the reserved
    ``§END`` marker.
    """
    found: list[str] = []
    for match in _EMBEDDED_RE.finditer(strip_code(text)):
        prefix = match.group("prefix")
        path = match.group("path")
        if path is not None:
            found.append(f"{SECTION_SIGN}{prefix}.{path}")
            continue
        if prefix == END_PREFIX:
            continue
        found.append(f"{SECTION_SIGN}{prefix}")
    return found
