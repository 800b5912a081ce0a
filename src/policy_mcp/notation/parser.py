"""Section notation parsing, range expansion, ordering and hierarchy tests."""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Final

SECTION_SIGN: Final[str] = "§"
END_MARKER: Final[str] = "{§END}"
END_PREFIX: Final[str] = "END"

PREFIX_PATTERN: Final[str] = r"[A-Z][A-Z0-9]*(?:-[A-Z][A-Z0-9]*)*"
_PATH_PATTERN: Final[str] = r"[0-9]+(?:\.[0-9]+)*"

_NOTATION_RE: Final[re.Pattern[str]] = re.compile(
    r"^(?P<prefix>" + PREFIX_PATTERN + r")\.(?P<path>" + _PATH_PATTERN + r")$"
)
_PREFIX_ONLY_RE: Final[re.Pattern[str]] = re.compile(
    r"^" + SECTION_SIGN + r"(?P<prefix>" + PREFIX_PATTERN + r")$"
)
_FULL_RANGE_RE: Final[re.Pattern[str]] = re.compile(
    r"^(?P<prefix>" + PREFIX_PATTERN + r")\.(?P<major>[0-9]+)\.(?P<start>[0-9]+)"
    r"-(?P=major)\.(?P<end>[0-9]+)$"
)
_SHORT_RANGE_RE: Final[re.Pattern[str]] = re.compile(
    r"^(?P<prefix>" + PREFIX_PATTERN + r")\.(?P<major>[0-9]+)\.(?P<start>[0-9]+)-(?P<end>[0-9]+)$"
)
_WHOLE_RANGE_RE: Final[re.Pattern[str]] = re.compile(
    r"^(?P<prefix>" + PREFIX_PATTERN + r")\.(?P<start>[0-9]+)-(?P<end>[0-9]+)$"
)
_SECTION_HEADER_RE: Final[re.Pattern[str]] = re.compile(
    r"^(?P<hashes>#{2,}) \{"
    + SECTION_SIGN
    + r"(?P<prefix>"
    + PREFIX_PATTERN
    + r")\.(?P<path>"
    + _PATH_PATTERN
    + r")\}"
)
_SECTION_MARKER_RE: Final[re.Pattern[str]] = re.compile(r"^#+ \{" + SECTION_SIGN)


class NotationError(ValueError):
    """Raised when a section reference is malformed or names an unknown prefix."""

    def __init__(self, notation: str, message: str) -> None:
        super().__init__(message)
        self.notation = notation
        self.message = message


@dataclass(slots=True, frozen=True)
class ParsedReference:
    """A section reference split into prefix and dotted number path."""

    prefix: str
    path: str
    source_file: str | None = None

    @property
    def notation(self) -> str:
        """Return the canonical ``§PREFIX.PATH`` form."""
        return f"{SECTION_SIGN}{self.prefix}.{self.path}"

    @property
    def is_top_level(self) -> bool:
        """Return True for single-component paths such as ``§APP.7``."""
        return "." not in self.path


@dataclass(slots=True, frozen=True)
class SectionHeader:
    """A markdown heading line carrying a ``{§PREFIX.PATH}`` marker."""

    depth: int
    prefix: str
    path: str

    @property
    def reference(self) -> str:
        return f"{SECTION_SIGN}{self.prefix}.{self.path}"

    @property
    def is_top_level(self) -> bool:
        return "." not in self.path

    @property
    def opens_section(self) -> bool:
        """Top-level sections open only at depth 2; subsections at depth 2 or deeper."""
        if self.is_top_level:
            return self.depth == 2
        return self.depth >= 2


def parse_notation(notation: str, file_map: Mapping[str, str] | None = None) -> ParsedReference:
    """Parse ``§PREFIX.N[.N...]`` into its parts, optionally resolving the prefix to a file."""
    if not notation.startswith(SECTION_SIGN):
        raise NotationError(
            notation,
            f'Invalid section notation: "{notation}". Must start with {SECTION_SIGN} symbol '
            f"(e.g., {SECTION_SIGN}APP.7, {SECTION_SIGN}META.5)",
        )
    match = _NOTATION_RE.match(notation[1:])
    if match is None:
        raise NotationError(
            notation,
            f'Invalid section notation: "{notation}". Expected format: '
            f"{SECTION_SIGN}[PREFIX].[NUMBER] (e.g., {SECTION_SIGN}APP.7, {SECTION_SIGN}META.5.2)",
        )
    prefix = match.group("prefix")
    path = match.group("path")
    if file_map is None:
        return ParsedReference(prefix=prefix, path=path)
    source_file = file_map.get(prefix)
    if not source_file:
        raise NotationError(
            notation,
            f"Unknown prefix: {prefix}. Valid prefixes: {', '.join(file_map.keys())}",
        )
    return ParsedReference(prefix=prefix, path=path, source_file=source_file)


def wildcard_prefix(notation: str) -> str | None:
    """Return the prefix of a bare ``§PREFIX`` wildcard, or None for anything else."""
    match = _PREFIX_ONLY_RE.match(notation)
    if match is None:
        return None
    return match.group("prefix")


def expand_range(notation: str) -> list[str]:
    """Expand ``§P.N.A-B``, ``§P.N.A-N.B`` and ``§P.A-B`` into sibling references.

    Non-range input comes back as a one-element list. A backwards range
    (start greater than end) expands to an empty list without raising.
    """
    if not notation.startswith(SECTION_SIGN):
        raise NotationError(
            notation,
            f'Invalid section notation: "{notation}". Must start with {SECTION_SIGN} symbol '
            f"(e.g., {SECTION_SIGN}APP.7, {SECTION_SIGN}APP.4.1-3)",
        )
    body = notation[1:]
    for pattern in (_FULL_RANGE_RE, _SHORT_RANGE_RE):
        match = pattern.match(body)
        if match is not None:
            stem = f"{SECTION_SIGN}{match.group('prefix')}.{match.group('major')}"
            return [
                f"{stem}.{number}"
                for number in range(int(match.group("start")), int(match.group("end")) + 1)
            ]
    match = _WHOLE_RANGE_RE.match(body)
    if match is not None:
        stem = f"{SECTION_SIGN}{match.group('prefix')}"
        return [
            f"{stem}.{number}"
            for number in range(int(match.group("start")), int(match.group("end")) + 1)
        ]
    return [notation]


def base_prefix(prefix: str) -> str:
    """Reduce an extended prefix (``APP-HOOK``) to its base (``APP``)."""
    return prefix.split("-", 1)[0]


def reference_prefix(notation: str) -> str:
    """Return the prefix portion of a reference or wildcard."""
    body = notation[1:] if notation.startswith(SECTION_SIGN) else notation
    return body.split(".", 1)[0]


def reference_sort_key(notation: str) -> tuple[str, tuple[int, ...]]:
    """Prefix first (ordinal), then the numeric path component-wise."""
    body = notation[1:] if notation.startswith(SECTION_SIGN) else notation
    prefix, _, path = body.partition(".")
    if not path:
        return (prefix, ())
    return (prefix, tuple(int(part) if part.isdigit() else 0 for part in path.split(".")))


def sort_references(notations: Iterable[str]) -> list[str]:
    """Return references in deterministic prefix-then-numeric order."""
    return sorted(notations, key=reference_sort_key)


def is_parent(parent: str, child: str) -> bool:
    """Return True when ``child`` lies strictly inside ``parent`` (``§APP.4`` / ``§APP.4.1``)."""
    if reference_prefix(parent) != reference_prefix(child):
        return False
    return child.startswith(parent + ".")


def match_section_header(line: str) -> SectionHeader | None:
    """Parse a ``## {§PREFIX.N}`` style heading line."""
    match = _SECTION_HEADER_RE.match(line)
    if match is None:
        return None
    return SectionHeader(
        depth=len(match.group("hashes")),
        prefix=match.group("prefix"),
        path=match.group("path"),
    )


def is_section_marker(line: str) -> bool:
    """Return True for any heading that starts with ``{§`` regardless of validity."""
    return _SECTION_MARKER_RE.match(line) is not None


def is_end_marker(line: str) -> bool:
    return line.rstrip() == END_MARKER
