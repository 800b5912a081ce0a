"""Section notation grammar: parsing, ranges, ordering and reference scanning."""

from .fences import FenceTracker
from .parser import (
    END_MARKER,
    SECTION_SIGN,
    NotationError,
    ParsedReference,
    SectionHeader,
    base_prefix,
    expand_range,
    is_end_marker,
    is_parent,
    is_section_marker,
    match_section_header,
    parse_notation,
    reference_prefix,
    reference_sort_key,
    sort_references,
    wildcard_prefix,
)
from .scanner import find_embedded_references, strip_code

__all__ = [
    "END_MARKER",
    "FenceTracker",
    "NotationError",
    "ParsedReference",
    "SECTION_SIGN",
    "SectionHeader",
    "base_prefix",
    "expand_range",
    "find_embedded_references",
    "is_end_marker",
    "is_parent",
    "is_section_marker",
    "match_section_header",
    "parse_notation",
    "reference_prefix",
    "reference_sort_key",
    "sort_references",
    "strip_code",
    "wildcard_prefix",
]
