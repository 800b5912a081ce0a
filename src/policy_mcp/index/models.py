"""Typed models for section index state."""

from __future__ import annotations

from dataclasses import dataclass, field

from policy_mcp.notation import SECTION_SIGN, sort_references


@dataclass(slots=True, frozen=True)
class FileRecord:
    """Per-file metadata used to skip re-parsing unchanged files."""

    path: str
    mtime_ns: int
    size: int
    references: tuple[str, ...]

    def matches(self, mtime_ns: int, size: int) -> bool:
        """Return True when stat metadata is identical to this record."""
        return self.mtime_ns == mtime_ns and self.size == size


@dataclass(slots=True, frozen=True)
class SectionIndex:
    """Immutable snapshot mapping references to their owning file.

    A reference lives in exactly one of ``lookup`` (single owner) or
    ``duplicates`` (two or more owners).
    """

    lookup: dict[str, str]
    duplicates: dict[str, tuple[str, ...]]
    files: dict[str, FileRecord]
    built_at: str
    skipped: tuple[str, ...] = field(default_factory=tuple)

    @property
    def file_count(self) -> int:
        return len(self.files)

    @property
    def section_count(self) -> int:
        return len(self.lookup) + len(self.duplicates)

    def owner(self, reference: str) -> str | None:
        """Return the single owning file, or None when missing or duplicated."""
        return self.lookup.get(reference)

    def contains(self, reference: str) -> bool:
        return reference in self.lookup or reference in self.duplicates

    def prefixes(self) -> list[str]:
        """Return the sorted set of prefixes declared across all files."""
        output: set[str] = set()
        for reference in (*self.lookup, *self.duplicates):
            output.add(reference[1:].split(".", 1)[0])
        return sorted(output)

    def references_with_prefix(self, prefix: str) -> list[str]:
        """Expand a wildcard prefix into every indexed reference, sorted."""
        stem = f"{SECTION_SIGN}{prefix}."
        matched = [ref for ref in (*self.lookup, *self.duplicates) if ref.startswith(stem)]
        return sort_references(matched)


def empty_index(built_at: str) -> SectionIndex:
    return SectionIndex(lookup={}, duplicates={}, files={}, built_at=built_at)
