"""Section index construction with mtime/size change detection."""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path

from policy_mcp.index import extractor
from policy_mcp.index.models import FileRecord, SectionIndex
from policy_mcp.logging import utc_timestamp


def build_section_index(
    files: Iterable[str | Path],
    previous: SectionIndex | None = None,
) -> SectionIndex:
    """Build a fresh index over ``files``, reusing cached references for unchanged files.

    Files that cannot be stat-ed or read are skipped and listed in
    ``SectionIndex.skipped``. Only currently configured files appear in the
    result, so records for files dropped from configuration do not carry over.
    """
    prior = previous.files if previous is not None else {}
    records: dict[str, FileRecord] = {}
    skipped: list[str] = []
    for raw_path in files:
        path = str(raw_path)
        if path in records:
            continue
        try:
            stat = Path(path).stat()
        except OSError:
            skipped.append(path)
            continue
        cached = prior.get(path)
        if cached is not None and cached.matches(stat.st_mtime_ns, stat.st_size):
            records[path] = cached
            continue
        try:
            references = extractor.read_file_references(path)
        except (OSError, UnicodeDecodeError):
            skipped.append(path)
            continue
        records[path] = FileRecord(
            path=path,
            mtime_ns=stat.st_mtime_ns,
            size=stat.st_size,
            references=references,
        )

    lookup, duplicates = merge_file_references(records.values())
    return SectionIndex(
        lookup=lookup,
        duplicates=duplicates,
        files=records,
        built_at=utc_timestamp(),
        skipped=tuple(skipped),
    )


def merge_file_references(
    records: Iterable[FileRecord],
) -> tuple[dict[str, str], dict[str, tuple[str, ...]]]:
    """Split references into single-owner lookup entries and duplicate entries."""
    owners: dict[str, list[str]] = {}
    for record in records:
        for reference in record.references:
            files = owners.setdefault(reference, [])
            if record.path not in files:
                files.append(record.path)
    lookup: dict[str, str] = {}
    duplicates: dict[str, tuple[str, ...]] = {}
    for reference, files in owners.items():
        if len(files) == 1:
            lookup[reference] = files[0]
        else:
            duplicates[reference] = tuple(files)
    return lookup, duplicates
