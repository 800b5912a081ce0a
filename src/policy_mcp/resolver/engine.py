"""Breadth-first reference resolution over a built section index."""

from __future__ import annotations

import os
from collections import deque
from collections.abc import Callable, Iterable
from pathlib import Path

from policy_mcp.index import SectionIndex, extract_section
from policy_mcp.notation import (
    NotationError,
    expand_range,
    find_embedded_references,
    is_parent,
    parse_notation,
    sort_references,
    wildcard_prefix,
)
from policy_mcp.resolver.models import GatheredSection, ResolutionError, ResolutionFailure

WarningCallback = Callable[[str], None]
TextReader = Callable[[str], str]


def locate_reference(reference: str, index: SectionIndex) -> str | ResolutionFailure:
    """Return the single file owning ``reference`` or a failure value."""
    duplicate_files = index.duplicates.get(reference)
    if duplicate_files is not None:
        listing = "\n".join(f"  - {path}" for path in duplicate_files)
        return ResolutionFailure(
            kind="duplicate",
            reference=reference,
            message=(
                f"Section {reference} found in multiple files:\n{listing}\n"
                "Please remove duplicates to resolve this section."
            ),
            files=tuple(duplicate_files),
        )
    owner = index.lookup.get(reference)
    if owner is None:
        return ResolutionFailure(
            kind="not_found",
            reference=reference,
            message=f"Section {reference} not found in policy files",
        )
    return owner


def load_section(
    reference: str,
    index: SectionIndex,
    read_text: TextReader,
) -> GatheredSection | ResolutionFailure:
    """Parse, locate and extract one reference without raising."""
    try:
        parsed = parse_notation(reference)
    except NotationError as exc:
        return ResolutionFailure(
            kind="invalid_notation",
            reference=reference,
            message=exc.message,
        )
    located = locate_reference(reference, index)
    if isinstance(located, ResolutionFailure):
        return located
    try:
        text = read_text(located)
    except (OSError, UnicodeDecodeError):
        text = ""
    content = extract_section(text, parsed.prefix, parsed.path)
    if not content.strip():
        return ResolutionFailure(
            kind="empty_extract",
            reference=reference,
            message=(
                f'Section "{reference}" not found. Verify the section exists with marker '
                f'"## {{{reference}}}" or "### {{{reference}}}".'
            ),
        )
    return GatheredSection(
        reference=reference,
        prefix=parsed.prefix,
        path=parsed.path,
        source_file=located,
        content=content,
    )


def _with_provenance(failure: ResolutionFailure, referred_by: str | None) -> ResolutionFailure:
    context = f" (referenced by {referred_by})" if referred_by else ""
    if failure.kind == "invalid_notation":
        message = f'Invalid section notation "{failure.reference}"{context}: {failure.message}'
    else:
        message = f'Failed to resolve section "{failure.reference}"{context}: {failure.message}'
    return ResolutionFailure(
        kind=failure.kind,
        reference=failure.reference,
        message=message,
        referred_by=referred_by,
        files=failure.files,
    )


def expand_embedded(references: Iterable[str], index: SectionIndex) -> list[str]:
    """Expand wildcards and ranges found inside section content.

    A wildcard with no matching sections expands to nothing.
    """
    expanded: list[str] = []
    for reference in references:
        prefix = wildcard_prefix(reference)
        if prefix is not None:
            expanded.extend(index.references_with_prefix(prefix))
            continue
        expanded.extend(expand_range(reference))
    return expanded


def expand_requested(references: Iterable[str], index: SectionIndex) -> list[str]:
    """Expand explicitly requested references; an unmatched wildcard raises NotationError."""
    expanded: list[str] = []
    for reference in references:
        prefix = wildcard_prefix(reference)
        if prefix is None:
            expanded.extend(expand_range(reference))
            continue
        matched = index.references_with_prefix(prefix)
        if not matched:
            raise NotationError(reference, f"No sections found for prefix: {prefix}")
        expanded.extend(matched)
    return expanded


def gather_sections(
    references: Iterable[str],
    index: SectionIndex,
    lenient: bool = False,
    on_warning: WarningCallback | None = None,
    read_text: TextReader | None = None,
) -> dict[str, GatheredSection]:
    """Resolve ``references`` and everything they transitively mention.

    Whole sections supersede their subsections regardless of arrival order.
    In strict mode the first failure raises ResolutionError; in lenient mode
    it is passed to ``on_warning`` and the reference is dropped.
    """
    reader = read_text if read_text is not None else _cached_reader()
    queue: deque[tuple[str, str | None]] = deque((ref, None) for ref in references)
    queued = {ref for ref, _ in queue}
    processed: set[str] = set()
    gathered: dict[str, GatheredSection] = {}

    while queue:
        reference, referred_by = queue.popleft()
        queued.discard(reference)
        if reference in processed:
            continue
        if any(is_parent(existing, reference) for existing in processed):
            continue
        for child in [existing for existing in processed if is_parent(reference, existing)]:
            processed.discard(child)
            gathered.pop(child, None)
        processed.add(reference)

        loaded = load_section(reference, index, reader)
        if isinstance(loaded, ResolutionFailure):
            failure = _with_provenance(loaded, referred_by)
            if not lenient:
                raise ResolutionError(failure)
            if on_warning is not None:
                on_warning(failure.message)
            continue
        gathered[reference] = loaded

        embedded = expand_embedded(find_embedded_references(loaded.content), index)
        for found in embedded:
            if found in processed or found in queued:
                continue
            queue.append((found, reference))
            queued.add(found)
    return gathered


def combine_sections(gathered: dict[str, GatheredSection]) -> list[GatheredSection]:
    """Return gathered sections in reference order."""
    return [gathered[reference] for reference in sort_references(gathered)]


def fetch_sections(
    references: Iterable[str],
    index: SectionIndex,
    lenient: bool = False,
    on_warning: WarningCallback | None = None,
) -> str:
    """Resolve references and join their content in reference order."""
    gathered = gather_sections(references, index, lenient=lenient, on_warning=on_warning)
    return "\n".join(section.content for section in combine_sections(gathered))


def group_by_file(
    gathered: dict[str, GatheredSection],
    base_dir: str | Path | None = None,
) -> dict[str, list[str]]:
    """Group gathered references by source file, files and references both sorted."""
    grouped: dict[str, list[str]] = {}
    for reference, section in gathered.items():
        key = _display_path(section.source_file, base_dir)
        grouped.setdefault(key, []).append(reference)
    return {path: sort_references(grouped[path]) for path in sorted(grouped)}


def resolve_locations(
    references: Iterable[str],
    index: SectionIndex,
    base_dir: str | Path | None = None,
) -> dict[str, list[str]]:
    gathered = gather_sections(references, index)
    return group_by_file(gathered, base_dir)


def _display_path(path: str, base_dir: str | Path | None) -> str:
    if base_dir is None:
        return path
    relative = os.path.relpath(path, str(base_dir))
    return Path(relative).as_posix()


def _cached_reader() -> TextReader:
    cache: dict[str, str] = {}

    def read(path: str) -> str:
        if path not in cache:
            cache[path] = Path(path).read_text(encoding="utf-8")
        return cache[path]

    return read
