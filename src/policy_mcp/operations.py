"""Request-level operations shared by the server tools, CLI and hook."""

from __future__ import annotations

import json
import re
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from policy_mcp.index import SectionIndex
from policy_mcp.notation import expand_range, find_embedded_references, sort_references
from policy_mcp.resolver import (
    DEFAULT_MAX_CHUNK_TOKENS,
    chunk_sections,
    combine_sections,
    expand_requested,
    gather_sections,
    select_chunk,
)
from policy_mcp.resolver.engine import WarningCallback

_TRAILING_DIVIDER_RE = re.compile(r"\n*---\n*\s*$")


@dataclass(slots=True, frozen=True)
class FetchResult:
    """One chunk of fetched content plus its position."""

    content: str
    has_more: bool
    continuation: str | None
    chunk_index: int
    chunk_count: int
    references: tuple[str, ...]

    def to_dict(self) -> dict[str, object]:
        return {
            "content": self.content,
            "has_more": self.has_more,
            "continuation": self.continuation,
            "chunk_index": self.chunk_index,
            "chunk_count": self.chunk_count,
            "references": list(self.references),
        }


def fetch_chunk(
    requested: Sequence[str],
    index: SectionIndex,
    continuation: str | None = None,
    max_tokens: int = DEFAULT_MAX_CHUNK_TOKENS,
    lenient: bool = False,
    on_warning: WarningCallback | None = None,
) -> FetchResult:
    """Expand, resolve and chunk ``requested``, returning the chunk ``continuation`` names.

    A non-final chunk loses its trailing ``---`` divider and gains an
    instruction naming the next continuation token.
    """
    expanded = expand_requested(requested, index)
    gathered = gather_sections(expanded, index, lenient=lenient, on_warning=on_warning)
    ordered = combine_sections(gathered)
    chunks = chunk_sections([section.content for section in ordered], max_tokens)
    chunk = select_chunk(chunks, continuation)
    content = chunk.content
    if chunk.has_more:
        content = _TRAILING_DIVIDER_RE.sub("", content).rstrip()
        content += (
            "\n\n---\n**INCOMPLETE RESPONSE: CONTINUATION REQUIRED**\n\n"
            "Call policy.fetch again with: "
            f"sections={json.dumps(list(requested), ensure_ascii=False)}, "
            f'continuation="{chunk.continuation}"'
        )
    return FetchResult(
        content=content,
        has_more=chunk.has_more,
        continuation=chunk.continuation,
        chunk_index=chunk.index,
        chunk_count=len(chunks),
        references=tuple(section.reference for section in ordered),
    )


def references_in_text(text: str) -> list[str]:
    """Embedded references with ranges expanded, unique and in reference order."""
    expanded: list[str] = []
    for reference in find_embedded_references(text):
        expanded.extend(expand_range(reference))
    return sort_references(dict.fromkeys(expanded))


def references_in_file(path: str | Path) -> list[str]:
    return references_in_text(Path(path).read_text(encoding="utf-8"))


def resolve_path(raw: str, base_dir: Path) -> Path:
    """Resolve a user-supplied path against ``base_dir`` unless already absolute."""
    candidate = Path(raw).expanduser()
    if not candidate.is_absolute():
        candidate = base_dir / candidate
    return candidate.resolve()


def sources_summary(
    files: Sequence[str],
    index: SectionIndex,
    base_dir: Path | None = None,
) -> dict[str, object]:
    """Configured files, index statistics and available prefixes."""
    return {
        "files": [_display(path, base_dir) for path in files],
        "file_count": index.file_count,
        "section_count": index.section_count,
        "duplicate_count": len(index.duplicates),
        "built_at": index.built_at,
        "skipped": [_display(path, base_dir) for path in index.skipped],
        "prefixes": index.prefixes(),
    }


def format_sources_markdown(summary: dict[str, object]) -> str:
    """Render ``sources_summary`` output as a markdown report."""
    files = summary.get("files", [])
    prefixes = summary.get("prefixes", [])
    skipped = summary.get("skipped", [])
    lines = ["# Policy Documentation Files", ""]
    if isinstance(files, list):
        lines.extend(f"- {path}" for path in files)
    lines.extend(
        [
            "",
            "## Index Statistics",
            "",
            f"- Files indexed: {summary.get('file_count')}",
            f"- Sections indexed: {summary.get('section_count')}",
            f"- Duplicate sections: {summary.get('duplicate_count')}",
            f"- Last indexed: {summary.get('built_at')}",
        ]
    )
    if isinstance(skipped, list) and skipped:
        lines.extend(["", "## Skipped Files", ""])
        lines.extend(f"- {path}" for path in skipped)
    lines.extend(["", "## Available Prefixes", ""])
    if isinstance(prefixes, list):
        lines.extend(f"- §{prefix}" for prefix in prefixes)
    lines.extend(
        [
            "",
            "## Format",
            "",
            "Sections use § prefix: §APP.7, §SYS.5",
            "Ranges expand: §APP.4.1-3 → §APP.4.1, §APP.4.2, §APP.4.3",
        ]
    )
    return "\n".join(lines) + "\n"


def _display(path: str, base_dir: Path | None) -> str:
    if base_dir is None:
        return path
    try:
        return Path(path).relative_to(base_dir).as_posix()
    except ValueError:
        return path
