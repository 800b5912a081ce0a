"""Recursive reference resolution and output chunking."""

from policy_mcp.resolver.chunking import (
    CHARS_PER_TOKEN,
    DEFAULT_MAX_CHUNK_TOKENS,
    ChunkingError,
    ContentChunk,
    chunk_content,
    chunk_sections,
    estimate_tokens,
    parse_continuation,
    select_chunk,
    split_at_headers,
)
from policy_mcp.resolver.engine import (
    combine_sections,
    expand_embedded,
    expand_requested,
    fetch_sections,
    gather_sections,
    group_by_file,
    load_section,
    locate_reference,
    resolve_locations,
)
from policy_mcp.resolver.models import GatheredSection, ResolutionError, ResolutionFailure

__all__ = [
    "CHARS_PER_TOKEN",
    "DEFAULT_MAX_CHUNK_TOKENS",
    "ChunkingError",
    "ContentChunk",
    "GatheredSection",
    "ResolutionError",
    "ResolutionFailure",
    "chunk_content",
    "chunk_sections",
    "combine_sections",
    "estimate_tokens",
    "expand_embedded",
    "expand_requested",
    "fetch_sections",
    "gather_sections",
    "group_by_file",
    "load_section",
    "locate_reference",
    "parse_continuation",
    "select_chunk",
    "split_at_headers",
]
