"""Token-budgeted chunking of combined section content."""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass

from policy_mcp.notation import FenceTracker, match_section_header

CHARS_PER_TOKEN = 4
DEFAULT_MAX_CHUNK_TOKENS = 10_000
CONTINUATION_PREFIX = "chunk:"


@dataclass(slots=True, frozen=True)
class ContentChunk:
    """One deterministic slice of combined content."""

    content: str
    index: int
    has_more: bool
    continuation: str | None


@dataclass(slots=True, frozen=True)
class ChunkingError(Exception):
    """Raised when a continuation token does not name an existing chunk."""

    token: str
    requested: int | None
    available: int

    def __str__(self) -> str:
        if self.requested is None:
            return (
                f"Invalid continuation token: {self.token} "
                f"(expected {CONTINUATION_PREFIX}<integer>)"
            )
        return (
            f"Invalid continuation token: {self.token} "
            f"(requested chunk {self.requested} but only {self.available} chunks exist)"
        )


def estimate_tokens(text: str) -> int:
    """Approximate token count: one token per four characters, rounded up."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def continuation_token(index: int) -> str:
    return f"{CONTINUATION_PREFIX}{index}"


def split_at_headers(content: str) -> list[str]:
    """Split content before every section header that sits outside fenced code.

    Concatenating the pieces reproduces ``content`` exactly.
    """
    pieces: list[str] = []
    current: list[str] = []
    tracker = FenceTracker()
    lines = content.split("\n")
    for position, line in enumerate(lines):
        code = tracker.is_code(line)
        header = None if code else match_section_header(line)
        if header is not None and header.opens_section and current:
            pieces.append("".join(current))
            current = []
        current.append(line if position == len(lines) - 1 else line + "\n")
    if current:
        pieces.append("".join(current))
    return [piece for piece in pieces if piece]


def chunk_pieces(
    pieces: Sequence[str],
    max_tokens: int = DEFAULT_MAX_CHUNK_TOKENS,
) -> list[ContentChunk]:
    """Greedily pack whole pieces into chunks that stay within ``max_tokens``.

    A single piece larger than the budget becomes its own chunk.
    """
    whole = "".join(pieces)
    if estimate_tokens(whole) <= max_tokens:
        return [ContentChunk(content=whole, index=0, has_more=False, continuation=None)]
    grouped: list[str] = []
    current = ""
    for piece in pieces:
        if current and estimate_tokens(current) + estimate_tokens(piece) > max_tokens:
            grouped.append(current)
            current = piece
        else:
            current += piece
    if current or not grouped:
        grouped.append(current)
    last = len(grouped) - 1
    return [
        ContentChunk(
            content=text,
            index=position,
            has_more=position < last,
            continuation=continuation_token(position + 1) if position < last else None,
        )
        for position, text in enumerate(grouped)
    ]


def chunk_content(content: str, max_tokens: int = DEFAULT_MAX_CHUNK_TOKENS) -> list[ContentChunk]:
    """Chunk combined content, splitting only at section header boundaries."""
    return chunk_pieces(split_at_headers(content), max_tokens)


def chunk_sections(
    parts: Sequence[str],
    max_tokens: int = DEFAULT_MAX_CHUNK_TOKENS,
) -> list[ContentChunk]:
    """Chunk already-separated section texts that are joined with newlines."""
    last = len(parts) - 1
    pieces = [part if position == last else part + "\n" for position, part in enumerate(parts)]
    return chunk_pieces(pieces, max_tokens)


def parse_continuation(token: str | None, available: int) -> int:
    """Map a ``chunk:N`` token to a chunk index; None selects the first chunk."""
    if token is None:
        return 0
    if not token.startswith(CONTINUATION_PREFIX):
        raise ChunkingError(token=token, requested=None, available=available)
    raw = token[len(CONTINUATION_PREFIX) :]
    if not (raw.isascii() and raw.isdigit()):
        raise ChunkingError(token=token, requested=None, available=available)
    requested = int(raw)
    if requested >= available:
        raise ChunkingError(token=token, requested=requested, available=available)
    return requested


def select_chunk(chunks: Sequence[ContentChunk], token: str | None) -> ContentChunk:
    return chunks[parse_continuation(token, len(chunks))]
