"""Line-stepped code fence state machine shared by every scanner."""

from __future__ import annotations

import re
from typing import Final

_FENCE_PATTERN: Final[re.Pattern[str]] = re.compile(r"^(`{3,})(\S*)")


class FenceTracker:
    """Track whether the current line sits inside a fenced code block.

    States are ``normal`` and ``in_fence(length)``. Any run of three or more
    backticks opens a fence, with or without a language tag. Only an untagged
    run at least as long as the opener closes it. An unterminated fence simply
    stays open until the input ends.
    """

    __slots__ = ("_fence_length", "_opened_at", "_line_number")

    def __init__(self) -> None:
        self._fence_length: int | None = None
        self._opened_at: int | None = None
        self._line_number = 0

    @property
    def in_fence(self) -> bool:
        """Return True while a fence is open."""
        return self._fence_length is not None

    @property
    def fence_length(self) -> int | None:
        """Return the opener's backtick count, or None outside a fence."""
        return self._fence_length

    @property
    def opened_at(self) -> int | None:
        """Return the 1-based line number of the open fence, if any."""
        return self._opened_at

    @property
    def line_number(self) -> int:
        """Return the 1-based number of the most recently fed line."""
        return self._line_number

    def feed(self, line: str) -> bool:
        """Step the machine by one line; return True when the line is a fence delimiter."""
        self._line_number += 1
        match = _FENCE_PATTERN.match(line)
        if match is None:
            return False
        length = len(match.group(1))
        tagged = bool(match.group(2))
        if self._fence_length is None:
            self._fence_length = length
            self._opened_at = self._line_number
            return True
        if not tagged and length >= self._fence_length:
            self._fence_length = None
            self._opened_at = None
            return True
        return False

    def is_code(self, line: str) -> bool:
        """Feed a line and report whether it belongs to fenced code (delimiters included)."""
        if self.feed(line):
            return True
        return self.in_fence
