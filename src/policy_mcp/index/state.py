"""Lifecycle wrapper owning the current index snapshot and its watchers."""

from __future__ import annotations

import threading
from collections.abc import Sequence
from pathlib import Path

from policy_mcp.index.builder import build_section_index
from policy_mcp.index.models import SectionIndex
from policy_mcp.index.watcher import FileWatcher, WatchHandle


class IndexState:
    """Holds an immutable SectionIndex and rebuilds it lazily once marked stale.

    Watch callbacks only flip ``stale``. Rebuilds happen on the next
    ``ensure_fresh`` call and are serialized by a lock.
    """

    def __init__(
        self,
        files: Sequence[str | Path],
        index: SectionIndex,
        watcher: FileWatcher | None = None,
    ) -> None:
        self._files = tuple(str(path) for path in files)
        self._index = index
        self._watcher = watcher
        self._lock = threading.Lock()
        self._stale = False
        self._rebuilding = False
        self._closed = False

    @property
    def files(self) -> tuple[str, ...]:
        return self._files

    @property
    def index(self) -> SectionIndex:
        return self._index

    @property
    def stale(self) -> bool:
        return self._stale

    @property
    def rebuilding(self) -> bool:
        return self._rebuilding

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def watch_handles(self) -> tuple[WatchHandle, ...]:
        if self._watcher is None:
            return ()
        return self._watcher.handles

    def mark_stale(self) -> None:
        self._stale = True

    def ensure_fresh(self) -> SectionIndex:
        """Return the current index, rebuilding first when stale.

        When not stale the same object is returned.
        """
        if not self._stale:
            return self._index
        with self._lock:
            if not self._stale:
                return self._index
            self._stale = False
            self._rebuilding = True
            try:
                self._index = build_section_index(self._files, previous=self._index)
            except BaseException:
                self._stale = True
                raise
            finally:
                self._rebuilding = False
            return self._index

    def close(self) -> None:
        """Release all watch handles. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        if self._watcher is not None:
            self._watcher.close()


def initialize_index_state(
    files: Sequence[str | Path],
    watch: bool = True,
    watcher: FileWatcher | None = None,
) -> IndexState:
    """Build the initial index and, when requested, start per-file watchers."""
    index = build_section_index(files)
    if not watch:
        return IndexState(files, index)
    active = watcher if watcher is not None else FileWatcher()
    state = IndexState(files, index, watcher=active)
    active.watch_files(files, state.mark_stale)
    return state
