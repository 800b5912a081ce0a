"""Per-file change watching built on watchdog observers."""

from __future__ import annotations

import os
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from pathlib import Path

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver, ObservedWatch

_CHANGE_EVENTS = frozenset({"modified", "created", "deleted", "moved"})


class PolicyFileEventHandler(FileSystemEventHandler):
    """Invoke a callback when one specific file is written, deleted or renamed."""

    def __init__(self, target: Path, on_change: Callable[[], None]) -> None:
        super().__init__()
        self._target = os.path.normcase(str(target))
        self._on_change = on_change

    @property
    def target(self) -> str:
        return self._target

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory or event.event_type not in _CHANGE_EVENTS:
            return
        if self._concerns_target(event):
            self._on_change()

    def _concerns_target(self, event: FileSystemEvent) -> bool:
        paths = [event.src_path, getattr(event, "dest_path", "")]
        for raw in paths:
            if not raw:
                continue
            candidate = os.path.normcase(os.path.abspath(os.fsdecode(raw)))
            if candidate == self._target:
                return True
        return False


@dataclass(slots=True, frozen=True)
class WatchHandle:
    """One scheduled watch for a single configured file."""

    path: str
    watch: ObservedWatch
    handler: PolicyFileEventHandler


class FileWatcher:
    """Owns a watchdog observer plus one watch handle per configured file."""

    def __init__(self, observer: BaseObserver | None = None) -> None:
        self._observer = observer if observer is not None else Observer()
        self._handles: list[WatchHandle] = []
        self._started = False
        self._closed = False

    @property
    def handles(self) -> tuple[WatchHandle, ...]:
        return tuple(self._handles)

    def watch_files(self, files: Iterable[str | Path], on_change: Callable[[], None]) -> None:
        """Schedule one non-recursive watch per file on its parent directory.

        Files whose parent directory does not exist are not watched.
        """
        for raw_path in files:
            target = Path(raw_path).resolve()
            parent = target.parent
            if not parent.is_dir():
                continue
            handler = PolicyFileEventHandler(target, on_change)
            watch = self._observer.schedule(handler, str(parent), recursive=False)
            self._handles.append(WatchHandle(path=str(raw_path), watch=watch, handler=handler))
        if self._handles and not self._started:
            self._observer.start()
            self._started = True

    def close(self) -> None:
        """Release every watch handle and stop the observer thread. Idempotent."""
        if self._closed:
            return
        self._closed = True
        self._observer.unschedule_all()
        self._handles.clear()
        if self._started:
            self._observer.stop()
            self._observer.join()
