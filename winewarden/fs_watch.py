"""Live filesystem watching of a prefix."""

from __future__ import annotations

import os
import queue
from pathlib import Path
from typing import Any

from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from winewarden.errors import WineWardenIOError
from winewarden.types import AccessAttempt, AccessKind, PathTarget, now_utc

_WRITE_EVENTS = frozenset(
    {EVENT_TYPE_CREATED, EVENT_TYPE_MODIFIED, EVENT_TYPE_DELETED, EVENT_TYPE_MOVED}
)


def map_event_kind(event_type: str) -> AccessKind:
    """Creations, modifications, removals and moves are writes; the rest reads."""
    return AccessKind.WRITE if event_type in _WRITE_EVENTS else AccessKind.READ


def _event_paths(event: FileSystemEvent) -> list[Path]:
    paths = [event.src_path]
    dest = getattr(event, "dest_path", "")
    if dest:
        paths.append(dest)
    return [Path(os.fsdecode(path)) for path in paths if path]


def _convert_event(event: FileSystemEvent) -> list[AccessAttempt]:
    kind = map_event_kind(event.event_type)
    timestamp = now_utc()
    return [
        AccessAttempt(
            timestamp=timestamp,
            kind=kind,
            target=PathTarget(path),
            note=f"fs:{event.event_type}",
        )
        for path in _event_paths(event)
    ]


class _QueueHandler(FileSystemEventHandler):
    def __init__(self, events: "queue.Queue[FileSystemEvent]") -> None:
        super().__init__()
        self._events = events

    def on_any_event(self, event: FileSystemEvent) -> None:
        self._events.put(event)


class FsWatcher:
    """Watches a directory tree and hands out its events as access attempts."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        if not self.path.exists():
            raise WineWardenIOError(f"watch {self.path}: no such file or directory")
        self._events: "queue.Queue[FileSystemEvent]" = queue.Queue()
        self._observer = Observer()
        try:
            self._observer.schedule(_QueueHandler(self._events), str(self.path), recursive=True)
            self._observer.start()
        except OSError as exc:
            raise WineWardenIOError(f"watch {self.path}: {exc}") from exc

    def drain(self) -> list[AccessAttempt]:
        """Every attempt observed since the last drain, without blocking."""
        attempts: list[AccessAttempt] = []
        while True:
            try:
                event = self._events.get_nowait()
            except queue.Empty:
                return attempts
            attempts.extend(_convert_event(event))

    def close(self) -> None:
        """Stop watching."""
        if self._observer.is_alive():
            self._observer.stop()
            self._observer.join()

    def __enter__(self) -> "FsWatcher":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()