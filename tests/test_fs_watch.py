import time

import pytest

from winewarden.errors import WineWardenIOError
from winewarden.fs_watch import FsWatcher, map_event_kind
from winewarden.types import AccessKind, PathTarget


def _drain_until(watcher, predicate, timeout=5.0):
    collected = []
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        collected.extend(watcher.drain())
        if any(predicate(attempt) for attempt in collected):
            break
        time.sleep(0.05)
    return collected


@pytest.mark.parametrize(
    "event_type, expected",
    [
        ("created", AccessKind.WRITE),
        ("modified", AccessKind.WRITE),
        ("deleted", AccessKind.WRITE),
        ("moved", AccessKind.WRITE),
        ("opened", AccessKind.READ),
        ("closed_no_write", AccessKind.READ),
    ],
)
def test_map_event_kind(event_type, expected):
    assert map_event_kind(event_type) is expected


def test_missing_path_raises(tmp_path):
    with pytest.raises(WineWardenIOError):
        FsWatcher(tmp_path / "missing")


def test_fresh_watcher_drains_nothing(tmp_path):
    with FsWatcher(tmp_path) as watcher:
        assert watcher.drain() == []


def test_created_file_is_reported_as_write(tmp_path):
    target = tmp_path / "save.dat"
    with FsWatcher(tmp_path) as watcher:
        target.write_text("progress")
        attempts = _drain_until(watcher, lambda a: a.target == PathTarget(target))
    matching = [a for a in attempts if a.target == PathTarget(target)]
    assert matching
    assert any(a.kind is AccessKind.WRITE for a in matching)
    assert all(a.note.startswith("fs:") for a in matching)


def test_nested_directories_are_watched(tmp_path):
    nested = tmp_path / "drive_c" / "users"
    nested.mkdir(parents=True)
    target = nested / "note.txt"
    with FsWatcher(tmp_path) as watcher:
        target.write_text("x")
        attempts = _drain_until(watcher, lambda a: a.target == PathTarget(target))
    assert any(a.target == PathTarget(target) for a in attempts)