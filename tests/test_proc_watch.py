import os
import subprocess
import sys
import time

import pytest

from winewarden.proc_watch import collect_process_events
from winewarden.types import AccessKind


@pytest.fixture
def child():
    process = subprocess.Popen([sys.executable, "-c", "import time; time.sleep(30)"])
    yield process
    process.kill()
    process.wait()


def _collect_until(pid, seen, wanted, timeout=5.0):
    events = []
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        events.extend(collect_process_events(pid, seen))
        if wanted in seen:
            break
        time.sleep(0.05)
    return events


def test_child_process_is_reported(child):
    seen = set()
    events = _collect_until(os.getpid(), seen, child.pid)
    assert child.pid in seen
    matching = [e for e in events if e.note == f"child process pid {child.pid}"]
    assert len(matching) == 1
    assert matching[0].kind is AccessKind.EXECUTE


def test_seen_children_are_not_reported_again(child):
    seen = set()
    _collect_until(os.getpid(), seen, child.pid)
    again = collect_process_events(os.getpid(), seen)
    assert all(e.note != f"child process pid {child.pid}" for e in again)


def test_missing_process_has_no_children():
    seen = set()
    assert collect_process_events(4_000_000_000, seen) == []
    assert seen == set()