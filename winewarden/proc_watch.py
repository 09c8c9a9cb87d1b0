"""Child processes observed through /proc."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from winewarden.types import AccessAttempt, AccessKind, PathTarget, now_utc

_U32_MAX = 2**32 - 1


def _read_children(pid: int) -> list[int]:
    try:
        contents = Path(f"/proc/{pid}/task/{pid}/children").read_text()
    except (OSError, UnicodeDecodeError):
        return []
    children = []
    for value in contents.split():
        if value.isdigit() and int(value) <= _U32_MAX:
            children.append(int(value))
    return children


def _read_exe(pid: int) -> Optional[Path]:
    try:
        return Path(os.readlink(f"/proc/{pid}/exe"))
    except OSError:
        return None


def collect_process_events(root_pid: int, seen: set[int]) -> list[AccessAttempt]:
    """Execute attempts for descendants of root_pid not already in seen."""
    events = []
    pending = [root_pid]
    while pending:
        pid = pending.pop()
        for child in _read_children(pid):
            if child in seen:
                continue
            seen.add(child)
            exe = _read_exe(child)
            if exe is not None:
                events.append(
                    AccessAttempt(
                        timestamp=now_utc(),
                        kind=AccessKind.EXECUTE,
                        target=PathTarget(exe),
                        note=f"child process pid {child}",
                    )
                )
            pending.append(child)
    return events