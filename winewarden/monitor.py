"""Running a game under observation and collecting a session report."""

from __future__ import annotations

import json
import subprocess
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Iterable, Iterator, Optional, TextIO

from winewarden.errors import WineWardenIOError
from winewarden.fs_watch import FsWatcher
from winewarden.net_watch import NetKey, collect_network_events
from winewarden.policy import PolicyContext, PolicyEngine
from winewarden.proc_watch import collect_process_events
from winewarden.reporting import ReportEvent, SessionReport, trust_signal_for_tier
from winewarden.trust import TrustTier
from winewarden.types import AccessAttempt, LiveMonitorConfig, RunMetadata, now_utc

_IDLE_POLL_SECONDS = 0.1


class WineWardenSignal(Enum):
    CONTINUE = "continue"
    STOP = "stop"


class EventSource(ABC):
    """A source of access attempts, read one at a time."""

    @abstractmethod
    def next_event(self) -> Optional[AccessAttempt]:
        """The next attempt, or None when the source is exhausted."""

    def __iter__(self) -> Iterator[AccessAttempt]:
        while (event := self.next_event()) is not None:
            yield event


class NoopEventSource(EventSource):
    """A source that never yields anything."""

    def next_event(self) -> Optional[AccessAttempt]:
        return None


class JsonlEventSource(EventSource):
    """Access attempts read from a file holding one JSON object per line."""

    def __init__(self, stream: TextIO) -> None:
        self._stream = stream

    @classmethod
    def from_path(cls, path: Path | str) -> "JsonlEventSource":
        path = Path(path)
        try:
            stream = path.open("r", encoding="utf-8")
        except OSError as exc:
            raise WineWardenIOError(f"open event log {path}: {exc}") from exc
        return cls(stream)

    def next_event(self) -> Optional[AccessAttempt]:
        try:
            line = self._stream.readline()
        except (OSError, UnicodeDecodeError) as exc:
            raise WineWardenIOError(f"read event log: {exc}") from exc
        if not line:
            return None
        try:
            data = json.loads(line)
            return AccessAttempt.from_dict(data)
        except (json.JSONDecodeError, ValueError, TypeError) as exc:
            raise ValueError(f"parse event JSON: {exc}") from exc

    def close(self) -> None:
        self._stream.close()

    def __enter__(self) -> "JsonlEventSource":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


@dataclass
class RunRequest:
    """What to run and how to observe it."""

    executable: Path
    args: list[str] = field(default_factory=list)
    prefix_root: Path = Path(".")
    trust_tier: TrustTier = TrustTier.YELLOW
    event_log: Optional[Path] = None
    no_run: bool = False
    live_monitor: Optional[LiveMonitorConfig] = None


@dataclass
class Monitor:
    """Launches a program, watches it, and evaluates what it does."""

    policy: PolicyEngine

    def run(self, request: RunRequest) -> SessionReport:
        """Run the request to completion and build its report."""
        metadata = RunMetadata(
            session_id=uuid.uuid4(),
            executable=Path(request.executable),
            args=list(request.args),
            started_at=now_utc(),
            ended_at=None,
            trust_tier=request.trust_tier,
        )
        context = PolicyContext(
            prefix_root=Path(request.prefix_root), trust_tier=request.trust_tier
        )

        evaluated: list[ReportEvent] = []
        if not request.no_run:
            child = self._spawn(request)
            evaluated.extend(self._watch(child, request, context))

        if request.event_log is not None:
            with JsonlEventSource.from_path(request.event_log) as source:
                evaluated.extend(self._evaluate_all(source, context))
        else:
            evaluated.extend(self._evaluate_all(NoopEventSource(), context))

        metadata.ended_at = now_utc()
        return SessionReport.build(
            metadata, trust_signal_for_tier(request.trust_tier), evaluated
        )

    def _evaluate(self, attempt: AccessAttempt, context: PolicyContext) -> ReportEvent:
        return ReportEvent(attempt=attempt, decision=self.policy.evaluate(attempt, context))

    def _evaluate_all(
        self, attempts: Iterable[AccessAttempt], context: PolicyContext
    ) -> list[ReportEvent]:
        return [self._evaluate(attempt, context) for attempt in attempts]

    @staticmethod
    def _spawn(request: RunRequest) -> subprocess.Popen:
        executable = Path(request.executable)
        try:
            return subprocess.Popen([str(executable), *request.args])
        except OSError as exc:
            raise WineWardenIOError(f"launch {executable}: {exc}") from exc

    def _watch(
        self, child: subprocess.Popen, request: RunRequest, context: PolicyContext
    ) -> list[ReportEvent]:
        live = request.live_monitor or LiveMonitorConfig()
        interval = live.poll_interval_ms / 1000 if live.enabled() else _IDLE_POLL_SECONDS
        watcher = FsWatcher(request.prefix_root) if live.fs else None
        seen_pids: set[int] = {child.pid}
        seen_net: set[NetKey] = set()
        events: list[ReportEvent] = []
        try:
            while child.poll() is None:
                time.sleep(interval)
                attempts: list[AccessAttempt] = []
                if watcher is not None:
                    attempts.extend(watcher.drain())
                if live.proc:
                    attempts.extend(collect_process_events(child.pid, seen_pids))
                if live.net:
                    attempts.extend(collect_network_events(child.pid, seen_net))
                events.extend(self._evaluate_all(attempts, context))
        finally:
            if watcher is not None:
                watcher.close()
        return events