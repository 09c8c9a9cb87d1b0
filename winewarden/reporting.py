"""Session reports, statistics and their renderings."""

from __future__ import annotations

import json
import os
import uuid
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional, Sequence

from winewarden.policy import ActionKind, PolicyDecision
from winewarden.trust import TrustSignal, TrustTier
from winewarden.types import (
    AccessAttempt,
    RunMetadata,
    _field,
    _parse_uuid,
    _uint,
    format_timestamp,
)

_U32_MAX = 2**32 - 1


def _bump(value: int) -> int:
    return min(value + 1, _U32_MAX)


@dataclass
class ReportEvent:
    """An access attempt and the decision taken on it."""

    attempt: AccessAttempt
    decision: PolicyDecision

    def to_dict(self) -> dict[str, Any]:
        return {"attempt": self.attempt.to_dict(), "decision": self.decision.to_dict()}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ReportEvent":
        return cls(
            attempt=AccessAttempt.from_dict(_field(data, "attempt")),
            decision=PolicyDecision.from_dict(_field(data, "decision")),
        )


_STAT_FIELDS = (
    "total_attempts",
    "denied",
    "redirected",
    "virtualized",
    "allowed",
    "systemic_risks",
)


@dataclass
class ReportStats:
    """Counts of decisions in a session."""

    total_attempts: int = 0
    denied: int = 0
    redirected: int = 0
    virtualized: int = 0
    allowed: int = 0
    systemic_risks: int = 0

    @classmethod
    def from_events(cls, events: Iterable[ReportEvent]) -> "ReportStats":
        stats = cls()
        for event in events:
            stats.total_attempts = _bump(stats.total_attempts)
            if event.decision.systemic_risk:
                stats.systemic_risks = _bump(stats.systemic_risks)
            match event.decision.action.kind:
                case ActionKind.ALLOW:
                    stats.allowed = _bump(stats.allowed)
                case ActionKind.DENY:
                    stats.denied = _bump(stats.denied)
                case ActionKind.REDIRECT:
                    stats.redirected = _bump(stats.redirected)
                case ActionKind.VIRTUALIZE:
                    stats.virtualized = _bump(stats.virtualized)
        return stats

    def to_dict(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in _STAT_FIELDS}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ReportStats":
        return cls(**{name: _uint(data, name, _U32_MAX) for name in _STAT_FIELDS})


def format_duration(duration: timedelta) -> str:
    """Render a duration as e.g. '1h 5m', '3m 2s' or '12s'."""
    total_seconds = int(max(duration.total_seconds(), 0.0))
    hours, rest = divmod(total_seconds, 3600)
    minutes, seconds = divmod(rest, 60)
    if hours > 0:
        return f"{hours}h {minutes}m"
    if minutes > 0:
        return f"{minutes}m {seconds}s"
    return f"{seconds}s"


def trust_signal_for_tier(tier: TrustTier) -> TrustSignal:
    return TrustSignal.from_tier(tier)


@dataclass
class SessionReport:
    """Everything recorded about one session."""

    session_id: uuid.UUID
    metadata: RunMetadata
    trust_signal: TrustSignal
    events: list[ReportEvent] = field(default_factory=list)
    stats: ReportStats = field(default_factory=ReportStats)

    @classmethod
    def build(
        cls,
        metadata: RunMetadata,
        trust_signal: TrustSignal,
        events: Sequence[ReportEvent],
    ) -> "SessionReport":
        events = list(events)
        return cls(
            session_id=metadata.session_id,
            metadata=metadata,
            trust_signal=trust_signal,
            events=events,
            stats=ReportStats.from_events(events),
        )

    def duration(self) -> Optional[timedelta]:
        if self.metadata.ended_at is None:
            return None
        return self.metadata.ended_at - self.metadata.started_at

    def human_summary(self) -> str:
        duration = self.duration()
        played = "unknown" if duration is None else format_duration(duration)
        dangerous = self.stats.denied + self.stats.redirected + self.stats.virtualized
        if dangerous == 0:
            safe_line = "No dangerous access attempts succeeded."
        else:
            safe_line = f"{dangerous} dangerous access attempts were blocked or redirected."
        return (
            f"You played for {played}.\n{safe_line}\nYour system remains intact.\n"
            f"{self.trust_signal.message}"
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": str(self.session_id),
            "metadata": self.metadata.to_dict(),
            "trust_signal": self.trust_signal.to_dict(),
            "events": [event.to_dict() for event in self.events],
            "stats": self.stats.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SessionReport":
        events = _field(data, "events")
        if not isinstance(events, list):
            raise ValueError("events must be a list")
        return cls(
            session_id=_parse_uuid(_field(data, "session_id")),
            metadata=RunMetadata.from_dict(_field(data, "metadata")),
            trust_signal=TrustSignal.from_dict(_field(data, "trust_signal")),
            events=[ReportEvent.from_dict(event) for event in events],
            stats=ReportStats.from_dict(_field(data, "stats")),
        )

    @classmethod
    def from_json(cls, text: str) -> "SessionReport":
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ValueError(f"parse report JSON: {exc}") from exc
        return cls.from_dict(data)


def render_human(report: SessionReport) -> str:
    return report.human_summary()


def render_json(report: SessionReport) -> str:
    """Pretty JSON; '{}' if the report cannot be encoded."""
    try:
        return json.dumps(report.to_dict(), indent=2)
    except (TypeError, ValueError):
        return "{}"


def timeline(events: Iterable[ReportEvent]) -> list[str]:
    """One line per event: timestamp and reason."""
    return [
        f"{format_timestamp(event.attempt.timestamp)}: {event.decision.reason}"
        for event in events
    ]


def redact_path(path: Path | str) -> str:
    """Replace the home directory in a path with '~'."""
    display = str(path)
    home = os.environ.get("HOME")
    if home is not None:
        return display.replace(home, "~")
    return display