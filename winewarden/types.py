"""Core data types: access attempts, run metadata, identifiers and time helpers."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Mapping, Optional, Union

from winewarden.trust import TrustTier

_U16_MAX = 0xFFFF


def _field(data: Any, key: str) -> Any:
    try:
        return data[key]
    except (KeyError, TypeError, IndexError) as exc:
        raise ValueError(f"missing field: {key}") from exc


def _bool(data: Any, key: str) -> bool:
    value = _field(data, key)
    if not isinstance(value, bool):
        raise ValueError(f"field {key} must be a boolean")
    return value


def _str(data: Any, key: str) -> str:
    value = _field(data, key)
    if not isinstance(value, str):
        raise ValueError(f"field {key} must be a string")
    return value


def _uint(data: Any, key: str, limit: int) -> int:
    value = _field(data, key)
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= limit:
        raise ValueError(f"field {key} must be an integer between 0 and {limit}")
    return value


def _str_list(data: Any, key: str) -> list[str]:
    value = _field(data, key)
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ValueError(f"field {key} must be a list of strings")
    return list(value)


def _optional_path(value: Any) -> Optional[Path]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError("path must be a string")
    return Path(value)


def _parse_uuid(value: Any) -> uuid.UUID:
    try:
        return uuid.UUID(str(value))
    except ValueError as exc:
        raise ValueError(f"invalid UUID: {value!r}") from exc


def now_utc() -> datetime:
    """The current time in UTC."""
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Render a timestamp as ISO 8601; naive values are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO 8601 timestamp; a missing offset means UTC."""
    if not isinstance(value, str):
        raise ValueError(f"invalid timestamp: {value!r}")
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError as exc:
        raise ValueError(f"invalid timestamp: {value!r}") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class AccessKind(Enum):
    """What kind of access was attempted."""

    READ = "Read"
    WRITE = "Write"
    EXECUTE = "Execute"
    NETWORK = "Network"
    DEVICE = "Device"
    SYSTEM_SOCKET = "SystemSocket"


@dataclass(frozen=True)
class NetworkTarget:
    """A remote endpoint."""

    host: str
    port: int
    protocol: str

    def to_dict(self) -> dict[str, Any]:
        return {"host": self.host, "port": self.port, "protocol": self.protocol}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "NetworkTarget":
        return cls(
            host=_str(data, "host"),
            port=_uint(data, "port", _U16_MAX),
            protocol=_str(data, "protocol"),
        )


@dataclass(frozen=True)
class PathTarget:
    """A filesystem path."""

    path: Path


@dataclass(frozen=True)
class DeviceTarget:
    """A named device."""

    name: str


@dataclass(frozen=True)
class SocketTarget:
    """A named system socket."""

    name: str


AccessTarget = Union[PathTarget, NetworkTarget, DeviceTarget, SocketTarget]


def target_to_dict(target: AccessTarget) -> dict[str, Any]:
    """Encode a target as a single-key mapping naming its variant."""
    match target:
        case PathTarget(path=path):
            return {"Path": str(path)}
        case NetworkTarget():
            return {"Network": target.to_dict()}
        case DeviceTarget(name=name):
            return {"Device": name}
        case SocketTarget(name=name):
            return {"Socket": name}
    raise TypeError(f"not an access target: {target!r}")


def target_from_dict(data: Mapping[str, Any]) -> AccessTarget:
    """Decode a target written by target_to_dict."""
    if not isinstance(data, Mapping) or len(data) != 1:
        raise ValueError("access target must be a mapping with exactly one key")
    ((variant, value),) = data.items()
    match variant:
        case "Path":
            path = _optional_path(value)
            if path is None:
                raise ValueError("path target must not be null")
            return PathTarget(path)
        case "Network":
            return NetworkTarget.from_dict(value)
        case "Device" | "Socket":
            if not isinstance(value, str):
                raise ValueError(f"{variant} target must be a string")
            return DeviceTarget(value) if variant == "Device" else SocketTarget(value)
    raise ValueError(f"unknown access target: {variant}")


@dataclass
class AccessAttempt:
    """A single observed access by the monitored program."""

    timestamp: datetime
    kind: AccessKind
    target: AccessTarget
    note: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": format_timestamp(self.timestamp),
            "kind": self.kind.value,
            "target": target_to_dict(self.target),
            "note": self.note,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AccessAttempt":
        note = data.get("note") if isinstance(data, Mapping) else None
        if note is not None and not isinstance(note, str):
            raise ValueError("note must be a string")
        return cls(
            timestamp=parse_timestamp(_field(data, "timestamp")),
            kind=AccessKind(_field(data, "kind")),
            target=target_from_dict(_field(data, "target")),
            note=note,
        )


@dataclass
class RunMetadata:
    """What was run, when, and under which trust tier."""

    session_id: uuid.UUID
    executable: Path
    args: list[str]
    started_at: datetime
    ended_at: Optional[datetime]
    trust_tier: TrustTier

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": str(self.session_id),
            "executable": str(self.executable),
            "args": list(self.args),
            "started_at": format_timestamp(self.started_at),
            "ended_at": None if self.ended_at is None else format_timestamp(self.ended_at),
            "trust_tier": self.trust_tier.value,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RunMetadata":
        ended = data.get("ended_at") if isinstance(data, Mapping) else None
        return cls(
            session_id=_parse_uuid(_field(data, "session_id")),
            executable=Path(_str(data, "executable")),
            args=_str_list(data, "args"),
            started_at=parse_timestamp(_field(data, "started_at")),
            ended_at=None if ended is None else parse_timestamp(ended),
            trust_tier=TrustTier(_field(data, "trust_tier")),
        )


@dataclass
class LiveMonitorConfig:
    """Which live watchers run during a session and how often they poll."""

    fs: bool = False
    proc: bool = False
    net: bool = False
    poll_interval_ms: int = 250

    def enabled(self) -> bool:
        return self.fs or self.proc or self.net

    def to_dict(self) -> dict[str, Any]:
        return {
            "fs": self.fs,
            "proc": self.proc,
            "net": self.net,
            "poll_interval_ms": self.poll_interval_ms,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "LiveMonitorConfig":
        return cls(
            fs=_bool(data, "fs"),
            proc=_bool(data, "proc"),
            net=_bool(data, "net"),
            poll_interval_ms=_uint(data, "poll_interval_ms", 2**64 - 1),
        )


@dataclass(frozen=True)
class RunId:
    """Identifier of a run."""

    value: uuid.UUID = field(default_factory=uuid.uuid4)

    @classmethod
    def new(cls) -> "RunId":
        return cls(uuid.uuid4())


@dataclass(frozen=True)
class ExecId:
    """Identifier of an executable."""

    value: uuid.UUID = field(default_factory=uuid.uuid4)

    @classmethod
    def new(cls) -> "ExecId":
        return cls(uuid.uuid4())


@dataclass(frozen=True)
class PrefixId:
    """Identifier of a prefix."""

    value: uuid.UUID = field(default_factory=uuid.uuid4)

    @classmethod
    def new(cls) -> "PrefixId":
        return cls(uuid.uuid4())