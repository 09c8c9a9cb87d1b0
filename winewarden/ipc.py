"""Line-delimited JSON protocol between the command line and the daemon."""

from __future__ import annotations

import json
import os
import socket
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Mapping, Optional, Union

from winewarden.errors import WineWardenIOError
from winewarden.trust import TrustTier
from winewarden.types import (
    LiveMonitorConfig,
    _bool,
    _field,
    _optional_path,
    _parse_uuid,
    _str,
    _str_list,
    _uint,
    format_timestamp,
    parse_timestamp,
)


@dataclass
class RunRequestPayload:
    """Everything the daemon needs to run a session."""

    executable: Path
    args: list[str] = field(default_factory=list)
    prefix_root: Optional[Path] = None
    event_log: Optional[Path] = None
    trust_override: Optional[TrustTier] = None
    no_run: bool = False
    pirate_safe: bool = False
    config_path: Optional[Path] = None
    live_monitor: LiveMonitorConfig = field(default_factory=LiveMonitorConfig)


@dataclass
class StatusPayload:
    started_at: datetime
    uptime_seconds: int
    active_sessions: int
    last_session_id: Optional[uuid.UUID] = None
    last_summary: Optional[str] = None


@dataclass
class RunResult:
    session_id: uuid.UUID
    summary: str


@dataclass
class ErrorPayload:
    message: str


@dataclass(frozen=True)
class PingRequest:
    """Ask the daemon whether it is alive."""


@dataclass(frozen=True)
class StatusRequest:
    """Ask the daemon for its status."""


@dataclass(frozen=True)
class PongResponse:
    """The daemon's answer to a ping."""


Request = Union[PingRequest, StatusRequest, RunRequestPayload]
Response = Union[PongResponse, StatusPayload, RunResult, ErrorPayload]


def _opt_str(value: Optional[Path]) -> Optional[str]:
    return None if value is None else str(value)


def _run_to_dict(payload: RunRequestPayload) -> dict[str, Any]:
    return {
        "executable": str(payload.executable),
        "args": list(payload.args),
        "prefix_root": _opt_str(payload.prefix_root),
        "event_log": _opt_str(payload.event_log),
        "trust_override": None if payload.trust_override is None else payload.trust_override.value,
        "no_run": payload.no_run,
        "pirate_safe": payload.pirate_safe,
        "config_path": _opt_str(payload.config_path),
        "live_monitor": payload.live_monitor.to_dict(),
    }


def _run_from_dict(data: Mapping[str, Any]) -> RunRequestPayload:
    if not isinstance(data, Mapping):
        raise ValueError("run payload must be an object")
    trust = data.get("trust_override")
    live = data.get("live_monitor")
    return RunRequestPayload(
        executable=Path(_str(data, "executable")),
        args=_str_list(data, "args"),
        prefix_root=_optional_path(data.get("prefix_root")),
        event_log=_optional_path(data.get("event_log")),
        trust_override=None if trust is None else TrustTier(trust),
        no_run=_bool(data, "no_run"),
        pirate_safe=_bool(data, "pirate_safe"),
        config_path=_optional_path(data.get("config_path")),
        live_monitor=LiveMonitorConfig() if live is None else LiveMonitorConfig.from_dict(live),
    )


def _status_to_dict(payload: StatusPayload) -> dict[str, Any]:
    return {
        "started_at": format_timestamp(payload.started_at),
        "uptime_seconds": payload.uptime_seconds,
        "active_sessions": payload.active_sessions,
        "last_session_id": None if payload.last_session_id is None else str(payload.last_session_id),
        "last_summary": payload.last_summary,
    }


def _status_from_dict(data: Mapping[str, Any]) -> StatusPayload:
    if not isinstance(data, Mapping):
        raise ValueError("status payload must be an object")
    session = data.get("last_session_id")
    summary = data.get("last_summary")
    if summary is not None and not isinstance(summary, str):
        raise ValueError("last_summary must be a string")
    return StatusPayload(
        started_at=parse_timestamp(_field(data, "started_at")),
        uptime_seconds=_uint(data, "uptime_seconds", 2**64 - 1),
        active_sessions=_uint(data, "active_sessions", 2**32 - 1),
        last_session_id=None if session is None else _parse_uuid(session),
        last_summary=summary,
    )


def encode_request(request: Request) -> str:
    """Encode a request as one JSON line (without the newline)."""
    match request:
        case PingRequest():
            message: dict[str, Any] = {"type": "Ping"}
        case StatusRequest():
            message = {"type": "Status"}
        case RunRequestPayload():
            message = {"type": "Run", "payload": _run_to_dict(request)}
        case _:
            raise TypeError(f"not a request: {request!r}")
    return json.dumps(message)


def decode_request(line: str) -> Request:
    """Decode a request line; raises ValueError when malformed."""
    data = json.loads(line)
    tag = _field(data, "type")
    match tag:
        case "Ping":
            return PingRequest()
        case "Status":
            return StatusRequest()
        case "Run":
            return _run_from_dict(_field(data, "payload"))
    raise ValueError(f"unknown request type: {tag!r}")


def encode_response(response: Response) -> str:
    """Encode a response as one JSON line (without the newline)."""
    match response:
        case PongResponse():
            message: dict[str, Any] = {"type": "Pong"}
        case StatusPayload():
            message = {"type": "Status", "payload": _status_to_dict(response)}
        case RunResult(session_id=session_id, summary=summary):
            message = {
                "type": "RunResult",
                "payload": {"session_id": str(session_id), "summary": summary},
            }
        case ErrorPayload(message=text):
            message = {"type": "Error", "payload": {"message": text}}
        case _:
            raise TypeError(f"not a response: {response!r}")
    return json.dumps(message)


def decode_response(line: str) -> Response:
    """Decode a response line; raises ValueError when malformed."""
    data = json.loads(line)
    tag = _field(data, "type")
    match tag:
        case "Pong":
            return PongResponse()
        case "Status":
            return _status_from_dict(_field(data, "payload"))
        case "RunResult":
            payload = _field(data, "payload")
            return RunResult(
                session_id=_parse_uuid(_field(payload, "session_id")),
                summary=_str(payload, "summary"),
            )
        case "Error":
            return ErrorPayload(message=_str(_field(data, "payload"), "message"))
    raise ValueError(f"unknown response type: {tag!r}")


def _runtime_file(name: str) -> Path:
    runtime = os.environ.get("XDG_RUNTIME_DIR")
    if runtime is not None:
        return Path(runtime) / "winewarden" / name
    return Path("/tmp") / name


def default_socket_path() -> Path:
    return _runtime_file("winewarden.sock")


def default_pid_path() -> Path:
    return _runtime_file("winewarden.pid")


def resolve_socket_path() -> Path:
    """The daemon socket, honouring WINEWARDEN_SOCKET."""
    value = os.environ.get("WINEWARDEN_SOCKET")
    return Path(value) if value is not None else default_socket_path()


def resolve_pid_path() -> Path:
    """The daemon pid file, honouring WINEWARDEN_PID."""
    value = os.environ.get("WINEWARDEN_PID")
    return Path(value) if value is not None else default_pid_path()


def send_request(socket_path: Path | str, request: Request) -> Response:
    """Send one request to the daemon and wait for its response."""
    path = Path(socket_path)
    with socket.socket(socket.AF_UNIX, socket.SOCK_STREAM) as sock:
        try:
            sock.connect(str(path))
        except OSError as exc:
            raise WineWardenIOError(f"connect to daemon at {path}: {exc}") from exc
        try:
            sock.sendall((encode_request(request) + "\n").encode("utf-8"))
            with sock.makefile("r", encoding="utf-8") as reader:
                line = reader.readline()
        except OSError as exc:
            raise WineWardenIOError(f"talk to daemon at {path}: {exc}") from exc
    try:
        return decode_response(line)
    except ValueError as exc:
        raise ValueError(f"parse response: {exc}") from exc