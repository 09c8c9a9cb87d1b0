"""The background daemon: serves run and status requests over a Unix socket."""

from __future__ import annotations

import argparse
import os
import socket
import struct
import threading
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Optional, Sequence

from winewarden.errors import WineWardenError, WineWardenIOError
from winewarden.ipc import (
    PingRequest,
    PongResponse,
    RunRequestPayload,
    RunResult,
    StatusPayload,
    StatusRequest,
    decode_request,
    encode_response,
    resolve_pid_path,
    resolve_socket_path,
)
from winewarden.session import RunInputs, execute_run
from winewarden.types import now_utc

_U32_MAX = 2**32 - 1
_UCRED = struct.Struct("3i")


@dataclass
class EventStore:
    """Where the daemon keeps events."""

    location: str = ""


@dataclass
class ScheduledJob:
    name: str
    next_run: datetime


@dataclass
class DaemonState:
    """What the daemon remembers between requests."""

    started_at: datetime = field(default_factory=now_utc)
    active_sessions: int = 0
    last_session_id: Optional[Any] = None
    last_summary: Optional[str] = None
    store: EventStore = field(default_factory=EventStore)
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)


Handler = Callable[[Any, DaemonState], Any]


def build_status(state: DaemonState) -> StatusPayload:
    with state.lock:
        uptime = now_utc() - state.started_at
        return StatusPayload(
            started_at=state.started_at,
            uptime_seconds=max(int(uptime.total_seconds()), 0),
            active_sessions=state.active_sessions,
            last_session_id=state.last_session_id,
            last_summary=state.last_summary,
        )


def handle_run(payload: RunRequestPayload, state: DaemonState) -> RunResult:
    """Run the requested game and remember its outcome."""
    live = payload.live_monitor
    inputs = RunInputs(
        executable=Path(payload.executable),
        args=list(payload.args),
        config_path=None if payload.config_path is None else Path(payload.config_path),
        prefix=None if payload.prefix_root is None else Path(payload.prefix_root),
        event_log=None if payload.event_log is None else Path(payload.event_log),
        trust_override=payload.trust_override,
        no_run=payload.no_run,
        pirate_safe=payload.pirate_safe,
        live_monitor=live if live is not None and live.enabled() else None,
    )
    report = execute_run(inputs, True)
    result = RunResult(session_id=report.session_id, summary=report.human_summary())
    with state.lock:
        state.active_sessions = min(state.active_sessions + 1, _U32_MAX)
        state.last_session_id = result.session_id
        state.last_summary = result.summary
    return result


def handle_request(request: Any, state: DaemonState) -> Any:
    """Answer one decoded request."""
    if isinstance(request, PingRequest):
        return PongResponse()
    if isinstance(request, StatusRequest):
        return build_status(state)
    if isinstance(request, RunRequestPayload):
        return handle_run(request, state)
    raise TypeError(f"unknown request: {request!r}")


def update_state(state: DaemonState, response: Any) -> None:
    """Record what a response says about the latest session."""
    with state.lock:
        if isinstance(response, RunResult):
            state.last_session_id = response.session_id
            state.last_summary = response.summary
        elif isinstance(response, StatusPayload):
            state.active_sessions = response.active_sessions
            state.last_session_id = response.last_session_id
            state.last_summary = response.last_summary


def _encode_line(response: Any) -> bytes:
    encoded = encode_response(response)
    if isinstance(encoded, str):
        encoded = encoded.encode("utf-8")
    return encoded if encoded.endswith(b"\n") else encoded + b"\n"


def handle_connection(connection: socket.socket, handler: Handler, state: DaemonState) -> Optional[Any]:
    """Read one request line, answer it, and return the response; None if the peer sent nothing."""
    with connection.makefile("rb") as reader:
        line = reader.readline()
    if not line:
        return None
    request = decode_request(line.decode("utf-8"))
    response = handler(request, state)
    connection.sendall(_encode_line(response))
    return response


def _check_peer_uid(connection: socket.socket) -> None:
    try:
        raw = connection.getsockopt(socket.SOL_SOCKET, socket.SO_PEERCRED, _UCRED.size)
    except OSError as exc:
        raise WineWardenError("failed to read peer credentials") from exc
    _pid, uid, _gid = _UCRED.unpack(raw)
    if uid != os.geteuid():
        raise WineWardenError(f"unauthorized peer uid {uid}")


def serve(socket_path: Path | str, state: DaemonState, handler: Handler) -> None:
    """Listen on the socket and answer requests from the same user, one at a time."""
    socket_path = Path(socket_path)
    try:
        socket_path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise WineWardenIOError(f"create socket dir {socket_path.parent}: {exc}") from exc
    if socket_path.exists():
        try:
            socket_path.unlink()
        except OSError as exc:
            raise WineWardenIOError(f"remove stale socket {socket_path}: {exc}") from exc

    with socket.socket(socket.AF_UNIX, socket.SOCK_STREAM) as listener:
        try:
            listener.bind(str(socket_path))
        except OSError as exc:
            raise WineWardenIOError(f"bind socket {socket_path}: {exc}") from exc
        try:
            os.chmod(socket_path, 0o600)
        except OSError as exc:
            raise WineWardenIOError(f"set socket permissions {socket_path}: {exc}") from exc
        listener.listen()

        while True:
            connection, _ = listener.accept()
            with connection:
                _check_peer_uid(connection)
                response = handle_connection(connection, handler, state)
            if response is not None:
                update_state(state, response)


def write_pid_file(path: Path | str) -> None:
    """Write this process's id to a file readable only by its owner."""
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(str(os.getpid()), encoding="utf-8")
        os.chmod(path, 0o600)
    except OSError as exc:
        raise WineWardenIOError(f"write pid file {path}: {exc}") from exc


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="winewarden-daemon",
        description="Serve winewarden run and status requests.",
    )
    parser.parse_args(argv)

    socket_path = resolve_socket_path()
    pid_path = resolve_pid_path()
    state = DaemonState(store=EventStore(location=str(socket_path)))

    write_pid_file(pid_path)
    print(f"WineWarden daemon listening on {socket_path}")
    serve(socket_path, state, handle_request)
    return 0