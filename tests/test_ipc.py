import json
import socket
import tempfile
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path

import pytest

from winewarden.errors import WineWardenIOError
from winewarden.ipc import (
    ErrorPayload,
    PingRequest,
    PongResponse,
    RunRequestPayload,
    RunResult,
    StatusPayload,
    StatusRequest,
    decode_request,
    decode_response,
    default_pid_path,
    default_socket_path,
    encode_request,
    encode_response,
    resolve_pid_path,
    resolve_socket_path,
    send_request,
)
from winewarden.trust import TrustTier
from winewarden.types import LiveMonitorConfig


def test_ping_wire_form():
    assert json.loads(encode_request(PingRequest())) == {"type": "Ping"}
    assert json.loads(encode_response(PongResponse())) == {"type": "Pong"}


@pytest.mark.parametrize("request_obj", [PingRequest(), StatusRequest()])
def test_simple_requests_round_trip(request_obj):
    assert decode_request(encode_request(request_obj)) == request_obj


def test_run_request_round_trip():
    payload = RunRequestPayload(
        executable=Path("/games/game.exe"),
        args=["-fullscreen"],
        prefix_root=Path("/prefixes/red"),
        trust_override=TrustTier.RED,
        pirate_safe=True,
        live_monitor=LiveMonitorConfig(fs=True, poll_interval_ms=50),
    )
    encoded = encode_request(payload)
    assert json.loads(encoded)["type"] == "Run"
    assert decode_request(encoded) == payload


def test_run_request_live_monitor_defaults():
    line = json.dumps(
        {
            "type": "Run",
            "payload": {
                "executable": "/g.exe",
                "args": [],
                "prefix_root": None,
                "event_log": None,
                "trust_override": None,
                "no_run": True,
                "pirate_safe": False,
                "config_path": None,
            },
        }
    )
    decoded = decode_request(line)
    assert decoded.live_monitor == LiveMonitorConfig()
    assert decoded.no_run is True


@pytest.mark.parametrize(
    "response",
    [
        PongResponse(),
        StatusPayload(
            started_at=datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc),
            uptime_seconds=10,
            active_sessions=2,
            last_session_id=uuid.uuid4(),
            last_summary="done",
        ),
        StatusPayload(
            started_at=datetime(2024, 1, 2, tzinfo=timezone.utc),
            uptime_seconds=0,
            active_sessions=0,
        ),
        RunResult(session_id=uuid.uuid4(), summary="all fine"),
        ErrorPayload(message="boom"),
    ],
)
def test_responses_round_trip(response):
    assert decode_response(encode_response(response)) == response


def test_unknown_types_rejected():
    with pytest.raises(ValueError):
        decode_response('{"type": "Teapot"}')
    with pytest.raises(ValueError):
        decode_request('{"type": "Teapot"}')


def test_default_paths_with_runtime_dir(monkeypatch):
    monkeypatch.setenv("XDG_RUNTIME_DIR", "/run/user/1000")
    assert default_socket_path() == Path("/run/user/1000/winewarden/winewarden.sock")
    assert default_pid_path() == Path("/run/user/1000/winewarden/winewarden.pid")


def test_default_paths_without_runtime_dir(monkeypatch):
    monkeypatch.delenv("XDG_RUNTIME_DIR", raising=False)
    assert default_socket_path() == Path("/tmp/winewarden.sock")
    assert default_pid_path() == Path("/tmp/winewarden.pid")


def test_resolve_paths_honour_overrides(monkeypatch):
    monkeypatch.setenv("WINEWARDEN_SOCKET", "/custom/ww.sock")
    monkeypatch.setenv("WINEWARDEN_PID", "/custom/ww.pid")
    assert resolve_socket_path() == Path("/custom/ww.sock")
    assert resolve_pid_path() == Path("/custom/ww.pid")


def test_resolve_paths_fall_back(monkeypatch):
    monkeypatch.delenv("WINEWARDEN_SOCKET", raising=False)
    monkeypatch.delenv("WINEWARDEN_PID", raising=False)
    assert resolve_socket_path() == default_socket_path()
    assert resolve_pid_path() == default_pid_path()


def test_send_request_round_trip():
    with tempfile.TemporaryDirectory() as tmp:
        path = Path(tmp) / "ww.sock"
        server = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        server.bind(str(path))
        server.listen(1)
        received = []

        def serve():
            conn, _ = server.accept()
            with conn, conn.makefile("rw", encoding="utf-8") as stream:
                received.append(decode_request(stream.readline()))
                stream.write(encode_response(PongResponse()) + "\n")
                stream.flush()

        thread = threading.Thread(target=serve)
        thread.start()
        try:
            response = send_request(path, PingRequest())
        finally:
            thread.join(timeout=5)
            server.close()
    assert response == PongResponse()
    assert received == [PingRequest()]


def test_send_request_without_daemon():
    with tempfile.TemporaryDirectory() as tmp:
        with pytest.raises(WineWardenIOError):
            send_request(Path(tmp) / "nobody.sock", StatusRequest())