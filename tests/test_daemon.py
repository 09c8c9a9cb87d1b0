import os
import socket
import stat
import threading
import time
import uuid
from datetime import timedelta

import pytest

from winewarden.config import ConfigPaths
from winewarden.daemon import (
    DaemonState,
    EventStore,
    build_status,
    handle_connection,
    handle_request,
    handle_run,
    serve,
    update_state,
    write_pid_file,
)
from winewarden.ipc import (
    PingRequest,
    PongResponse,
    RunRequestPayload,
    RunResult,
    StatusPayload,
    StatusRequest,
    decode_response,
    encode_request,
    encode_response,
    send_request,
)
from winewarden.store import ExecutableIdentity, TrustStore
from winewarden.types import LiveMonitorConfig, now_utc


def _as_bytes(value):
    return value if isinstance(value, bytes) else value.encode("utf-8")


def _line(request):
    encoded = _as_bytes(encode_request(request))
    return encoded if encoded.endswith(b"\n") else encoded + b"\n"


def test_handle_request_ping():
    response = handle_request(PingRequest(), DaemonState())
    assert isinstance(response, PongResponse)
    assert encode_response(response) == encode_response(PongResponse())


def test_build_status_reports_state():
    session_id = uuid.uuid4()
    state = DaemonState(
        started_at=now_utc() - timedelta(seconds=5),
        active_sessions=2,
        last_session_id=session_id,
        last_summary="done",
    )
    status = build_status(state)
    assert status.uptime_seconds >= 5
    assert status.active_sessions == 2
    assert status.last_session_id == session_id
    assert status.last_summary == "done"
    assert status.started_at == state.started_at


def test_status_request_uses_state():
    state = DaemonState(active_sessions=3)
    response = handle_request(StatusRequest(), state)
    assert response.active_sessions == 3
    assert response.last_summary is None


def test_update_state_from_run_result():
    state = DaemonState()
    session_id = uuid.uuid4()
    update_state(state, RunResult(session_id=session_id, summary="calm"))
    assert state.last_session_id == session_id
    assert state.last_summary == "calm"
    assert state.active_sessions == 0


def test_update_state_from_status():
    state = DaemonState()
    session_id = uuid.uuid4()
    payload = StatusPayload(
        started_at=now_utc(),
        uptime_seconds=1,
        active_sessions=4,
        last_session_id=session_id,
        last_summary="s",
    )
    update_state(state, payload)
    assert state.active_sessions == 4
    assert state.last_session_id == session_id
    assert state.last_summary == "s"


def test_update_state_ignores_pong():
    state = DaemonState(active_sessions=1, last_summary="keep")
    update_state(state, PongResponse())
    assert state.active_sessions == 1
    assert state.last_summary == "keep"


def test_handle_connection_round_trip():
    server, client = socket.socketpair()
    with server, client:
        client.sendall(_line(PingRequest()))
        response = handle_connection(server, handle_request, DaemonState())
        with client.makefile("rb") as reader:
            received = decode_response(reader.readline().decode("utf-8"))
    assert encode_response(response) == encode_response(PongResponse())
    assert encode_response(received) == encode_response(PongResponse())


def test_handle_connection_empty_peer():
    server, client = socket.socketpair()
    with server:
        client.close()
        assert handle_connection(server, handle_request, DaemonState()) is None


def test_handle_run_updates_state(tmp_path, monkeypatch):
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    game = tmp_path / "game.exe"
    game.write_bytes(b"MZ daemon game")
    prefix = tmp_path / "prefix"
    prefix.mkdir()
    payload = RunRequestPayload(
        executable=game,
        args=[],
        prefix_root=prefix,
        event_log=None,
        trust_override=None,
        no_run=True,
        pirate_safe=False,
        config_path=None,
        live_monitor=LiveMonitorConfig(),
    )
    state = DaemonState()
    result = handle_run(payload, state)
    assert state.active_sessions == 1
    assert state.last_session_id == result.session_id
    assert state.last_summary == result.summary
    paths = ConfigPaths.resolve()
    assert (paths.report_dir / f"{result.session_id}.json").exists()
    sha = ExecutableIdentity.from_path(game).sha256
    assert TrustStore.load(paths.trust_db_path).records[sha].runs == 1


def _request_with_retry(socket_path, request):
    deadline = time.monotonic() + 5
    while True:
        try:
            return send_request(socket_path, request)
        except Exception:
            if time.monotonic() > deadline:
                raise
            time.sleep(0.05)


def test_serve_answers_ping_and_status(tmp_path):
    socket_path = tmp_path / "d.sock"
    state = DaemonState(store=EventStore(location=str(socket_path)))
    thread = threading.Thread(target=serve, args=(socket_path, state, handle_request), daemon=True)
    thread.start()
    pong = _request_with_retry(socket_path, PingRequest())
    assert encode_response(pong) == encode_response(PongResponse())
    status = _request_with_retry(socket_path, StatusRequest())
    assert status.active_sessions == 0
    assert status.last_session_id is None
    assert stat.S_IMODE(socket_path.stat().st_mode) == 0o600


def test_write_pid_file(tmp_path):
    path = tmp_path / "run" / "daemon.pid"
    write_pid_file(path)
    assert path.read_text() == str(os.getpid())
    assert stat.S_IMODE(path.stat().st_mode) == 0o600


def test_unknown_request_raises():
    with pytest.raises(TypeError):
        handle_request(object(), DaemonState())