import json
import socket
import threading
import uuid
from pathlib import Path

import pytest

from winewarden.cli import (
    build_live_monitor,
    build_parser,
    daemon_ping,
    daemon_status,
    daemon_stop,
    init_config,
    main,
    prefix_scan,
    prefix_snapshot,
    print_effective,
    report_command,
    status_command,
    trust_get,
    trust_set,
)
from winewarden.config import Config
from winewarden.errors import WineWardenError
from winewarden.ipc import (
    ErrorPayload,
    PingRequest,
    PongResponse,
    StatusPayload,
    StatusRequest,
    decode_request,
    encode_response,
)
from winewarden.reporting import SessionReport
from winewarden.trust import TrustSignal, TrustTier
from winewarden.types import RunMetadata, now_utc


@pytest.fixture
def isolated_home(tmp_path, monkeypatch):
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("XDG_DATA_HOME", str(home / "data"))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(home / "config"))
    return home


@pytest.fixture
def executable(tmp_path):
    path = tmp_path / "game.exe"
    path.write_bytes(b"MZ fake game binary")
    return path


def _serve_once(path, response):
    server = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    server.bind(str(path))
    server.listen(1)
    received = []

    def run():
        conn, _ = server.accept()
        with conn:
            with conn.makefile("rb") as reader:
                received.append(reader.readline())
            data = encode_response(response)
            if isinstance(data, str):
                data = data.encode("utf-8")
            if not data.endswith(b"\n"):
                data += b"\n"
            conn.sendall(data)
        server.close()

    thread = threading.Thread(target=run, daemon=True)
    thread.start()
    return thread, received


def _sample_report():
    started = now_utc()
    metadata = RunMetadata(
        session_id=uuid.uuid4(),
        executable=Path("/games/game.exe"),
        args=[],
        started_at=started,
        ended_at=started,
        trust_tier=TrustTier.GREEN,
    )
    return SessionReport.build(metadata, TrustSignal.from_tier(TrustTier.GREEN), [])


def test_build_live_monitor_none_when_nothing_enabled():
    assert build_live_monitor(False, False, False, False, 250) is None


def test_build_live_monitor_live_enables_everything():
    config = build_live_monitor(True, False, False, False, 100)
    assert (config.fs, config.proc, config.net) == (True, True, True)
    assert config.poll_interval_ms == 100
    assert config.enabled()


def test_build_live_monitor_single_flag():
    config = build_live_monitor(False, False, False, True, 250)
    assert (config.fs, config.proc, config.net) == (False, False, True)


def test_init_config_writes_default(tmp_path, capsys):
    path = tmp_path / "cfg" / "config.toml"
    assert init_config(path, False) == path
    loaded = Config.load(path)
    assert loaded.to_toml_string() == Config.default_config().to_toml_string()
    assert str(path) in capsys.readouterr().out


def test_init_config_refuses_overwrite(tmp_path):
    path = tmp_path / "config.toml"
    init_config(path, False)
    with pytest.raises(WineWardenError, match="already exists"):
        init_config(path, False)
    assert init_config(path, True) == path


def test_print_effective_outputs_toml(tmp_path, capsys):
    path = tmp_path / "config.toml"
    Config.default_config().save(path)
    output = print_effective(path)
    assert output == Config.default_config().to_toml_string()
    assert output in capsys.readouterr().out


def test_print_effective_missing_file(tmp_path):
    with pytest.raises(WineWardenError):
        print_effective(tmp_path / "missing.toml")


def test_report_command_human(tmp_path, capsys):
    report = _sample_report()
    path = tmp_path / "report.json"
    path.write_text(json.dumps(report.to_dict()))
    loaded = report_command(path, False)
    assert loaded.session_id == report.session_id
    assert capsys.readouterr().out == report.human_summary() + "\n"


def test_report_command_json_prints_raw(tmp_path, capsys):
    contents = json.dumps(_sample_report().to_dict(), indent=2)
    path = tmp_path / "report.json"
    path.write_text(contents)
    report_command(path, True)
    assert capsys.readouterr().out == contents + "\n"


def test_report_command_bad_json(tmp_path):
    path = tmp_path / "report.json"
    path.write_text("not json")
    with pytest.raises(WineWardenError, match="parse report JSON"):
        report_command(path, False)


def test_trust_unknown_executable_is_yellow(isolated_home, executable):
    assert trust_get(executable) is TrustTier.YELLOW


def test_trust_set_then_get(isolated_home, executable, capsys):
    trust_set(executable, TrustTier.RED)
    assert "Trust updated to red" in capsys.readouterr().out
    assert trust_get(executable) is TrustTier.RED


def test_status_counts_trusted_executables(isolated_home, executable, capsys):
    status_command(None, False)
    assert "Trusted executables: 0" in capsys.readouterr().out
    trust_set(executable, TrustTier.GREEN)
    capsys.readouterr()
    status_command(None, False)
    assert "Trusted executables: 1" in capsys.readouterr().out


def test_prefix_scan_clean(isolated_home, tmp_path, capsys):
    prefix = tmp_path / "prefix"
    prefix.mkdir()
    assert prefix_scan(prefix) == []
    assert "Prefix hygiene looks clean." in capsys.readouterr().out


def test_prefix_snapshot_records_files(isolated_home, tmp_path, capsys):
    prefix = tmp_path / "prefix"
    prefix.mkdir()
    (prefix / "a.txt").write_text("abc")
    snapshot = prefix_snapshot(prefix)
    assert [entry.path.name for entry in snapshot.entries] == ["a.txt"]
    assert str(snapshot.id) in capsys.readouterr().out


def test_daemon_stop_missing_pid_file(tmp_path):
    with pytest.raises(WineWardenError):
        daemon_stop(tmp_path / "missing.pid")


def test_daemon_stop_bad_pid(tmp_path):
    path = tmp_path / "daemon.pid"
    path.write_text("not-a-pid")
    with pytest.raises(WineWardenError, match="parse pid"):
        daemon_stop(path)


def test_daemon_ping_healthy(tmp_path, capsys):
    sock = tmp_path / "d.sock"
    thread, received = _serve_once(sock, PongResponse())
    daemon_ping(sock)
    thread.join(timeout=5)
    assert isinstance(decode_request(received[0].decode("utf-8")), PingRequest)
    assert "WineWarden daemon is healthy." in capsys.readouterr().out


def test_daemon_ping_error_response(tmp_path):
    sock = tmp_path / "d.sock"
    thread, _ = _serve_once(sock, ErrorPayload(message="daemon busy"))
    with pytest.raises(WineWardenError, match="daemon busy"):
        daemon_ping(sock)
    thread.join(timeout=5)


def test_daemon_status_prints_summary(tmp_path, capsys):
    sock = tmp_path / "d.sock"
    payload = StatusPayload(
        started_at=now_utc(),
        uptime_seconds=5,
        active_sessions=1,
        last_session_id=None,
        last_summary="all quiet",
    )
    thread, received = _serve_once(sock, payload)
    result = daemon_status(sock)
    thread.join(timeout=5)
    assert isinstance(decode_request(received[0].decode("utf-8")), StatusRequest)
    assert result.uptime_seconds == 5
    out = capsys.readouterr().out
    assert "Uptime: 5s" in out
    assert "Last session: all quiet" in out


def test_parser_run_arguments():
    args = build_parser().parse_args(
        ["run", "--poll-ms", "100", "--trust", "RED", "--no-run", "game.exe", "a", "b"]
    )
    assert args.executable == Path("game.exe")
    assert args.args == ["a", "b"]
    assert args.trust is TrustTier.RED
    assert args.no_run is True
    assert args.poll_ms == 100


def test_parser_run_defaults():
    args = build_parser().parse_args(["run", "game.exe"])
    assert args.poll_ms == 250
    assert args.trust is None
    assert args.args == []


def test_parser_rejects_unknown_tier():
    with pytest.raises(SystemExit):
        build_parser().parse_args(["trust", "set", "game.exe", "purple"])


def test_main_socket_path_uses_env(tmp_path, monkeypatch, capsys):
    sock = tmp_path / "custom.sock"
    monkeypatch.setenv("WINEWARDEN_SOCKET", str(sock))
    assert main(["daemon", "socket-path"]) == 0
    assert capsys.readouterr().out.strip() == str(sock)


def test_main_reports_errors(tmp_path, capsys):
    code = main(["--config", str(tmp_path / "missing.toml"), "config", "--print"])
    assert code == 1
    assert capsys.readouterr().err.startswith("Error:")


def test_main_init_writes_config(tmp_path):
    path = tmp_path / "config.toml"
    assert main(["init", "--path", str(path)]) == 0
    assert Config.load(path).to_toml_string() == Config.default_config().to_toml_string()