"""The winewarden command line."""

from __future__ import annotations

import argparse
import os
import signal
import subprocess
import sys
from pathlib import Path
from typing import Optional, Sequence

from winewarden.config import Config, ConfigPaths
from winewarden.errors import WineWardenError, WineWardenIOError
from winewarden.ipc import (
    ErrorPayload,
    PingRequest,
    PongResponse,
    StatusPayload,
    StatusRequest,
    resolve_pid_path,
    resolve_socket_path,
    send_request,
)
from winewarden.prefix import HygieneFinding, PrefixManager, PrefixSnapshot
from winewarden.reporting import SessionReport
from winewarden.session import RunInputs, execute_run, run_via_daemon
from winewarden.store import ExecutableIdentity, TrustStore
from winewarden.trust import TrustTier
from winewarden.types import LiveMonitorConfig

_DAEMON_PROGRAM = "winewarden-daemon"


def build_live_monitor(
    live: bool, live_fs: bool, live_proc: bool, live_net: bool, poll_ms: int
) -> Optional[LiveMonitorConfig]:
    """Live monitoring settings, or None when nothing is watched."""
    fs = live or live_fs
    proc = live or live_proc
    net = live or live_net
    if not (fs or proc or net):
        return None
    return LiveMonitorConfig(fs=fs, proc=proc, net=net, poll_interval_ms=poll_ms)


def init_config(path: Optional[Path | str], force: bool) -> Path:
    """Write the default configuration, refusing to overwrite unless forced."""
    config_path = Path(path) if path is not None else Path(ConfigPaths.resolve().config_path)
    if config_path.exists() and not force:
        raise WineWardenError(
            f"Config already exists at {config_path} (use --force to overwrite)"
        )
    Config.default_config().save(config_path)
    print(f"Config written to {config_path}")
    return config_path


def print_effective(config_path: Optional[Path | str]) -> str:
    """Print the configuration as it is loaded from disk."""
    path = Path(config_path) if config_path is not None else Path(ConfigPaths.resolve().config_path)
    try:
        config = Config.load(path)
    except (OSError, ValueError, WineWardenError) as exc:
        raise WineWardenError(f"load config {path}: {exc}") from exc
    output = config.to_toml_string()
    print(output)
    return output


def report_command(input_path: Path | str, as_json: bool) -> SessionReport:
    """Show a stored report, as its summary or as the raw JSON."""
    path = Path(input_path)
    try:
        contents = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise WineWardenIOError(f"read report {path}: {exc}") from exc
    try:
        report = SessionReport.from_json(contents)
    except ValueError as exc:
        raise WineWardenError(f"parse report JSON: {exc}") from exc
    print(contents if as_json else report.human_summary())
    return report


def _trust_store() -> tuple[TrustStore, Path]:
    paths = ConfigPaths.resolve()
    db_path = Path(paths.trust_db_path)
    return TrustStore.load(db_path), db_path


def trust_get(executable: Path | str) -> TrustTier:
    """Print and return the tier recorded for an executable; yellow if unknown."""
    store, _ = _trust_store()
    identity = ExecutableIdentity.from_path(Path(executable))
    tier = store.get_tier(identity) or TrustTier.YELLOW
    print(f"Trust: {tier} ({executable})")
    return tier


def trust_set(executable: Path | str, tier: TrustTier) -> None:
    """Record a tier for an executable."""
    store, db_path = _trust_store()
    identity = ExecutableIdentity.from_path(Path(executable))
    store.set_tier(identity, tier)
    store.save(db_path)
    print(f"Trust updated to {tier}")


def prefix_scan(prefix: Path | str) -> list[HygieneFinding]:
    """Print and return the hygiene findings of a prefix."""
    manager = PrefixManager.from_paths(prefix, ConfigPaths.resolve())
    findings = manager.scan_hygiene()
    if not findings:
        print("Prefix hygiene looks clean.")
    else:
        print(f"Hygiene findings: {len(findings)}")
        for finding in findings:
            print(f"- {finding.note}: {finding.path}")
    return findings


def prefix_snapshot(prefix: Path | str) -> PrefixSnapshot:
    """Take and store a snapshot of a prefix."""
    manager = PrefixManager.from_paths(prefix, ConfigPaths.resolve())
    snapshot = manager.create_snapshot()
    print(f"Snapshot created: {snapshot.id}")
    return snapshot


def _raise_unexpected(response: object) -> None:
    if isinstance(response, ErrorPayload):
        raise WineWardenError(response.message)
    raise WineWardenError(f"unexpected response: {response!r}")


def _status_via_daemon(socket_path: Path) -> StatusPayload:
    response = send_request(socket_path, StatusRequest())
    if not isinstance(response, StatusPayload):
        _raise_unexpected(response)
    print("WineWarden daemon is running.")
    print(f"Uptime: {response.uptime_seconds}s")
    if response.last_summary is not None:
        print(f"Last session: {response.last_summary}")
    return response


def status_command(executable: Optional[Path | str], use_daemon: bool) -> None:
    """Show the daemon's status, one executable's tier, or the trust store size."""
    if use_daemon:
        _status_via_daemon(resolve_socket_path())
        return
    store, _ = _trust_store()
    if executable is not None:
        identity = ExecutableIdentity.from_path(Path(executable))
        tier = store.get_tier(identity) or TrustTier.YELLOW
        print(f"Trust: {tier} ({executable})")
        return
    print(f"Trusted executables: {len(store.records)}")


def daemon_start(socket: Optional[Path | str], pid: Optional[Path | str]) -> subprocess.Popen:
    """Start the daemon in the background."""
    env = dict(os.environ)
    if socket is not None:
        env["WINEWARDEN_SOCKET"] = str(socket)
    if pid is not None:
        env["WINEWARDEN_PID"] = str(pid)
    try:
        process = subprocess.Popen([_DAEMON_PROGRAM], env=env)
    except OSError as exc:
        raise WineWardenIOError(f"start {_DAEMON_PROGRAM}: {exc}") from exc
    print("WineWarden daemon started.")
    return process


def daemon_stop(pid: Optional[Path | str]) -> int:
    """Send SIGTERM to the daemon named in the pid file and return its pid."""
    pid_path = Path(pid) if pid is not None else resolve_pid_path()
    try:
        pid_text = Path(pid_path).read_text(encoding="utf-8")
    except OSError as exc:
        raise WineWardenIOError(f"read pid file {pid_path}: {exc}") from exc
    try:
        process_id = int(pid_text.strip())
    except ValueError as exc:
        raise WineWardenError(f"parse pid: {exc}") from exc
    try:
        os.kill(process_id, signal.SIGTERM)
    except (OSError, OverflowError) as exc:
        raise WineWardenError(f"failed to stop daemon with pid {process_id}") from exc
    print("WineWarden daemon stopped.")
    return process_id


def daemon_ping(socket: Optional[Path | str]) -> None:
    """Check that the daemon answers."""
    socket_path = Path(socket) if socket is not None else resolve_socket_path()
    response = send_request(socket_path, PingRequest())
    if not isinstance(response, PongResponse):
        _raise_unexpected(response)
    print("WineWarden daemon is healthy.")


def daemon_status(socket: Optional[Path | str]) -> StatusPayload:
    """Print and return the daemon's status."""
    socket_path = Path(socket) if socket is not None else resolve_socket_path()
    return _status_via_daemon(socket_path)


def _tier_arg(value: str) -> TrustTier:
    try:
        return TrustTier.parse(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from None


def _optional_path(value: Optional[str]) -> Optional[Path]:
    return None if value is None else Path(value)


def _do_init(args: argparse.Namespace) -> None:
    init_config(args.path, args.force)


def _do_run(args: argparse.Namespace) -> None:
    inputs = RunInputs(
        executable=Path(args.executable),
        args=list(args.args),
        config_path=_optional_path(args.config),
        prefix=_optional_path(args.prefix),
        event_log=_optional_path(args.event_log),
        trust_override=args.trust,
        no_run=args.no_run,
        pirate_safe=args.pirate_safe,
        live_monitor=build_live_monitor(
            args.live, args.live_fs, args.live_proc, args.live_net, args.poll_ms
        ),
        use_daemon=args.daemon,
    )
    if inputs.use_daemon:
        print(run_via_daemon(inputs).summary)
    else:
        print(execute_run(inputs).human_summary())


def _do_report(args: argparse.Namespace) -> None:
    report_command(args.input, args.json)


def _do_trust_get(args: argparse.Namespace) -> None:
    trust_get(args.executable)


def _do_trust_set(args: argparse.Namespace) -> None:
    trust_set(args.executable, args.tier)


def _do_prefix_scan(args: argparse.Namespace) -> None:
    prefix_scan(args.prefix)


def _do_prefix_snapshot(args: argparse.Namespace) -> None:
    prefix_snapshot(args.prefix)


def _do_status(args: argparse.Namespace) -> None:
    status_command(args.executable, args.daemon)


def _do_daemon_start(args: argparse.Namespace) -> None:
    daemon_start(args.socket, args.pid)


def _do_daemon_stop(args: argparse.Namespace) -> None:
    daemon_stop(args.pid)


def _do_daemon_ping(args: argparse.Namespace) -> None:
    daemon_ping(args.socket)


def _do_daemon_status(args: argparse.Namespace) -> None:
    daemon_status(args.socket)


def _do_socket_path(args: argparse.Namespace) -> None:
    print(resolve_socket_path())


def _do_pid_path(args: argparse.Namespace) -> None:
    print(resolve_pid_path())


def _do_config(args: argparse.Namespace) -> None:
    if args.print:
        print_effective(args.config)


def build_parser() -> argparse.ArgumentParser:
    """The argument parser for every winewarden command."""
    parser = argparse.ArgumentParser(
        prog="winewarden", description="Calm protection for Windows games on Linux"
    )
    parser.add_argument("--config", type=Path, default=None)
    commands = parser.add_subparsers(dest="command", required=True)

    init = commands.add_parser("init")
    init.add_argument("--path", type=Path, default=None)
    init.add_argument("--force", action="store_true")
    init.set_defaults(handler=_do_init)

    run = commands.add_parser("run")
    run.add_argument("--prefix", type=Path, default=None)
    run.add_argument("--event-log", type=Path, default=None)
    run.add_argument("--trust", type=_tier_arg, default=None)
    run.add_argument("--no-run", action="store_true")
    run.add_argument("--pirate-safe", action="store_true")
    run.add_argument("--live", action="store_true")
    run.add_argument("--live-fs", action="store_true")
    run.add_argument("--live-proc", action="store_true")
    run.add_argument("--live-net", action="store_true")
    run.add_argument("--poll-ms", type=int, default=250)
    run.add_argument("--daemon", action="store_true")
    run.add_argument("executable", type=Path)
    run.add_argument("args", nargs="*")
    run.set_defaults(handler=_do_run)

    report = commands.add_parser("report")
    report.add_argument("--input", type=Path, required=True)
    report.add_argument("--json", action="store_true")
    report.set_defaults(handler=_do_report)

    trust = commands.add_parser("trust")
    trust_actions = trust.add_subparsers(dest="action", required=True)
    trust_get_parser = trust_actions.add_parser("get")
    trust_get_parser.add_argument("executable", type=Path)
    trust_get_parser.set_defaults(handler=_do_trust_get)
    trust_set_parser = trust_actions.add_parser("set")
    trust_set_parser.add_argument("executable", type=Path)
    trust_set_parser.add_argument("tier", type=_tier_arg)
    trust_set_parser.set_defaults(handler=_do_trust_set)

    prefix = commands.add_parser("prefix")
    prefix_actions = prefix.add_subparsers(dest="action", required=True)
    scan = prefix_actions.add_parser("scan")
    scan.add_argument("prefix", type=Path)
    scan.set_defaults(handler=_do_prefix_scan)
    snapshot = prefix_actions.add_parser("snapshot")
    snapshot.add_argument("prefix", type=Path)
    snapshot.set_defaults(handler=_do_prefix_snapshot)

    status = commands.add_parser("status")
    status.add_argument("executable", type=Path, nargs="?", default=None)
    status.add_argument("--daemon", action="store_true")
    status.set_defaults(handler=_do_status)

    daemon = commands.add_parser("daemon")
    daemon_actions = daemon.add_subparsers(dest="action", required=True)
    start = daemon_actions.add_parser("start")
    start.add_argument("--socket", type=Path, default=None)
    start.add_argument("--pid", type=Path, default=None)
    start.set_defaults(handler=_do_daemon_start)
    stop = daemon_actions.add_parser("stop")
    stop.add_argument("--pid", type=Path, default=None)
    stop.set_defaults(handler=_do_daemon_stop)
    ping = daemon_actions.add_parser("ping")
    ping.add_argument("--socket", type=Path, default=None)
    ping.set_defaults(handler=_do_daemon_ping)
    daemon_status_parser = daemon_actions.add_parser("status")
    daemon_status_parser.add_argument("--socket", type=Path, default=None)
    daemon_status_parser.set_defaults(handler=_do_daemon_status)
    daemon_actions.add_parser("socket-path").set_defaults(handler=_do_socket_path)
    daemon_actions.add_parser("pid-path").set_defaults(handler=_do_pid_path)

    config = commands.add_parser("config")
    config.add_argument("--print", action="store_true")
    config.set_defaults(handler=_do_config)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        args.handler(args)
    except (WineWardenError, OSError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    return 0