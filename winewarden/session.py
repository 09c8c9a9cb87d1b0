"""Running a game locally or through the daemon, and storing the result."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from winewarden.config import Config, ConfigPaths
from winewarden.errors import WineWardenError, WineWardenIOError
from winewarden.ipc import (
    ErrorPayload,
    RunRequestPayload,
    RunResult,
    resolve_socket_path,
    send_request,
)
from winewarden.monitor import Monitor, RunRequest
from winewarden.policy import PolicyEngine
from winewarden.prefix import PrefixManager
from winewarden.reporting import SessionReport
from winewarden.runner import Runner, RunnerRequest
from winewarden.store import ExecutableIdentity, TrustStore
from winewarden.trust import TrustTier
from winewarden.types import LiveMonitorConfig

_DOWNGRADE = {
    TrustTier.GREEN: TrustTier.YELLOW,
    TrustTier.YELLOW: TrustTier.RED,
    TrustTier.RED: TrustTier.RED,
}


@dataclass
class RunInputs:
    """Everything needed to run a game under protection."""

    executable: Path
    args: list[str] = field(default_factory=list)
    config_path: Optional[Path] = None
    prefix: Optional[Path] = None
    event_log: Optional[Path] = None
    trust_override: Optional[TrustTier] = None
    no_run: bool = False
    pirate_safe: bool = False
    live_monitor: Optional[LiveMonitorConfig] = None
    use_daemon: bool = False


def downgrade_tier(tier: TrustTier) -> TrustTier:
    """One step less trusted; red stays red."""
    return _DOWNGRADE[tier]


def default_prefix_path(paths: ConfigPaths, tier: TrustTier) -> Path:
    """The shared prefix used for a tier when none is given."""
    return Path(paths.data_dir) / "prefixes" / tier.value


def load_config(path: Optional[Path | str], paths: ConfigPaths) -> Config:
    """Load the given config; without a path, fall back to defaults if the usual one fails."""
    if path is not None:
        return Config.load(Path(path))
    try:
        return Config.load(Path(paths.config_path))
    except (OSError, ValueError, WineWardenError):
        return Config.default_config()


def _load_strict(path: Optional[Path | str], paths: ConfigPaths) -> Config:
    config_path = Path(path) if path is not None else Path(paths.config_path)
    try:
        return Config.load(config_path)
    except (OSError, ValueError, WineWardenError) as exc:
        raise WineWardenError(
            f"load config at {config_path} (run `winewarden init` if missing): {exc}"
        ) from exc


def store_report(paths: ConfigPaths, config: Config, report: SessionReport) -> None:
    """Save the report as JSON in the report directory, if reports are kept."""
    if not config.reporting.store_reports:
        return
    report_dir = Path(paths.report_dir)
    try:
        report_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise WineWardenIOError(f"create report dir {report_dir}: {exc}") from exc
    report_path = report_dir / f"{report.session_id}.json"
    try:
        report_path.write_text(json.dumps(report.to_dict(), indent=2), encoding="utf-8")
    except OSError as exc:
        raise WineWardenIOError(f"write report {report_path}: {exc}") from exc


def execute_run(inputs: RunInputs, fallback_to_default: bool = False) -> SessionReport:
    """Run a game locally, record it in the trust store and store its report."""
    paths = ConfigPaths.resolve()
    if fallback_to_default:
        config = load_config(inputs.config_path, paths)
    else:
        config = _load_strict(inputs.config_path, paths)

    trust_store = TrustStore.load(paths.trust_db_path)
    executable = Path(inputs.executable)
    identity = ExecutableIdentity.from_path(executable)

    tier = inputs.trust_override
    if tier is None:
        tier = trust_store.get_tier(identity)
    if tier is None:
        tier = config.trust.default_tier
    if config.trust.pirate_safe or inputs.pirate_safe:
        tier = downgrade_tier(tier)

    prefix_root = Path(inputs.prefix) if inputs.prefix is not None else default_prefix_path(paths, tier)

    if config.prefix.snapshot_before_first_run and identity.sha256 not in trust_store.records:
        PrefixManager.from_paths(prefix_root, paths).create_snapshot()

    if config.prefix.hygiene_scan_on_run:
        findings = PrefixManager.from_paths(prefix_root, paths).scan_hygiene()
        if findings:
            print(f"Prefix hygiene findings detected: {len(findings)}")

    Runner().dry_run(
        RunnerRequest(
            executable=executable,
            args=list(inputs.args),
            prefix_root=prefix_root,
            env={},
        )
    )

    monitor = Monitor(PolicyEngine.from_config(config, paths))
    report = monitor.run(
        RunRequest(
            executable=executable,
            args=list(inputs.args),
            prefix_root=prefix_root,
            trust_tier=tier,
            event_log=None if inputs.event_log is None else Path(inputs.event_log),
            no_run=inputs.no_run,
            live_monitor=inputs.live_monitor,
        )
    )

    trust_store.record_run(identity, tier)
    trust_store.save(paths.trust_db_path)
    store_report(paths, config, report)
    return report


def run_via_daemon(inputs: RunInputs) -> RunResult:
    """Ask the running daemon to run the game and return its result."""
    payload = RunRequestPayload(
        executable=Path(inputs.executable),
        args=list(inputs.args),
        prefix_root=None if inputs.prefix is None else Path(inputs.prefix),
        event_log=None if inputs.event_log is None else Path(inputs.event_log),
        trust_override=inputs.trust_override,
        no_run=inputs.no_run,
        pirate_safe=inputs.pirate_safe,
        config_path=None if inputs.config_path is None else Path(inputs.config_path),
        live_monitor=inputs.live_monitor or LiveMonitorConfig(),
    )
    response = send_request(resolve_socket_path(), payload)
    if isinstance(response, RunResult):
        return response
    if isinstance(response, ErrorPayload):
        raise WineWardenError(response.message)
    raise WineWardenError(f"unexpected response: {response!r}")