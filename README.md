# winewarden

Calm protection for Windows games on Linux. winewarden starts a game, watches
what it touches, and judges each access attempt against your trust settings and
a set of "sacred zones" such as your SSH keys, GPG keys and home directory. When
the session ends you get a short, human summary and a stored JSON report.

## Install

```
pip install .
```

This installs two commands: `winewarden` and `winewarden-daemon`.
For the tests: `pip install .[test]` and then `pytest`.

## Getting started

Write a default configuration. It goes to your user configuration directory
(`config.toml`) unless you give `--path`; an existing file is only replaced with
`--force`:

```
winewarden init
winewarden config --print
```

Run a game under supervision. A local run needs a configuration file, so run
`winewarden init` first:

```
winewarden run /path/to/game.exe
winewarden run --trust red --live /path/to/game.exe -- --windowed
```

`run` options:

- `--prefix PATH`: the Wine prefix the game belongs to. By default it is
  `<data dir>/prefixes/<tier>`. The directory must exist.
- `--trust green|yellow|red`: override the stored trust tier.
- `--pirate-safe`: lower the trust tier by one step (red stays red). The
  `trust.pirate_safe` configuration setting does the same.
- `--live`, `--live-fs`, `--live-proc`, `--live-net`: live monitoring of the
  prefix's files, child processes and TCP/UDP connections while the game runs.
- `--poll-ms N`: the live monitoring poll interval in milliseconds (default 250).
- `--event-log FILE`: also evaluate access attempts read from a JSON-lines file.
- `--no-run`: do not start the executable; only evaluate the event log.
- `--daemon`: send the run to a running `winewarden-daemon`.
- `--config FILE` (before the command name): use another configuration file.

The tier of a run is, in order: `--trust`, the tier stored for the executable,
or `trust.default_tier` from the configuration. The first time an executable is
seen, a snapshot of the prefix is taken if `prefix.snapshot_before_first_run` is
set, and a hygiene scan runs if `prefix.hygiene_scan_on_run` is set. Each run is
counted in the trust store, and the report is written to `<data dir>/reports/`
when `reporting.store_reports` is set.

### Event logs

An event log holds one access attempt per line:

```
{"timestamp": "2024-01-01T12:00:00+00:00", "kind": "Read", "target": {"Path": "/home/user/.ssh/id_ed25519"}, "note": null}
{"timestamp": "2024-01-01T12:00:01+00:00", "kind": "Network", "target": {"Network": {"host": "192.0.2.10", "port": 443, "protocol": "tcp"}}, "note": null}
```

`kind` is one of `Read`, `Write`, `Execute`, `Network`, `Device`,
`SystemSocket`; `target` is one of `Path`, `Network`, `Device` or `Socket`.

## Policy

- A path is judged by the first sacred zone whose path contains it; the zone's
  action is `allow`, `deny`, `redirect` or `virtualize` (the last two point at
  `redirect_to`, or `/dev/null` if none is set). A path in no zone is allowed
  inside the prefix and denied outside it.
- Network access is allowed, except that it is denied for red-tier games when
  `network.block_on_malicious` is set.
- Device and system-socket access is always denied.

Zone paths in the configuration may use `${HOME}`, `${DATA_DIR}` and
`${CONFIG_DIR}`.

## Trust

Each executable is identified by the SHA-256 hash of its contents and has a
tier: `green` (trusted), `yellow` (partial) or `red` (restricted). Unknown
executables show as `yellow`.

```
winewarden trust get /path/to/game.exe
winewarden trust set /path/to/game.exe green
winewarden status /path/to/game.exe
winewarden status
```

`status` without an executable prints how many executables the trust store holds.

## Prefix hygiene

```
winewarden prefix scan /path/to/prefix
winewarden prefix snapshot /path/to/prefix
```

A scan reports DLLs of the same name with different sizes, DLLs outside
`drive_c/windows/system32` and `drive_c/windows/syswow64`, and DLLs under
`drive_c/users` with no `.exe` beside them. A snapshot records every file's size
and modification time in `<data dir>/snapshots/<id>.json`.

## Reports

```
winewarden report --input report.json
winewarden report --input report.json --json
```

Without `--json` the report's human summary is printed; with it, the file as it is.

## Daemon

```
winewarden daemon start [--socket PATH] [--pid PATH]
winewarden daemon ping
winewarden daemon status
winewarden daemon stop
winewarden daemon socket-path
winewarden daemon pid-path
winewarden status --daemon
```

`daemon start` launches `winewarden-daemon` from your `PATH` in the background.
The daemon writes its pid file, listens on a Unix socket (mode 0600) and answers
one request at a time with line-delimited JSON. A connection from a process of
another user ends the daemon with an error. Runs sent with `run --daemon` fall
back to the default configuration if the configuration file cannot be loaded.

The socket and pid file sit in `$XDG_RUNTIME_DIR/winewarden/` or, when that is
not set, in `/tmp`. `WINEWARDEN_SOCKET` and `WINEWARDEN_PID` override them.

## Library use

```python
from pathlib import Path

from winewarden.config import Config, ConfigPaths
from winewarden.policy import PolicyContext, PolicyEngine
from winewarden.trust import TrustTier
from winewarden.types import AccessAttempt, AccessKind, PathTarget, now_utc

paths = ConfigPaths.resolve()
engine = PolicyEngine.from_config(Config.default_config(), paths)
context = PolicyContext(prefix_root=paths.data_dir / "prefixes" / "red", trust_tier=TrustTier.RED)
attempt = AccessAttempt(now_utc(), AccessKind.READ, PathTarget(Path.home() / ".ssh" / "id_ed25519"))
decision = engine.evaluate(attempt, context)
print(decision.action.kind, decision.reason)
```

Other modules: `winewarden.monitor` (`Monitor`, `RunRequest`,
`JsonlEventSource`), `winewarden.reporting` (`SessionReport`, `render_json`,
`timeline`, `redact_path`), `winewarden.prefix` (`PrefixManager`),
`winewarden.store` (`TrustStore`), `winewarden.ipc` (request and response
encoding, `send_request`), `winewarden.fs_watch`, `winewarden.proc_watch`,
`winewarden.net_watch` and `winewarden.sockaddr` (decoding raw
`sockaddr_in`/`sockaddr_in6` bytes).

## What it does not do

- It does not confine the game. The executable is started as an ordinary
  child process, with no filesystem sandbox and no interception of system
  calls. Policy decisions are recorded and counted in the report; deny,
  redirect and virtualize are not enforced, and nothing is actually redirected.
- Live monitoring only observes: it polls `/proc` and watches the prefix for
  file changes.
- The launch environment is not filtered; `Runner.prepare_env` removes
  `LD_PRELOAD` and `DYLD_INSERT_LIBRARIES` from a given mapping but is not
  used when a game is started.
- Settings such as `trust.auto_promote`, `trust.promotion_after_runs` and the
  `network` monitoring flags are stored in the configuration but not acted on.
- There is no graphical or terminal user interface.