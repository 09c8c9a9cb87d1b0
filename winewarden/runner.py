"""Preparing the command line and environment for a game launch."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Mapping

_UNSAFE_ENV = ("LD_PRELOAD", "DYLD_INSERT_LIBRARIES")


@dataclass(frozen=True)
class RunnerCommand:
    """The executable and its arguments."""

    executable: Path
    args: tuple[str, ...] = ()


class RunnerHint(Enum):
    """Which launcher an executable seems to come from."""

    STEAM = "steam"
    LUTRIS = "lutris"
    HEROIC = "heroic"
    MANUAL = "manual"


@dataclass
class RunnerRequest:
    """What to launch, where, and with which environment."""

    executable: Path
    args: list[str] = field(default_factory=list)
    prefix_root: Path = Path(".")
    env: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class LifecyclePlan:
    prefix_root: Path


def detect_hint(executable: Path | str) -> RunnerHint:
    """Guess the launcher from the executable path."""
    value = str(executable)
    for hint in (RunnerHint.STEAM, RunnerHint.LUTRIS, RunnerHint.HEROIC):
        if hint.value in value:
            return hint
    return RunnerHint.MANUAL


def sanitize_env(env: Mapping[str, str]) -> dict[str, str]:
    """A copy of the environment without library injection variables."""
    return {key: value for key, value in env.items() if key not in _UNSAFE_ENV}


class Runner:
    """Builds launch commands without starting anything."""

    def build_command(self, request: RunnerRequest) -> RunnerCommand:
        return RunnerCommand(Path(request.executable), tuple(request.args))

    def detect(self, request: RunnerRequest) -> RunnerHint:
        return detect_hint(request.executable)

    def prepare_env(self, request: RunnerRequest) -> dict[str, str]:
        return sanitize_env(request.env)

    def dry_run(self, request: RunnerRequest) -> RunnerCommand:
        return self.build_command(request)