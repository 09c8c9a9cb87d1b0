"""Configuration file, resolved directories and sacred zones."""

from __future__ import annotations

import os
import tomllib
from dataclasses import asdict, dataclass, fields
from enum import StrEnum
from pathlib import Path
from typing import Any, Mapping, Optional

import platformdirs
import tomli_w

from winewarden.errors import InvalidConfigError, WineWardenIOError
from winewarden.trust import TrustTier
from winewarden.types import _bool, _field, _str, _uint

_APP_NAME = "winewarden"


class PathAction(StrEnum):
    """What happens when a sacred zone is touched."""

    ALLOW = "allow"
    DENY = "deny"
    REDIRECT = "redirect"
    VIRTUALIZE = "virtualize"


class NetworkMode(StrEnum):
    """How network traffic is handled."""

    OBSERVE = "observe"
    PERMISSIVE = "permissive"


@dataclass
class WineWardenConfig:
    enabled: bool
    no_prompts_during_gameplay: bool
    emergency_only: bool
    systemic_risk_only: bool


@dataclass
class TrustConfig:
    default_tier: TrustTier
    pirate_safe: bool
    auto_promote: bool
    promotion_after_runs: int


@dataclass
class SacredZoneConfig:
    label: str
    path: str
    action: PathAction
    redirect_to: Optional[str] = None


@dataclass
class NetworkConfig:
    mode: NetworkMode
    dns_awareness: bool
    destination_monitoring: bool
    block_on_malicious: bool


@dataclass
class PrefixConfig:
    separate_by_trust: bool
    snapshot_before_first_run: bool
    hygiene_scan_on_run: bool
    disposable_prefix_for_untrusted: bool


@dataclass
class ReportConfig:
    store_reports: bool
    human_summary: bool
    structured_json: bool


def _table(data: Any, key: str) -> Mapping[str, Any]:
    value = _field(data, key)
    if not isinstance(value, Mapping):
        raise ValueError(f"section {key} must be a table")
    return value


def _flags(cls: type, table: Mapping[str, Any]) -> Any:
    return cls(**{f.name: _bool(table, f.name) for f in fields(cls)})


def _zone_from_table(table: Any) -> SacredZoneConfig:
    if not isinstance(table, Mapping):
        raise ValueError("sacred zone must be a table")
    redirect_to = table.get("redirect_to")
    if redirect_to is not None and not isinstance(redirect_to, str):
        raise ValueError("redirect_to must be a string")
    return SacredZoneConfig(
        label=_str(table, "label"),
        path=_str(table, "path"),
        action=PathAction(_field(table, "action")),
        redirect_to=redirect_to,
    )


def _zone_to_table(zone: SacredZoneConfig) -> dict[str, Any]:
    table: dict[str, Any] = {
        "label": zone.label,
        "path": zone.path,
        "action": zone.action.value,
    }
    if zone.redirect_to is not None:
        table["redirect_to"] = zone.redirect_to
    return table


@dataclass
class Config:
    """The full winewarden configuration."""

    winewarden: WineWardenConfig
    trust: TrustConfig
    sacred_zones: list[SacredZoneConfig]
    network: NetworkConfig
    prefix: PrefixConfig
    reporting: ReportConfig

    @classmethod
    def default_config(cls) -> "Config":
        return cls(
            winewarden=WineWardenConfig(
                enabled=True,
                no_prompts_during_gameplay=True,
                emergency_only=True,
                systemic_risk_only=True,
            ),
            trust=TrustConfig(
                default_tier=TrustTier.YELLOW,
                pirate_safe=False,
                auto_promote=True,
                promotion_after_runs=3,
            ),
            sacred_zones=[
                SacredZoneConfig(
                    label="Home outside prefix",
                    path="${HOME}",
                    action=PathAction.REDIRECT,
                    redirect_to="${DATA_DIR}/virtual/home",
                ),
                SacredZoneConfig(
                    label="SSH keys", path="${HOME}/.ssh", action=PathAction.DENY
                ),
                SacredZoneConfig(
                    label="GPG keys", path="${HOME}/.gnupg", action=PathAction.DENY
                ),
                SacredZoneConfig(
                    label="User config",
                    path="${HOME}/.config",
                    action=PathAction.REDIRECT,
                    redirect_to="${DATA_DIR}/virtual/config",
                ),
            ],
            network=NetworkConfig(
                mode=NetworkMode.OBSERVE,
                dns_awareness=True,
                destination_monitoring=True,
                block_on_malicious=True,
            ),
            prefix=PrefixConfig(
                separate_by_trust=True,
                snapshot_before_first_run=True,
                hygiene_scan_on_run=True,
                disposable_prefix_for_untrusted=True,
            ),
            reporting=ReportConfig(
                store_reports=True, human_summary=True, structured_json=True
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "winewarden": asdict(self.winewarden),
            "trust": {
                "default_tier": self.trust.default_tier.value,
                "pirate_safe": self.trust.pirate_safe,
                "auto_promote": self.trust.auto_promote,
                "promotion_after_runs": self.trust.promotion_after_runs,
            },
            "sacred_zones": [_zone_to_table(zone) for zone in self.sacred_zones],
            "network": {
                "mode": self.network.mode.value,
                "dns_awareness": self.network.dns_awareness,
                "destination_monitoring": self.network.destination_monitoring,
                "block_on_malicious": self.network.block_on_malicious,
            },
            "prefix": asdict(self.prefix),
            "reporting": asdict(self.reporting),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Config":
        try:
            trust = _table(data, "trust")
            network = _table(data, "network")
            zones = _field(data, "sacred_zones")
            if not isinstance(zones, list):
                raise ValueError("sacred_zones must be an array of tables")
            return cls(
                winewarden=_flags(WineWardenConfig, _table(data, "winewarden")),
                trust=TrustConfig(
                    default_tier=TrustTier(_field(trust, "default_tier")),
                    pirate_safe=_bool(trust, "pirate_safe"),
                    auto_promote=_bool(trust, "auto_promote"),
                    promotion_after_runs=_uint(trust, "promotion_after_runs", 2**32 - 1),
                ),
                sacred_zones=[_zone_from_table(zone) for zone in zones],
                network=NetworkConfig(
                    mode=NetworkMode(_field(network, "mode")),
                    dns_awareness=_bool(network, "dns_awareness"),
                    destination_monitoring=_bool(network, "destination_monitoring"),
                    block_on_malicious=_bool(network, "block_on_malicious"),
                ),
                prefix=_flags(PrefixConfig, _table(data, "prefix")),
                reporting=_flags(ReportConfig, _table(data, "reporting")),
            )
        except (ValueError, TypeError) as exc:
            raise InvalidConfigError(f"parse config TOML: {exc}") from exc

    @classmethod
    def from_toml_str(cls, contents: str) -> "Config":
        try:
            data = tomllib.loads(contents)
        except tomllib.TOMLDecodeError as exc:
            raise InvalidConfigError(f"parse config TOML: {exc}") from exc
        return cls.from_dict(data)

    def to_toml_string(self) -> str:
        return tomli_w.dumps(self.to_dict())

    @classmethod
    def load(cls, path: Path | str) -> "Config":
        path = Path(path)
        try:
            contents = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise WineWardenIOError(f"read config at {path}: {exc}") from exc
        return cls.from_toml_str(contents)

    def save(self, path: Path | str) -> None:
        path = Path(path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(self.to_toml_string(), encoding="utf-8")
        except OSError as exc:
            raise WineWardenIOError(f"write config at {path}: {exc}") from exc


@dataclass(frozen=True)
class ConfigPaths:
    """Where winewarden keeps its configuration and data."""

    config_path: Path
    data_dir: Path
    report_dir: Path
    trust_db_path: Path
    snapshot_dir: Path

    @classmethod
    def resolve(cls) -> "ConfigPaths":
        config_dir = platformdirs.user_config_path(_APP_NAME, appauthor=False)
        data_dir = platformdirs.user_data_path(_APP_NAME, appauthor=False)
        return cls(
            config_path=config_dir / "config.toml",
            data_dir=data_dir,
            report_dir=data_dir / "reports",
            trust_db_path=data_dir / "trust.json",
            snapshot_dir=data_dir / "snapshots",
        )


def expand_path_template(template: str, paths: ConfigPaths) -> Path:
    """Substitute ${HOME}, ${DATA_DIR} and ${CONFIG_DIR} in a path template."""
    home_dir = os.environ.get("HOME", "/")
    config_path = Path(paths.config_path)
    config_dir = config_path.parent if config_path.parent != config_path else Path(paths.data_dir)
    replaced = (
        template.replace("${HOME}", home_dir)
        .replace("${DATA_DIR}", str(paths.data_dir))
        .replace("${CONFIG_DIR}", str(config_dir))
    )
    return Path(replaced)


@dataclass(frozen=True)
class SacredZone:
    """A resolved sacred zone with concrete paths."""

    label: str
    path: Path
    action: PathAction
    redirect_to: Optional[Path] = None

    @classmethod
    def from_config(cls, config: SacredZoneConfig, paths: ConfigPaths) -> "SacredZone":
        redirect_to = (
            None
            if config.redirect_to is None
            else expand_path_template(config.redirect_to, paths)
        )
        return cls(
            label=config.label,
            path=expand_path_template(config.path, paths),
            action=config.action,
            redirect_to=redirect_to,
        )

    def matches(self, candidate: Path | str) -> bool:
        """True when the candidate lies at or beneath this zone's path."""
        return Path(candidate).is_relative_to(self.path)