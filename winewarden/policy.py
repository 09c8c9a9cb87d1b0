"""Policy engine: decides what happens to each access attempt."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Mapping, Optional, Sequence

from winewarden.config import (
    Config,
    ConfigPaths,
    NetworkMode,
    PathAction,
    SacredZone,
)
from winewarden.trust import TrustTier
from winewarden.types import (
    AccessAttempt,
    DeviceTarget,
    NetworkTarget,
    PathTarget,
    SocketTarget,
    _bool,
    _field,
    _str,
)


class ActionKind(Enum):
    """The kind of action a policy decision takes."""

    ALLOW = "Allow"
    DENY = "Deny"
    REDIRECT = "Redirect"
    VIRTUALIZE = "Virtualize"


_PATH_KINDS = (ActionKind.REDIRECT, ActionKind.VIRTUALIZE)


@dataclass(frozen=True)
class DecisionAction:
    """An action, with a target path for redirects and virtualisation."""

    kind: ActionKind
    path: Optional[Path] = None

    def __post_init__(self) -> None:
        if self.kind in _PATH_KINDS and self.path is None:
            raise ValueError(f"{self.kind.value} needs a target path")
        if self.kind not in _PATH_KINDS and self.path is not None:
            raise ValueError(f"{self.kind.value} takes no target path")

    @classmethod
    def allow(cls) -> "DecisionAction":
        return cls(ActionKind.ALLOW)

    @classmethod
    def deny(cls) -> "DecisionAction":
        return cls(ActionKind.DENY)

    @classmethod
    def redirect(cls, path: Path | str) -> "DecisionAction":
        return cls(ActionKind.REDIRECT, Path(path))

    @classmethod
    def virtualize(cls, path: Path | str) -> "DecisionAction":
        return cls(ActionKind.VIRTUALIZE, Path(path))

    def to_json(self) -> Any:
        """Encode as a bare variant name or a single-key mapping."""
        if self.path is None:
            return self.kind.value
        return {self.kind.value: str(self.path)}

    @classmethod
    def from_json(cls, data: Any) -> "DecisionAction":
        if isinstance(data, str):
            try:
                kind = ActionKind(data)
            except ValueError:
                raise ValueError(f"unknown decision action: {data!r}") from None
            if kind in _PATH_KINDS:
                raise ValueError(f"{data} needs a target path")
            return cls(kind)
        if isinstance(data, Mapping) and len(data) == 1:
            ((variant, value),) = data.items()
            try:
                kind = ActionKind(variant)
            except ValueError:
                raise ValueError(f"unknown decision action: {variant!r}") from None
            if kind not in _PATH_KINDS or not isinstance(value, str):
                raise ValueError(f"invalid decision action: {data!r}")
            return cls(kind, Path(value))
        raise ValueError(f"invalid decision action: {data!r}")


@dataclass(frozen=True)
class PolicyDecision:
    """The outcome of evaluating an access attempt."""

    action: DecisionAction
    reason: str
    zone_label: Optional[str] = None
    systemic_risk: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action.to_json(),
            "reason": self.reason,
            "zone_label": self.zone_label,
            "systemic_risk": self.systemic_risk,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PolicyDecision":
        label = data.get("zone_label") if isinstance(data, Mapping) else None
        if label is not None and not isinstance(label, str):
            raise ValueError("zone_label must be a string")
        return cls(
            action=DecisionAction.from_json(_field(data, "action")),
            reason=_str(data, "reason"),
            zone_label=label,
            systemic_risk=_bool(data, "systemic_risk"),
        )


@dataclass(frozen=True)
class PolicyContext:
    """The prefix and tier a session runs under."""

    prefix_root: Path
    trust_tier: TrustTier


def fallback_redirect() -> Path:
    """Where redirects go when a zone names no target."""
    return Path("/dev/null")


def load_sacred_zones(config: Config, paths: ConfigPaths) -> list[SacredZone]:
    """Resolve every configured sacred zone."""
    return [SacredZone.from_config(zone, paths) for zone in config.sacred_zones]


def _apply_zone_rule(zone: SacredZone) -> PolicyDecision:
    match zone.action:
        case PathAction.ALLOW:
            return PolicyDecision(
                action=DecisionAction.allow(),
                reason=f"Access allowed: {zone.label}",
                zone_label=zone.label,
                systemic_risk=False,
            )
        case PathAction.DENY:
            return PolicyDecision(
                action=DecisionAction.deny(),
                reason=f"Access denied: {zone.label}",
                zone_label=zone.label,
                systemic_risk=True,
            )
        case PathAction.REDIRECT:
            return PolicyDecision(
                action=DecisionAction.redirect(zone.redirect_to or fallback_redirect()),
                reason=f"Access redirected: {zone.label}",
                zone_label=zone.label,
                systemic_risk=True,
            )
        case PathAction.VIRTUALIZE:
            return PolicyDecision(
                action=DecisionAction.virtualize(zone.redirect_to or fallback_redirect()),
                reason=f"Access virtualized: {zone.label}",
                zone_label=zone.label,
                systemic_risk=True,
            )
    raise ValueError(f"unknown path action: {zone.action!r}")


def evaluate_path(
    path: Path | str, prefix_root: Path | str, zones: Sequence[SacredZone]
) -> PolicyDecision:
    """Apply the first matching sacred zone, else the prefix boundary."""
    path = Path(path)
    for zone in zones:
        if zone.matches(path):
            return _apply_zone_rule(zone)

    if not path.is_relative_to(Path(prefix_root)):
        return PolicyDecision(
            action=DecisionAction.deny(),
            reason="Access outside prefix blocked",
            zone_label="Prefix boundary",
            systemic_risk=True,
        )

    return PolicyDecision(
        action=DecisionAction.allow(),
        reason="Access within prefix allowed",
        zone_label=None,
        systemic_risk=False,
    )


def evaluate_network(config: Config, trust_tier: TrustTier) -> PolicyDecision:
    """Network access is observed, and denied only for red-tier games."""
    if config.network.mode is NetworkMode.PERMISSIVE:
        reason = "Network allowed (permissive mode)"
    else:
        reason = "Network observed (no interference)"

    systemic_risk = trust_tier is TrustTier.RED and config.network.block_on_malicious
    if systemic_risk:
        return PolicyDecision(
            action=DecisionAction.deny(),
            reason="Network denied due to high risk",
            zone_label="Network",
            systemic_risk=True,
        )
    return PolicyDecision(
        action=DecisionAction.allow(),
        reason=reason,
        zone_label="Network",
        systemic_risk=False,
    )


def evaluate_process_spawn(process: str) -> PolicyDecision:
    """Process creation is always allowed."""
    return PolicyDecision(
        action=DecisionAction.allow(),
        reason=f"Process allowed: {process}",
        zone_label="Process",
        systemic_risk=False,
    )


@dataclass
class PolicyEngine:
    """Evaluates access attempts against configuration and sacred zones."""

    config: Config
    sacred_zones: list[SacredZone] = field(default_factory=list)

    @classmethod
    def from_config(cls, config: Config, paths: ConfigPaths) -> "PolicyEngine":
        return cls(config=config, sacred_zones=load_sacred_zones(config, paths))

    def evaluate(self, attempt: AccessAttempt, context: PolicyContext) -> PolicyDecision:
        match attempt.target:
            case PathTarget(path=path):
                return evaluate_path(path, context.prefix_root, self.sacred_zones)
            case NetworkTarget():
                return evaluate_network(self.config, context.trust_tier)
            case DeviceTarget(name=name):
                return PolicyDecision(
                    action=DecisionAction.deny(),
                    reason=f"Device access blocked: {name}",
                    zone_label="Sacred devices",
                    systemic_risk=True,
                )
            case SocketTarget(name=name):
                return PolicyDecision(
                    action=DecisionAction.deny(),
                    reason=f"System socket access blocked: {name}",
                    zone_label="System sockets",
                    systemic_risk=True,
                )
        raise TypeError(f"not an access target: {attempt.target!r}")


@dataclass
class TrustScore:
    """A tier together with the observations behind it."""

    tier: TrustTier
    notes: list[str] = field(default_factory=list)


def score_trust(current: TrustTier, observations: Sequence[str]) -> TrustScore:
    """Keep the current tier and record the observations."""
    return TrustScore(tier=current, notes=list(observations))