"""Trust tiers and the calm signal shown after a session."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Mapping


class TrustTier(StrEnum):
    """How much an executable is trusted."""

    GREEN = "green"
    YELLOW = "yellow"
    RED = "red"

    def calm_label(self) -> str:
        """A short, reassuring description of the tier."""
        return _CALM_LABELS[self]

    @classmethod
    def parse(cls, value: str) -> "TrustTier":
        """Parse a tier name, ignoring case."""
        try:
            return cls(str(value).lower())
        except ValueError:
            raise ValueError(f"unknown trust tier: {value}") from None


_CALM_LABELS = {
    TrustTier.GREEN: "trusted",
    TrustTier.YELLOW: "partial",
    TrustTier.RED: "restricted",
}

_SIGNAL_MESSAGES = {
    TrustTier.GREEN: "This game ran with full trust.",
    TrustTier.YELLOW: "This game ran with partial trust.",
    TrustTier.RED: "This game ran with strict protection.",
}


@dataclass(frozen=True)
class TrustSignal:
    """The tier a session ran under and a message describing it."""

    tier: TrustTier
    message: str

    @classmethod
    def from_tier(cls, tier: TrustTier) -> "TrustSignal":
        return cls(tier=tier, message=_SIGNAL_MESSAGES[tier])

    def to_dict(self) -> dict[str, Any]:
        return {"tier": self.tier.value, "message": self.message}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TrustSignal":
        try:
            tier = TrustTier(data["tier"])
            message = data["message"]
        except (KeyError, TypeError) as exc:
            raise ValueError(f"invalid trust signal: {exc}") from exc
        if not isinstance(message, str):
            raise ValueError("trust signal message must be a string")
        return cls(tier=tier, message=message)