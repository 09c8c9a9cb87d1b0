"""Network compatibility bookkeeping: destinations, DNS and telemetry."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass
class DestinationSet:
    """Hosts the game has contacted."""

    hosts: set[str] = field(default_factory=set)

    def remember(self, host: str) -> None:
        self.hosts.add(host)


@dataclass(frozen=True)
class DnsObservation:
    query: str
    resolved: tuple[str, ...] = ()


@dataclass(frozen=True)
class NetTelemetry:
    captured_at: datetime
    summary: str


@dataclass
class NetCompat:
    """Network state collected during a session."""

    destinations: DestinationSet = field(default_factory=DestinationSet)