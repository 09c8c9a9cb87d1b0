"""Network connections observed through /proc/<pid>/net tables."""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from winewarden.types import AccessAttempt, AccessKind, NetworkTarget, now_utc

_HEX = re.compile(r"\+?[0-9A-Fa-f]+")
_PROTOCOLS = ("tcp", "udp")


@dataclass(frozen=True)
class NetKey:
    """Identifies a connection already reported."""

    protocol: str
    host: str
    port: int


def _parse_hex(value: str, limit: int) -> Optional[int]:
    if not _HEX.fullmatch(value):
        return None
    number = int(value, 16)
    return number if number <= limit else None


def ipv4_from_hex(value: str) -> Optional[str]:
    """Decode the little-endian hex address used in /proc/net tables."""
    raw = _parse_hex(value, 0xFFFFFFFF)
    if raw is None:
        return None
    return ".".join(str(byte) for byte in raw.to_bytes(4, "little"))


def parse_remote(value: str) -> Optional[tuple[str, int]]:
    """Parse an 'ADDR:PORT' column; only IPv4 addresses are understood."""
    parts = value.split(":")
    if len(parts) < 2:
        return None
    addr, port_text = parts[0], parts[1]
    port = _parse_hex(port_text, 0xFFFF)
    if port is None or len(addr) != 8:
        return None
    host = ipv4_from_hex(addr)
    return None if host is None else (host, port)


def parse_table(contents: str, protocol: str, seen: set[NetKey]) -> list[AccessAttempt]:
    """Attempts for remote endpoints in a table that are not yet in seen."""
    events = []
    for line in contents.splitlines()[1:]:
        parts = line.split()
        if len(parts) < 3:
            continue
        remote = parse_remote(parts[2])
        if remote is None:
            continue
        host, port = remote
        if host == "0.0.0.0" and port == 0:
            continue
        key = NetKey(protocol=protocol, host=host, port=port)
        if key in seen:
            continue
        seen.add(key)
        events.append(
            AccessAttempt(
                timestamp=now_utc(),
                kind=AccessKind.NETWORK,
                target=NetworkTarget(host=host, port=port, protocol=protocol),
                note="connection observed",
            )
        )
    return events


def collect_network_events(pid: int, seen: set[NetKey]) -> list[AccessAttempt]:
    """New TCP and UDP connections visible to the process."""
    events = []
    for protocol in _PROTOCOLS:
        try:
            contents = Path(f"/proc/{pid}/net/{protocol}").read_text()
        except (OSError, UnicodeDecodeError):
            continue
        events.extend(parse_table(contents, protocol, seen))
    return events