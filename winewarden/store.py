"""Persistent trust store keyed by executable hash."""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field, replace
from datetime import datetime
from pathlib import Path
from typing import Any, Mapping, Optional

from winewarden.errors import WineWardenIOError
from winewarden.trust import TrustTier
from winewarden.types import _field, _str, _uint, format_timestamp, now_utc, parse_timestamp

_U32_MAX = 2**32 - 1


@dataclass(frozen=True)
class ExecutableIdentity:
    """An executable's path and content hash."""

    path: Path
    sha256: str

    @classmethod
    def from_path(cls, path: Path | str) -> "ExecutableIdentity":
        path = Path(path)
        try:
            contents = path.read_bytes()
        except OSError as exc:
            raise WineWardenIOError(f"read executable {path}: {exc}") from exc
        return cls(path=path, sha256=hashlib.sha256(contents).hexdigest())


@dataclass
class TrustRecord:
    """What is known about one executable."""

    identity: ExecutableIdentity
    tier: TrustTier
    runs: int = 0
    last_seen: datetime = field(default_factory=now_utc)


def _record_to_dict(record: TrustRecord) -> dict[str, Any]:
    return {
        "identity": {"path": str(record.identity.path), "sha256": record.identity.sha256},
        "tier": record.tier.value,
        "runs": record.runs,
        "last_seen": format_timestamp(record.last_seen),
    }


def _record_from_dict(data: Mapping[str, Any]) -> TrustRecord:
    identity = _field(data, "identity")
    return TrustRecord(
        identity=ExecutableIdentity(path=Path(_str(identity, "path")), sha256=_str(identity, "sha256")),
        tier=TrustTier(_field(data, "tier")),
        runs=_uint(data, "runs", _U32_MAX),
        last_seen=parse_timestamp(_field(data, "last_seen")),
    )


@dataclass
class TrustStore:
    """Trust records indexed by SHA-256."""

    records: dict[str, TrustRecord] = field(default_factory=dict)

    @classmethod
    def load(cls, path: Path | str) -> "TrustStore":
        path = Path(path)
        if not path.exists():
            return cls()
        try:
            contents = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise WineWardenIOError(f"read trust store {path}: {exc}") from exc
        try:
            data = json.loads(contents)
            records = _field(data, "records")
            if not isinstance(records, Mapping):
                raise ValueError("records must be an object")
            return cls({key: _record_from_dict(value) for key, value in records.items()})
        except (ValueError, TypeError) as exc:
            raise ValueError(f"parse trust store JSON: {exc}") from exc

    def save(self, path: Path | str) -> None:
        path = Path(path)
        payload = {"records": {key: _record_to_dict(rec) for key, rec in self.records.items()}}
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        except OSError as exc:
            raise WineWardenIOError(f"write trust store {path}: {exc}") from exc

    def _entry(self, identity: ExecutableIdentity, tier: TrustTier, now: datetime) -> TrustRecord:
        return self.records.setdefault(
            identity.sha256,
            TrustRecord(identity=identity, tier=tier, runs=0, last_seen=now),
        )

    def record_run(self, identity: ExecutableIdentity, tier: TrustTier) -> None:
        """Count a run of the executable under the given tier."""
        now = now_utc()
        record = self._entry(identity, tier, now)
        record.runs = min(record.runs + 1, _U32_MAX)
        record.last_seen = now
        record.tier = tier
        record.identity = replace(record.identity, path=identity.path)

    def get_tier(self, identity: ExecutableIdentity) -> Optional[TrustTier]:
        record = self.records.get(identity.sha256)
        return None if record is None else record.tier

    def set_tier(self, identity: ExecutableIdentity, tier: TrustTier) -> None:
        """Assign a tier without counting a run."""
        now = now_utc()
        record = self._entry(identity, tier, now)
        record.tier = tier
        record.identity = replace(record.identity, path=identity.path)
        record.last_seen = now