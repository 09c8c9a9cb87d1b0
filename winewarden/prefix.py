"""Prefix snapshots, hygiene scans and related bookkeeping."""

from __future__ import annotations

import json
import os
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Iterator, Mapping, Optional, Sequence

from winewarden.config import ConfigPaths
from winewarden.errors import WineWardenIOError
from winewarden.reporting import ReportStats
from winewarden.types import (
    _field,
    _parse_uuid,
    _str,
    _uint,
    format_timestamp,
    now_utc,
    parse_timestamp,
)

_U64_MAX = 2**64 - 1
_SYSTEM_DLL_DIRS = ("drive_c/windows/system32", "drive_c/windows/syswow64")
_USER_CONTENT = "drive_c/users"


@dataclass(frozen=True)
class SnapshotEntry:
    """One file recorded in a snapshot."""

    path: Path
    size: int
    modified_at: Optional[datetime] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": str(self.path),
            "size": self.size,
            "modified_at": None if self.modified_at is None else format_timestamp(self.modified_at),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SnapshotEntry":
        modified = data.get("modified_at") if isinstance(data, Mapping) else None
        return cls(
            path=Path(_str(data, "path")),
            size=_uint(data, "size", _U64_MAX),
            modified_at=None if modified is None else parse_timestamp(modified),
        )


@dataclass
class PrefixSnapshot:
    """The files of a prefix at one moment."""

    id: uuid.UUID
    created_at: datetime
    prefix_root: Path
    entries: list[SnapshotEntry] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "created_at": format_timestamp(self.created_at),
            "prefix_root": str(self.prefix_root),
            "entries": [entry.to_dict() for entry in self.entries],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PrefixSnapshot":
        entries = _field(data, "entries")
        if not isinstance(entries, list):
            raise ValueError("entries must be a list")
        return cls(
            id=_parse_uuid(_field(data, "id")),
            created_at=parse_timestamp(_field(data, "created_at")),
            prefix_root=Path(_str(data, "prefix_root")),
            entries=[SnapshotEntry.from_dict(entry) for entry in entries],
        )


class SnapshotChangeKind(Enum):
    ADDED = "Added"
    REMOVED = "Removed"
    MODIFIED = "Modified"


@dataclass(frozen=True)
class SnapshotChange:
    path: Path
    change: SnapshotChangeKind


class HygieneFindingKind(Enum):
    ORPHANED_DLL = "OrphanedDll"
    OVERRIDE_CONFLICT = "OverrideConflict"
    UNEXPECTED_DLL_LOCATION = "UnexpectedDllLocation"


@dataclass(frozen=True)
class HygieneFinding:
    kind: HygieneFindingKind
    path: Path
    note: str


def _walk_files(root: Path) -> Iterator[Path]:
    """Regular files under root, in sorted order; symlinks are not followed."""
    if root.is_file() and not root.is_symlink():
        yield root
        return

    def _fail(exc: OSError) -> None:
        raise WineWardenIOError(f"walk {root}: {exc}") from exc

    for dirpath, dirnames, filenames in os.walk(root, onerror=_fail):
        dirnames.sort()
        for name in sorted(filenames):
            path = Path(dirpath) / name
            if not path.is_symlink() and path.is_file():
                yield path


def _file_stat(path: Path) -> os.stat_result:
    try:
        return path.stat()
    except OSError as exc:
        raise WineWardenIOError(f"stat {path}: {exc}") from exc


def _has_suffix(path: Path, suffix: str) -> bool:
    return path.suffix.lower() == suffix


def _is_user_content(path: Path) -> bool:
    return _USER_CONTENT in str(path)


def _is_unexpected_dll_location(path: Path) -> bool:
    value = str(path)
    return not any(part in value for part in _SYSTEM_DLL_DIRS)


def _has_executable_neighbor(directory: Path) -> bool:
    if not directory.is_dir():
        return False
    try:
        return any(entry.is_file() and _has_suffix(entry, ".exe") for entry in directory.iterdir())
    except OSError as exc:
        raise WineWardenIOError(f"read dir {directory}: {exc}") from exc


def _size_or_none(path: Path) -> Optional[int]:
    try:
        return path.stat().st_size
    except OSError:
        return None


@dataclass
class PrefixManager:
    """Scans and snapshots a single prefix."""

    prefix_root: Path
    snapshot_dir: Path

    @classmethod
    def from_paths(cls, prefix_root: Path | str, paths: ConfigPaths) -> "PrefixManager":
        return cls(prefix_root=Path(prefix_root), snapshot_dir=Path(paths.snapshot_dir))

    def scan_hygiene(self) -> list[HygieneFinding]:
        """Report DLL conflicts, stray DLLs and orphaned DLLs."""
        findings: list[HygieneFinding] = []
        for name, paths in self._collect_dll_locations().items():
            if len(paths) > 1:
                sizes = [size for size in map(_size_or_none, paths) if size is not None]
                if any(a != b for a, b in zip(sizes, sizes[1:])):
                    findings.append(
                        HygieneFinding(
                            kind=HygieneFindingKind.OVERRIDE_CONFLICT,
                            path=paths[0],
                            note=f"Duplicate DLL with mismatched size: {name}",
                        )
                    )
            findings.extend(
                HygieneFinding(
                    kind=HygieneFindingKind.UNEXPECTED_DLL_LOCATION,
                    path=path,
                    note="DLL is stored outside standard Windows directories",
                )
                for path in paths
                if _is_unexpected_dll_location(path)
            )

        findings.extend(
            HygieneFinding(
                kind=HygieneFindingKind.ORPHANED_DLL,
                path=path,
                note="DLL found in user content without a nearby executable",
            )
            for path in self._find_orphaned_dlls()
        )
        return findings

    def create_snapshot(self) -> PrefixSnapshot:
        """Record every file of the prefix and save the snapshot as JSON."""
        try:
            self.snapshot_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise WineWardenIOError(f"create snapshot dir {self.snapshot_dir}: {exc}") from exc

        entries = []
        for path in _walk_files(self.prefix_root):
            stat = _file_stat(path)
            entries.append(
                SnapshotEntry(
                    path=path,
                    size=stat.st_size,
                    modified_at=datetime.fromtimestamp(stat.st_mtime, timezone.utc),
                )
            )

        snapshot = PrefixSnapshot(
            id=uuid.uuid4(),
            created_at=now_utc(),
            prefix_root=self.prefix_root,
            entries=entries,
        )
        snapshot_path = self.snapshot_dir / f"{snapshot.id}.json"
        try:
            snapshot_path.write_text(json.dumps(snapshot.to_dict(), indent=2), encoding="utf-8")
        except OSError as exc:
            raise WineWardenIOError(f"write snapshot {snapshot_path}: {exc}") from exc
        return snapshot

    def diff_snapshot(self, snapshot: PrefixSnapshot) -> list[SnapshotChange]:
        """Compare the prefix as it is now with a snapshot, by file size."""
        current = {path: _file_stat(path).st_size for path in _walk_files(self.prefix_root)}
        recorded = {entry.path: entry.size for entry in snapshot.entries}

        changes = []
        for path, size in current.items():
            if path not in recorded:
                changes.append(SnapshotChange(path, SnapshotChangeKind.ADDED))
            elif recorded[path] != size:
                changes.append(SnapshotChange(path, SnapshotChangeKind.MODIFIED))
        changes.extend(
            SnapshotChange(path, SnapshotChangeKind.REMOVED)
            for path in recorded
            if path not in current
        )
        return changes

    def _dlls(self) -> Iterator[Path]:
        return (path for path in _walk_files(self.prefix_root) if _has_suffix(path, ".dll"))

    def _collect_dll_locations(self) -> dict[str, list[Path]]:
        locations: dict[str, list[Path]] = {}
        for path in self._dlls():
            locations.setdefault(path.name or "unknown.dll", []).append(path)
        return locations

    def _find_orphaned_dlls(self) -> list[Path]:
        return [
            path
            for path in self._dlls()
            if _is_user_content(path.parent) and not _has_executable_neighbor(path.parent)
        ]


@dataclass(frozen=True)
class PrefixLayout:
    root: Path


@dataclass(frozen=True)
class SnapshotMetadata:
    id: uuid.UUID
    created_at: datetime
    prefix_root: Path

    @classmethod
    def create(cls, prefix_root: Path | str) -> "SnapshotMetadata":
        return cls(id=uuid.uuid4(), created_at=now_utc(), prefix_root=Path(prefix_root))


@dataclass(frozen=True)
class QuarantinePlan:
    prefix_root: Path
    reason: str


@dataclass(frozen=True)
class RepairAction:
    description: str


def summarize_findings(findings: Sequence[HygieneFinding]) -> ReportStats:
    """Report statistics counting each finding as one attempt."""
    return ReportStats(total_attempts=len(findings))


def summarize(findings: Sequence[HygieneFinding]) -> str:
    """A one-line summary of a hygiene scan."""
    if not findings:
        return "Prefix hygiene looks clean."
    return f"Prefix hygiene findings: {len(findings)}"