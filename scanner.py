from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from mod_metadata import UNKNOWN_VERSION, ModMetadata, read_mod_metadata

ACTIVE_SUFFIX = ".jar"
DISABLED_SUFFIX = ".jar.disabled"
# Longest first so "x.jar.disabled" is not treated as an active jar.
ARCHIVE_SUFFIXES: Tuple[str, ...] = (DISABLED_SUFFIX, ACTIVE_SUFFIX)

Clock = Callable[[], datetime]


@dataclass(slots=True)
class ModRecord:
    filename: str
    id: str
    name: str
    version: str
    loader: str
    disabled: bool = False


@dataclass(slots=True)
class SnapshotStats:
    total: int = 0
    active: int = 0
    disabled: int = 0
    failed: int = 0


@dataclass(slots=True)
class Snapshot:
    timestamp: str
    source_directory: str
    active: List[ModRecord] = field(default_factory=list)
    disabled: List[ModRecord] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    stats: SnapshotStats = field(default_factory=SnapshotStats)


__all__ = [
    "ACTIVE_SUFFIX",
    "DISABLED_SUFFIX",
    "ModRecord",
    "Snapshot",
    "SnapshotStats",
    "archive_stem",
    "capture_timestamp",
    "is_disabled_name",
    "list_mod_archives",
    "load_snapshot",
    "save_snapshot",
    "scan_mods_directory",
    "snapshot_from_dict",
    "snapshot_to_dict",
]


def capture_timestamp(clock: Optional[Clock] = None) -> str:
    moment = clock() if clock else datetime.now()
    if moment.tzinfo is None:
        moment = moment.astimezone()
    return moment.isoformat()


def is_disabled_name(filename: str) -> bool:
    return filename.endswith(DISABLED_SUFFIX)


def is_mod_archive_name(filename: str) -> bool:
    return any(filename.endswith(suffix) for suffix in ARCHIVE_SUFFIXES)


def archive_stem(filename: str) -> str:
    """Filename with its ``.jar`` or ``.jar.disabled`` suffix removed."""
    for suffix in ARCHIVE_SUFFIXES:
        if filename.endswith(suffix):
            trimmed = filename[: -len(suffix)]
            return trimmed or filename
    return Path(filename).stem


def list_mod_archives(directory: Path) -> List[Path]:
    files: List[Path] = []
    try:
        with os.scandir(directory) as entries:
            for entry in entries:
                if not is_mod_archive_name(entry.name):
                    continue
                try:
                    if not entry.is_file():
                        continue
                except OSError:
                    continue
                files.append(Path(entry.path))
    except OSError:
        return []
    files.sort(key=lambda path: path.name)
    return files


def _build_record(path: Path, metadata: ModMetadata, disabled: bool) -> ModRecord:
    stem = archive_stem(path.name)
    return ModRecord(
        filename=path.name,
        id=metadata.id or stem,
        name=metadata.name or stem,
        version=metadata.version or UNKNOWN_VERSION,
        loader=metadata.loader,
        disabled=disabled,
    )


def scan_mods_directory(directory: Path, *, clock: Optional[Clock] = None) -> Snapshot:
    root = Path(directory)
    files = list_mod_archives(root)

    active: List[ModRecord] = []
    disabled: List[ModRecord] = []
    failed: List[str] = []
    for path in files:
        is_disabled = is_disabled_name(path.name)
        metadata = read_mod_metadata(path)
        if metadata is None:
            failed.append(path.name)
            continue
        record = _build_record(path, metadata, is_disabled)
        if is_disabled:
            disabled.append(record)
        else:
            active.append(record)

    stats = SnapshotStats(
        total=len(files),
        active=len(active),
        disabled=len(disabled),
        failed=len(failed),
    )
    return Snapshot(
        timestamp=capture_timestamp(clock),
        source_directory=str(directory),
        active=active,
        disabled=disabled,
        failed=failed,
        stats=stats,
    )


def snapshot_to_dict(snapshot: Snapshot) -> Dict[str, object]:
    return asdict(snapshot)


def _record_from_dict(data: object) -> ModRecord:
    if not isinstance(data, dict):
        raise ValueError("mod entry must be an object")
    if not isinstance(data.get("disabled"), bool):
        raise ValueError("mod entry field 'disabled' must be a boolean")
    try:
        return ModRecord(
            filename=str(data["filename"]),
            id=str(data["id"]),
            name=str(data["name"]),
            version=str(data["version"]),
            loader=str(data["loader"]),
            disabled=data["disabled"],
        )
    except KeyError as exc:
        raise ValueError(f"mod entry missing field {exc.args[0]!r}") from exc


def _record_list(data: Dict[str, object], key: str) -> List[ModRecord]:
    raw = data.get(key, [])
    if not isinstance(raw, list):
        raise ValueError(f"{key!r} must be a list")
    return [_record_from_dict(entry) for entry in raw]


def snapshot_from_dict(data: object) -> Snapshot:
    if not isinstance(data, dict):
        raise ValueError("snapshot document must be an object")
    raw_failed = data.get("failed", [])
    if not isinstance(raw_failed, list):
        raise ValueError("'failed' must be a list")
    raw_stats = data.get("stats", {})
    if not isinstance(raw_stats, dict):
        raise ValueError("'stats' must be an object")
    try:
        stats = SnapshotStats(
            total=int(raw_stats.get("total", 0)),
            active=int(raw_stats.get("active", 0)),
            disabled=int(raw_stats.get("disabled", 0)),
            failed=int(raw_stats.get("failed", 0)),
        )
    except (TypeError, ValueError) as exc:
        raise ValueError(f"invalid stats: {exc}") from exc
    return Snapshot(
        timestamp=str(data.get("timestamp", "")),
        source_directory=str(data.get("source_directory", "")),
        active=_record_list(data, "active"),
        disabled=_record_list(data, "disabled"),
        failed=[str(name) for name in raw_failed],
        stats=stats,
    )


def save_snapshot(snapshot: Snapshot, path: Path) -> None:
    with Path(path).open("w", encoding="utf-8") as handle:
        json.dump(snapshot_to_dict(snapshot), handle, indent=2, ensure_ascii=False)
        handle.write("\n")


def load_snapshot(path: Path) -> Optional[Snapshot]:
    try:
        with Path(path).open("r", encoding="utf-8") as handle:
            data = json.load(handle)
        return snapshot_from_dict(data)
    except (OSError, ValueError):
        return None
