from __future__ import annotations

import json
import re
import zipfile
import zlib
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Tuple

from json_sanitizer import sanitize_json

LOADER_FABRIC = "fabric"
LOADER_QUILT = "quilt"
LOADERS: Tuple[str, ...] = (LOADER_FABRIC, LOADER_QUILT)

METADATA_ENTRY_NAMES: Tuple[str, ...] = ("fabric.mod.json", "quilt.mod.json")
UNKNOWN_VERSION = "unknown"
QUILT_MARKER_KEY = "quilt_loader"

FALLBACK_KEYS: Tuple[str, ...] = ("id", "name", "version")
_FALLBACK_PATTERNS: Dict[str, "re.Pattern[str]"] = {
    key: re.compile(rf'"{key}"\s*:\s*"([^"]+)"') for key in FALLBACK_KEYS
}

# zipfile surfaces corrupt members through several unrelated exception types.
ARCHIVE_ERRORS = (OSError, EOFError, zipfile.BadZipFile, zlib.error, RuntimeError, NotImplementedError)

__all__ = [
    "LOADERS",
    "LOADER_FABRIC",
    "LOADER_QUILT",
    "METADATA_ENTRY_NAMES",
    "ModMetadata",
    "UNKNOWN_VERSION",
    "parse_metadata_text",
    "read_mod_metadata",
    "regex_fallback",
]


@dataclass(slots=True, frozen=True)
class ModMetadata:
    id: str
    name: str
    version: str
    loader: str


def _string_field(data: object, key: str, default: str) -> str:
    if isinstance(data, dict):
        value = data.get(key)
        if isinstance(value, str):
            return value
    return default


def _detect_loader(data: object) -> str:
    if isinstance(data, dict):
        depends = data.get("depends")
        if isinstance(depends, dict) and QUILT_MARKER_KEY in depends:
            return LOADER_QUILT
    return LOADER_FABRIC


def regex_fallback(text: str) -> Optional[Tuple[str, str, str]]:
    """Pull quoted id/name/version values out of text that json could not parse."""
    found: Dict[str, Optional[str]] = {}
    for key, pattern in _FALLBACK_PATTERNS.items():
        match = pattern.search(text)
        found[key] = match.group(1) if match else None
    if not any(value is not None for value in found.values()):
        return None
    return found["id"] or "", found["name"] or "", found["version"] or ""


def parse_metadata_text(raw_text: str) -> Optional[ModMetadata]:
    clean = sanitize_json(raw_text)
    try:
        data = json.loads(clean)
    except (ValueError, RecursionError):
        # deeply nested documents exhaust the decoder's stack
        pass
    else:
        return ModMetadata(
            id=_string_field(data, "id", ""),
            name=_string_field(data, "name", ""),
            version=_string_field(data, "version", UNKNOWN_VERSION),
            loader=_detect_loader(data),
        )
    fields = regex_fallback(clean)
    if fields is None:
        return None
    mod_id, name, version = fields
    return ModMetadata(id=mod_id, name=name, version=version, loader=LOADER_FABRIC)


def _read_entry(archive: zipfile.ZipFile, entry_name: str) -> Optional[bytes]:
    try:
        archive.getinfo(entry_name)
    except KeyError:
        return None
    try:
        return archive.read(entry_name)
    except ARCHIVE_ERRORS:
        return None


def read_mod_metadata(path: Path) -> Optional[ModMetadata]:
    """Return the identifying metadata of a mod archive, or ``None`` when nothing usable is inside."""
    try:
        archive = zipfile.ZipFile(path)
    except ARCHIVE_ERRORS:
        return None
    with archive:
        for entry_name in METADATA_ENTRY_NAMES:
            raw = _read_entry(archive, entry_name)
            if raw is None:
                continue
            text = raw.decode("utf-8", errors="replace")
            metadata = parse_metadata_text(text)
            if metadata is not None:
                return metadata
    return None
