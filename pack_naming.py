"""Naming rules shared by snapshot files, changelog files and report titles."""
from __future__ import annotations

import re
from pathlib import Path
from typing import Dict, List, Mapping, Optional

EDITION_PRIMARY = "Full"
EDITION_SECONDARY = "Lite"
DEFAULT_EDITION_SYNONYMS: Dict[str, str] = {
    "full": EDITION_PRIMARY,
    "normal": EDITION_PRIMARY,
    "default": EDITION_PRIMARY,
    "lite": EDITION_SECONDARY,
    "light": EDITION_SECONDARY,
    "minimal": EDITION_SECONDARY,
}
DEFAULT_BASE_NAME = "Modpack"
EMPTY_SLUG = "pack"
UNKNOWN_PACK_VERSION = "unknown"

SNAPSHOT_SUFFIX = ".mods_snapshot.json"
REPORT_SUFFIX = ".changelog.md"

PACK_VERSION_KEY = "packVersion"
PROPERTIES_RELATIVE_PATH = Path("config") / "packbranding" / "menu.properties"

WHITESPACE_RE = re.compile(r"\s+")
SLUG_STRIP_RE = re.compile(r"[^a-z0-9._\-]")
DASH_RUN_RE = re.compile(r"-{2,}")

__all__ = [
    "DEFAULT_BASE_NAME",
    "DEFAULT_EDITION_SYNONYMS",
    "EDITION_PRIMARY",
    "EDITION_SECONDARY",
    "EMPTY_SLUG",
    "PACK_VERSION_KEY",
    "REPORT_SUFFIX",
    "SNAPSHOT_SUFFIX",
    "UNKNOWN_PACK_VERSION",
    "build_display_name",
    "build_file_prefix",
    "is_primary_edition",
    "normalize_edition",
    "profile_properties_path",
    "read_pack_version",
    "report_filename",
    "slugify",
    "snapshot_filename",
    "write_pack_version",
]


def slugify(value: str) -> str:
    slug = value.strip().lower()
    slug = WHITESPACE_RE.sub("-", slug)
    slug = SLUG_STRIP_RE.sub("", slug)
    slug = DASH_RUN_RE.sub("-", slug)
    return slug or EMPTY_SLUG


def normalize_edition(edition: str, synonyms: Optional[Mapping[str, str]] = None) -> str:
    """Map edition synonyms onto their canonical label; unknown labels pass through."""
    table = DEFAULT_EDITION_SYNONYMS if synonyms is None else synonyms
    token = edition.strip()
    if not token:
        return EDITION_PRIMARY
    return table.get(token.lower(), edition)


def is_primary_edition(edition: str, synonyms: Optional[Mapping[str, str]] = None) -> bool:
    return normalize_edition(edition, synonyms).lower() == EDITION_PRIMARY.lower()


def build_display_name(
    base_name: str,
    edition: str,
    pack_version: str,
    synonyms: Optional[Mapping[str, str]] = None,
) -> str:
    base = base_name.strip() or DEFAULT_BASE_NAME
    version = pack_version.strip()
    normalized = normalize_edition(edition, synonyms)
    if is_primary_edition(edition, synonyms):
        return f"{base} {version}".strip()
    return f"{base} {normalized} {version}".strip()


def build_file_prefix(
    base_name: str,
    edition: str,
    pack_version: str,
    synonyms: Optional[Mapping[str, str]] = None,
) -> str:
    base = slugify(base_name)
    edition_slug = slugify(normalize_edition(edition, synonyms))
    version = slugify(pack_version) if pack_version.strip() else UNKNOWN_PACK_VERSION
    return f"{base}-{version}-{edition_slug}"


def snapshot_filename(prefix: str) -> str:
    return f"{prefix}{SNAPSHOT_SUFFIX}"


def report_filename(prefix: str) -> str:
    return f"{prefix}{REPORT_SUFFIX}"


def profile_properties_path(mods_dir: Path) -> Path:
    mods_path = Path(mods_dir)
    return mods_path.parent / PROPERTIES_RELATIVE_PATH


def read_pack_version(path: Path) -> Optional[str]:
    """Return the ``packVersion`` value of a ``menu.properties`` file, if present."""
    try:
        text = Path(path).read_text(encoding="utf-8", errors="replace")
    except OSError:
        return None
    prefix = f"{PACK_VERSION_KEY}="
    for line in text.splitlines():
        trimmed = line.strip()
        if trimmed.startswith("#"):
            continue
        if trimmed.startswith(prefix):
            return trimmed[len(prefix):].strip()
    return None


def write_pack_version(path: Path, new_version: str) -> None:
    """Rewrite the first ``packVersion`` line in place, keeping indentation and line endings."""
    target = Path(path)
    with target.open("r", encoding="utf-8", newline="") as handle:
        text = handle.read()
    prefix = f"{PACK_VERSION_KEY}="
    replaced = False
    out: List[str] = []
    for line in text.splitlines():
        trimmed = line.lstrip()
        if not replaced and not trimmed.startswith("#") and trimmed.startswith(prefix):
            indent = line[: len(line) - len(trimmed)]
            out.append(f"{indent}{prefix}{new_version.strip()}")
            replaced = True
        else:
            out.append(line)
    if not replaced:
        raise KeyError(f"{PACK_VERSION_KEY} key not found in {target}")
    merged = "\n".join(out)
    if "\r\n" in text:
        merged = merged.replace("\n", "\r\n")
    with target.open("w", encoding="utf-8", newline="") as handle:
        handle.write(merged)
