"""Shared helpers for configuration, version lookup and diagnostics events."""
from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from changelog import DEFAULT_REPORT_TEXT, ReportText, report_text_from_mapping
from pack_naming import DEFAULT_EDITION_SYNONYMS

BASE_DIR = Path(__file__).resolve().parent
DIAGNOSTICS_LOG_PATH = BASE_DIR / "mod_changelog_diagnostics.jsonl"
VERSION_FILE = BASE_DIR / "VERSION"
CONFIG_FILE = BASE_DIR / "mod_changelog_config.json"


class ConfigError(ValueError):
    """Raised when a scan is requested with settings that cannot work."""


def _clean_str(value: object) -> Optional[str]:
    if isinstance(value, str):
        value = value.strip()
        if value:
            return value
    return None


@dataclass(slots=True)
class ChangelogConfig:
    mods_dir: Optional[str] = None
    base_name: str = ""
    edition: str = ""
    pack_version: str = ""
    output_dir: Optional[str] = None
    edition_synonyms: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_EDITION_SYNONYMS))
    report_text: ReportText = DEFAULT_REPORT_TEXT


def log_launch_event(component: str, event: str, details: Optional[Dict[str, object]] = None) -> None:
    """Append a diagnostic event so later runs can explain what happened."""
    entry = {
        "timestamp": time.strftime("%Y-%m-%dT%H:%M:%S"),
        "component": component,
        "event": event,
        "details": details or {},
    }
    try:
        with DIAGNOSTICS_LOG_PATH.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(entry, ensure_ascii=False))
            handle.write("\n")
    except Exception:
        pass


def load_events(component: Optional[str] = None) -> List[dict]:
    if not DIAGNOSTICS_LOG_PATH.exists():
        return []
    events: List[dict] = []
    for line in DIAGNOSTICS_LOG_PATH.read_text(encoding="utf-8", errors="ignore").splitlines():
        try:
            entry = json.loads(line)
        except json.JSONDecodeError:
            continue
        if not isinstance(entry, dict):
            continue
        if component and entry.get("component") != component:
            continue
        events.append(entry)
    return events


def get_local_version() -> str:
    """Return the version string stored in VERSION."""
    try:
        text = VERSION_FILE.read_text(encoding="utf-8").strip()
    except FileNotFoundError:
        return "0.0.0"
    return text or "0.0.0"


def _load_config_data(path: Path) -> Dict[str, object]:
    if not path.exists():
        return {}
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = json.load(handle)
        if isinstance(data, dict):
            return data
    except Exception:
        log_launch_event("config", "config-unreadable", {"path": str(path)})
        return {}
    return {}


def _edition_synonyms(raw: object) -> Dict[str, str]:
    synonyms = dict(DEFAULT_EDITION_SYNONYMS)
    if isinstance(raw, dict):
        for key, value in raw.items():
            token = _clean_str(key)
            label = _clean_str(value)
            if token and label:
                synonyms[token.lower()] = label
    return synonyms


def load_config(path: Optional[Path] = None) -> ChangelogConfig:
    data = _load_config_data(Path(path) if path else CONFIG_FILE)
    report_overrides = data.get("report_text")
    report_text = DEFAULT_REPORT_TEXT
    if isinstance(report_overrides, dict):
        try:
            report_text = report_text_from_mapping(report_overrides)
        except ValueError as exc:
            log_launch_event("config", "config-invalid", {"path": str(path or CONFIG_FILE), "error": str(exc)})
            raise ConfigError(str(exc)) from exc
    return ChangelogConfig(
        mods_dir=_clean_str(data.get("mods_dir")),
        base_name=_clean_str(data.get("base_name")) or "",
        edition=_clean_str(data.get("edition")) or "",
        pack_version=_clean_str(data.get("pack_version")) or "",
        output_dir=_clean_str(data.get("output_dir")),
        edition_synonyms=_edition_synonyms(data.get("edition_synonyms")),
        report_text=report_text,
    )
