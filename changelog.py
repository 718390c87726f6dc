"""Markdown changelog rendering for a snapshot comparison."""
from __future__ import annotations

from dataclasses import dataclass, fields, replace
from datetime import datetime
from string import Formatter
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set

from scanner import ModRecord, Snapshot
from snapshot_diff import ChangeSet, UpdatedRecord


@dataclass(frozen=True, slots=True)
class ReportText:
    """Every user-visible string of the changelog.

    Templates use ``str.format`` placeholders. Hosts that want another
    wording pass their own instance instead of patching module state.
    """

    heading: str = "# 🛠️ {name} - Change overview\n"
    date: str = "**Date:** {date}\n"
    date_format: str = "%Y-%m-%d %H:%M"
    totals: str = "**Total mods:** {active}  •  Disabled: {disabled}  •  Read errors: {failed}\n"
    compared_with: str = "**Compared with:** {timestamp}\n"
    separator: str = "---\n"
    mod_line: str = "* `{name}` v{version}"
    added: str = "## ✨ New mods ({count})"
    updated: str = "## 🔄 Updated mods ({count})"
    updated_line: str = "* `{name}` → **{new_version}** (previously {old_version})"
    removed: str = "## ❌ Removed mods ({count})"
    newly_disabled: str = "## 🚫 Newly disabled mods ({count})"
    disabled_reason: str = "*Reason: probably incompatible or conflicting with the current version*\n"
    newly_enabled: str = "## ✅ Newly enabled mods ({count})"
    currently_disabled: str = "## 📋 Currently disabled mods ({count})"
    read_errors: str = "## ⚠️ Files with read errors ({count})"
    read_error_line: str = "* `{filename}` - metadata could not be read"
    recommendation: str = (
        "🎮 **Recommendation:** After bigger updates it can help to delete `config/` "
        "(or at least the configs of the problematic mods).\n"
    )
    summary: str = "_(Unchanged: {unchanged} • Total changes: {total})_\n"


DEFAULT_REPORT_TEXT = ReportText()
# used verbatim or with strftime, never with str.format
LITERAL_FIELDS = frozenset({"date_format", "separator", "disabled_reason", "recommendation"})

__all__ = ["DEFAULT_REPORT_TEXT", "ReportText", "generate_markdown", "report_text_from_mapping", "sort_by_name"]


def _placeholders(template: str) -> Set[str]:
    return {name for _, name, _, _ in Formatter().parse(template) if name is not None}


def _check_template(key: str, template: str) -> None:
    if key in LITERAL_FIELDS:
        return
    try:
        used = _placeholders(template)
    except ValueError as exc:
        raise ValueError(f"report_text.{key}: {exc}") from exc
    allowed = _placeholders(getattr(DEFAULT_REPORT_TEXT, key))
    unknown = sorted(used - allowed)
    if unknown:
        raise ValueError(
            f"report_text.{key} uses unknown placeholder(s) {', '.join(unknown)}; "
            f"allowed: {', '.join(sorted(allowed)) or 'none'}"
        )


def report_text_from_mapping(overrides: Mapping[str, object], base: ReportText = DEFAULT_REPORT_TEXT) -> ReportText:
    """Apply string overrides, ignoring unknown keys and non-string values.

    Raises ``ValueError`` when an override refers to a placeholder its
    template is never formatted with, or has unbalanced braces.
    """
    known = {item.name for item in fields(ReportText)}
    values: Dict[str, str] = {}
    for key, value in overrides.items():
        if key in known and isinstance(value, str):
            _check_template(key, value)
            values[key] = value
    if not values:
        return base
    return replace(base, **values)


def sort_by_name(records: Iterable[ModRecord]) -> List[ModRecord]:
    return sorted(records, key=lambda record: record.name.lower())


def _mod_section(lines: List[str], title: str, records: Sequence[ModRecord], text: ReportText) -> None:
    lines.append(title.format(count=len(records)))
    for record in sort_by_name(records):
        lines.append(text.mod_line.format(name=record.name, version=record.version))
    lines.append("")


def _updated_section(lines: List[str], records: Sequence[UpdatedRecord], text: ReportText) -> None:
    lines.append(text.updated.format(count=len(records)))
    for record in sorted(records, key=lambda entry: entry.name.lower()):
        lines.append(
            text.updated_line.format(
                name=record.name,
                new_version=record.new_version,
                old_version=record.old_version,
            )
        )
    lines.append("")


def generate_markdown(
    display_name: str,
    changes: ChangeSet,
    new_snapshot: Snapshot,
    old_snapshot: Optional[Snapshot] = None,
    *,
    text: Optional[ReportText] = None,
    now: Optional[datetime] = None,
) -> str:
    text = text or DEFAULT_REPORT_TEXT
    generated_at = now or datetime.now()
    lines: List[str] = []

    lines.append(text.heading.format(name=display_name))
    lines.append(text.date.format(date=generated_at.strftime(text.date_format)))
    stats = new_snapshot.stats
    lines.append(text.totals.format(active=stats.active, disabled=stats.disabled, failed=stats.failed))
    if old_snapshot is not None:
        lines.append(text.compared_with.format(timestamp=old_snapshot.timestamp))
    lines.append("\n" + text.separator)

    if changes.added:
        _mod_section(lines, text.added, changes.added, text)
    if changes.updated:
        _updated_section(lines, changes.updated, text)
    if changes.removed:
        _mod_section(lines, text.removed, changes.removed, text)
    if changes.newly_disabled:
        lines.append(text.newly_disabled.format(count=len(changes.newly_disabled)))
        lines.append(text.disabled_reason)
        for record in sort_by_name(changes.newly_disabled):
            lines.append(text.mod_line.format(name=record.name, version=record.version))
        lines.append("")
    if changes.newly_enabled:
        _mod_section(lines, text.newly_enabled, changes.newly_enabled, text)

    if new_snapshot.disabled:
        lines.append(text.separator)
        _mod_section(lines, text.currently_disabled, new_snapshot.disabled, text)

    if new_snapshot.failed:
        lines.append(text.separator)
        lines.append(text.read_errors.format(count=len(new_snapshot.failed)))
        for filename in sorted(new_snapshot.failed):
            lines.append(text.read_error_line.format(filename=filename))
        lines.append("")

    lines.append(text.separator)
    lines.append(text.recommendation)
    lines.append(text.summary.format(unchanged=len(changes.unchanged), total=changes.total_changes))
    return "\n".join(lines)
