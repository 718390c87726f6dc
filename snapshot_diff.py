"""Classify the difference between two mod snapshots."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from scanner import ModRecord, Snapshot


@dataclass(slots=True)
class UpdatedRecord:
    id: str
    name: str
    old_version: str
    new_version: str
    filename: str


@dataclass(slots=True)
class ChangeSet:
    added: List[ModRecord] = field(default_factory=list)
    removed: List[ModRecord] = field(default_factory=list)
    updated: List[UpdatedRecord] = field(default_factory=list)
    newly_disabled: List[ModRecord] = field(default_factory=list)
    newly_enabled: List[ModRecord] = field(default_factory=list)
    unchanged: List[ModRecord] = field(default_factory=list)

    @property
    def total_changes(self) -> int:
        return (
            len(self.added)
            + len(self.removed)
            + len(self.updated)
            + len(self.newly_disabled)
            + len(self.newly_enabled)
        )

    @property
    def has_changes(self) -> bool:
        return self.total_changes > 0


__all__ = ["ChangeSet", "UpdatedRecord", "compare_snapshots", "diff", "fresh_changes", "index_by_id"]


def index_by_id(records: Sequence[ModRecord]) -> Dict[str, ModRecord]:
    # Duplicate ids collapse onto the last record seen.
    return {record.id: record for record in records}


def compare_snapshots(old: Snapshot, new: Snapshot) -> ChangeSet:
    old_active = index_by_id(old.active)
    old_disabled = index_by_id(old.disabled)
    new_active = index_by_id(new.active)
    new_disabled = index_by_id(new.disabled)

    changes = ChangeSet()
    for mod_id, record in new_active.items():
        if mod_id not in old_active and mod_id not in old_disabled:
            changes.added.append(record)
        elif mod_id in old_disabled:
            changes.newly_enabled.append(record)
        else:
            previous = old_active[mod_id]
            if record.version != previous.version:
                changes.updated.append(
                    UpdatedRecord(
                        id=mod_id,
                        name=record.name,
                        old_version=previous.version,
                        new_version=record.version,
                        filename=record.filename,
                    )
                )
            else:
                changes.unchanged.append(record)

    # Ids that are disabled on both sides are intentionally left out of every bucket.
    for mod_id, record in old_active.items():
        if mod_id in new_active:
            continue
        disabled_record = new_disabled.get(mod_id)
        if disabled_record is None:
            changes.removed.append(record)
        else:
            changes.newly_disabled.append(disabled_record)
    return changes


def fresh_changes(new: Snapshot) -> ChangeSet:
    """Changes for a first scan: every active mod counts as added."""
    return ChangeSet(added=list(new.active))


def diff(old: Optional[Snapshot], new: Snapshot) -> ChangeSet:
    if old is None:
        return fresh_changes(new)
    return compare_snapshots(old, new)
