"""Scan, compare and render on a background thread, then persist the results."""
from __future__ import annotations

import queue
import threading
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from changelog import DEFAULT_REPORT_TEXT, ReportText, generate_markdown
from launch_utils import ConfigError, log_launch_event
from pack_naming import (
    SNAPSHOT_SUFFIX,
    build_display_name,
    build_file_prefix,
    report_filename,
    snapshot_filename,
)
from scanner import Snapshot, load_snapshot, save_snapshot, scan_mods_directory
from snapshot_diff import ChangeSet, compare_snapshots, diff

COMPONENT = "scan_worker"
UNKNOWN_TIMESTAMP = "?"


class SnapshotReadError(Exception):
    def __init__(self, path: Path) -> None:
        super().__init__(f"Could not read snapshot {Path(path).name}")
        self.path = Path(path)


@dataclass(slots=True)
class ScanJob:
    mods_dir: Path
    base_name: str = ""
    edition: str = ""
    pack_version: str = ""
    force_new: bool = False
    output_dir: Optional[Path] = None
    report_text: ReportText = DEFAULT_REPORT_TEXT
    edition_synonyms: Optional[Dict[str, str]] = None

    def validate(self) -> None:
        if self.mods_dir is None or not str(self.mods_dir).strip():
            raise ConfigError("A mods directory is required to run a scan.")

    @property
    def prefix(self) -> str:
        return build_file_prefix(self.base_name, self.edition, self.pack_version, self.edition_synonyms)

    @property
    def display_name(self) -> str:
        return build_display_name(self.base_name, self.edition, self.pack_version, self.edition_synonyms)

    def resolved_output_dir(self) -> Path:
        if self.output_dir is not None:
            return Path(self.output_dir)
        mods_path = Path(self.mods_dir)
        return mods_path.parent if mods_path.parent != mods_path else mods_path

    @property
    def snapshot_path(self) -> Path:
        return self.resolved_output_dir() / snapshot_filename(self.prefix)

    @property
    def report_path(self) -> Path:
        return self.resolved_output_dir() / report_filename(self.prefix)


@dataclass(slots=True)
class ScanOutcome:
    snapshot: Snapshot
    old_snapshot: Optional[Snapshot]
    changes: ChangeSet
    markdown: str
    snapshot_path: Path
    report_path: Path
    write_errors: List[str] = field(default_factory=list)

    @property
    def persisted(self) -> bool:
        return not self.write_errors


@dataclass(slots=True)
class SnapshotEntry:
    filename: str
    timestamp: str
    path: Path


def run_scan_job(job: ScanJob, *, now: Optional[datetime] = None) -> ScanOutcome:
    job.validate()
    snapshot_path = job.snapshot_path
    log_launch_event(COMPONENT, "scan-start", {"mods_dir": str(job.mods_dir), "prefix": job.prefix})

    new_snapshot = scan_mods_directory(Path(job.mods_dir))

    old_snapshot: Optional[Snapshot] = None
    if not job.force_new:
        old_snapshot = load_snapshot(snapshot_path)
        if old_snapshot is None:
            log_launch_event(COMPONENT, "baseline-missing", {"path": str(snapshot_path)})

    changes = diff(old_snapshot, new_snapshot)
    markdown = generate_markdown(
        job.display_name,
        changes,
        new_snapshot,
        old_snapshot,
        text=job.report_text,
        now=now,
    )
    log_launch_event(
        COMPONENT,
        "scan-complete",
        {
            "active": new_snapshot.stats.active,
            "disabled": new_snapshot.stats.disabled,
            "failed": new_snapshot.stats.failed,
            "changes": changes.total_changes,
        },
    )
    return ScanOutcome(
        snapshot=new_snapshot,
        old_snapshot=old_snapshot,
        changes=changes,
        markdown=markdown,
        snapshot_path=snapshot_path,
        report_path=job.report_path,
    )


def persist_outcome(outcome: ScanOutcome) -> List[str]:
    """Write the snapshot and changelog files, collecting a message per failed write."""
    errors: List[str] = []
    try:
        save_snapshot(outcome.snapshot, outcome.snapshot_path)
    except OSError as exc:
        errors.append(f"Could not write snapshot {outcome.snapshot_path}: {exc}")
    try:
        outcome.report_path.write_text(outcome.markdown, encoding="utf-8")
    except OSError as exc:
        errors.append(f"Could not write changelog {outcome.report_path}: {exc}")
    for message in errors:
        log_launch_event(COMPONENT, "write-failed", {"error": message})
    outcome.write_errors = errors
    return errors


def find_snapshot_history(directory: Path) -> List[SnapshotEntry]:
    """Stored snapshots in ``directory``, newest first."""
    entries: List[SnapshotEntry] = []
    try:
        candidates = [path for path in Path(directory).iterdir() if path.name.endswith(SNAPSHOT_SUFFIX)]
    except OSError:
        return entries
    for path in candidates:
        snapshot = load_snapshot(path)
        timestamp = snapshot.timestamp if snapshot is not None else UNKNOWN_TIMESTAMP
        entries.append(SnapshotEntry(filename=path.name, timestamp=timestamp, path=path))
    entries.sort(key=lambda entry: entry.timestamp, reverse=True)
    return entries


def compare_snapshot_files(
    old_path: Path,
    new_path: Path,
    display_name: str,
    *,
    text: Optional[ReportText] = None,
    now: Optional[datetime] = None,
) -> Tuple[ChangeSet, str]:
    old_snapshot = load_snapshot(old_path)
    if old_snapshot is None:
        raise SnapshotReadError(old_path)
    new_snapshot = load_snapshot(new_path)
    if new_snapshot is None:
        raise SnapshotReadError(new_path)
    changes = compare_snapshots(old_snapshot, new_snapshot)
    markdown = generate_markdown(display_name, changes, new_snapshot, old_snapshot, text=text, now=now)
    return changes, markdown


class ScanWorker:
    """Run one scan job at a time on a daemon thread.

    The result comes back through a queue that the caller polls, mirroring
    how the UI pumps callbacks. ``start`` refuses a second job while one is
    still running so two scans never race on the same output files.
    """

    def __init__(self, *, persist: bool = True) -> None:
        self._persist = persist
        self._lock = threading.Lock()
        self._busy = False
        self._results: "queue.Queue[Tuple[Optional[ScanOutcome], Optional[BaseException]]]" = queue.Queue(maxsize=1)
        self._thread: Optional[threading.Thread] = None

    @property
    def busy(self) -> bool:
        with self._lock:
            return self._busy

    def start(self, job: ScanJob, *, now: Optional[datetime] = None) -> bool:
        job.validate()
        with self._lock:
            if self._busy:
                log_launch_event(COMPONENT, "scan-rejected", {"reason": "busy"})
                return False
            self._busy = True

        def worker() -> None:
            try:
                outcome = run_scan_job(job, now=now)
                if self._persist:
                    persist_outcome(outcome)
            except Exception as exc:
                log_launch_event(COMPONENT, "worker-error", {"error": str(exc)})
                self._results.put((None, exc))
            else:
                self._results.put((outcome, None))

        self._thread = threading.Thread(target=worker, name="mod-changelog-scan", daemon=True)
        self._thread.start()
        return True

    def poll(self) -> Optional[ScanOutcome]:
        """Return the finished outcome, or ``None`` while the scan is still running."""
        try:
            outcome, error = self._results.get_nowait()
        except queue.Empty:
            return None
        return self._finish(outcome, error)

    def wait(self, timeout: Optional[float] = None) -> Optional[ScanOutcome]:
        try:
            outcome, error = self._results.get(timeout=timeout)
        except queue.Empty:
            return None
        return self._finish(outcome, error)

    def _finish(self, outcome: Optional[ScanOutcome], error: Optional[BaseException]) -> Optional[ScanOutcome]:
        with self._lock:
            self._busy = False
        self._thread = None
        if error is not None:
            raise error
        return outcome
