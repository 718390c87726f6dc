from __future__ import annotations

import json
import tempfile
import threading
import zipfile
from datetime import datetime
from pathlib import Path
from unittest import TestCase, mock

import pytest

import launch_utils
import scan_worker
from launch_utils import ConfigError
from scan_worker import ScanJob, ScanWorker, SnapshotReadError
from scanner import ModRecord, Snapshot, SnapshotStats, save_snapshot

NOW = datetime(2024, 5, 6, 7, 8)


@pytest.fixture(autouse=True)
def _isolated_log(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(launch_utils, "DIAGNOSTICS_LOG_PATH", tmp_path / "diagnostics.jsonl")


def _write_jar(path: Path, mod_id: str, version: str) -> None:
    with zipfile.ZipFile(path, "w") as archive:
        archive.writestr("fabric.mod.json", json.dumps({"id": mod_id, "name": mod_id.title(), "version": version}))


def _profile(tmp_path: Path) -> Path:
    mods = tmp_path / "profile" / "mods"
    mods.mkdir(parents=True)
    _write_jar(mods / "alpha.jar", "alpha", "1.0")
    _write_jar(mods / "beta.jar", "beta", "1.0")
    return mods


def _job(mods: Path, **kwargs) -> ScanJob:
    return ScanJob(mods_dir=mods, base_name="My Pack", edition="Full", pack_version="1.0", **kwargs)


def test_paths_follow_prefix_next_to_mods_dir(tmp_path: Path) -> None:
    job = _job(tmp_path / "profile" / "mods")

    assert job.snapshot_path == tmp_path / "profile" / "my-pack-1.0-full.mods_snapshot.json"
    assert job.report_path == tmp_path / "profile" / "my-pack-1.0-full.changelog.md"
    assert job.display_name == "My Pack 1.0"


def test_output_dir_override(tmp_path: Path) -> None:
    job = _job(tmp_path / "mods", output_dir=tmp_path / "out")

    assert job.snapshot_path.parent == tmp_path / "out"


@pytest.mark.parametrize("mods_dir", ["", "   ", None])
def test_blank_mods_dir_is_a_config_error(mods_dir) -> None:
    with pytest.raises(ConfigError):
        scan_worker.run_scan_job(ScanJob(mods_dir=mods_dir))


def test_first_scan_then_update(tmp_path: Path) -> None:
    mods = _profile(tmp_path)

    first = scan_worker.run_scan_job(_job(mods), now=NOW)

    assert first.old_snapshot is None
    assert [record.id for record in first.changes.added] == ["alpha", "beta"]
    assert launch_utils.load_events("scan_worker")[1]["event"] == "baseline-missing"
    assert scan_worker.persist_outcome(first) == []
    assert first.persisted
    assert first.snapshot_path.exists() and first.report_path.exists()
    assert first.report_path.read_text(encoding="utf-8") == first.markdown

    _write_jar(mods / "beta.jar", "beta", "1.1")
    (mods / "alpha.jar").rename(mods / "alpha.jar.disabled")
    _write_jar(mods / "gamma.jar", "gamma", "0.1")

    second = scan_worker.run_scan_job(_job(mods), now=NOW)

    assert second.old_snapshot is not None
    assert [record.id for record in second.changes.added] == ["gamma"]
    assert [(entry.id, entry.old_version, entry.new_version) for entry in second.changes.updated] == [("beta", "1.0", "1.1")]
    assert [record.id for record in second.changes.newly_disabled] == ["alpha"]
    assert "**Compared with:**" in second.markdown


def test_force_new_ignores_stored_snapshot(tmp_path: Path) -> None:
    mods = _profile(tmp_path)
    scan_worker.persist_outcome(scan_worker.run_scan_job(_job(mods), now=NOW))

    outcome = scan_worker.run_scan_job(_job(mods, force_new=True), now=NOW)

    assert outcome.old_snapshot is None
    assert len(outcome.changes.added) == 2


def test_corrupt_baseline_counts_as_first_scan(tmp_path: Path) -> None:
    mods = _profile(tmp_path)
    job = _job(mods)
    job.snapshot_path.write_text("{oops", encoding="utf-8")

    outcome = scan_worker.run_scan_job(job, now=NOW)

    assert outcome.old_snapshot is None
    assert len(outcome.changes.added) == 2


def test_write_failures_are_reported(tmp_path: Path) -> None:
    mods = _profile(tmp_path)
    outcome = scan_worker.run_scan_job(_job(mods, output_dir=tmp_path / "no" / "such" / "dir"), now=NOW)

    errors = scan_worker.persist_outcome(outcome)

    assert len(errors) == 2
    assert outcome.write_errors == errors
    assert not outcome.persisted
    events = [entry["event"] for entry in launch_utils.load_events("scan_worker")]
    assert events.count("write-failed") == 2


def _stored_snapshot(path: Path, timestamp: str, active_ids) -> None:
    active = [ModRecord(f"{mod_id}.jar", mod_id, mod_id, "1.0", "fabric") for mod_id in active_ids]
    save_snapshot(
        Snapshot(timestamp, "/mods", active, [], [], SnapshotStats(len(active), len(active), 0, 0)),
        path,
    )


def test_history_lists_newest_first(tmp_path: Path) -> None:
    _stored_snapshot(tmp_path / "pack-1.0-full.mods_snapshot.json", "2024-01-01T00:00:00+00:00", ["a"])
    _stored_snapshot(tmp_path / "pack-1.1-full.mods_snapshot.json", "2024-02-01T00:00:00+00:00", ["a", "b"])
    (tmp_path / "pack-0.9-full.mods_snapshot.json").write_text("garbage", encoding="utf-8")
    (tmp_path / "pack-1.1-full.changelog.md").write_text("# log", encoding="utf-8")

    entries = scan_worker.find_snapshot_history(tmp_path)

    readable = [entry.filename for entry in entries if entry.timestamp != scan_worker.UNKNOWN_TIMESTAMP]
    assert readable == ["pack-1.1-full.mods_snapshot.json", "pack-1.0-full.mods_snapshot.json"]
    assert len(entries) == 3


def test_history_of_missing_directory_is_empty(tmp_path: Path) -> None:
    assert scan_worker.find_snapshot_history(tmp_path / "missing") == []


def test_compare_snapshot_files(tmp_path: Path) -> None:
    old_path = tmp_path / "old.mods_snapshot.json"
    new_path = tmp_path / "new.mods_snapshot.json"
    _stored_snapshot(old_path, "2024-01-01T00:00:00+00:00", ["a"])
    _stored_snapshot(new_path, "2024-02-01T00:00:00+00:00", ["a", "b"])

    changes, markdown = scan_worker.compare_snapshot_files(old_path, new_path, "Pack 1.1", now=NOW)

    assert [record.id for record in changes.added] == ["b"]
    assert "**Compared with:** 2024-01-01T00:00:00+00:00" in markdown

    with pytest.raises(SnapshotReadError) as excinfo:
        scan_worker.compare_snapshot_files(tmp_path / "missing.json", new_path, "Pack")
    assert "missing.json" in str(excinfo.value)


def test_worker_delivers_outcome_and_persists(tmp_path: Path) -> None:
    mods = _profile(tmp_path)
    worker = ScanWorker()

    assert worker.start(_job(mods), now=NOW) is True
    outcome = worker.wait(timeout=10)

    assert outcome is not None
    assert outcome.snapshot.stats.active == 2
    assert outcome.snapshot_path.exists()
    assert not worker.busy


def test_worker_refuses_overlapping_scans(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    release = threading.Event()
    sentinel = object()

    def slow_job(job, *, now=None):
        release.wait(timeout=10)
        return sentinel

    monkeypatch.setattr(scan_worker, "run_scan_job", slow_job)
    worker = ScanWorker(persist=False)
    job = _job(tmp_path / "mods")

    assert worker.start(job) is True
    assert worker.busy
    assert worker.poll() is None
    assert worker.start(job) is False

    release.set()
    assert worker.wait(timeout=10) is sentinel
    assert worker.start(job) is True
    assert worker.wait(timeout=10) is sentinel


def test_worker_reraises_errors(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    def broken_job(job, *, now=None):
        raise RuntimeError("boom")

    monkeypatch.setattr(scan_worker, "run_scan_job", broken_job)
    worker = ScanWorker()
    worker.start(_job(tmp_path / "mods"))

    with pytest.raises(RuntimeError, match="boom"):
        worker.wait(timeout=10)
    assert not worker.busy
    assert launch_utils.load_events("scan_worker")[-1]["event"] == "worker-error"


class PersistOutcomeTests(TestCase):
    def test_snapshot_failure_still_writes_report(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            base = Path(tmp)
            with mock.patch.object(launch_utils, "DIAGNOSTICS_LOG_PATH", base / "log.jsonl"):
                outcome = scan_worker.run_scan_job(ScanJob(mods_dir=base / "mods", output_dir=base), now=NOW)
                with mock.patch("scan_worker.save_snapshot", side_effect=PermissionError("denied")):
                    errors = scan_worker.persist_outcome(outcome)

            self.assertEqual(len(errors), 1)
            self.assertIn("denied", errors[0])
            self.assertTrue(outcome.report_path.exists())
            self.assertFalse(outcome.snapshot_path.exists())
