"""CLI utility to snapshot a mods folder and write a changelog against the previous scan."""
from __future__ import annotations

import argparse
import sys
import time
from pathlib import Path
from typing import Optional, Sequence

from launch_utils import (
    ChangelogConfig,
    ConfigError,
    get_local_version,
    load_config,
    load_events,
    log_launch_event,
)
from pack_naming import (
    build_display_name,
    profile_properties_path,
    read_pack_version,
    write_pack_version,
)
from scan_worker import ScanJob, ScanWorker, SnapshotReadError, compare_snapshot_files, find_snapshot_history

POLL_INTERVAL = 0.05


def _load_cli_config(args: argparse.Namespace) -> Optional[ChangelogConfig]:
    try:
        return load_config(Path(args.config) if args.config else None)
    except ConfigError as exc:
        print(f"Invalid config: {exc}", file=sys.stderr)
        return None


def _resolve_pack_version(args: argparse.Namespace, mods_dir: Path, configured: str) -> str:
    if args.pack_version:
        return args.pack_version
    if configured:
        return configured
    return read_pack_version(profile_properties_path(mods_dir)) or ""


def _save_pack_version(mods_dir: Path, version: str) -> None:
    path = profile_properties_path(mods_dir)
    try:
        write_pack_version(path, version)
    except (OSError, KeyError) as exc:
        print(f"Could not store pack version in {path}: {exc}", file=sys.stderr)
        log_launch_event("cli", "pack-version-save-failed", {"path": str(path), "error": str(exc)})
        return
    print(f"Stored pack version {version} in {path}.")


def scan_command(args: argparse.Namespace) -> int:
    config = _load_cli_config(args)
    if config is None:
        return 2
    mods_value = args.mods_dir or config.mods_dir
    if not mods_value:
        print("No mods directory given. Pass one or set mods_dir in the config file.", file=sys.stderr)
        return 2
    mods_dir = Path(mods_value).expanduser()
    if not mods_dir.is_dir():
        print(f"Mods directory not found: {mods_dir} (an empty snapshot will be recorded)", file=sys.stderr)

    pack_version = _resolve_pack_version(args, mods_dir, config.pack_version)
    if args.save_pack_version and pack_version:
        _save_pack_version(mods_dir, pack_version)

    output_value = args.output_dir or config.output_dir
    job = ScanJob(
        mods_dir=mods_dir,
        base_name=args.name or config.base_name,
        edition=args.edition or config.edition,
        pack_version=pack_version,
        force_new=args.force_new,
        output_dir=Path(output_value).expanduser() if output_value else None,
        report_text=config.report_text,
        edition_synonyms=config.edition_synonyms,
    )
    worker = ScanWorker()
    try:
        worker.start(job)
    except ConfigError as exc:
        print(str(exc), file=sys.stderr)
        return 2

    print(f"Scanning {mods_dir} ...")
    outcome = worker.poll()
    while outcome is None:
        time.sleep(POLL_INTERVAL)
        outcome = worker.poll()

    stats = outcome.snapshot.stats
    print(
        f"Done: {stats.active} active, {stats.disabled} disabled, {stats.failed} read errors, "
        f"{outcome.changes.total_changes} changes."
    )
    if outcome.old_snapshot is None:
        print("No previous snapshot found; treating this as the first scan.")
    if args.print:
        print()
        print(outcome.markdown)
    for message in outcome.write_errors:
        print(message, file=sys.stderr)
    if outcome.write_errors:
        return 1
    print(f"Snapshot: {outcome.snapshot_path}")
    print(f"Changelog: {outcome.report_path}")
    return 0


def history_command(args: argparse.Namespace) -> int:
    directory = Path(args.directory).expanduser()
    entries = find_snapshot_history(directory)
    if not entries:
        print(f"No snapshots found in {directory}.")
        return 0
    print(f"{len(entries)} snapshot(s) in {directory}:")
    for entry in entries:
        print(f"- {entry.timestamp}  {entry.filename}")
    return 0


def compare_command(args: argparse.Namespace) -> int:
    config = _load_cli_config(args)
    if config is None:
        return 2
    display = build_display_name(
        args.name or config.base_name,
        args.edition or config.edition,
        args.pack_version or config.pack_version,
        config.edition_synonyms,
    )
    try:
        changes, markdown = compare_snapshot_files(
            Path(args.old), Path(args.new), display, text=config.report_text
        )
    except SnapshotReadError as exc:
        print(str(exc), file=sys.stderr)
        return 1
    print(markdown)
    print(f"{changes.total_changes} change(s) between {Path(args.old).name} and {Path(args.new).name}.", file=sys.stderr)
    return 0


def events_command(args: argparse.Namespace) -> int:
    events = load_events(args.component)
    if not events:
        print("No diagnostics recorded yet.")
        return 0
    for entry in events[-args.limit:] if args.limit > 0 else []:
        details = entry.get("details") or {}
        detail_text = ", ".join(f"{key}={value}" for key, value in details.items())
        print(f"{entry.get('timestamp', '?')} [{entry.get('component', '?')}] {entry.get('event', '?')} {detail_text}".rstrip())
    return 0


def _add_naming_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--name", help="Pack base name used in titles and file names")
    parser.add_argument("--edition", help="Pack edition, e.g. Full or Lite")
    parser.add_argument("--pack-version", help="Pack version string")
    parser.add_argument("--config", help="Path to a JSON config file", default=None)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Snapshot a mods folder and generate a changelog.")
    parser.add_argument("--version", action="version", version=f"%(prog)s {get_local_version()}")
    subparsers = parser.add_subparsers(dest="command", required=True)

    scan = subparsers.add_parser("scan", help="Scan a mods folder and compare with the previous snapshot")
    scan.add_argument("mods_dir", nargs="?", help="Folder containing .jar and .jar.disabled files")
    _add_naming_arguments(scan)
    scan.add_argument("--force-new", action="store_true", help="Ignore the stored snapshot and start fresh")
    scan.add_argument("--output-dir", help="Where to write the snapshot and changelog (default: parent of mods_dir)")
    scan.add_argument("--print", action="store_true", help="Print the generated changelog")
    scan.add_argument(
        "--save-pack-version",
        action="store_true",
        help="Write the pack version back into config/packbranding/menu.properties",
    )
    scan.set_defaults(func=scan_command)

    history = subparsers.add_parser("history", help="List stored snapshots")
    history.add_argument("directory", help="Folder holding *.mods_snapshot.json files")
    history.set_defaults(func=history_command)

    compare = subparsers.add_parser("compare", help="Compare two stored snapshots")
    compare.add_argument("old", help="Older snapshot file")
    compare.add_argument("new", help="Newer snapshot file")
    _add_naming_arguments(compare)
    compare.set_defaults(func=compare_command)

    events = subparsers.add_parser("events", help="Show recorded diagnostics events")
    events.add_argument("--component", default=None)
    events.add_argument("--limit", type=int, default=20)
    events.set_defaults(func=events_command)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
