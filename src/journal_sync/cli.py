"""Command line interface: ``journal-sync``.

Subcommands:
    config list|add|delete   Manage WebDAV sync configs
    sync CONFIG_ID           Run one two-way sync
    test-connection CONFIG_ID
    status [CONFIG_ID]       Show the last sync status
    migrate [--dry-run]      Move legacy attachments to storage paths
    stats                    Legacy versus migrated attachment counts
    validate                 List attachment records with missing files
    cleanup [--apply]        Delete originals of migrated attachments
    init-config [PATH]       Write a starter YAML config file

All diagnostics go to stderr through ``logging``; command output goes to
stdout.  The exit code is 0 on success, 1 on failure and 2 on bad usage.
"""

import argparse
import asyncio
import getpass
import json
import logging
import os
import sys
from pathlib import Path

from . import __version__
from .config_loader import ensure_config, resolve_config
from .core.async_utils import init_semaphore
from .errors import JournalSyncError
from .logger import setup_logging
from .service import JournalSyncService
from .sync.models import SyncFrequency, SyncState, SyncStatus
from .sync.reporter import format_status, format_sync_report, report_to_json, status_to_json

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Output helpers
# ---------------------------------------------------------------------------


def _emit(args: argparse.Namespace, text: str, data: dict | list) -> None:
    if args.json:
        print(json.dumps(data, indent=2, default=str))
    else:
        print(text)


def _print_progress(status: SyncStatus) -> None:
    print(
        f"  [{status.state.value}] {status.progress:.0%} {status.message}",
        file=sys.stderr,
    )


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


async def _cmd_config(service: JournalSyncService, args: argparse.Namespace) -> int:
    if args.config_command == "list":
        configs = service.list_configs()
        lines = [
            f"{c.id}  {c.display_name or '-'}  {c.username}@{c.server_url}{c.root_path}"
            f"  {'enabled' if c.enabled else 'disabled'}"
            for c in configs
        ]
        _emit(
            args,
            "\n".join(lines) or "No sync configs.",
            [c.model_dump(mode="json") for c in configs],
        )
        return 0

    if args.config_command == "add":
        password = os.getenv("JOURNAL_SYNC_PASSWORD") or getpass.getpass(
            f"Password for {args.username}: "
        )
        fields: dict = {
            "display_name": args.name or "",
            "synced_journal_ids": args.journal or [],
            "sync_attachments": not args.no_attachments,
            "sync_frequency": SyncFrequency(args.frequency),
        }
        if args.root_path:
            fields["root_path"] = args.root_path
        config = service.create_config(args.server_url, args.username, password, **fields)
        _emit(args, f"Created sync config {config.id}", config.model_dump(mode="json"))
        return 0

    if service.delete_config(args.config_id):
        _emit(args, f"Deleted sync config {args.config_id}", {"deleted": True})
        return 0
    logger.error("Sync config %s not found", args.config_id)
    return 1


async def _cmd_sync(service: JournalSyncService, args: argparse.Namespace) -> int:
    if service.get_config(args.config_id) is None:
        logger.error("Sync config %s not found", args.config_id)
        return 1
    callback = None if args.quiet else _print_progress
    status = await service.perform_sync(args.config_id, callback)
    report = service.get_last_report(args.config_id)
    text = format_status(status)
    data: dict = {"status": status_to_json(status)}
    if report is not None:
        text = f"{text}\n\n{format_sync_report(report)}"
        data["report"] = report_to_json(report)
    _emit(args, text, data)
    if status.state != SyncState.COMPLETED or status.failed_items:
        return 1
    return 0


async def _cmd_test_connection(
    service: JournalSyncService, args: argparse.Namespace
) -> int:
    ok = await service.test_saved_connection(args.config_id)
    _emit(
        args,
        "Connection OK" if ok else "Connection failed (see log for details)",
        {"config_id": args.config_id, "connected": ok},
    )
    return 0 if ok else 1


async def _cmd_status(service: JournalSyncService, args: argparse.Namespace) -> int:
    ids = [args.config_id] if args.config_id else [c.id for c in service.list_configs()]
    statuses = [service.get_status(config_id) for config_id in ids]
    _emit(
        args,
        "\n\n".join(format_status(s) for s in statuses) or "No sync configs.",
        [status_to_json(s) for s in statuses],
    )
    return 0


async def _cmd_migrate(service: JournalSyncService, args: argparse.Namespace) -> int:
    def on_progress(current: int, total: int, message: str) -> None:
        if not args.quiet:
            print(f"  [{current}/{total}] {message}", file=sys.stderr)

    result = await service.migrate_all_files(on_progress, dry_run=args.dry_run)
    data = result.model_dump(mode="json")
    data["success_rate"] = result.success_rate
    _emit(args, result.summary(), data)
    return 1 if result.has_errors else 0


async def _cmd_stats(service: JournalSyncService, args: argparse.Namespace) -> int:
    stats = await service.get_migration_stats()
    breakdown = ", ".join(
        f"{name}: {count}" for name, count in sorted(stats.type_breakdown.items())
    )
    text = (
        f"Attachments: {stats.total_count} "
        f"({stats.legacy_count} legacy, {stats.migrated_count} migrated)"
        + (f"\n  {breakdown}" if breakdown else "")
    )
    _emit(args, text, stats.model_dump(mode="json"))
    return 0


async def _cmd_validate(service: JournalSyncService, args: argparse.Namespace) -> int:
    report = await service.validate_migration()
    lines = [f"{report.accessible}/{report.total} attachment files accessible"]
    lines.extend(
        f"  missing: {f.attachment_id} {f.path}" for f in report.inaccessible_files
    )
    _emit(args, "\n".join(lines), report.model_dump(mode="json"))
    return 0 if report.inaccessible == 0 else 1


async def _cmd_cleanup(service: JournalSyncService, args: argparse.Namespace) -> int:
    count = await service.cleanup_legacy_files(
        dry_run=not args.apply, specific_paths=args.path or None
    )
    verb = "Deleted" if args.apply else "Would delete"
    _emit(args, f"{verb} {count} legacy file(s)", {"count": count, "dry_run": not args.apply})
    return 0


_COMMANDS = {
    "config": _cmd_config,
    "sync": _cmd_sync,
    "test-connection": _cmd_test_connection,
    "status": _cmd_status,
    "migrate": _cmd_migrate,
    "stats": _cmd_stats,
    "validate": _cmd_validate,
    "cleanup": _cmd_cleanup,
}


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="journal-sync",
        description="Sync journals with WebDAV servers and migrate attachment files",
    )
    parser.add_argument("--data-dir", help="Directory holding the local store, configs and manifests")
    parser.add_argument("--media-dir", help="Attachment media root")
    parser.add_argument("--insecure", action="store_true", help="Skip SSL certificate verification")
    parser.add_argument("--debug", action="store_true", help="Log at DEBUG level")
    parser.add_argument("--log-file", help="Also write logs to this file")
    parser.add_argument("--json", action="store_true", help="Print machine-readable JSON")
    parser.add_argument("-q", "--quiet", action="store_true", help="No progress output")
    parser.add_argument("--version", action="version", version=f"journal-sync {__version__}")

    sub = parser.add_subparsers(dest="command", required=True)

    config = sub.add_parser("config", help="Manage sync configs")
    config_sub = config.add_subparsers(dest="config_command", required=True)
    config_sub.add_parser("list", help="List sync configs")
    add = config_sub.add_parser("add", help="Add a sync config (password from JOURNAL_SYNC_PASSWORD or prompt)")
    add.add_argument("server_url")
    add.add_argument("username")
    add.add_argument("--name", help="Display name")
    add.add_argument("--journal", action="append", help="Journal id to sync (repeatable; default all)")
    add.add_argument("--no-attachments", action="store_true", help="Do not sync attachments")
    add.add_argument(
        "--frequency",
        choices=[f.value for f in SyncFrequency],
        default=SyncFrequency.MANUAL.value,
    )
    add.add_argument("--root-path", help="Remote root collection")
    delete = config_sub.add_parser("delete", help="Delete a sync config and its manifest")
    delete.add_argument("config_id")

    sync = sub.add_parser("sync", help="Run a sync")
    sync.add_argument("config_id")

    test = sub.add_parser("test-connection", help="Test a config's server")
    test.add_argument("config_id")

    status = sub.add_parser("status", help="Show sync status")
    status.add_argument("config_id", nargs="?")

    migrate = sub.add_parser("migrate", help="Migrate legacy attachment paths")
    migrate.add_argument("--dry-run", action="store_true", help="Only report what would be migrated")

    sub.add_parser("stats", help="Attachment migration statistics")
    sub.add_parser("validate", help="Check attachment files are accessible")

    cleanup = sub.add_parser("cleanup", help="Delete originals of migrated attachments")
    cleanup.add_argument("--apply", action="store_true", help="Actually delete (default is a dry run)")
    cleanup.add_argument("--path", action="append", help="Limit to this original path (repeatable)")

    init = sub.add_parser("init-config", help="Create a starter config file if none exists")
    init.add_argument("path", nargs="?", help="Where to write it (default .journal_sync/config.yml)")
    return parser


async def _dispatch(args: argparse.Namespace) -> int:
    overrides: dict = {}
    if args.data_dir:
        overrides["data_dir"] = args.data_dir
    if args.media_dir:
        overrides["media_dir"] = args.media_dir
    if args.insecure:
        overrides["insecure"] = True
    if args.debug:
        overrides["debug"] = True

    config, unified, sources = resolve_config(overrides or None)
    # Reapply now that the YAML logging section is known
    setup_logging(
        mode="cli",
        debug=args.debug or config.debug,
        log_file=args.log_file or unified.logging.file,
        level=os.getenv("JOURNAL_SYNC_LOG_LEVEL") or unified.logging.level,
    )
    logger.debug("Configuration sources: %s", ", ".join(sources))
    init_semaphore(config.max_parallel_requests)
    service = JournalSyncService(config)
    return await _COMMANDS[args.command](service, args)


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(mode="cli", debug=args.debug, log_file=args.log_file)
    if args.command == "init-config":
        path = ensure_config(Path(args.path) if args.path else None)
        print(path)
        return 0
    try:
        return asyncio.run(_dispatch(args))
    except (JournalSyncError, ValueError, KeyError, RuntimeError) as e:
        logger.error("%s", str(e).strip("'\""))
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        return 130


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
