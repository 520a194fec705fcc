"""Command line entry point.

Thin glue around ``SyncEngine``:

- ``freesync sync``   -- one full sync (``--dry-run`` to only plan).
- ``freesync status`` -- show what a sync would do.
- ``freesync watch``  -- full sync, then mirror local changes as they happen.
- ``freesync init``   -- write a commented starter config file.
"""

import argparse
import asyncio
import json
import logging
import signal
import sys
from pathlib import Path

from dotenv import load_dotenv

from . import __version__
from .config_loader import ensure_config, load_hierarchical_config
from .config_schema import UnifiedConfig, build_config
from .context import open_engine
from .errors import SyncError
from .logger import setup_logging
from .sync.reporter import (
    format_dry_run_preview,
    format_sync_report,
    report_to_json,
)

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_DEGRADED = 2


def _print_report(report, as_json: bool) -> None:
    if as_json:
        print(json.dumps(report_to_json(report), indent=2))
    elif report.dry_run:
        print(format_dry_run_preview(report))
    else:
        print(format_sync_report(report))


async def run_sync_command(
    config_overrides: dict,
    unified: UnifiedConfig,
    dry_run: bool = False,
    as_json: bool = False,
) -> int:
    """Run one full sync and print its report."""
    async with open_engine(config_overrides, unified) as (engine, _):
        report = await engine.full_sync(dry_run=dry_run)
    _print_report(report, as_json)
    return EXIT_DEGRADED if report.degraded else EXIT_OK


async def run_watch_command(
    config_overrides: dict,
    unified: UnifiedConfig,
) -> int:
    """Sync once, then watch the vault until SIGINT/SIGTERM."""
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            # Windows event loops have no signal handlers
            pass

    async with open_engine(config_overrides, unified) as (engine, scheduler):
        report = await engine.full_sync()
        print(report.summary(), file=sys.stderr)
        print("Watching for changes (Ctrl+C to stop)...", file=sys.stderr)
        await engine.context.tree.watch(scheduler.submit, stop_event=stop)
    return EXIT_OK


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="freesync",
        description="FreeSync - keep a local folder and an S3-compatible bucket in sync",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Preview what a sync would change
  freesync status --vault ~/Notes

  # Sync once (settings from .env, FREESYNC_* env vars or config.yml)
  freesync sync

  # Keep syncing as files change
  freesync watch --vault ~/Notes

  # Machine-readable report
  freesync sync --json

Note: conflicts default to local-wins, which overwrites the remote version.
Set sync.conflict_strategy: preserve-remote in config.yml to keep a copy.
        """,
    )

    parser.add_argument(
        "--vault",
        help="Local folder to sync (takes precedence over FREESYNC_VAULT and config files)",
    )
    parser.add_argument(
        "--endpoint",
        help="S3-compatible endpoint URL (takes precedence over FREESYNC_ENDPOINT)",
    )
    parser.add_argument(
        "--access-key-id",
        help="Access key id (takes precedence over FREESYNC_ACCESS_KEY_ID)",
    )
    parser.add_argument(
        "--secret-access-key",
        help="Secret access key (takes precedence over FREESYNC_SECRET_ACCESS_KEY)"
        " (visible in process list -- prefer the env var for security)",
    )
    parser.add_argument(
        "--bucket",
        help="Bucket name (default: free-sync)",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--log-format",
        choices=["text", "json"],
        default="text",
        help="Log output format (default: text)",
    )
    parser.add_argument(
        "--log-file",
        help="Also write logs to this file (watch mode logs only to a file)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"freesync version {__version__}",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    sync_p = sub.add_parser("sync", help="Run one full sync")
    sync_p.add_argument(
        "--dry-run",
        action="store_true",
        help="Plan only; change nothing on either side",
    )
    sync_p.add_argument(
        "--json", action="store_true", help="Print the report as JSON"
    )

    status_p = sub.add_parser("status", help="Show what a sync would change")
    status_p.add_argument(
        "--json", action="store_true", help="Print the preview as JSON"
    )

    sub.add_parser("watch", help="Sync, then mirror local changes continuously")

    init_p = sub.add_parser("init", help="Write a starter config file")
    init_p.add_argument(
        "--path",
        type=Path,
        help="Where to write it (default: ./.freesync/config.yml)",
    )

    return parser


def _config_overrides(args: argparse.Namespace) -> dict:
    """Build the config overrides dict from CLI args."""
    overrides = {}
    if args.endpoint:
        overrides["endpoint"] = args.endpoint
    if args.access_key_id:
        overrides["access_key_id"] = args.access_key_id
    if args.secret_access_key:
        overrides["secret_access_key"] = args.secret_access_key
    if args.bucket:
        overrides["bucket"] = args.bucket
    if args.vault:
        overrides["vault_path"] = args.vault
    return overrides


def main(argv: list[str] | None = None) -> int:
    """Parse *argv*, run the command and return the exit code."""
    args = _build_parser().parse_args(argv)

    if args.command == "init":
        setup_logging(mode="cli", debug=args.debug)
        path = ensure_config(args.path)
        print(f"Config file: {path}")
        return EXIT_OK

    try:
        # .env first so ${VAR} interpolation in config.yml can use it
        load_dotenv()
        unified = build_config(load_hierarchical_config())
    except ValueError as e:
        print(f"ERROR: Invalid config file: {e}", file=sys.stderr)
        return EXIT_FAILED

    setup_logging(
        mode="daemon" if args.command == "watch" else "cli",
        debug=args.debug,
        log_file=args.log_file or unified.logging.file,
        debug_format=args.log_format,
        level=unified.logging.level,
    )

    overrides = _config_overrides(args)
    if overrides:
        override_keys = [
            k for k in overrides.keys() if k != "secret_access_key"
        ]
        logger.info("Config overrides from CLI: %s", ", ".join(override_keys))

    try:
        if args.command == "watch":
            return asyncio.run(run_watch_command(overrides, unified))
        return asyncio.run(
            run_sync_command(
                overrides,
                unified,
                dry_run=args.dry_run if args.command == "sync" else True,
                as_json=args.json,
            )
        )
    except SyncError as e:
        print(f"Sync failed: {e}", file=sys.stderr)
        if e.report is not None and e.report.results:
            print(format_sync_report(e.report), file=sys.stderr)
        return EXIT_FAILED
    except RuntimeError:
        # Error already printed to stderr by open_engine
        return EXIT_FAILED


def run() -> None:
    """Console script entry point."""
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(0)


if __name__ == "__main__":
    run()
