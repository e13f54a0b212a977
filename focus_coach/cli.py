"""Command line access to the local store, migration and sync."""
from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import List, Optional

from focus_coach.app import FocusCoachApp
from focus_coach.errors import FocusCoachError
from focus_coach.storage.config import load_config, update_config


def _print_json(data) -> None:
    print(json.dumps(data, ensure_ascii=False, indent=2))


async def _status(app: FocusCoachApp, args: argparse.Namespace) -> int:
    migration = app.migration.get_status()
    state = app.sync.state
    _print_json(
        {
            "signed_in": app.identity.current_user() is not None,
            "sync": {
                "status": state.status,
                "enabled": state.sync_enabled,
                "pending_operations": state.pending_operations,
                "last_sync_time": state.last_sync_time,
                "error": state.error_message,
            },
            "migration": {
                "is_completed": migration.is_completed,
                "needs_migration": migration.needs_migration,
                "last_attempt": migration.last_attempt,
            },
            "stats": app.refresh_stats().model_dump(),
        }
    )
    return 0


async def _migrate(app: FocusCoachApp, args: argparse.Namespace) -> int:
    def show(progress) -> None:
        item = f" {progress.current_item}" if progress.current_item else ""
        print(f"[{progress.stage.value}] {progress.current}/{progress.total}{item}")

    unsubscribe = app.migration.progress.subscribe(show)
    try:
        result = await app.migrate(force=args.force)
    finally:
        unsubscribe()
    _print_json(result.model_dump(mode="json"))
    return 0 if result.success else 1


async def _sync(app: FocusCoachApp, args: argparse.Namespace) -> int:
    await app.network.check_connectivity()
    # A drain started on startup may already be running; count its work too.
    report = await app.sync.wait_idle()
    report.add(await app.sync.manual_sync())
    state = app.sync.state
    print(
        f"processed={report.processed} failed={report.failed} "
        f"abandoned={report.abandoned} pending={state.pending_operations} status={state.status}"
    )
    return 1 if state.has_error else 0


async def _validate(app: FocusCoachApp, args: argparse.Namespace) -> int:
    report = await app.migration.validate_integrity()
    _print_json(report.model_dump())
    return 0 if report.is_valid else 1


async def _export(app: FocusCoachApp, args: argparse.Namespace) -> int:
    target = Path(args.path)
    target.write_text(
        json.dumps(app.local.export_data(), ensure_ascii=False, indent=2), encoding="utf-8"
    )
    print(f"Exported to {target}")
    return 0


async def _import(app: FocusCoachApp, args: argparse.Namespace) -> int:
    data = json.loads(Path(args.path).read_text(encoding="utf-8"))
    app.local.import_data(data)
    print(f"Imported {args.path}")
    return 0


def _configure(args: argparse.Namespace) -> int:
    changes = {
        "remote_url": args.url,
        "remote_api_key": args.api_key,
        "user_id": args.user_id,
        "access_token": args.token,
    }
    cfg = update_config(args.config, **{k: v for k, v in changes.items() if v is not None})
    _print_json(
        {
            "remote_url": cfg.resolved_remote_url(),
            "remote_api_key": "***" if cfg.resolved_api_key() else None,
            "user_id": cfg.user_id,
        }
    )
    return 0


COMMANDS = {
    "status": _status,
    "migrate": _migrate,
    "sync": _sync,
    "validate": _validate,
    "export": _export,
    "import": _import,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="focus-coach", description=__doc__ or "")
    parser.add_argument("--config", type=Path, help="Path to config.json")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("status", help="Show sync and migration state")
    migrate = sub.add_parser("migrate", help="Copy local data to the remote store")
    migrate.add_argument("--force", action="store_true", help="Run again after a completed migration")
    sub.add_parser("sync", help="Drain pending sync operations now")
    sub.add_parser("validate", help="Compare local and remote record counts")
    export = sub.add_parser("export", help="Write all local collections to a JSON file")
    export.add_argument("path")
    import_ = sub.add_parser("import", help="Load collections from a JSON export")
    import_.add_argument("path")
    configure = sub.add_parser("configure", help="Store remote connection settings")
    configure.add_argument("--url")
    configure.add_argument("--api-key")
    configure.add_argument("--user-id")
    configure.add_argument("--token", help="Access token of the signed-in user")
    return parser


async def run(args: argparse.Namespace, app: Optional[FocusCoachApp] = None) -> int:
    app = app or FocusCoachApp(config=load_config(args.config))
    await app.start(periodic=False)
    try:
        return await COMMANDS[args.command](app, args)
    finally:
        await app.stop()


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    if args.command == "configure":
        return _configure(args)
    try:
        return asyncio.run(run(args))
    except FocusCoachError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    sys.exit(main())
