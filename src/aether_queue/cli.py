import argparse
import asyncio
import logging
import signal
import sys
from typing import Any, Dict, List, Optional

import yaml
from pydantic import ValidationError
from tqdm import tqdm

from .config import AppConfig, resolve_config
from .engine.http_client import HttpConversionEngine
from .exceptions import AetherQueueError
from .models import ConversionSettings
from .notifications import Notification, NotificationCenter
from .queue.ingestion import UploadSession
from .queue.models import TERMINAL_STATUSES, QueueItem
from .queue.sqlite_backend import SQLiteKeyValueStore
from .scanner import scan_inputs
from .service import MediaQueueApp

logger = logging.getLogger(__name__)

SESSION_FREE_COMMANDS = {"session", "status"}


def _print_notification(notification: Notification) -> None:
    tqdm.write(f"[{notification.level}] {notification.message}")


def _print_box(title: str, rows: List[tuple]) -> None:
    print("\n" + "=" * 60)
    print(title)
    print("=" * 60)
    for label, value in rows:
        print(f"{label + ':':<22}{value}")
    print("=" * 60)


def _print_items(items: List[QueueItem]) -> None:
    for item in items:
        line = f"{item.id[:8]}  {item.status:<10} {item.progress:>3}%  {item.file_name}"
        if item.error_message:
            line += f"  ({item.error_message})"
        print(line)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="aether-queue", description="Batch media conversion queue"
    )
    parser.add_argument("--db", type=str, help="Session database path")
    parser.add_argument("--engine-url", type=str, help="Conversion engine base URL")
    parser.add_argument("--chunk-size", type=int, help="Paths per engine batch call")
    parser.add_argument(
        "--yes", "-y", action="store_true", help="Restore a previous session without asking"
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command", help="Subcommands")

    # ADD
    add_parser = subparsers.add_parser("add", help="Add files or folders to the queue")
    add_parser.add_argument("inputs", nargs="+", help="Input files or folders")
    add_parser.add_argument("--recursive", "-r", action="store_true", help="Recursive scan")
    add_parser.add_argument("--ext", type=str, help="Comma-separated extensions (mp4,png)")

    # PROCESS
    process_parser = subparsers.add_parser("process", help="Convert queued files")
    process_parser.add_argument(
        "--selected",
        nargs="+",
        metavar="ITEM",
        help="Only these items (id, id prefix, path or file name)",
    )
    process_parser.add_argument(
        "--no-retry-errors", action="store_true", help="Leave failed items untouched"
    )

    # STATUS
    status_parser = subparsers.add_parser("status", help="Show queue status")
    status_parser.add_argument("--items", action="store_true", help="List every item")

    # RESUME / RETRY
    resume_parser = subparsers.add_parser("resume", help="Re-pend cancelled (and failed) items")
    resume_parser.add_argument(
        "--no-retry-errors", action="store_true", help="Only cancelled items"
    )
    subparsers.add_parser("retry-completed", help="Re-pend completed items")
    subparsers.add_parser("retry-conflicts", help="Re-pend items that hit an existing output")

    # REMOVE / CLEAR
    remove_parser = subparsers.add_parser("remove", help="Remove items from the queue")
    remove_parser.add_argument("items", nargs="+", metavar="ITEM", help="Items to remove")
    subparsers.add_parser("clear", help="Remove every item")

    # SESSION
    session_parser = subparsers.add_parser("session", help="Previous-session handling")
    session_subparsers = session_parser.add_subparsers(
        dest="session_command", help="Session commands"
    )
    session_subparsers.add_parser("restore", help="Keep the previous session")
    session_subparsers.add_parser("discard", help="Drop the previous session")
    auto_parser = session_subparsers.add_parser("auto", help="Set auto-restore preference")
    auto_parser.add_argument("state", choices=["on", "off"])

    # SETTINGS
    settings_parser = subparsers.add_parser("settings", help="Global conversion settings")
    settings_subparsers = settings_parser.add_subparsers(
        dest="settings_command", help="Settings commands"
    )
    settings_subparsers.add_parser("show", help="Print global settings")
    set_parser = settings_subparsers.add_parser("set", help="Update settings (key=value)")
    set_parser.add_argument("pairs", nargs="+", metavar="KEY=VALUE")
    settings_subparsers.add_parser("reset", help="Restore default settings")

    # CONFIG
    subparsers.add_parser("config", help="Print the resolved configuration")

    return parser


def parse_setting_pairs(pairs: List[str]) -> Dict[str, Any]:
    """Parse KEY=VALUE pairs; values are YAML scalars (80, true, null, mp4)."""
    updates = {}
    for pair in pairs:
        key, sep, raw = pair.partition("=")
        if not sep or not key:
            raise ValueError(f"Expected KEY=VALUE, got {pair!r}")
        key = key.strip().replace("-", "_")
        if key not in ConversionSettings.model_fields:
            raise ValueError(f"Unknown setting: {key}")
        updates[key] = yaml.safe_load(raw)
    return updates


def _resolve_items(app: MediaQueueApp, keys: List[str]) -> List[str]:
    ids = []
    items = app.store.items
    for key in keys:
        item = app.find(key)
        if item is None:
            matches = [i for i in items if i.id.startswith(key)]
            item = matches[0] if len(matches) == 1 else None
        if item is None:
            raise ValueError(f"No such item: {key}")
        ids.append(item.id)
    return ids


def select_items(app: MediaQueueApp, keys: List[str]) -> None:
    """Add the named items to the selection; naming one twice keeps it selected."""
    for item_id in _resolve_items(app, keys):
        app.store.add_to_selection(item_id)


async def _handle_session(app: MediaQueueApp, args: argparse.Namespace) -> None:
    needs_decision = await app.startup()
    if not needs_decision or args.command in SESSION_FREE_COMMANDS:
        return

    count = len(app.store)
    if args.yes:
        await app.restore_session()
        return
    answer = input(f"Previous session has {count} file(s). Restore it? [Y/n] ").strip().lower()
    if answer in ("", "y", "yes"):
        await app.restore_session()
    else:
        await app.discard_session()
        print("Previous session discarded.")


async def _add(app: MediaQueueApp, args: argparse.Namespace) -> None:
    extensions = [e.strip() for e in args.ext.split(",")] if args.ext else None
    paths = scan_inputs(args.inputs, recursive=args.recursive, extensions=extensions)
    result = await app.add_paths(paths)
    _print_box(
        "ADD SUMMARY",
        [
            ("Added", result.added),
            ("Already in list", result.already_present),
            ("Unsupported", result.unsupported),
            ("Total in queue", len(app.store)),
        ],
    )


async def _process(app: MediaQueueApp, args: argparse.Namespace) -> None:
    if args.selected:
        select_items(app, args.selected)
        total = len(app.store.get_selected_items())
    else:
        stats = app.stats()
        total = stats.pending + stats.cancelled
        if not args.no_retry_errors:
            total += stats.error

    listener: Optional[asyncio.Task] = None
    if isinstance(app.engine, HttpConversionEngine):
        listener = asyncio.create_task(app.engine.listen(app.router))

    loop = asyncio.get_running_loop()
    if sys.platform != "win32":
        loop.add_signal_handler(signal.SIGINT, lambda: asyncio.ensure_future(app.stop()))

    bar = tqdm(total=total, desc="Converting", unit="file")
    terminal = {status.value for status in TERMINAL_STATUSES}
    started = set()

    def on_change(items: List[QueueItem]) -> None:
        finished = 0
        for item in items:
            if item.status == "processing":
                started.add(item.id)
            elif item.id in started and item.status in terminal:
                finished += 1
        bar.n = min(finished, total)
        bar.refresh()

    unsubscribe = app.store.add_listener(on_change)
    try:
        if args.selected:
            summary = await app.process_selected()
        else:
            summary = await app.process(retry_errors=not args.no_retry_errors)
    finally:
        unsubscribe()
        bar.close()
        if sys.platform != "win32":
            loop.remove_signal_handler(signal.SIGINT)
        if listener is not None:
            listener.cancel()
            await asyncio.gather(listener, return_exceptions=True)

    if summary is None:
        print("Queue is already processing.")
        return
    _print_box(
        "PROCESSING SUMMARY",
        [
            ("Processed", summary.processed),
            ("Succeeded", summary.succeeded),
            ("Failed", summary.failed),
            ("Cancelled", summary.cancelled),
            ("Conflicts", summary.conflict),
        ],
    )


def _status(app: MediaQueueApp, args: argparse.Namespace) -> None:
    stats = app.stats()
    rows = [
        ("Pending", stats.pending),
        ("Processing", stats.processing),
        ("Completed", stats.completed),
        ("Failed", stats.error),
        ("Cancelled", stats.cancelled),
        ("Conflict", stats.conflict),
        ("Total", stats.total),
    ]
    if app.session.needs_decision:
        rows.append(("Session", "previous session not yet restored"))
    _print_box("QUEUE STATUS", rows)
    if args.items:
        _print_items(app.store.items)


async def _session(app: MediaQueueApp, args: argparse.Namespace) -> None:
    if args.session_command == "restore":
        await app.restore_session()
        print(f"Restored {len(app.store)} item(s).")
    elif args.session_command == "discard":
        await app.discard_session()
        print("Previous session discarded.")
    elif args.session_command == "auto":
        app.set_auto_restore(args.state == "on")
        print(f"Auto-restore {args.state}.")


def _settings(app: MediaQueueApp, args: argparse.Namespace) -> None:
    if args.settings_command == "set":
        app.update_settings(**parse_setting_pairs(args.pairs))
    elif args.settings_command == "reset":
        app.reset_settings()
    print(yaml.safe_dump(app.settings.model_dump(mode="json"), sort_keys=False), end="")


async def run(args: argparse.Namespace, config: AppConfig) -> int:
    logger.debug("Engine %s, session db %s", config.engine.url, config.storage.db_path)
    engine = HttpConversionEngine(config.engine.url, timeout_s=config.engine.timeout_s)
    kv = SQLiteKeyValueStore(config.storage.db_path)
    notifications = NotificationCenter(sink=_print_notification)

    progress_bar: Dict[str, tqdm] = {}

    def on_upload_progress(session: UploadSession) -> None:
        bar = progress_bar.get("bar")
        if session.is_uploading and bar is None:
            bar = progress_bar["bar"] = tqdm(total=session.total_files, desc="Adding", unit="file")
        if bar is not None:
            bar.n = session.processed_files
            bar.refresh()
            if session.is_complete or not session.is_uploading:
                bar.close()
                progress_bar.pop("bar", None)

    app = MediaQueueApp(
        engine,
        kv,
        config=config,
        notifications=notifications,
        upload=UploadSession(on_progress=on_upload_progress),
    )
    try:
        await _handle_session(app, args)

        if args.command == "add":
            await _add(app, args)
        elif args.command == "process":
            await _process(app, args)
        elif args.command == "status":
            _status(app, args)
        elif args.command == "resume":
            count = app.resume(retry_errors=not args.no_retry_errors)
            print(f"{count} item(s) back to pending.")
        elif args.command == "retry-completed":
            print(f"{app.retry_completed()} item(s) back to pending.")
        elif args.command == "retry-conflicts":
            print(f"{app.retry_conflicts()} item(s) back to pending.")
        elif args.command == "remove":
            removed = await app.remove(_resolve_items(app, args.items))
            print(f"Removed {removed} item(s).")
        elif args.command == "clear":
            await app.clear()
            print("Queue cleared.")
        elif args.command == "session":
            await _session(app, args)
        elif args.command == "settings":
            _settings(app, args)
    finally:
        await app.aclose()
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    cli_dict = {
        "db_path": args.db,
        "engine_url": args.engine_url,
        "chunk_size": args.chunk_size,
        "log_level": "DEBUG" if args.verbose else None,
    }
    try:
        config = resolve_config(cli_dict)
    except ValidationError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2

    logging.basicConfig(
        level=config.logging.level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "config":
        print(yaml.safe_dump(config.model_dump(mode="json"), sort_keys=False), end="")
        return 0
    if args.command == "session" and args.session_command is None:
        parser.parse_args(["session", "--help"])
    if args.command == "settings" and args.settings_command is None:
        args.settings_command = "show"

    try:
        return asyncio.run(run(args, config))
    except (AetherQueueError, ValueError, FileNotFoundError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
