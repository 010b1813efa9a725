"""Inspect and replay the offline mutation queue."""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
from typing import Optional, Sequence

from core.log import ensure_sync_logger
from core.settings import BACKEND, DB_PATH, QUEUE
from datetime_utils import to_rfc3339_utc
from services.connectivity import ConnectivityMonitor, TcpProbe
from services.dispatch import BackendDispatcher
from services.rest_backend import RestBackend
from services.sync_service import OfflineSyncService
from storage.db import init_db
from storage.kv import JsonFileKeyValueStore, SqliteKeyValueStore


def build_service(backend: RestBackend, *, online: bool = True, file_store: bool = False) -> OfflineSyncService:
    if file_store:
        store = JsonFileKeyValueStore(QUEUE.file_path)
    else:
        init_db()
        store = SqliteKeyValueStore()
    dispatcher = backend.register_with(BackendDispatcher())
    return OfflineSyncService(
        store,
        dispatcher,
        connectivity=ConnectivityMonitor(initial=online),
    )


async def _run(args: argparse.Namespace) -> int:
    backend = RestBackend(args.backend_url or BACKEND.base_url, BACKEND.api_key)
    online = True
    if args.command == "drain" and args.probe:
        online = await TcpProbe()()
    service = build_service(backend, online=online, file_store=args.file_store)
    try:
        if args.command == "status":
            service.queue.load()
            print(json.dumps(service.status(), indent=2))
        elif args.command == "list":
            for op in service.queue.load():
                print(
                    f"{op.id}  {to_rfc3339_utc(op.enqueued_at)}  {op.kind.value:<6} "
                    f"{op.entity_type.value:<8} attempts={op.attempt_count}"
                )
        elif args.command == "drain":
            if not (args.backend_url or BACKEND.base_url):
                print("No backend configured (set ASSISTANT_BACKEND_URL or --backend-url)")
                return 2
            await service.initialize()
            report = service.scheduler.last_report
            if not online:
                print("Offline, nothing replayed.")
            elif report is None:
                print("Queue is empty.")
            else:
                print(
                    f"Applied {len(report.applied)}, kept {len(report.retried)}, "
                    f"dropped {len(report.dead_lettered)}"
                )
            if service.last_error:
                print(f"Last error: {service.last_error.message}")
        elif args.command == "clear":
            service.queue.load()
            dropped = service.queue.count()
            service.queue.clear()
            print(f"Cleared {dropped} queued operation(s).")
    finally:
        await service.dispose()
        await backend.close()
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__ or "")
    parser.add_argument("--backend-url", default=None, help="Backend base URL (default: from environment)")
    parser.add_argument("--file-store", action="store_true", help=f"Keep the queue in {QUEUE.file_path} instead of SQLite")
    parser.add_argument("--verbose", action="store_true", help="Also log to the console")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("status", help="Show queue size and sync state")
    sub.add_parser("list", help="List queued operations in replay order")
    drain = sub.add_parser("drain", help="Replay queued operations against the backend")
    drain.add_argument("--probe", action="store_true", help="Check connectivity before draining")
    sub.add_parser("clear", help=f"Drop every queued operation stored in {DB_PATH}")
    args = parser.parse_args(argv)

    ensure_sync_logger()
    if args.verbose:
        logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")
    try:
        return asyncio.run(_run(args))
    except Exception as exc:  # pragma: no cover - defensive
        logging.getLogger("assistant.sync").exception("Command failed: %s", exc)
        raise


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    raise SystemExit(main())
