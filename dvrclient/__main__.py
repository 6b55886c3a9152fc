"""DVR client command line.

Usage::

    python -m dvrclient [--data-dir PATH] [-v] list
    python -m dvrclient add NAME --host HOST [--port PORT] [--username U] [--password P]
    python -m dvrclient remove ID
    python -m dvrclient watch ID [--interval SECONDS]
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from dvrclient.config import REFRESH_INTERVAL_S
from dvrclient.db import DB_FILENAME, init_db, set_db_path
from dvrclient.manager import ServerManager


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m dvrclient",
        description="DVR server session client",
    )
    parser.add_argument(
        "--data-dir",
        metavar="PATH",
        default=None,
        help="Override data directory (default: ./data or DVR_DATA_DIR env var)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("list", help="List configured servers")

    add = sub.add_parser("add", help="Add a server")
    add.add_argument("name")
    add.add_argument("--host", required=True)
    add.add_argument("--port", type=int, default=0)
    add.add_argument("--username", default="")
    add.add_argument("--password", default="")
    add.add_argument(
        "--no-auto-connect",
        action="store_true",
        help="Do not log in automatically when the server is loaded",
    )

    remove = sub.add_parser("remove", help="Remove a server")
    remove.add_argument("server_id", type=int)

    watch = sub.add_parser("watch", help="Log in and follow cameras and status")
    watch.add_argument("server_id", type=int)
    watch.add_argument("--interval", type=float, default=REFRESH_INTERVAL_S)
    return parser


def _cmd_list(manager: ServerManager) -> int:
    servers = manager.load_servers()
    if not servers:
        print("No servers configured.")
        return 0
    for server in servers:
        flag = "auto" if server.auto_connect else "manual"
        print(
            f"{server.config_id:>3}  {server.display_name or '-':<20} "
            f"{server.hostname}:{server.server_port}  {server.username or '-'}  [{flag}]"
        )
    return 0


def _cmd_add(manager: ServerManager, args: argparse.Namespace) -> int:
    server = manager.create_server(args.name)
    server.hostname = args.host
    server.server_port = args.port
    server.username = args.username
    server.password = args.password
    server.auto_connect = not args.no_auto_connect
    print(f"Added server {server.config_id}: {server.display_name}")
    return 0


async def _cmd_remove(manager: ServerManager, server_id: int) -> int:
    manager.load_servers()
    if not await manager.remove_server(server_id):
        print(f"Unknown server: {server_id}", file=sys.stderr)
        return 1
    print(f"Removed server {server_id}")
    return 0


async def _cmd_watch(manager: ServerManager, server_id: int) -> int:
    manager.load_servers()
    server = manager.get_server(server_id)
    if server is None:
        print(f"Unknown server: {server_id}", file=sys.stderr)
        return 1

    server.on("camera_added", lambda c: print(f"+ camera {c.unique_id}: {c.name}"))
    server.on("camera_removed", lambda c: print(f"- camera {c.unique_id}: {c.name}"))
    server.on("devices_ready", lambda: print(f"{len(server.cameras)} camera(s) ready"))
    server.on(
        "status_alert_message_changed",
        lambda message: print(f"! {message}" if message else "status OK"),
    )
    server.on("login_error", lambda message: print(f"login failed: {message}", file=sys.stderr))

    try:
        if not await server.login():
            return 1
        await asyncio.Event().wait()
    finally:
        await manager.close()
    return 0


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s: %(name)s: %(message)s",
    )

    if args.data_dir is not None:
        set_db_path(Path(args.data_dir) / DB_FILENAME)
    init_db()

    if args.command == "list":
        return _cmd_list(ServerManager(auto_connect=False))
    if args.command == "add":
        return _cmd_add(ServerManager(auto_connect=False), args)
    if args.command == "remove":
        return asyncio.run(_cmd_remove(ServerManager(auto_connect=False), args.server_id))

    manager = ServerManager(auto_connect=False, refresh_interval=args.interval)
    try:
        return asyncio.run(_cmd_watch(manager, args.server_id))
    except KeyboardInterrupt:
        print("\nStopped.")
        return 0


if __name__ == "__main__":
    sys.exit(main())
