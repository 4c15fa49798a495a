"""LocalChat maintenance commands.

Usage:
    python -m localchat.manage serve [--host HOST] [--port PORT] [--reload]
    python -m localchat.manage seed
    python -m localchat.manage reset-db
    python -m localchat.manage clear-history
    python -m localchat.manage hash-password PASSWORD
"""
from __future__ import annotations

import argparse
import sys
from typing import List, Optional

from tortoise import Tortoise, run_async

from .config import get_settings
from .constants import ADMIN_USERNAME, DEFAULT_ROOMS
from .logging_config import get_logger, setup_logging
from .models import Message, Room, User
from .security import hash_password

logger = get_logger(__name__)


async def init_db(db_url: str) -> None:
    await Tortoise.init(db_url=db_url, modules={"models": ["localchat.models"]})
    await Tortoise.generate_schemas(safe=True)


async def seed(db_url: str) -> None:
    """Replace all rooms and users with the default rooms and an admin user."""
    await init_db(db_url)
    await Message.all().delete()
    await Room.all().delete()
    await User.all().delete()
    for defaults in DEFAULT_ROOMS:
        await Room.create(**defaults)
    logger.info("Default rooms created: %s", ", ".join(r["name"] for r in DEFAULT_ROOMS))
    await User.create(username=ADMIN_USERNAME, is_admin=True, is_online=False)
    logger.info("Admin user created")


async def reset_db(db_url: str) -> None:
    await init_db(db_url)
    messages = await Message.all().delete()
    rooms = await Room.all().delete()
    users = await User.all().delete()
    logger.info("Database cleared: %d message(s), %d room(s), %d user(s)", messages, rooms, users)
    logger.info("Run 'seed' to restore the default rooms")


async def clear_history(db_url: str) -> None:
    """Delete messages and users; rooms are preserved."""
    await init_db(db_url)
    messages = await Message.all().delete()
    users = await User.all().delete()
    logger.info("Deleted %d message(s) and %d user(s); rooms preserved", messages, users)


def serve(host: str, port: int, reload: bool) -> None:
    import uvicorn

    logger.info("Starting LocalChat server on %s:%s", host, port)
    uvicorn.run("localchat.app:app", host=host, port=port, reload=reload)


def build_parser() -> argparse.ArgumentParser:
    settings = get_settings()
    parser = argparse.ArgumentParser(prog="localchat", description="LocalChat server and maintenance")
    parser.add_argument("--db-url", default=settings.database_url,
                        help=f"Tortoise database URL (default: {settings.database_url})")
    sub = parser.add_subparsers(dest="command", required=True)

    serve_parser = sub.add_parser("serve", help="Run the HTTP/WebSocket server")
    serve_parser.add_argument("--host", default=settings.host)
    serve_parser.add_argument("--port", type=int, default=settings.port)
    serve_parser.add_argument("--reload", action="store_true", help="Reload on code changes")

    sub.add_parser("seed", help="Create the default rooms and the admin user")
    sub.add_parser("reset-db", help="Delete every room, user and message")
    sub.add_parser("clear-history", help="Delete messages and users, keep rooms")

    hash_parser = sub.add_parser("hash-password", help="Print a bcrypt hash for LOCALCHAT_ADMIN_PASSWORD_HASH")
    hash_parser.add_argument("password")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_file)
    args = build_parser().parse_args(argv)

    if args.command == "serve":
        serve(args.host, args.port, args.reload)
    elif args.command == "seed":
        run_async(seed(args.db_url))
    elif args.command == "reset-db":
        run_async(reset_db(args.db_url))
    elif args.command == "clear-history":
        run_async(clear_history(args.db_url))
    elif args.command == "hash-password":
        print(hash_password(args.password))
    return 0


if __name__ == "__main__":
    sys.exit(main())
