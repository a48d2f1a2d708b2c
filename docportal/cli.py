"""
DocPortal — Command Line
==========================

What:  Operator commands that run outside the web server.
How:   argparse sub-commands; each one opens its own session with
       session_scope() and runs under asyncio.run().

Usage:
    docportal create-user EMAIL PASSWORD [--name NAME] [--role admin|user]
    docportal create-admin EMAIL PASSWORD [--name NAME]
    docportal sync [--reindex]
    docportal reindex
    docportal order-versions

Exit codes: 0 on success, 1 when the command failed (the reason is logged).
"""

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from docportal.config import settings
from docportal.database import create_schema, dispose_engine, session_scope
from docportal.exceptions import DocPortalError
from docportal.main import setup_logging
from docportal.models.user import ROLE_ADMIN, ROLES, ROLE_USER
from docportal.services.auth_service import auth_service
from docportal.services.search_service import search_service
from docportal.services.sync_service import sync_service
from docportal.services.tree_service import tree_service

logger = logging.getLogger("docportal.cli")


async def _create_user(args: argparse.Namespace) -> None:
    async with session_scope() as db:
        user = await auth_service.upsert_user(db, args.email, args.password, args.name, args.role)
        print(f"{user.role} account ready: {user.email}")


async def _sync(args: argparse.Namespace) -> None:
    async with session_scope() as db:
        stats = await sync_service.scan_docs_directory(db, reindex=args.reindex)
    print(
        f"Synced {stats.versions} versions, {stats.modules} modules, "
        f"{stats.chapters} chapters, {stats.documents} documents"
    )
    if stats.indexed is not None:
        print(f"Indexed {stats.indexed} documents")


async def _reindex(args: argparse.Namespace) -> None:
    async with session_scope() as db:
        count = await sync_service.reindex_all(db)
    print(f"Indexed {count} documents")


async def _order_versions(args: argparse.Namespace) -> None:
    async with session_scope() as db:
        versions = await tree_service.reorder_versions_semantically(db)
        for version in versions:
            print(f"{version.order:>3}  {version.name}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="docportal", description="DocPortal administration")
    commands = parser.add_subparsers(dest="command", required=True)

    create_user = commands.add_parser("create-user", help="Create or update an account")
    create_user.add_argument("email")
    create_user.add_argument("password")
    create_user.add_argument("--name", default=None)
    create_user.add_argument("--role", choices=ROLES, default=ROLE_USER)
    create_user.set_defaults(handler=_create_user)

    create_admin = commands.add_parser("create-admin", help="Create or update an admin account")
    create_admin.add_argument("email")
    create_admin.add_argument("password")
    create_admin.add_argument("--name", default=None)
    create_admin.set_defaults(handler=_create_user, role=ROLE_ADMIN)

    sync = commands.add_parser("sync", help="Import the markdown tree under DOCS_ROOT")
    sync.add_argument("--reindex", action="store_true", help="Rebuild the search index afterwards")
    sync.set_defaults(handler=_sync)

    reindex = commands.add_parser("reindex", help="Rebuild the search index from the database")
    reindex.set_defaults(handler=_reindex)

    order = commands.add_parser("order-versions", help="Order versions numerically (v1.2 < v1.10)")
    order.set_defaults(handler=_order_versions)

    return parser


async def _run(args: argparse.Namespace) -> None:
    try:
        if settings.is_sqlite:
            await create_schema()
        await args.handler(args)
    finally:
        await search_service.close()
        await dispose_engine()


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging()
    try:
        asyncio.run(_run(args))
    except DocPortalError as e:
        logger.error("%s failed: %s", args.command, e.message)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
