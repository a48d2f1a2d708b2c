"""
DocPortal — CLI Tests
=======================

What:  The `docportal` administration command: argument parsing and full
       runs of main() against a throwaway SQLite file and docs root.
How:   main() drives its own event loop through asyncio.run(), so the run
       tests are plain functions. The module's session, schema and engine
       hooks plus its sync / tree services are pointed at test instances.
"""

import asyncio
import logging
from contextlib import asynccontextmanager

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from docportal import cli
from docportal.database import Base
from docportal.models.docs import Document, Version
from docportal.models.user import ROLE_ADMIN, ROLE_USER, User
from docportal.services.sync_service import SyncService
from docportal.services.tree_service import TreeService


class TestParser:

    def test_create_user_defaults_to_reader(self):
        args = cli.build_parser().parse_args(["create-user", "a@example.com", "password1"])
        assert (args.email, args.password, args.role, args.name) == (
            "a@example.com",
            "password1",
            ROLE_USER,
            None,
        )
        assert args.handler is cli._create_user

    def test_create_admin_sets_role(self):
        args = cli.build_parser().parse_args(["create-admin", "a@example.com", "password1", "--name", "Ada"])
        assert args.role == ROLE_ADMIN
        assert args.name == "Ada"
        assert args.handler is cli._create_user

    def test_sync_flags(self):
        parser = cli.build_parser()
        assert parser.parse_args(["sync"]).reindex is False
        assert parser.parse_args(["sync", "--reindex"]).reindex is True

    def test_unknown_role_rejected(self):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args(["create-user", "a@example.com", "password1", "--role", "owner"])

    def test_command_required(self):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args([])


# ══════════════════════════════════════════════════════════════════════════
# Full runs
# ══════════════════════════════════════════════════════════════════════════

def _write(root, relative, text):
    path = root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


@pytest.fixture
def cli_db(tmp_path, storage, search, monkeypatch):
    """
    Session factory over a SQLite file that survives between main() calls.

    Each main() call runs its own event loop and disposes the engine at the
    end, so the next call reconnects on its own loop.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}")
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    @asynccontextmanager
    async def session_scope():
        async with factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def create_schema():
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    monkeypatch.setattr(cli, "session_scope", session_scope)
    monkeypatch.setattr(cli, "create_schema", create_schema)
    monkeypatch.setattr(cli, "dispose_engine", engine.dispose)
    monkeypatch.setattr(cli, "setup_logging", lambda: None)
    monkeypatch.setattr(cli, "sync_service", SyncService(storage=storage, search=search))
    monkeypatch.setattr(cli, "tree_service", TreeService(storage=storage, search=search))
    return factory, engine


def _query(cli_db, statement):
    factory, engine = cli_db

    async def run():
        try:
            async with factory() as session:
                return (await session.execute(statement)).scalars().all()
        finally:
            await engine.dispose()

    return asyncio.run(run())


class TestMain:

    def test_create_admin(self, cli_db, capsys):
        assert cli.main(["create-admin", "Ops@Example.com", "long-password", "--name", "Ops"]) == 0
        assert "admin account ready: ops@example.com" in capsys.readouterr().out

        [user] = _query(cli_db, select(User))
        assert (user.email, user.name, user.role) == ("ops@example.com", "Ops", ROLE_ADMIN)

    def test_create_user_twice_updates_role(self, cli_db, capsys):
        assert cli.main(["create-user", "reader@example.com", "long-password"]) == 0
        assert cli.main(["create-user", "reader@example.com", "long-password", "--role", "admin"]) == 0

        [user] = _query(cli_db, select(User))
        assert user.role == ROLE_ADMIN

    def test_invalid_account_exits_with_one(self, cli_db, caplog):
        with caplog.at_level(logging.ERROR, logger="docportal.cli"):
            assert cli.main(["create-user", "not-an-email", "long-password"]) == 1
        assert "create-user failed" in caplog.text
        assert _query(cli_db, select(User)) == []

    def test_sync_and_reindex(self, cli_db, docs_root, search, capsys):
        _write(docs_root, "v1.0/setup/install/first.md", "---\ntitle: First\n---\n\nHello")
        _write(docs_root, "v1.0/setup/install/second.md", "# Second")

        assert cli.main(["sync", "--reindex"]) == 0

        out = capsys.readouterr().out
        assert "Synced 1 versions, 1 modules, 1 chapters, 2 documents" in out
        assert "Indexed 2 documents" in out
        assert sorted(r["title"] for r in search.indexed) == ["First", "second"]
        assert sorted(d.filename for d in _query(cli_db, select(Document))) == ["first.md", "second.md"]

    def test_order_versions(self, cli_db, docs_root, capsys):
        for name in ("v1.10", "v2.0", "v1.2"):
            _write(docs_root, f"{name}/setup/install/page.md", "# Page")
        assert cli.main(["sync"]) == 0
        capsys.readouterr()

        assert cli.main(["order-versions"]) == 0

        lines = capsys.readouterr().out.splitlines()
        assert [line.split() for line in lines] == [["0", "v1.2"], ["1", "v1.10"], ["2", "v2.0"]]
        versions = _query(cli_db, select(Version).order_by(Version.order))
        assert [v.name for v in versions] == ["v1.2", "v1.10", "v2.0"]
