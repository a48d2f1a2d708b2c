"""
DocPortal — Configuration Tests
=================================

What:  Tests for the session secret rules applied at startup.

Test Strategy:
    ✅ A configured secret is used unchanged
    ✅ SQLite without a secret gets a random per-process key
    ✅ Any other database without a secret refuses to start
"""

import pytest

from docportal.config import INSECURE_SESSION_SECRET, Settings, settings

POSTGRES_URL = "postgresql+asyncpg://docportal:pw@db:5432/docportal"
SQLITE_URL = "sqlite+aiosqlite:///./docportal.db"


class TestSessionSecret:

    def test_configured_secret_is_used(self):
        configured = Settings(database_url=POSTGRES_URL, session_secret="a-long-random-value-0123")
        assert configured.has_session_secret is True
        assert configured.resolve_session_secret() == "a-long-random-value-0123"

    def test_sqlite_gets_random_key(self):
        local = Settings(database_url=SQLITE_URL, session_secret=INSECURE_SESSION_SECRET)

        first = local.resolve_session_secret()

        assert first != INSECURE_SESSION_SECRET
        assert len(first) == 64
        assert local.resolve_session_secret() != first

    @pytest.mark.parametrize("secret", [INSECURE_SESSION_SECRET, "too-short"])
    def test_other_databases_require_a_secret(self, secret):
        deployed = Settings(database_url=POSTGRES_URL, session_secret=secret)
        assert deployed.has_session_secret is False
        with pytest.raises(ValueError, match="SESSION_SECRET"):
            deployed.resolve_session_secret()

    def test_app_refuses_to_start_without_secret(self, monkeypatch):
        from docportal.main import create_app

        monkeypatch.setattr(settings, "database_url", POSTGRES_URL)
        monkeypatch.setattr(settings, "session_secret", INSECURE_SESSION_SECRET)

        with pytest.raises(ValueError, match="SESSION_SECRET"):
            create_app()

    def test_production_check_flags_default_secret(self):
        deployed = Settings(database_url=POSTGRES_URL, session_secret=INSECURE_SESSION_SECRET)
        with pytest.raises(ValueError, match="SESSION_SECRET"):
            deployed.validate_required_for_production()
