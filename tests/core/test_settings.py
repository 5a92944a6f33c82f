"""Tests for ``rowspine.core.settings``: environment-driven configuration."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from rowspine.core.settings import DatabaseSettings

_VARS = [
    "ROWSPINE_URL",
    "ROWSPINE_POOL_SIZE",
    "ROWSPINE_POOL_TIMEOUT",
    "ROWSPINE_LOG_LEVEL",
    "ROWSPINE_LOG_FORMAT",
    "ROWSPINE_ECHO",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for var in _VARS:
        monkeypatch.delenv(var, raising=False)
    # Keep a developer's .env out of the way
    monkeypatch.chdir(tmp_path)


class TestDefaults:
    def test_defaults(self):
        settings = DatabaseSettings()
        assert settings.url == "sqlite:///:memory:"
        assert settings.pool_size == 5
        assert settings.log_level == "INFO"
        assert settings.echo is False


class TestEnvironment:
    def test_reads_prefixed_variables(self, monkeypatch):
        monkeypatch.setenv("ROWSPINE_URL", "postgresql://demo@db.local/booktown")
        monkeypatch.setenv("ROWSPINE_POOL_SIZE", "8")
        monkeypatch.setenv("ROWSPINE_ECHO", "true")
        settings = DatabaseSettings()
        assert settings.pool_size == 8
        assert settings.echo is True
        conn = settings.to_connection_settings()
        assert conn.backend == "postgresql"
        assert conn.option("pool_size") == "8"

    def test_reads_dotenv(self, tmp_path):
        (tmp_path / ".env").write_text("ROWSPINE_URL=sqlite:///from_env.db\n")
        assert DatabaseSettings().to_connection_settings().database == "from_env.db"

    def test_log_level_normalised(self, monkeypatch):
        monkeypatch.setenv("ROWSPINE_LOG_LEVEL", "debug")
        assert DatabaseSettings().log_level == "DEBUG"


class TestValidation:
    def test_rejects_unknown_log_level(self, monkeypatch):
        monkeypatch.setenv("ROWSPINE_LOG_LEVEL", "chatty")
        with pytest.raises(ValidationError):
            DatabaseSettings()

    def test_rejects_unknown_log_format(self):
        with pytest.raises(ValidationError):
            DatabaseSettings(log_format="xml")

    def test_rejects_empty_pool(self):
        with pytest.raises(ValidationError):
            DatabaseSettings(pool_size=0)
