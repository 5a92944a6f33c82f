"""Tests for the ``rowspine`` command line."""

from __future__ import annotations

import json

import pytest
import structlog
from typer.testing import CliRunner

from rowspine import __version__
from rowspine.cli import app

runner = CliRunner()


@pytest.fixture(autouse=True)
def _reset_logging():
    """The root callback configures structlog globally; undo it per test."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    for key in ("URL", "POOL_SIZE", "POOL_TIMEOUT", "LOG_LEVEL", "LOG_FORMAT", "ECHO"):
        monkeypatch.delenv(f"ROWSPINE_{key}", raising=False)
    monkeypatch.chdir(tmp_path)
    return monkeypatch


class TestRoot:
    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert result.output.strip() == f"rowspine {__version__}"

    def test_help(self):
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        for command in ("collections", "count", "query", "config"):
            assert command in result.output


class TestCollections:
    def test_lists_tables(self, db_url):
        result = runner.invoke(app, ["collections", db_url])
        assert result.exit_code == 0
        assert result.output.split() == ["authors", "books", "employees", "ledger", "shipments", "subjects"]

    def test_json(self, db_url):
        result = runner.invoke(app, ["collections", db_url, "--json"])
        assert result.exit_code == 0
        assert json.loads(result.output)[:2] == ["authors", "books"]

    def test_empty_database(self, tmp_path):
        result = runner.invoke(app, ["collections", str(tmp_path / "empty.db")])
        assert result.exit_code == 0
        assert "No collections" in result.output

    def test_unreachable(self, tmp_path):
        result = runner.invoke(app, ["collections", f"sqlite:///{tmp_path / 'missing' / 'x.db'}"])
        assert result.exit_code == 1
        assert "Error" in result.output
        assert "DatabaseConnectionError" in result.output


class TestCount:
    def test_count(self, db_url):
        result = runner.invoke(app, ["count", db_url, "books"])
        assert result.exit_code == 0
        assert result.output.strip() == "3"

    def test_where(self, db_url):
        result = runner.invoke(app, ["count", db_url, "books", "--where", "title LIKE 'P%'"])
        assert result.exit_code == 0
        assert result.output.strip() == "2"

    def test_unknown_table(self, db_url):
        result = runner.invoke(app, ["count", db_url, "bookz"])
        assert result.exit_code == 1
        assert "QueryError" in result.output


class TestQuery:
    def test_table_output(self, db_url):
        result = runner.invoke(app, ["query", db_url, "SELECT id, title FROM books ORDER BY id"])
        assert result.exit_code == 0
        assert "Dune" in result.output
        assert "Practical PostgreSQL" in result.output

    def test_arguments_and_json(self, db_url):
        result = runner.invoke(
            app, ["query", db_url, "SELECT id, title FROM books WHERE id = ?", "2", "--json"]
        )
        assert result.exit_code == 0
        assert json.loads(result.output) == [{"id": 2, "title": "Perl Cookbook"}]

    def test_null_rendering(self, db_url):
        result = runner.invoke(app, ["query", db_url, "SELECT location FROM subjects WHERE id = 2"])
        assert result.exit_code == 0
        assert "NULL" in result.output

    def test_no_rows(self, db_url):
        result = runner.invoke(app, ["query", db_url, "SELECT * FROM books WHERE id = ?", "99"])
        assert result.exit_code == 0
        assert "No rows" in result.output

    def test_bad_sql(self, db_url):
        result = runner.invoke(app, ["query", db_url, "SELEC * FROM books"])
        assert result.exit_code == 1
        assert "Error" in result.output


class TestConfig:
    def test_json(self, clean_env):
        clean_env.setenv("ROWSPINE_URL", "sqlite:///books.db")
        clean_env.setenv("ROWSPINE_POOL_SIZE", "7")
        result = runner.invoke(app, ["config", "show", "--format", "json"])
        assert result.exit_code == 0
        payload = json.loads(result.output)
        assert payload["url"] == "sqlite:///books.db"
        assert payload["pool_size"] == 7

    def test_env(self, clean_env):
        clean_env.setenv("ROWSPINE_ECHO", "true")
        result = runner.invoke(app, ["config", "show", "-f", "env"])
        assert result.exit_code == 0
        lines = result.output.splitlines()
        assert "ROWSPINE_URL=sqlite:///:memory:" in lines
        assert "ROWSPINE_ECHO=True" in lines

    def test_table(self, clean_env):
        result = runner.invoke(app, ["config", "show"])
        assert result.exit_code == 0
        assert "pool_size" in result.output
        assert "connection" in result.output

    def test_invalid(self, clean_env):
        clean_env.setenv("ROWSPINE_POOL_SIZE", "0")
        result = runner.invoke(app, ["config", "show"])
        assert result.exit_code == 1
        assert "Error" in result.output
