"""Shared test fixtures for pgconsole."""

import os
from contextlib import contextmanager
from pathlib import Path
from tempfile import TemporaryDirectory

import pytest
from typer.testing import CliRunner

from pgconsole.cli.main import app
from pgconsole.core.config import Settings
from pgconsole.core.models import ConnectionSpec, QueryResult, TunnelSpec

TEST_DSN_ENV = "PGCONSOLE_TEST_DSN"

_PG_ENV = ("PGHOST", "PGPORT", "PGDATABASE", "PGUSER", "PGPASSWORD", "PGCONSOLE_PROFILE")


def make_result(rows=None, columns=None, row_count=None, status_message="SELECT"):
    """QueryResult from a list of dict rows."""
    rows = rows or []
    if columns is None:
        columns = list(rows[0].keys()) if rows else []
    return QueryResult(
        columns=columns,
        rows=rows,
        row_count=len(rows) if row_count is None else row_count,
        status_message=status_message,
    )


class ScriptedSession:
    """PgSession stand-in answering each query with the first scripted
    result whose marker appears in the SQL."""

    def __init__(self, script):
        self.script = script
        self.calls = []
        self.transactions = 0

    def execute_query(self, sql, params=None):
        self.calls.append((sql, params))
        for marker, outcome in self.script:
            if marker in sql:
                if isinstance(outcome, Exception):
                    raise outcome
                return outcome
        return make_result()

    def execute_statement(self, statement):
        return self.execute_query(statement.text, list(statement.params))

    def execute_all(self, statements):
        with self.transaction():
            return [self.execute_statement(s) for s in statements]

    @contextmanager
    def transaction(self):
        self.transactions += 1
        yield


@pytest.fixture
def runner():
    """Typer CLI test runner."""
    return CliRunner()


@pytest.fixture
def cli_runner(runner):
    """Invoke the CLI app with the given arguments."""

    def invoke(*args: str, **kwargs):
        return runner.invoke(app, list(args), **kwargs)

    return invoke


@pytest.fixture
def temp_dir():
    """Temporary directory for test files."""
    with TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def clean_env(monkeypatch):
    """Remove libpq and profile env vars so resolution is deterministic."""
    for name in _PG_ENV:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def spec():
    return ConnectionSpec(
        host="db.internal",
        port=5432,
        username="app",
        password="s3cret-pw",
        database="appdb",
    )


@pytest.fixture
def tunnel_spec():
    return TunnelSpec(host="bastion.example.com", username="ops", password="ssh-pw")


@pytest.fixture
def settings():
    return Settings(connect_timeout=2)


@pytest.fixture
def live_dsn():
    dsn = os.environ.get(TEST_DSN_ENV)
    if not dsn:
        pytest.skip(f"{TEST_DSN_ENV} not set")
    return dsn


@pytest.fixture
def pg_cli(cli_runner, clean_env, temp_dir):
    """Invoke the CLI with an explicit target, no config file and JSON output."""
    base = (
        "--config",
        str(temp_dir / "missing.toml"),
        "--host",
        "db.internal",
        "--user",
        "app",
        "--password",
        "s3cret-pw",
        "--database",
        "appdb",
        "--format",
        "json",
    )

    def invoke(*args: str, **kwargs):
        return cli_runner(*base, *args, **kwargs)

    return invoke
