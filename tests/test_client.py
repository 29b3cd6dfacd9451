"""Tests for statement execution and result normalization."""

from types import SimpleNamespace
from unittest.mock import MagicMock

import psycopg
import psycopg.errors
import pytest

from pgconsole.core.client import PgSession, execute, normalize_columns
from pgconsole.core.config import Settings
from pgconsole.core.exceptions import (
    ConnectionRefused,
    QueryExecutionFailed,
    QueryTimeout,
)
from pgconsole.core.models import Statement


def _connection(names=None, rows=None, rowcount=-1, status="SELECT 1"):
    """Mock psycopg connection whose cursor returns the given result."""
    conn = MagicMock()
    conn.broken = False
    conn.closed = False
    cur = conn.cursor.return_value.__enter__.return_value
    cur.description = (
        [SimpleNamespace(name=n) for n in names] if names is not None else None
    )
    cur.fetchall.return_value = rows or []
    cur.rowcount = rowcount
    cur.statusmessage = status
    return conn, cur


@pytest.mark.unit
class TestNormalizeColumns:
    def test_unique_names_unchanged(self):
        assert normalize_columns(["id", "name"]) == ["id", "name"]

    def test_duplicates_suffixed(self):
        assert normalize_columns(["a", "b", "a", "a"]) == ["a", "b", "a_2", "a_3"]

    def test_suffix_avoids_existing_name(self):
        result = normalize_columns(["a", "a", "a_2"])
        assert len(set(result)) == 3
        assert result[2] == "a_2"


@pytest.mark.unit
class TestExecute:
    def test_rows_become_dicts_in_column_order(self):
        conn, _ = _connection(["id", "name"], [(1, "alice"), (2, "bob")], status="SELECT 2")
        result = execute(conn, "SELECT id, name FROM users")
        assert result.columns == ["id", "name"]
        assert result.rows == [{"id": 1, "name": "alice"}, {"id": 2, "name": "bob"}]
        assert result.row_count == 2
        assert result.status_message == "SELECT 2"

    def test_duplicate_column_names(self):
        conn, _ = _connection(["id", "id"], [(1, 2)])
        result = execute(conn, "SELECT a.id, b.id FROM a JOIN b USING (x)")
        assert result.rows == [{"id": 1, "id_2": 2}]

    def test_dml_uses_rowcount(self):
        conn, _ = _connection(None, rowcount=4, status="UPDATE 4")
        result = execute(conn, "UPDATE t SET a = 1")
        assert result.columns == []
        assert result.rows == []
        assert result.row_count == 4

    def test_negative_rowcount_clamped(self):
        conn, _ = _connection(None, rowcount=-1, status="CREATE TABLE")
        assert execute(conn, "CREATE TABLE t (a int)").row_count == 0

    def test_statement_timeout_set_first(self):
        conn, cur = _connection(["n"], [(1,)])
        execute(conn, "SELECT %s AS n", [1], statement_timeout=2.5)
        calls = cur.execute.call_args_list
        assert calls[0].args == ("SET statement_timeout = 2500",)
        assert calls[1].args == ("SELECT %s AS n", [1])

    def test_raw_sql_sent_without_params(self):
        conn, cur = _connection(["n"], [(1,)])
        execute(conn, "SELECT '100%' AS n")
        assert cur.execute.call_args_list[1].args == ("SELECT '100%' AS n", None)

    def test_engine_error_carries_message_and_sqlstate(self):
        conn, cur = _connection()
        cur.execute.side_effect = [
            None,
            psycopg.errors.UndefinedTable('relation "nope" does not exist'),
        ]
        with pytest.raises(QueryExecutionFailed, match='relation "nope" does not exist') as exc:
            execute(conn, "SELECT * FROM nope")
        assert exc.value.sqlstate == "42P01"

    def test_query_canceled_is_timeout(self):
        conn, cur = _connection()
        cur.execute.side_effect = [
            None,
            psycopg.errors.QueryCanceled("canceling statement due to statement timeout"),
        ]
        with pytest.raises(QueryTimeout, match="timed out"):
            execute(conn, "SELECT pg_sleep(10)", statement_timeout=0.1)

    def test_lost_connection_is_connection_refused(self):
        conn, cur = _connection()
        conn.broken = True
        cur.execute.side_effect = [None, psycopg.OperationalError("server closed the connection")]
        with pytest.raises(ConnectionRefused, match="connection lost"):
            execute(conn, "SELECT 1")

    def test_operational_error_on_live_connection(self):
        conn, cur = _connection()
        cur.execute.side_effect = [None, psycopg.OperationalError("could not serialize")]
        with pytest.raises(QueryExecutionFailed):
            execute(conn, "SELECT 1")


@pytest.mark.unit
class TestPgSession:
    def test_execute_statement_always_binds(self):
        conn, cur = _connection(["n"], [(1,)])
        session = PgSession(conn, Settings(statement_timeout=1.0))
        session.execute_statement(Statement("SELECT 1 AS n WHERE 'a' LIKE 'a%%'", []))
        assert cur.execute.call_args_list[1].args == (
            "SELECT 1 AS n WHERE 'a' LIKE 'a%%'",
            [],
        )
        assert cur.execute.call_args_list[0].args == ("SET statement_timeout = 1000",)

    def test_execute_all_in_transaction(self):
        conn, cur = _connection(None, status="ALTER TABLE")
        session = PgSession(conn)
        results = session.execute_all([Statement("A", []), Statement("B", [])])
        assert len(results) == 2
        conn.transaction.assert_called_once()
        executed = [c.args[0] for c in cur.execute.call_args_list]
        assert executed == [
            "SET statement_timeout = 30000",
            "A",
            "SET statement_timeout = 30000",
            "B",
        ]

    def test_transaction_failure_propagates(self):
        conn, cur = _connection()
        cur.execute.side_effect = [None, psycopg.errors.SyntaxError("syntax error")]
        session = PgSession(conn)
        with pytest.raises(QueryExecutionFailed):
            session.execute_all([Statement("BAD", [])])
        conn.transaction.return_value.__exit__.assert_called_once()
