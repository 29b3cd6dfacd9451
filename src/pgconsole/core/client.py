"""Statement execution and result normalization.

Runs SQL on a provisioned psycopg v3 connection with a statement
timeout, turns cursor output into a QueryResult, and maps driver errors
onto the pgconsole exception hierarchy.
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

import psycopg
import psycopg.errors
import sentry_sdk
import structlog

from pgconsole.core.config import Settings
from pgconsole.core.exceptions import (
    ConnectionRefused,
    QueryExecutionFailed,
    QueryTimeout,
)
from pgconsole.core.models import QueryResult

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator, Sequence

    from pgconsole.core.models import Statement


def normalize_columns(names: Iterable[str]) -> list[str]:
    """Column names in engine order, with repeats made unique (a, a_2, ...)."""
    original = list(names)
    seen: dict[str, int] = {}
    result: list[str] = []
    taken = set(original)
    for name in original:
        count = seen.get(name, 0) + 1
        seen[name] = count
        if count == 1:
            result.append(name)
            continue
        candidate = f"{name}_{count}"
        while candidate in taken:
            count += 1
            candidate = f"{name}_{count}"
        seen[name] = count
        taken.add(candidate)
        result.append(candidate)
    return result


def normalize_rows(
    columns: Sequence[str], rows: Iterable[Sequence[Any]]
) -> list[dict[str, Any]]:
    return [dict(zip(columns, row, strict=True)) for row in rows]


def _error_message(exc: psycopg.Error) -> str:
    return str(exc).strip() or type(exc).__name__


def execute(
    connection: psycopg.Connection[Any],
    sql: str,
    params: Sequence[Any] | None = None,
    *,
    statement_timeout: float = 30.0,
) -> QueryResult:
    """Run one statement and return a normalized QueryResult.

    ``params=None`` sends the text as-is; a list (even empty) runs it
    through psycopg's placeholder handling, which un-doubles ``%%``.
    """
    log = structlog.get_logger()
    timeout_ms = int(statement_timeout * 1000)

    sql_normalized = " ".join(sql.split())
    log.debug("executing query", sql=sql_normalized)
    with sentry_sdk.start_span(op="db.query", name=sql_normalized[:100]) as span:
        start_time = time.monotonic()
        try:
            with connection.cursor() as cur:
                cur.execute(f"SET statement_timeout = {timeout_ms}")
                cur.execute(sql, params)

                columns: list[str] = []
                rows: list[dict[str, Any]] = []
                if cur.description:
                    columns = normalize_columns(desc.name for desc in cur.description)
                    rows = normalize_rows(columns, cur.fetchall())
                    row_count = len(rows)
                else:
                    row_count = max(cur.rowcount, 0)

                duration_ms = (time.monotonic() - start_time) * 1000
                span.set_data("row_count", row_count)
                span.set_data("duration_ms", duration_ms)
                log.debug(
                    "query complete",
                    duration_ms=f"{duration_ms:.1f}",
                    row_count=row_count,
                )

                return QueryResult(
                    columns=columns,
                    rows=rows,
                    row_count=row_count,
                    status_message=cur.statusmessage or "",
                )

        except psycopg.errors.QueryCanceled as e:
            span.set_status("deadline_exceeded")
            log.error("query timeout", sql=sql_normalized)
            msg = f"Query timed out after {statement_timeout}s: {_error_message(e)}"
            raise QueryTimeout(msg, e.sqlstate) from e
        except psycopg.OperationalError as e:
            if connection.broken or connection.closed:
                span.set_status("unavailable")
                log.error("connection lost", error=str(e))
                raise ConnectionRefused(f"Database connection lost: {e}") from e
            span.set_status("internal_error")
            log.error("database error", sql=sql_normalized, error=str(e))
            raise QueryExecutionFailed(_error_message(e), e.sqlstate) from e
        except psycopg.Error as e:
            span.set_status("invalid_argument")
            log.error("query failed", sql=sql_normalized, error=str(e))
            raise QueryExecutionFailed(_error_message(e), e.sqlstate) from e


class PgSession:
    """A provisioned connection plus the settings used to run statements on it."""

    def __init__(
        self, connection: psycopg.Connection[Any], settings: Settings | None = None
    ) -> None:
        self.connection = connection
        self.settings = settings or Settings()

    def execute_query(
        self, sql: str, params: Sequence[Any] | None = None
    ) -> QueryResult:
        """Execute SQL and return a QueryResult."""
        return execute(
            self.connection,
            sql,
            params,
            statement_timeout=self.settings.statement_timeout,
        )

    def execute_statement(self, statement: Statement) -> QueryResult:
        return self.execute_query(statement.text, list(statement.params))

    def execute_all(self, statements: Iterable[Statement]) -> list[QueryResult]:
        """Run statements in order inside one transaction."""
        with self.transaction():
            return [self.execute_statement(s) for s in statements]

    @contextmanager
    def transaction(self) -> Iterator[None]:
        with self.connection.transaction():
            yield
