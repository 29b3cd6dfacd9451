"""External operations.

One function per request type. Each takes a full ConnectionSpec, acquires
a scoped connection, does its work and releases the connection (and any
tunnel) before returning. Failures propagate as PgConsoleError subclasses;
run_operation() turns them into a structured envelope for callers that
want data instead of exceptions.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

import sentry_sdk
import structlog
from pydantic import BaseModel, ValidationError

from pgconsole.core import builder, introspection
from pgconsole.core.client import PgSession
from pgconsole.core.config import Settings
from pgconsole.core.exceptions import (
    InvalidParameter,
    MissingParameter,
    NotFound,
    PgConsoleError,
)
from pgconsole.core.models import (
    OperationResult,
    Pagination,
    RowPage,
)
from pgconsole.core.provisioner import acquire, default_registry

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator, Mapping, Sequence

    from pgconsole.core.models import (
        AlterTableSpec,
        ColumnDescriptor,
        ColumnSpec,
        ConnectionSpec,
        PageRequest,
        PolicyListing,
        PolicySpec,
        QueryResult,
        TableDescription,
    )
    from pgconsole.core.provisioner import PoolRegistry


@contextmanager
def open_session(
    spec: ConnectionSpec,
    settings: Settings | None = None,
    *,
    pools: PoolRegistry | None = None,
) -> Iterator[PgSession]:
    """Scoped PgSession; connection and tunnel are released on exit."""
    settings = settings or Settings()
    if pools is None and spec.tunnel is None:
        pools = default_registry(settings)
    with acquire(spec, settings, pools=pools) as connection:
        yield PgSession(connection, settings)


def _schema(schema: str | None, settings: Settings | None) -> str:
    return schema or (settings or Settings()).default_schema


def _require_rows(result: QueryResult, table: str) -> QueryResult:
    if result.row_count == 0:
        msg = f"No rows in '{table}' matched"
        raise NotFound(msg)
    return result


# ---------------------------------------------------------------------------
# Connection and schema
# ---------------------------------------------------------------------------


def connect(
    spec: ConnectionSpec,
    *,
    settings: Settings | None = None,
    pools: PoolRegistry | None = None,
    schema: str | None = None,
) -> list[str]:
    """Verify connectivity and list base tables."""
    with open_session(spec, settings, pools=pools) as session:
        tables = introspection.list_tables(session, _schema(schema, settings))
    structlog.get_logger().info(
        "connected", target=spec.safe_description(), tables=len(tables)
    )
    return tables


def describe_table(
    spec: ConnectionSpec,
    table: str,
    *,
    settings: Settings | None = None,
    pools: PoolRegistry | None = None,
    schema: str | None = None,
    sample_size: int | None = None,
) -> TableDescription:
    settings = settings or Settings()
    with open_session(spec, settings, pools=pools) as session:
        return introspection.describe_table(
            session,
            table,
            _schema(schema, settings),
            sample_size or settings.sample_size,
        )


def list_policies(
    spec: ConnectionSpec,
    table: str | None = None,
    *,
    settings: Settings | None = None,
    pools: PoolRegistry | None = None,
    schema: str | None = None,
) -> PolicyListing:
    with open_session(spec, settings, pools=pools) as session:
        return introspection.list_policies(session, _schema(schema, settings), table)


# ---------------------------------------------------------------------------
# Rows
# ---------------------------------------------------------------------------


def fetch_rows(
    spec: ConnectionSpec,
    table: str,
    request: PageRequest,
    *,
    settings: Settings | None = None,
    pools: PoolRegistry | None = None,
    schema: str | None = None,
) -> RowPage:
    """One page of rows plus pagination computed from a COUNT(*)."""
    settings = settings or Settings()
    if request.page_size > settings.max_page_size:
        msg = f"page_size {request.page_size} exceeds maximum {settings.max_page_size}"
        raise InvalidParameter(msg)
    schema = _schema(schema, settings)
    select = builder.build_select_page(
        table,
        limit=request.page_size,
        offset=request.offset,
        order_by=request.order_by,
        direction=request.order_direction,
        filter=request.filter,
        schema=schema,
    )
    count = builder.build_count(table, filter=request.filter, schema=schema)

    with open_session(spec, settings, pools=pools) as session, session.transaction():
        total = session.execute_statement(count)
        page = session.execute_statement(select)

    total_rows = int(total.rows[0]["count"]) if total.rows else 0
    return RowPage(
        columns=page.columns,
        rows=page.rows,
        pagination=Pagination.compute(request.page, request.page_size, total_rows),
    )


def _table_columns(
    session: PgSession, table: str, schema: str
) -> list[ColumnDescriptor]:
    columns = introspection.describe_columns(session, table, schema)
    if not columns:
        msg = f"Table '{schema}.{table}' not found"
        raise NotFound(msg)
    return columns


def insert_row(
    spec: ConnectionSpec,
    table: str,
    values: Mapping[str, Any],
    *,
    settings: Settings | None = None,
    pools: PoolRegistry | None = None,
    schema: str | None = None,
) -> QueryResult:
    """Insert one row; auto-generated columns given as null are left to the server."""
    schema = _schema(schema, settings)
    with open_session(spec, settings, pools=pools) as session:
        columns = _table_columns(session, table, schema)
        statement = builder.build_insert(table, values, columns, schema=schema)
        return session.execute_statement(statement)


def update_rows(
    spec: ConnectionSpec,
    table: str,
    values: Mapping[str, Any],
    condition: str,
    *,
    settings: Settings | None = None,
    pools: PoolRegistry | None = None,
    schema: str | None = None,
) -> QueryResult:
    """UPDATE with a trusted raw SQL condition."""
    schema = _schema(schema, settings)
    with open_session(spec, settings, pools=pools) as session:
        columns = _table_columns(session, table, schema)
        statement = builder.build_update_where(
            table, values, condition, columns, schema=schema
        )
        return _require_rows(session.execute_statement(statement), table)


def delete_rows(
    spec: ConnectionSpec,
    table: str,
    condition: str,
    *,
    settings: Settings | None = None,
    pools: PoolRegistry | None = None,
    schema: str | None = None,
) -> QueryResult:
    """DELETE with a trusted raw SQL condition."""
    statement = builder.build_delete_where(
        table, condition, schema=_schema(schema, settings)
    )
    with open_session(spec, settings, pools=pools) as session:
        return _require_rows(session.execute_statement(statement), table)


def update_row_by_key(
    spec: ConnectionSpec,
    table: str,
    values: Mapping[str, Any],
    key: Mapping[str, Any],
    *,
    settings: Settings | None = None,
    pools: PoolRegistry | None = None,
    schema: str | None = None,
) -> QueryResult:
    schema = _schema(schema, settings)
    with open_session(spec, settings, pools=pools) as session:
        columns = _table_columns(session, table, schema)
        statement = builder.build_update_by_key(
            table, values, key, columns, schema=schema
        )
        return _require_rows(session.execute_statement(statement), table)


def delete_row_by_key(
    spec: ConnectionSpec,
    table: str,
    key: Mapping[str, Any],
    *,
    settings: Settings | None = None,
    pools: PoolRegistry | None = None,
    schema: str | None = None,
) -> QueryResult:
    schema = _schema(schema, settings)
    with open_session(spec, settings, pools=pools) as session:
        columns = _table_columns(session, table, schema)
        statement = builder.build_delete_by_key(table, key, columns, schema=schema)
        return _require_rows(session.execute_statement(statement), table)


# ---------------------------------------------------------------------------
# DDL
# ---------------------------------------------------------------------------


def create_table(
    spec: ConnectionSpec,
    table: str,
    columns: Sequence[ColumnSpec],
    *,
    settings: Settings | None = None,
    pools: PoolRegistry | None = None,
    schema: str | None = None,
) -> OperationResult:
    statement = builder.build_create_table(
        table, columns, schema=_schema(schema, settings)
    )
    with open_session(spec, settings, pools=pools) as session:
        session.execute_statement(statement)
    return OperationResult(message=f"Table '{table}' created")


def alter_table(
    spec: ConnectionSpec,
    table: str,
    change: AlterTableSpec,
    *,
    settings: Settings | None = None,
    pools: PoolRegistry | None = None,
    schema: str | None = None,
) -> OperationResult:
    statement = builder.build_alter_table(table, change, schema=_schema(schema, settings))
    with open_session(spec, settings, pools=pools) as session:
        session.execute_statement(statement)
    return OperationResult(message=f"Table '{table}' altered: {change.operation.value}")


def drop_table(
    spec: ConnectionSpec,
    table: str,
    *,
    settings: Settings | None = None,
    pools: PoolRegistry | None = None,
    schema: str | None = None,
) -> OperationResult:
    statement = builder.build_drop_table(table, schema=_schema(schema, settings))
    with open_session(spec, settings, pools=pools) as session:
        session.execute_statement(statement)
    return OperationResult(message=f"Table '{table}' dropped")


# ---------------------------------------------------------------------------
# Row level security
# ---------------------------------------------------------------------------


def upsert_policy(
    spec: ConnectionSpec,
    table: str,
    policy: PolicySpec,
    *,
    settings: Settings | None = None,
    pools: PoolRegistry | None = None,
    schema: str | None = None,
) -> OperationResult:
    """Enable RLS and replace any same-named policy, atomically."""
    statements = builder.build_upsert_policy(
        table, policy, schema=_schema(schema, settings)
    )
    with open_session(spec, settings, pools=pools) as session:
        session.execute_all(statements)
    return OperationResult(message=f"Policy '{policy.name}' applied to '{table}'")


def delete_policy(
    spec: ConnectionSpec,
    table: str,
    name: str,
    *,
    settings: Settings | None = None,
    pools: PoolRegistry | None = None,
    schema: str | None = None,
) -> OperationResult:
    statement = builder.build_drop_policy(
        table, name, if_exists=True, schema=_schema(schema, settings)
    )
    with open_session(spec, settings, pools=pools) as session:
        session.execute_statement(statement)
    return OperationResult(message=f"Policy '{name}' removed from '{table}'")


def set_row_level_security(
    spec: ConnectionSpec,
    table: str,
    enabled: bool,
    forced: bool | None = None,
    *,
    settings: Settings | None = None,
    pools: PoolRegistry | None = None,
    schema: str | None = None,
) -> OperationResult:
    statements = builder.build_set_rls(
        table, enabled=enabled, forced=forced, schema=_schema(schema, settings)
    )
    with open_session(spec, settings, pools=pools) as session:
        session.execute_all(statements)
    state = "enabled" if enabled else "disabled"
    return OperationResult(message=f"Row level security {state} on '{table}'")


# ---------------------------------------------------------------------------
# Raw SQL
# ---------------------------------------------------------------------------


def run_query(
    spec: ConnectionSpec,
    sql: str,
    *,
    settings: Settings | None = None,
    pools: PoolRegistry | None = None,
) -> QueryResult:
    """Execute caller SQL verbatim (no placeholder processing)."""
    if not sql or not sql.strip():
        msg = "SQL query text is required"
        raise MissingParameter(msg)
    with open_session(spec, settings, pools=pools) as session:
        return session.execute_query(sql)


# ---------------------------------------------------------------------------
# Envelope
# ---------------------------------------------------------------------------


def _to_data(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, list):
        return [_to_data(item) for item in value]
    return value


def run_operation(fn: Callable[..., Any], *args: Any, **kwargs: Any) -> dict[str, Any]:
    """Call an operation and wrap the outcome as ``{"ok": ..., "data"|"error": ...}``."""
    log = structlog.get_logger()
    try:
        result = fn(*args, **kwargs)
    except PgConsoleError as e:
        log.info("operation failed", operation=fn.__name__, error=e.kind)
        return {"ok": False, "error": e.to_payload()}
    except ValidationError as e:
        error = InvalidParameter(f"Invalid request: {e.error_count()} validation error(s)")
        return {"ok": False, "error": error.to_payload()}
    except Exception as e:
        sentry_sdk.capture_exception(e)
        log.exception("unexpected operation error", operation=fn.__name__)
        return {
            "ok": False,
            "error": {"type": "InternalError", "message": "Unexpected internal error"},
        }
    return {"ok": True, "data": _to_data(result)}
