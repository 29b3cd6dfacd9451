"""Schema introspection.

Catalog queries over information_schema, pg_policies and pg_class, run on
a PgSession. Table and schema names are always bound as parameters here;
only the sample/count queries touch the table itself, through the builder.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from pgconsole.core.builder import build_count, build_select_page
from pgconsole.core.exceptions import (
    InputError,
    NotFound,
    PgConsoleError,
    SchemaQueryFailed,
)
from pgconsole.core.models import (
    ColumnDescriptor,
    ForeignKeyDescriptor,
    PolicyCommand,
    PolicyListing,
    RLSPolicy,
    RlsTableState,
    TableDescription,
    TableDescriptor,
)

if TYPE_CHECKING:
    from pgconsole.core.client import PgSession

_TABLES_SQL = """
SELECT table_name
FROM information_schema.tables
WHERE table_schema = %s AND table_type = 'BASE TABLE'
ORDER BY table_name
"""

_COLUMNS_SQL = """
SELECT
    column_name,
    data_type,
    is_nullable,
    column_default,
    character_maximum_length,
    is_identity
FROM information_schema.columns
WHERE table_schema = %s AND table_name = %s
ORDER BY ordinal_position
"""

_PRIMARY_KEYS_SQL = """
SELECT kcu.column_name
FROM information_schema.table_constraints tc
JOIN information_schema.key_column_usage kcu
    ON tc.constraint_name = kcu.constraint_name
    AND tc.table_schema = kcu.table_schema
    AND tc.table_name = kcu.table_name
WHERE tc.constraint_type = 'PRIMARY KEY'
    AND tc.table_schema = %s
    AND tc.table_name = %s
ORDER BY kcu.ordinal_position
"""

_FOREIGN_KEYS_SQL = """
SELECT
    a.attname AS column_name,
    rc.relname AS referenced_table,
    ra.attname AS referenced_column
FROM pg_catalog.pg_constraint con
JOIN pg_catalog.pg_class c ON c.oid = con.conrelid
JOIN pg_catalog.pg_namespace n ON n.oid = c.relnamespace
JOIN pg_catalog.pg_class rc ON rc.oid = con.confrelid
CROSS JOIN LATERAL unnest(con.conkey, con.confkey)
    WITH ORDINALITY AS k(attnum, ref_attnum, ord)
JOIN pg_catalog.pg_attribute a
    ON a.attrelid = con.conrelid AND a.attnum = k.attnum
JOIN pg_catalog.pg_attribute ra
    ON ra.attrelid = con.confrelid AND ra.attnum = k.ref_attnum
WHERE con.contype = 'f'
    AND n.nspname = %s
    AND c.relname = %s
ORDER BY con.conname, k.ord
"""

_POLICIES_SQL = """
SELECT
    schemaname,
    tablename,
    policyname,
    permissive,
    roles,
    cmd,
    qual,
    with_check
FROM pg_catalog.pg_policies
WHERE schemaname = %s
"""

_RLS_TABLES_SQL = """
SELECT
    c.relname AS table_name,
    c.relrowsecurity AS rls_enabled,
    c.relforcerowsecurity AS rls_forced
FROM pg_catalog.pg_class c
JOIN pg_catalog.pg_namespace n ON n.oid = c.relnamespace
WHERE n.nspname = %s AND c.relkind = 'r'
"""


def list_tables(session: PgSession, schema: str = "public") -> list[str]:
    """Base tables in ``schema``, alphabetical."""
    try:
        result = session.execute_query(_TABLES_SQL, [schema])
    except PgConsoleError as e:
        msg = f"Failed to list tables in '{schema}': {e.message}"
        raise SchemaQueryFailed(msg) from e
    return [row["table_name"] for row in result.rows]


def describe_columns(
    session: PgSession, table: str, schema: str = "public"
) -> list[ColumnDescriptor]:
    result = session.execute_query(_COLUMNS_SQL, [schema, table])
    return [
        ColumnDescriptor(
            name=row["column_name"],
            data_type=row["data_type"],
            nullable=row["is_nullable"] == "YES",
            default_expression=row["column_default"],
            max_length=row["character_maximum_length"],
            is_identity=row["is_identity"] == "YES",
        )
        for row in result.rows
    ]


def _primary_keys(session: PgSession, table: str, schema: str) -> list[str]:
    result = session.execute_query(_PRIMARY_KEYS_SQL, [schema, table])
    return [row["column_name"] for row in result.rows]


def _foreign_keys(
    session: PgSession, table: str, schema: str
) -> list[ForeignKeyDescriptor]:
    result = session.execute_query(_FOREIGN_KEYS_SQL, [schema, table])
    return [
        ForeignKeyDescriptor(
            column=row["column_name"],
            referenced_table=row["referenced_table"],
            referenced_column=row["referenced_column"],
        )
        for row in result.rows
    ]


def describe_table(
    session: PgSession,
    table: str,
    schema: str = "public",
    sample_size: int = 10,
) -> TableDescription:
    """Structure, keys, a bounded sample and the total row count.

    All sub-queries run in one transaction so the pieces describe the same
    snapshot. Nothing is returned unless every piece succeeds.
    """
    log = structlog.get_logger()
    try:
        with session.transaction():
            columns = describe_columns(session, table, schema)
            if not columns:
                msg = f"Table '{schema}.{table}' not found"
                raise NotFound(msg)
            primary_keys = _primary_keys(session, table, schema)
            foreign_keys = _foreign_keys(session, table, schema)
            sample = session.execute_statement(
                build_select_page(table, limit=sample_size, offset=0, schema=schema)
            )
            count = session.execute_statement(build_count(table, schema=schema))
    except (NotFound, InputError):
        raise
    except PgConsoleError as e:
        log.error("describe table failed", table=table, schema=schema, error=e.message)
        msg = f"Failed to describe '{schema}.{table}': {e.message}"
        raise SchemaQueryFailed(msg) from e

    return TableDescription(
        table=TableDescriptor(
            name=table,
            columns=columns,
            primary_keys=primary_keys,
            foreign_keys=foreign_keys,
        ),
        sample_rows=sample.rows,
        total_rows=int(count.rows[0]["count"]) if count.rows else 0,
    )


def _command(value: str | None) -> PolicyCommand:
    try:
        return PolicyCommand((value or "ALL").upper())
    except ValueError:
        return PolicyCommand.ALL


def list_policies(
    session: PgSession, schema: str = "public", table: str | None = None
) -> PolicyListing:
    """Policies and per-table RLS flags; ``table`` narrows both lists."""
    policy_sql = _POLICIES_SQL
    rls_sql = _RLS_TABLES_SQL
    params: list[str] = [schema]
    if table is not None:
        policy_sql += " AND tablename = %s"
        rls_sql += " AND c.relname = %s"
        params.append(table)
    policy_sql += " ORDER BY tablename, policyname"
    rls_sql += " ORDER BY c.relname"

    try:
        with session.transaction():
            policy_rows = session.execute_query(policy_sql, params).rows
            rls_rows = session.execute_query(rls_sql, params).rows
    except PgConsoleError as e:
        msg = f"Failed to list policies in '{schema}': {e.message}"
        raise SchemaQueryFailed(msg) from e

    policies = [
        RLSPolicy(
            schema_name=row["schemaname"],
            table=row["tablename"],
            name=row["policyname"],
            permissive=str(row["permissive"]).upper() == "PERMISSIVE",
            command=_command(row["cmd"]),
            using_expression=row["qual"],
            with_check_expression=row["with_check"],
            roles=list(row["roles"] or []),
        )
        for row in policy_rows
    ]
    tables = [
        RlsTableState(
            table=row["table_name"],
            rls_enabled=bool(row["rls_enabled"]),
            rls_forced=bool(row["rls_forced"]),
        )
        for row in rls_rows
    ]
    return PolicyListing(policies=policies, tables_with_rls=tables)
