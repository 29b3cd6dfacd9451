"""Dynamic SQL construction.

Pure functions, one per statement family, each returning a Statement
whose text uses psycopg ``%s`` placeholders. Catalog names go through
quote_identifier(); values are always bound.

Two kinds of caller text are spliced verbatim: row filters/conditions and
column DEFAULT expressions. They are trusted SQL by contract and only have
``%`` escaped for the placeholder parser. Callers that hold key values
should use the ``*_by_key`` builders instead of raw conditions.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any

from psycopg.types.json import Json, Jsonb

from pgconsole.core.exceptions import InvalidParameter, MissingParameter
from pgconsole.core.identifiers import (
    escape_fragment,
    qualified_name,
    quote_identifier,
)
from pgconsole.core.models import (
    AlterOperation,
    AlterTableSpec,
    ColumnSpec,
    PolicyCommand,
    PolicySpec,
    SortDirection,
    Statement,
)

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from pgconsole.core.models import ColumnDescriptor

ALLOWED_TYPES: frozenset[str] = frozenset(
    {
        "TEXT",
        "VARCHAR",
        "CHAR",
        "INTEGER",
        "BIGINT",
        "SMALLINT",
        "DECIMAL",
        "NUMERIC",
        "REAL",
        "DOUBLE PRECISION",
        "BOOLEAN",
        "DATE",
        "TIME",
        "TIMESTAMP",
        "TIMESTAMPTZ",
        "JSON",
        "JSONB",
        "UUID",
        "SERIAL",
        "BIGSERIAL",
        "SMALLSERIAL",
    }
)

# Types accepting a (n) or (p, s) modifier, with their maximum argument count.
_TYPE_MODIFIERS: dict[str, int] = {
    "VARCHAR": 1,
    "CHAR": 1,
    "DECIMAL": 2,
    "NUMERIC": 2,
}

_TYPE_PATTERN = re.compile(
    r"^\s*(?P<base>[A-Za-z][A-Za-z ]*?)\s*"
    r"(?:\(\s*(?P<args>\d+(?:\s*,\s*\d+)?)\s*\))?\s*"
    r"(?P<array>\[\])?\s*$"
)

_ROLE_KEYWORDS = frozenset({"PUBLIC", "CURRENT_USER", "CURRENT_ROLE", "SESSION_USER"})


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def normalize_column_type(type_name: str) -> str:
    """Validate a column type against the allow-list and return canonical text."""
    match = _TYPE_PATTERN.match(type_name or "")
    if not match:
        msg = f"Unsupported column type: '{type_name}'"
        raise InvalidParameter(msg)

    base = " ".join(match["base"].upper().split())
    if base not in ALLOWED_TYPES:
        allowed = ", ".join(sorted(ALLOWED_TYPES))
        msg = f"Unsupported column type: '{type_name}'. Allowed: {allowed}"
        raise InvalidParameter(msg)

    result = base
    if match["args"]:
        args = [a.strip() for a in match["args"].split(",")]
        if len(args) > _TYPE_MODIFIERS.get(base, 0):
            msg = f"Type {base} does not accept modifier ({match['args']})"
            raise InvalidParameter(msg)
        result += f"({', '.join(args)})"
    if match["array"]:
        result += "[]"
    return result


def normalize_direction(direction: str | None) -> str:
    value = (direction or "ASC").strip().upper()
    try:
        return SortDirection(value).value
    except ValueError:
        msg = f"Invalid order direction: '{direction}'. Must be ASC or DESC"
        raise InvalidParameter(msg) from None


def _adapt(value: Any, data_type: str | None = None) -> Any:
    if isinstance(value, dict) or (
        isinstance(value, list) and data_type in ("json", "jsonb")
    ):
        return Json(value) if data_type == "json" else Jsonb(value)
    return value


def _require_text(value: str | None, what: str) -> str:
    if value is None or not value.strip():
        msg = f"{what} is required"
        raise MissingParameter(msg)
    return value.strip()


def _require_values(values: Mapping[str, Any], what: str) -> None:
    if not values:
        msg = f"No data provided for {what}"
        raise MissingParameter(msg)


def _data_types(columns: Sequence[ColumnDescriptor] | None) -> dict[str, str]:
    return {c.name: c.data_type for c in columns or ()}


def _key_clause(
    key: Mapping[str, Any], types: Mapping[str, str]
) -> tuple[str, list[Any]]:
    if not key:
        msg = "Row key is required"
        raise MissingParameter(msg)
    clauses: list[str] = []
    params: list[Any] = []
    for column, value in key.items():
        if value is None:
            clauses.append(f"{quote_identifier(column)} IS NULL")
        else:
            clauses.append(f"{quote_identifier(column)} = %s")
            params.append(_adapt(value, types.get(column)))
    return " AND ".join(clauses), params


def _set_clause(
    values: Mapping[str, Any], types: Mapping[str, str]
) -> tuple[str, list[Any]]:
    clause = ", ".join(f"{quote_identifier(column)} = %s" for column in values)
    return clause, [_adapt(v, types.get(column)) for column, v in values.items()]


# ---------------------------------------------------------------------------
# Row statements
# ---------------------------------------------------------------------------


def build_select_page(
    table: str,
    *,
    limit: int,
    offset: int,
    order_by: str | None = None,
    direction: str | None = "ASC",
    filter: str | None = None,
    schema: str | None = None,
) -> Statement:
    """SELECT * with optional raw filter, quoted ORDER BY and bound LIMIT/OFFSET."""
    sort = normalize_direction(direction)
    parts = [f"SELECT * FROM {qualified_name(table, schema)}"]
    if filter and filter.strip():
        parts.append(f"WHERE {escape_fragment(filter.strip())}")
    if order_by:
        parts.append(f"ORDER BY {quote_identifier(order_by)} {sort}")
    parts.append("LIMIT %s OFFSET %s")
    return Statement(" ".join(parts), [limit, offset])


def build_count(
    table: str, *, filter: str | None = None, schema: str | None = None
) -> Statement:
    text = f"SELECT COUNT(*) AS count FROM {qualified_name(table, schema)}"
    if filter and filter.strip():
        text += f" WHERE {escape_fragment(filter.strip())}"
    return Statement(text, [])


def build_insert(
    table: str,
    values: Mapping[str, Any],
    columns: Sequence[ColumnDescriptor] | None = None,
    *,
    schema: str | None = None,
) -> Statement:
    """INSERT ... RETURNING *.

    Auto-generated columns (sequence default or identity) are left to the
    server when the caller gives them as null; non-null values are kept.
    """
    descriptors = {c.name: c for c in columns or ()}
    payload: dict[str, Any] = {}
    for name, value in values.items():
        desc = descriptors.get(name)
        if value is None and desc is not None and desc.is_auto_generated:
            continue
        payload[name] = _adapt(value, desc.data_type if desc else None)

    target = qualified_name(table, schema)
    if not payload:
        return Statement(f"INSERT INTO {target} DEFAULT VALUES RETURNING *", [])

    names = ", ".join(quote_identifier(name) for name in payload)
    placeholders = ", ".join(["%s"] * len(payload))
    return Statement(
        f"INSERT INTO {target} ({names}) VALUES ({placeholders}) RETURNING *",
        list(payload.values()),
    )


def build_update_where(
    table: str,
    values: Mapping[str, Any],
    condition: str | None,
    columns: Sequence[ColumnDescriptor] | None = None,
    *,
    schema: str | None = None,
) -> Statement:
    """UPDATE with a caller-supplied raw SQL condition."""
    _require_values(values, "update")
    cond = _require_text(condition, "Update condition")
    set_clause, params = _set_clause(values, _data_types(columns))
    return Statement(
        f"UPDATE {qualified_name(table, schema)} SET {set_clause} "
        f"WHERE {escape_fragment(cond)} RETURNING *",
        params,
    )


def build_delete_where(
    table: str, condition: str | None, *, schema: str | None = None
) -> Statement:
    """DELETE with a caller-supplied raw SQL condition."""
    cond = _require_text(condition, "Delete condition")
    return Statement(
        f"DELETE FROM {qualified_name(table, schema)} "
        f"WHERE {escape_fragment(cond)} RETURNING *",
        [],
    )


def build_update_by_key(
    table: str,
    values: Mapping[str, Any],
    key: Mapping[str, Any],
    columns: Sequence[ColumnDescriptor] | None = None,
    *,
    schema: str | None = None,
) -> Statement:
    """UPDATE the row(s) matching column = value pairs, all bound."""
    _require_values(values, "update")
    types = _data_types(columns)
    set_clause, params = _set_clause(values, types)
    where, key_params = _key_clause(key, types)
    return Statement(
        f"UPDATE {qualified_name(table, schema)} SET {set_clause} "
        f"WHERE {where} RETURNING *",
        params + key_params,
    )


def build_delete_by_key(
    table: str,
    key: Mapping[str, Any],
    columns: Sequence[ColumnDescriptor] | None = None,
    *,
    schema: str | None = None,
) -> Statement:
    where, params = _key_clause(key, _data_types(columns))
    return Statement(
        f"DELETE FROM {qualified_name(table, schema)} WHERE {where} RETURNING *",
        params,
    )


# ---------------------------------------------------------------------------
# DDL
# ---------------------------------------------------------------------------


def build_column_definition(column: ColumnSpec, *, schema: str | None = None) -> str:
    parts = [quote_identifier(column.name), normalize_column_type(column.type)]
    if column.primary_key:
        parts.append("PRIMARY KEY")
    if column.unique:
        parts.append("UNIQUE")
    if column.not_null:
        parts.append("NOT NULL")
    if column.default is not None and column.default.strip():
        parts.append(f"DEFAULT {escape_fragment(column.default.strip())}")
    ref = column.references
    if ref is not None:
        parts.append(
            f"REFERENCES {qualified_name(ref.table, schema)} "
            f"({quote_identifier(ref.column)})"
        )
        if ref.on_delete is not None:
            parts.append(f"ON DELETE {ref.on_delete.value}")
        if ref.on_update is not None:
            parts.append(f"ON UPDATE {ref.on_update.value}")
    return " ".join(parts)


def build_create_table(
    table: str, columns: Sequence[ColumnSpec], *, schema: str | None = None
) -> Statement:
    if not columns:
        msg = "At least one column is required to create a table"
        raise MissingParameter(msg)
    seen: set[str] = set()
    for column in columns:
        if column.name in seen:
            msg = f"Duplicate column name: '{column.name}'"
            raise InvalidParameter(msg)
        seen.add(column.name)

    definitions = ", ".join(build_column_definition(c, schema=schema) for c in columns)
    return Statement(f"CREATE TABLE {qualified_name(table, schema)} ({definitions})", [])


def build_alter_table(
    table: str, spec: AlterTableSpec, *, schema: str | None = None
) -> Statement:
    """Exactly one ALTER TABLE statement per operation."""
    target = qualified_name(table, schema)
    op = spec.operation

    if op is AlterOperation.ADD_COLUMN:
        name = _require_text(spec.column, "Column name")
        col_type = normalize_column_type(_require_text(spec.type, "Column type"))
        text = f"ALTER TABLE {target} ADD COLUMN {quote_identifier(name)} {col_type}"
        if spec.not_null:
            text += " NOT NULL"
        if spec.default is not None and spec.default.strip():
            text += f" DEFAULT {escape_fragment(spec.default.strip())}"
    elif op is AlterOperation.DROP_COLUMN:
        name = _require_text(spec.column, "Column name")
        text = f"ALTER TABLE {target} DROP COLUMN {quote_identifier(name)}"
    elif op is AlterOperation.RENAME_COLUMN:
        name = _require_text(spec.column, "Column name")
        new_name = _require_text(spec.new_name, "New column name")
        text = (
            f"ALTER TABLE {target} RENAME COLUMN {quote_identifier(name)} "
            f"TO {quote_identifier(new_name)}"
        )
    elif op is AlterOperation.RENAME_TABLE:
        new_name = _require_text(spec.new_name, "New table name")
        text = f"ALTER TABLE {target} RENAME TO {quote_identifier(new_name)}"
    else:  # pragma: no cover - enum is exhaustive
        msg = f"Invalid operation: {op}"
        raise InvalidParameter(msg)

    return Statement(text, [])


def build_drop_table(table: str, *, schema: str | None = None) -> Statement:
    return Statement(f"DROP TABLE {qualified_name(table, schema)}", [])


# ---------------------------------------------------------------------------
# Row level security
# ---------------------------------------------------------------------------


def build_enable_rls(table: str, *, schema: str | None = None) -> Statement:
    return Statement(
        f"ALTER TABLE {qualified_name(table, schema)} ENABLE ROW LEVEL SECURITY", []
    )


def build_set_rls(
    table: str,
    *,
    enabled: bool,
    forced: bool | None = None,
    schema: str | None = None,
) -> list[Statement]:
    target = qualified_name(table, schema)
    action = "ENABLE" if enabled else "DISABLE"
    statements = [Statement(f"ALTER TABLE {target} {action} ROW LEVEL SECURITY", [])]
    if forced is not None:
        force = "FORCE" if forced else "NO FORCE"
        statements.append(Statement(f"ALTER TABLE {target} {force} ROW LEVEL SECURITY", []))
    return statements


def format_roles(roles: Sequence[str]) -> str:
    rendered: list[str] = []
    for role in roles:
        role = role.strip()
        if not role:
            continue
        if role.upper() in _ROLE_KEYWORDS:
            rendered.append(role.upper())
        else:
            rendered.append(quote_identifier(role))
    return ", ".join(rendered)


def build_drop_policy(
    table: str, name: str, *, if_exists: bool = True, schema: str | None = None
) -> Statement:
    exists = "IF EXISTS " if if_exists else ""
    return Statement(
        f"DROP POLICY {exists}{quote_identifier(name)} ON {qualified_name(table, schema)}",
        [],
    )


def build_create_policy(
    table: str, spec: PolicySpec, *, schema: str | None = None
) -> Statement:
    using = spec.using.strip() if spec.using else None
    with_check = spec.with_check.strip() if spec.with_check else None

    if spec.command is PolicyCommand.INSERT and using:
        msg = "INSERT policies accept only a WITH CHECK expression"
        raise InvalidParameter(msg)
    if spec.command in (PolicyCommand.SELECT, PolicyCommand.DELETE) and with_check:
        msg = f"{spec.command.value} policies accept only a USING expression"
        raise InvalidParameter(msg)

    kind = "PERMISSIVE" if spec.permissive else "RESTRICTIVE"
    parts = [
        f"CREATE POLICY {quote_identifier(spec.name)} ON {qualified_name(table, schema)}",
        f"AS {kind}",
        f"FOR {spec.command.value}",
    ]
    roles = format_roles(spec.roles)
    if roles:
        parts.append(f"TO {roles}")
    if using:
        parts.append(f"USING ({escape_fragment(using)})")
    if with_check:
        parts.append(f"WITH CHECK ({escape_fragment(with_check)})")
    return Statement(" ".join(parts), [])


def build_upsert_policy(
    table: str, spec: PolicySpec, *, schema: str | None = None
) -> list[Statement]:
    """Enable RLS, drop any same-named policy, create the new one.

    The engine has no single-statement policy upsert; callers run the list
    in one transaction.
    """
    return [
        build_enable_rls(table, schema=schema),
        build_drop_policy(table, spec.name, if_exists=True, schema=schema),
        build_create_policy(table, spec, schema=schema),
    ]
