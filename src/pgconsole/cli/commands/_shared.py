"""Shared CLI plumbing for command modules.

Connection resolution, request parsing and output helpers. Commands
only parse arguments and render results; all SQL comes from the core.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

import typer
from pydantic import BaseModel, TypeAdapter, ValidationError

from pgconsole.cli.output import get_formatter, resolve_format, write_json, write_output
from pgconsole.core.config import Settings, load_config, resolve_connection
from pgconsole.core.exceptions import InvalidParameter
from pgconsole.core.models import QueryResult

if TYPE_CHECKING:
    from pgconsole.core.config import AppConfig, ResolvedConnection
    from pgconsole.core.models import ConnectionSpec

_CONNECTION_KEYS = ("host", "port", "database", "user", "password", "sslmode")
_TUNNEL_KEYS = (
    "ssh_host",
    "ssh_port",
    "ssh_user",
    "ssh_password",
    "ssh_key_file",
    "ssh_passphrase",
)


def resolve_invocation(ctx: typer.Context) -> tuple[AppConfig, ResolvedConnection]:
    """Load the config file and resolve connection options for this invocation."""
    obj = ctx.ensure_object(dict)
    config = load_config(obj.get("config_file"))

    cli_overrides: dict[str, Any] = {}
    for key in (*_CONNECTION_KEYS, *_TUNNEL_KEYS):
        val = obj.get(key)
        if val is not None:
            cli_overrides[key] = val

    resolved = resolve_connection(
        config,
        profile_name=obj.get("profile"),
        dsn=obj.get("dsn"),
        **cli_overrides,
    )
    return config, resolved


def get_connection(
    ctx: typer.Context, timeout: float | None = None
) -> tuple[ConnectionSpec, Settings]:
    """Resolve the ConnectionSpec and Settings for this invocation."""
    obj = ctx.ensure_object(dict)
    config, resolved = resolve_invocation(ctx)

    updates: dict[str, Any] = {}
    if obj.get("schema"):
        updates["default_schema"] = obj["schema"]
    if timeout is not None:
        updates["statement_timeout"] = timeout
    settings = config.settings.model_copy(update=updates)
    return resolved.spec, settings


def format_options(ctx: typer.Context) -> dict[str, Any]:
    obj = ctx.ensure_object(dict)
    return {
        "format_flag": obj.get("format"),
        "compact": obj.get("compact", False),
        "width": obj.get("width", 40),
    }


def is_table_format(ctx: typer.Context) -> bool:
    return resolve_format(ctx.ensure_object(dict).get("format")) == "table"


def output_result(ctx: typer.Context, result: QueryResult) -> None:
    formatter = get_formatter(**format_options(ctx))
    write_output(formatter, result)


def output_model(ctx: typer.Context, model: BaseModel) -> None:
    """JSON dump of a response model; table mode prints its message when it has one."""
    if is_table_format(ctx) and hasattr(model, "message"):
        typer.echo(model.message)
        return
    write_json(model.model_dump(mode="json"), compact=format_options(ctx)["compact"])


def rows_result(columns: list[str], rows: list[dict[str, Any]]) -> QueryResult:
    return QueryResult(columns=columns, rows=rows, row_count=len(rows))


def parse_table_arg(table_arg: str) -> tuple[str | None, str]:
    """``schema.table`` or ``table`` (schema then comes from settings)."""
    if "." in table_arg:
        schema, table = table_arg.split(".", 1)
        return schema, table
    return None, table_arg


def parse_json_object(value: str | None, option: str) -> dict[str, Any]:
    if value is None:
        return {}
    try:
        data = json.loads(value)
    except json.JSONDecodeError as e:
        msg = f"{option} must be valid JSON: {e.msg}"
        raise InvalidParameter(msg) from e
    if not isinstance(data, dict):
        msg = f"{option} must be a JSON object"
        raise InvalidParameter(msg)
    return data


def parse_models(value: str, model: Any, option: str) -> Any:
    """Validate a JSON document against a pydantic type."""
    try:
        return TypeAdapter(model).validate_json(value)
    except ValidationError as e:
        first = e.errors()[0]
        where = ".".join(str(p) for p in first["loc"]) or "value"
        msg = f"Invalid {option}: {where}: {first['msg']}"
        raise InvalidParameter(msg) from e
