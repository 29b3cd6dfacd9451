"""Row browsing and mutation commands."""

from __future__ import annotations

from typing import Annotated, Any

import typer

from pgconsole.cli.commands._shared import (
    format_options,
    get_connection,
    is_table_format,
    output_result,
    parse_json_object,
    parse_table_arg,
    rows_result,
)
from pgconsole.cli.output import write_json
from pgconsole.core import operations
from pgconsole.core.exceptions import InvalidParameter, MissingParameter
from pgconsole.core.models import PageRequest, SortDirection


def rows_command(
    ctx: typer.Context,
    table_arg: Annotated[str, typer.Argument(help="Table name (schema.table or table)")],
    page: Annotated[int, typer.Option("--page", min=1, help="Page number (1-based)")] = 1,
    page_size: Annotated[
        int, typer.Option("--page-size", min=1, help="Rows per page")
    ] = 10,
    order_by: Annotated[
        str | None, typer.Option("--order-by", "-o", help="Column to sort by")
    ] = None,
    direction: Annotated[
        SortDirection, typer.Option("--direction", help="Sort direction")
    ] = SortDirection.ASC,
    where: Annotated[
        str | None, typer.Option("--where", "-w", help="Raw SQL filter condition")
    ] = None,
) -> None:
    """Show one page of rows."""
    schema, table = parse_table_arg(table_arg)
    request = PageRequest(
        page=page,
        page_size=page_size,
        order_by=order_by,
        order_direction=direction.value,
        filter=where,
    )
    spec, settings = get_connection(ctx)
    result = operations.fetch_rows(spec, table, request, settings=settings, schema=schema)

    if not is_table_format(ctx):
        write_json(result.model_dump(mode="json"), compact=format_options(ctx)["compact"])
        return
    output_result(ctx, rows_result(result.columns, result.rows))
    p = result.pagination
    typer.echo(f"Page {p.page} of {p.total_pages} ({p.total_rows} rows)", err=True)


def insert_command(
    ctx: typer.Context,
    table_arg: Annotated[str, typer.Argument(help="Table name (schema.table or table)")],
    values: Annotated[
        str, typer.Argument(help='JSON object of column values, e.g. \'{"name": "x"}\'')
    ],
) -> None:
    """Insert one row and print it as stored."""
    schema, table = parse_table_arg(table_arg)
    data = parse_json_object(values, "values")
    spec, settings = get_connection(ctx)
    output_result(ctx, operations.insert_row(spec, table, data, settings=settings, schema=schema))


def _target(where: str | None, key: str | None) -> dict[str, Any]:
    if where is not None and key is not None:
        msg = "Use either --where or --key, not both"
        raise InvalidParameter(msg)
    if where is None and key is None:
        msg = "A row condition is required: --where or --key"
        raise MissingParameter(msg)
    return parse_json_object(key, "--key")


def update_command(
    ctx: typer.Context,
    table_arg: Annotated[str, typer.Argument(help="Table name (schema.table or table)")],
    values: Annotated[str, typer.Argument(help="JSON object of new column values")],
    where: Annotated[
        str | None, typer.Option("--where", "-w", help="Raw SQL condition")
    ] = None,
    key: Annotated[
        str | None, typer.Option("--key", "-k", help='JSON key columns, e.g. \'{"id": 3}\'')
    ] = None,
) -> None:
    """Update rows matched by --where or --key."""
    schema, table = parse_table_arg(table_arg)
    data = parse_json_object(values, "values")
    key_values = _target(where, key)
    spec, settings = get_connection(ctx)
    if where is not None:
        result = operations.update_rows(
            spec, table, data, where, settings=settings, schema=schema
        )
    else:
        result = operations.update_row_by_key(
            spec, table, data, key_values, settings=settings, schema=schema
        )
    output_result(ctx, result)


def delete_command(
    ctx: typer.Context,
    table_arg: Annotated[str, typer.Argument(help="Table name (schema.table or table)")],
    where: Annotated[
        str | None, typer.Option("--where", "-w", help="Raw SQL condition")
    ] = None,
    key: Annotated[
        str | None, typer.Option("--key", "-k", help="JSON key columns")
    ] = None,
) -> None:
    """Delete rows matched by --where or --key."""
    schema, table = parse_table_arg(table_arg)
    key_values = _target(where, key)
    spec, settings = get_connection(ctx)
    if where is not None:
        result = operations.delete_rows(spec, table, where, settings=settings, schema=schema)
    else:
        result = operations.delete_row_by_key(
            spec, table, key_values, settings=settings, schema=schema
        )
    output_result(ctx, result)
