"""Table listing, description and DDL commands."""

from __future__ import annotations

from typing import Annotated

import typer

from pgconsole.cli.commands._shared import (
    format_options,
    get_connection,
    is_table_format,
    output_model,
    output_result,
    parse_models,
    parse_table_arg,
    rows_result,
)
from pgconsole.cli.output import write_json
from pgconsole.core import operations
from pgconsole.core.models import AlterOperation, AlterTableSpec, ColumnSpec


def tables_command(ctx: typer.Context) -> None:
    """List base tables in the default schema."""
    spec, settings = get_connection(ctx)
    tables = operations.connect(spec, settings=settings)
    output_result(ctx, rows_result(["table"], [{"table": t} for t in tables]))


def describe_command(
    ctx: typer.Context,
    table_arg: Annotated[str, typer.Argument(help="Table name (schema.table or table)")],
    sample: Annotated[
        int | None,
        typer.Option("--sample", "-n", help="Number of sample rows (default from settings)"),
    ] = None,
) -> None:
    """Show columns, keys, sample rows and total row count."""
    schema, table = parse_table_arg(table_arg)
    spec, settings = get_connection(ctx)
    description = operations.describe_table(
        spec, table, settings=settings, schema=schema, sample_size=sample
    )

    if not is_table_format(ctx):
        write_json(description.model_dump(mode="json"), compact=format_options(ctx)["compact"])
        return

    info = description.table
    foreign = {fk.column: f"{fk.referenced_table}.{fk.referenced_column}" for fk in info.foreign_keys}
    structure = [
        {
            "column": col.name,
            "type": col.data_type,
            "nullable": "YES" if col.nullable else "NO",
            "default": col.default_expression,
            "max_length": col.max_length,
            "key": "PK" if col.name in info.primary_keys else "",
            "references": foreign.get(col.name, ""),
        }
        for col in info.columns
    ]
    output_result(
        ctx,
        rows_result(
            ["column", "type", "nullable", "default", "max_length", "key", "references"],
            structure,
        ),
    )
    typer.echo(f"\nSample rows ({len(description.sample_rows)} of {description.total_rows}):")
    if description.sample_rows:
        columns = list(description.sample_rows[0].keys())
        output_result(ctx, rows_result(columns, description.sample_rows))


def create_table_command(
    ctx: typer.Context,
    table_arg: Annotated[str, typer.Argument(help="Table name (schema.table or table)")],
    columns: Annotated[
        str,
        typer.Argument(
            help='JSON array of columns, e.g. \'[{"name": "id", "type": "SERIAL", "primary_key": true}]\''
        ),
    ],
) -> None:
    """Create a table from a JSON column list."""
    schema, table = parse_table_arg(table_arg)
    column_specs = parse_models(columns, list[ColumnSpec], "columns")
    spec, settings = get_connection(ctx)
    result = operations.create_table(
        spec, table, column_specs, settings=settings, schema=schema
    )
    output_model(ctx, result)


def alter_table_command(
    ctx: typer.Context,
    table_arg: Annotated[str, typer.Argument(help="Table name (schema.table or table)")],
    operation: Annotated[AlterOperation, typer.Argument(help="Alteration to apply")],
    column: Annotated[str | None, typer.Option("--column", "-c", help="Column name")] = None,
    new_name: Annotated[
        str | None, typer.Option("--new-name", help="New column or table name")
    ] = None,
    column_type: Annotated[
        str | None, typer.Option("--type", help="Column type for addColumn")
    ] = None,
    not_null: Annotated[bool, typer.Option("--not-null", help="Add NOT NULL")] = False,
    default: Annotated[
        str | None, typer.Option("--default", help="DEFAULT expression (raw SQL)")
    ] = None,
) -> None:
    """Add, drop or rename a column, or rename the table."""
    schema, table = parse_table_arg(table_arg)
    change = AlterTableSpec(
        operation=operation,
        column=column,
        new_name=new_name,
        type=column_type,
        not_null=not_null,
        default=default,
    )
    spec, settings = get_connection(ctx)
    output_model(ctx, operations.alter_table(spec, table, change, settings=settings, schema=schema))


def drop_table_command(
    ctx: typer.Context,
    table_arg: Annotated[str, typer.Argument(help="Table name (schema.table or table)")],
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation")] = False,
) -> None:
    """Drop a table."""
    schema, table = parse_table_arg(table_arg)
    if not yes:
        typer.confirm(f"Drop table '{table_arg}'?", abort=True)
    spec, settings = get_connection(ctx)
    output_model(ctx, operations.drop_table(spec, table, settings=settings, schema=schema))
