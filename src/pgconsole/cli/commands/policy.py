"""Row level security commands."""

from __future__ import annotations

from typing import Annotated

import typer

from pgconsole.cli.commands._shared import (
    format_options,
    get_connection,
    is_table_format,
    output_model,
    output_result,
    parse_table_arg,
    rows_result,
)
from pgconsole.cli.output import write_json
from pgconsole.core import operations
from pgconsole.core.models import PolicyCommand, PolicySpec

policy_app = typer.Typer(help="Row level security policies")


@policy_app.callback(invoke_without_command=True)
def policy_callback(ctx: typer.Context) -> None:
    if not ctx.invoked_subcommand:
        typer.echo(ctx.get_help())
        raise typer.Exit()


@policy_app.command("list")
def policy_list(
    ctx: typer.Context,
    table_arg: Annotated[
        str | None, typer.Argument(help="Only this table (schema.table or table)")
    ] = None,
) -> None:
    """List policies and per-table RLS state."""
    schema, table = parse_table_arg(table_arg) if table_arg else (None, None)
    spec, settings = get_connection(ctx)
    listing = operations.list_policies(spec, table, settings=settings, schema=schema)

    if not is_table_format(ctx):
        write_json(listing.model_dump(mode="json"), compact=format_options(ctx)["compact"])
        return

    output_result(
        ctx,
        rows_result(
            ["table", "policy", "type", "command", "roles", "using", "with_check"],
            [
                {
                    "table": p.table,
                    "policy": p.name,
                    "type": "PERMISSIVE" if p.permissive else "RESTRICTIVE",
                    "command": p.command.value,
                    "roles": ", ".join(p.roles),
                    "using": p.using_expression,
                    "with_check": p.with_check_expression,
                }
                for p in listing.policies
            ],
        ),
    )
    typer.echo("")
    output_result(
        ctx,
        rows_result(
            ["table", "rls_enabled", "rls_forced"],
            [t.model_dump() for t in listing.tables_with_rls],
        ),
    )


@policy_app.command("upsert")
def policy_upsert(
    ctx: typer.Context,
    table_arg: Annotated[str, typer.Argument(help="Table name (schema.table or table)")],
    name: Annotated[str, typer.Argument(help="Policy name")],
    command: Annotated[
        PolicyCommand, typer.Option("--command", "-c", help="Command the policy applies to")
    ] = PolicyCommand.ALL,
    roles: Annotated[
        list[str] | None,
        typer.Option("--role", "-r", help="Role (repeatable); default PUBLIC"),
    ] = None,
    using: Annotated[
        str | None, typer.Option("--using", help="USING expression")
    ] = None,
    with_check: Annotated[
        str | None, typer.Option("--with-check", help="WITH CHECK expression")
    ] = None,
    restrictive: Annotated[
        bool, typer.Option("--restrictive", help="Create a RESTRICTIVE policy")
    ] = False,
) -> None:
    """Enable RLS on the table and create or replace a policy."""
    schema, table = parse_table_arg(table_arg)
    policy = PolicySpec(
        name=name,
        command=command,
        roles=roles or [],
        using=using,
        with_check=with_check,
        permissive=not restrictive,
    )
    spec, settings = get_connection(ctx)
    output_model(ctx, operations.upsert_policy(spec, table, policy, settings=settings, schema=schema))


@policy_app.command("delete")
def policy_delete(
    ctx: typer.Context,
    table_arg: Annotated[str, typer.Argument(help="Table name (schema.table or table)")],
    name: Annotated[str, typer.Argument(help="Policy name")],
) -> None:
    """Drop a policy if it exists."""
    schema, table = parse_table_arg(table_arg)
    spec, settings = get_connection(ctx)
    output_model(ctx, operations.delete_policy(spec, table, name, settings=settings, schema=schema))


@policy_app.command("rls")
def policy_rls(
    ctx: typer.Context,
    table_arg: Annotated[str, typer.Argument(help="Table name (schema.table or table)")],
    enabled: Annotated[
        bool, typer.Option("--enable/--disable", help="Turn row level security on or off")
    ] = True,
    forced: Annotated[
        bool | None,
        typer.Option("--force/--no-force", help="Apply policies to the table owner too"),
    ] = None,
) -> None:
    """Enable or disable row level security on a table."""
    schema, table = parse_table_arg(table_arg)
    spec, settings = get_connection(ctx)
    result = operations.set_row_level_security(
        spec, table, enabled, forced, settings=settings, schema=schema
    )
    output_model(ctx, result)
