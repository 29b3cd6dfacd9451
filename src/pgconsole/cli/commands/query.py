from __future__ import annotations

import sys
from typing import Annotated

import typer

from pgconsole.cli.commands._shared import get_connection, output_result
from pgconsole.core import operations
from pgconsole.core.query_source import resolve_query_source


def query_command(
    ctx: typer.Context,
    file: Annotated[
        str | None,
        typer.Argument(help="SQL file to execute"),
    ] = None,
    execute: Annotated[
        str | None,
        typer.Option("--execute", "-e", help="Execute inline SQL query"),
    ] = None,
    timeout: Annotated[
        float | None,
        typer.Option("--timeout", "-t", help="Statement timeout in seconds"),
    ] = None,
) -> None:
    """Execute raw SQL from file, inline (-e), or stdin."""
    try:
        is_tty = sys.stdin.isatty()
    except (ValueError, AttributeError):
        is_tty = False
    if execute is None and file is None and is_tty:
        typer.echo(ctx.get_help())
        raise typer.Exit()

    sql = resolve_query_source(inline=execute, file_path=file)
    spec, settings = get_connection(ctx, timeout=timeout)
    output_result(ctx, operations.run_query(spec, sql, settings=settings))
