"""pgconsole entry point and command registration."""

from __future__ import annotations

import atexit
from pathlib import Path  # noqa: TC003
from typing import Annotated

import sentry_sdk
import typer

from pgconsole.__about__ import __version__
from pgconsole.cli.commands.config import config_app
from pgconsole.cli.commands.policy import policy_app
from pgconsole.cli.commands.query import query_command
from pgconsole.cli.commands.rows import (
    delete_command,
    insert_command,
    rows_command,
    update_command,
)
from pgconsole.cli.commands.schema import (
    alter_table_command,
    create_table_command,
    describe_command,
    drop_table_command,
    tables_command,
)
from pgconsole.cli.output import OutputFormat  # noqa: TC001
from pgconsole.core.exceptions import PgConsoleError
from pgconsole.core.logging import setup_logging
from pgconsole.core.monitoring import setup_sentry
from pgconsole.core.provisioner import close_default_registry

app = typer.Typer(
    help="pgconsole - PostgreSQL schema, data and row level security console",
    no_args_is_help=True,
)

app.add_typer(config_app, name="config")
app.add_typer(policy_app, name="policy")
app.command("tables")(tables_command)
app.command("describe")(describe_command)
app.command("rows")(rows_command)
app.command("insert")(insert_command)
app.command("update")(update_command)
app.command("delete")(delete_command)
app.command("create-table")(create_table_command)
app.command("alter-table")(alter_table_command)
app.command("drop-table")(drop_table_command)
app.command("query")(query_command)


def version_callback(value: bool) -> None:
    if value:
        typer.echo(f"pgconsole {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", help="Enable verbose logging"),
    ] = False,
    profile: Annotated[
        str | None,
        typer.Option("--profile", "-P", help="Named connection profile"),
    ] = None,
    host: Annotated[
        str | None,
        typer.Option("--host", "-H", help="PostgreSQL host"),
    ] = None,
    port: Annotated[
        int | None,
        typer.Option("--port", "-p", help="PostgreSQL port"),
    ] = None,
    database: Annotated[
        str | None,
        typer.Option("--database", "-d", help="Database name"),
    ] = None,
    user: Annotated[
        str | None,
        typer.Option("--user", "-U", help="User name"),
    ] = None,
    password: Annotated[
        str | None,
        typer.Option("--password", "-W", help="Password"),
    ] = None,
    sslmode: Annotated[
        str | None,
        typer.Option("--sslmode", help="libpq sslmode"),
    ] = None,
    dsn: Annotated[
        str | None,
        typer.Option("--dsn", help="Connection DSN"),
    ] = None,
    ssh_host: Annotated[
        str | None,
        typer.Option("--ssh-host", help="SSH jump host; enables tunneling"),
    ] = None,
    ssh_port: Annotated[
        int | None,
        typer.Option("--ssh-port", help="SSH port (default 22)"),
    ] = None,
    ssh_user: Annotated[
        str | None,
        typer.Option("--ssh-user", help="SSH user name"),
    ] = None,
    ssh_password: Annotated[
        str | None,
        typer.Option("--ssh-password", help="SSH password"),
    ] = None,
    ssh_key_file: Annotated[
        Path | None,
        typer.Option("--ssh-key-file", help="SSH private key file"),
    ] = None,
    ssh_passphrase: Annotated[
        str | None,
        typer.Option("--ssh-passphrase", help="Passphrase for the SSH private key"),
    ] = None,
    config_file: Annotated[
        Path | None,
        typer.Option("--config", help="Path to config file"),
    ] = None,
    schema: Annotated[
        str | None,
        typer.Option("--schema", "-s", help="Default schema"),
    ] = None,
    format: Annotated[
        OutputFormat | None,
        typer.Option("--format", "-f", help="Output format: table|json"),
    ] = None,
    compact: Annotated[
        bool,
        typer.Option("--compact", help="Compact JSON output (no indentation)"),
    ] = False,
    width: Annotated[
        int,
        typer.Option("--width", help="Column width for table format"),
    ] = 40,
) -> None:
    """pgconsole - PostgreSQL schema, data and row level security console."""
    setup_logging(verbose)
    setup_sentry()

    transaction = sentry_sdk.start_transaction(
        op="cli", name=ctx.invoked_subcommand or "pgconsole"
    )
    transaction.__enter__()

    def cleanup() -> None:
        close_default_registry()
        transaction.__exit__(None, None, None)
        sentry_sdk.flush(timeout=2)

    atexit.register(cleanup)

    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["profile"] = profile
    ctx.obj["host"] = host
    ctx.obj["port"] = port
    ctx.obj["database"] = database
    ctx.obj["user"] = user
    ctx.obj["password"] = password
    ctx.obj["sslmode"] = sslmode
    ctx.obj["dsn"] = dsn
    ctx.obj["ssh_host"] = ssh_host
    ctx.obj["ssh_port"] = ssh_port
    ctx.obj["ssh_user"] = ssh_user
    ctx.obj["ssh_password"] = ssh_password
    ctx.obj["ssh_key_file"] = ssh_key_file
    ctx.obj["ssh_passphrase"] = ssh_passphrase
    ctx.obj["config_file"] = config_file
    ctx.obj["schema"] = schema

    ctx.obj["format"] = format.value if format else None
    ctx.obj["compact"] = compact
    ctx.obj["width"] = width


def run() -> None:
    """Entry point with global error handling."""
    try:
        app()
    except PgConsoleError as e:
        sentry_sdk.capture_exception(e)
        typer.echo(f"Error: {e.message}", err=True)
        raise SystemExit(e.exit_code) from None
    except SystemExit:
        raise
    except KeyboardInterrupt:
        raise SystemExit(130) from None
    except Exception as e:
        sentry_sdk.capture_exception(e)
        typer.echo(f"Error: {e}", err=True)
        raise SystemExit(1) from None
