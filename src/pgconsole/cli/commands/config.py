"""Configuration management CLI commands."""

from __future__ import annotations

from typing import TYPE_CHECKING

import typer

from pgconsole.cli.commands._shared import resolve_invocation
from pgconsole.core.config import DEFAULT_CONFIG_PATH, load_config

if TYPE_CHECKING:
    from pathlib import Path

    from pydantic import SecretStr

config_app = typer.Typer(help="Configuration management commands")


@config_app.callback(invoke_without_command=True)
def config_callback(ctx: typer.Context) -> None:
    if not ctx.invoked_subcommand:
        typer.echo(ctx.get_help())
        raise typer.Exit()


def _mask_secret(value: SecretStr | None) -> str:
    if value is None:
        return "not set"
    return "***"


@config_app.command("show")
def config_show(ctx: typer.Context) -> None:
    """Display resolved configuration with source attribution."""
    config_path: Path | None = ctx.ensure_object(dict).get("config_file")
    app_config, resolved = resolve_invocation(ctx)
    spec = resolved.spec
    sources = resolved.sources

    typer.echo("Connection Settings (resolved):")
    connection_fields = [
        ("host", spec.host),
        ("port", str(spec.port)),
        ("database", spec.database),
        ("username", spec.username or "not set"),
        ("password", _mask_secret(spec.password)),
        ("sslmode", spec.sslmode),
    ]
    for field_name, value in connection_fields:
        source = sources.get(field_name, "default")
        typer.echo(f"  {field_name}: {value} ({source})")

    typer.echo("")
    if spec.tunnel is not None:
        tunnel = spec.tunnel
        typer.echo("SSH Tunnel:")
        typer.echo(f"  host: {tunnel.host}:{tunnel.port}")
        typer.echo(f"  username: {tunnel.username}")
        auth = "private key" if tunnel.uses_key else "password"
        typer.echo(f"  auth: {auth}")
    else:
        typer.echo("SSH Tunnel: none")

    typer.echo("")
    settings = app_config.settings
    typer.echo("Settings:")
    for field_name, value in settings.model_dump().items():
        typer.echo(f"  {field_name}: {value}")

    typer.echo("")
    typer.echo(f"Active Profile: {resolved.active_profile or 'none'}")
    display_path = config_path or DEFAULT_CONFIG_PATH
    typer.echo(f"Config File: {display_path}")


@config_app.command("profiles")
def config_profiles(ctx: typer.Context) -> None:
    """List available connection profiles."""
    obj = ctx.ensure_object(dict)
    config_path: Path | None = obj.get("config_file")
    app_config = load_config(config_path)
    active_profile = obj.get("profile") or app_config.default_profile

    if not app_config.profiles:
        typer.echo("No profiles configured.")
        display_path = config_path or DEFAULT_CONFIG_PATH
        typer.echo(f"Add profiles to: {display_path}")
        return

    typer.echo("Available Profiles:")
    typer.echo("")
    for name, profile in sorted(app_config.profiles.items()):
        is_active = name == active_profile
        marker = "* " if is_active else "  "
        label = " (active)" if is_active else ""
        typer.echo(f"{marker}{name}{label}")

        display_fields = [
            ("host", profile.host),
            ("port", str(profile.port)),
            ("database", profile.database),
        ]
        if profile.username:
            display_fields.append(("username", profile.username))
        if profile.tunnel is not None:
            display_fields.append(("ssh", f"{profile.tunnel.username}@{profile.tunnel.host}"))

        for field_name, value in display_fields:
            typer.echo(f"      {field_name}: {value}")
        typer.echo("")
