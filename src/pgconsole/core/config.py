"""Configuration management for pgconsole.

Handles TOML config files, environment variables, named profiles,
and resolution of a ConnectionSpec for the CLI.

Precedence order (highest to lowest):
1. CLI flags (--host, --ssh-host, etc.)
2. --dsn flag (parsed into components)
3. Environment variables (PGHOST, PGPORT, PGDATABASE, PGUSER, PGPASSWORD)
4. Named profile (--profile or PGCONSOLE_PROFILE env var)
5. Built-in defaults
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any
from urllib.parse import parse_qs, unquote, urlparse

from pydantic import BaseModel, Field, field_validator, model_validator

from pgconsole.core.exceptions import ConfigError
from pgconsole.core.models import ConnectionSpec, TunnelSpec

DEFAULT_CONFIG_PATH = Path.home() / ".config" / "pgconsole" / "config.toml"

PROFILE_ENV_VAR = "PGCONSOLE_PROFILE"

_PG_ENV_VARS: dict[str, str] = {
    "PGHOST": "host",
    "PGPORT": "port",
    "PGDATABASE": "database",
    "PGUSER": "username",
    "PGPASSWORD": "password",  # pragma: allowlist secret
}

_CONNECTION_DEFAULTS: dict[str, Any] = {
    "host": "localhost",
    "port": 5432,
    "database": "postgres",
    "username": None,
    "password": None,
    "sslmode": "prefer",
}

_VALID_SSLMODES = frozenset(
    {"disable", "allow", "prefer", "require", "verify-ca", "verify-full"}
)


def parse_dsn(dsn: str) -> dict[str, Any]:
    """Supports postgresql:// and postgres:// schemes with query params."""
    parsed = urlparse(dsn)
    if parsed.scheme not in ("postgresql", "postgres"):
        msg = f"Invalid DSN scheme: '{parsed.scheme}'. Expected 'postgresql' or 'postgres'"
        raise ConfigError(msg)

    result: dict[str, Any] = {}
    if parsed.hostname:
        result["host"] = parsed.hostname
    try:
        port = parsed.port
    except ValueError:
        msg = "Invalid port in DSN"
        raise ConfigError(msg) from None
    if port:
        result["port"] = port
    if parsed.path and parsed.path.strip("/"):
        result["database"] = unquote(parsed.path.strip("/"))
    if parsed.username:
        result["username"] = unquote(parsed.username)
    if parsed.password:
        result["password"] = unquote(parsed.password)
    query_params = parse_qs(parsed.query)
    if "sslmode" in query_params:
        result["sslmode"] = query_params["sslmode"][0]
    return result


def read_private_key(path: str | Path) -> str:
    p = Path(path).expanduser()
    if not p.exists():
        msg = f"SSH private key file not found: {p}"
        raise ConfigError(msg)
    return p.read_text()


class TunnelProfile(BaseModel):
    host: str
    port: int = 22
    username: str
    password: str | None = None
    private_key: str | None = None
    private_key_file: str | None = None
    passphrase: str | None = None


class ConnectionProfile(BaseModel):
    dsn: str | None = None
    host: str = "localhost"
    port: int = 5432
    database: str = "postgres"
    username: str | None = None
    password: str | None = None
    sslmode: str = "prefer"
    tunnel: TunnelProfile | None = None

    @model_validator(mode="before")
    @classmethod
    def parse_dsn_into_components(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("dsn"):
            dsn_fields = parse_dsn(data["dsn"])
            for key, value in dsn_fields.items():
                if key not in data:
                    data[key] = value
        return data

    @field_validator("sslmode")
    @classmethod
    def validate_sslmode(cls, v: str) -> str:
        if v not in _VALID_SSLMODES:
            msg = f"Invalid sslmode: '{v}'. Must be one of: {', '.join(sorted(_VALID_SSLMODES))}"
            raise ValueError(msg)
        return v

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        if not (1 <= v <= 65535):
            msg = f"Invalid port: {v}. Must be 1-65535"
            raise ValueError(msg)
        return v


class Settings(BaseModel):
    """Runtime knobs shared by every operation."""

    default_schema: str = "public"
    connect_timeout: int = Field(default=5, ge=1)
    statement_timeout: float = Field(default=30.0, gt=0)
    sample_size: int = Field(default=10, ge=1)
    max_page_size: int = Field(default=1000, ge=1)
    pool_max_size: int = Field(default=4, ge=1)
    pool_max_idle: float = Field(default=60.0, gt=0)
    max_pools: int = Field(default=4, ge=1)
    strict_host_keys: bool = False
    application_name: str = "pgconsole"


class AppConfig(BaseModel):
    default_format: str | None = None
    default_profile: str | None = None
    settings: Settings = Settings()
    profiles: dict[str, ConnectionProfile] = {}


class ResolvedConnection(BaseModel):
    spec: ConnectionSpec
    active_profile: str | None = None
    sources: dict[str, str] = {}


def load_config(config_path: Path | None = None) -> AppConfig:
    """Load configuration from TOML file.

    Returns default AppConfig if file doesn't exist.
    Raises ConfigError on malformed TOML or invalid config.
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH

    if not config_path.exists():
        return AppConfig()

    try:
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        msg = f"Malformed TOML in {config_path}: {e}"
        raise ConfigError(msg) from e

    try:
        return AppConfig.model_validate(data)
    except ConfigError:
        raise
    except Exception as e:
        msg = f"Invalid configuration in {config_path}: {e}"
        raise ConfigError(msg) from e


def _resolve_tunnel(
    profile_tunnel: TunnelProfile | None,
    cli_overrides: dict[str, Any],
    sources: dict[str, str],
) -> TunnelSpec | None:
    cli_to_field = {
        "ssh_host": "host",
        "ssh_port": "port",
        "ssh_user": "username",
        "ssh_password": "password",  # pragma: allowlist secret
        "ssh_passphrase": "passphrase",  # pragma: allowlist secret
    }
    fields: dict[str, Any] = {}
    if profile_tunnel is not None:
        fields = profile_tunnel.model_dump(exclude={"private_key_file"})
        if profile_tunnel.private_key is None and profile_tunnel.private_key_file:
            fields["private_key"] = read_private_key(profile_tunnel.private_key_file)
        sources["tunnel"] = "profile"

    for cli_name, field_name in cli_to_field.items():
        value = cli_overrides.get(cli_name)
        if value is not None:
            fields[field_name] = value
            sources[f"tunnel.{field_name}"] = f"cli: --{cli_name.replace('_', '-')}"
    key_file = cli_overrides.get("ssh_key_file")
    if key_file is not None:
        fields["private_key"] = read_private_key(key_file)
        sources["tunnel.private_key"] = "cli: --ssh-key-file"

    if not fields.get("host"):
        return None
    return TunnelSpec(**{k: v for k, v in fields.items() if v is not None})


def resolve_connection(
    config: AppConfig,
    profile_name: str | None = None,
    dsn: str | None = None,
    **cli_overrides: Any,
) -> ResolvedConnection:
    """Resolve a ConnectionSpec using the precedence chain.

    CLI > DSN > env > profile > built-in defaults.
    """
    sources: dict[str, str] = {}
    resolved: dict[str, Any] = dict(_CONNECTION_DEFAULTS)
    for key in resolved:
        sources[key] = "default"

    effective_profile = profile_name or os.environ.get(PROFILE_ENV_VAR)
    if not effective_profile:
        effective_profile = config.default_profile

    profile: ConnectionProfile | None = None
    if effective_profile:
        if effective_profile not in config.profiles:
            available = (
                ", ".join(sorted(config.profiles.keys())) if config.profiles else "none"
            )
            msg = f"Unknown profile: '{effective_profile}'. Available profiles: {available}"
            raise ConfigError(msg)
        profile = config.profiles[effective_profile]
        for key in profile.model_fields_set:
            if key in resolved:
                resolved[key] = getattr(profile, key)
                sources[key] = f"profile: {effective_profile}"

    for env_var, field_name in _PG_ENV_VARS.items():
        value = os.environ.get(env_var)
        if value is not None:
            if field_name == "port":
                try:
                    resolved[field_name] = int(value)
                except ValueError:
                    msg = f"Invalid {env_var} value: '{value}'. Must be an integer"
                    raise ConfigError(msg) from None
            else:
                resolved[field_name] = value
            sources[field_name] = f"env: {env_var}"

    if dsn:
        for key, value in parse_dsn(dsn).items():
            resolved[key] = value
            sources[key] = "dsn"

    cli_to_field = {
        "host": "host",
        "port": "port",
        "database": "database",
        "user": "username",
        "password": "password",  # pragma: allowlist secret
        "sslmode": "sslmode",
    }
    for cli_name, field_name in cli_to_field.items():
        value = cli_overrides.get(cli_name)
        if value is not None:
            resolved[field_name] = value
            sources[field_name] = f"cli: --{cli_name}"

    tunnel = _resolve_tunnel(
        profile.tunnel if profile is not None else None, cli_overrides, sources
    )

    spec = ConnectionSpec(
        host=resolved["host"] or "",
        port=resolved["port"],
        username=resolved["username"] or "",
        password=resolved["password"],
        database=resolved["database"] or "",
        sslmode=resolved["sslmode"],
        tunnel=tunnel,
    )
    return ResolvedConnection(
        spec=spec, active_profile=effective_profile, sources=sources
    )
