"""Exception hierarchy for pgconsole.

All exceptions carry an exit_code for CLI return value mapping and can be
rendered as a structured error payload for non-CLI callers. Messages never
contain credentials.
"""

from __future__ import annotations

from typing import Any

from pgconsole.core.exit_codes import ExitCode


class PgConsoleError(Exception):
    """Base exception for all pgconsole errors."""

    exit_code: int = ExitCode.GENERAL_ERROR

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    @property
    def kind(self) -> str:
        return type(self).__name__

    def to_payload(self) -> dict[str, Any]:
        return {"type": self.kind, "message": self.message}


class InputError(PgConsoleError):
    """Invalid or incomplete caller input."""

    exit_code: int = ExitCode.INPUT_ERROR


class MissingParameter(InputError):
    """A required request field is absent or empty."""


class InvalidIdentifier(InputError):
    """A table, column, role or policy name cannot be safely quoted."""


class InvalidParameter(InputError):
    """A request field has a value outside its allowed set."""


class ConfigError(PgConsoleError):
    """Malformed config, missing profile."""

    exit_code: int = ExitCode.CONFIG_ERROR


class NetworkError(PgConsoleError):
    """Connection-level failures."""

    exit_code: int = ExitCode.NETWORK_ERROR


class ConnectionRefused(NetworkError):
    """Database unreachable, authentication rejected or connect timeout."""


class TunnelFailure(NetworkError):
    """SSH tunnel could not be established."""

    exit_code: int = ExitCode.TUNNEL_ERROR


class TunnelAuthError(TunnelFailure):
    """SSH handshake rejected the supplied credentials."""


class TunnelNetworkError(TunnelFailure):
    """SSH host unreachable, handshake timeout or forwarding refused."""


class SchemaQueryFailed(PgConsoleError):
    """A catalog query failed; no partial schema information is returned."""

    exit_code: int = ExitCode.QUERY_ERROR


class QueryExecutionFailed(PgConsoleError):
    """The engine rejected a statement. Carries the engine message."""

    exit_code: int = ExitCode.QUERY_ERROR

    def __init__(self, message: str, sqlstate: str | None = None) -> None:
        super().__init__(message)
        self.sqlstate = sqlstate

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        if self.sqlstate:
            payload["sqlstate"] = self.sqlstate
        return payload


class QueryTimeout(QueryExecutionFailed):
    """Statement cancelled by statement_timeout."""

    exit_code: int = ExitCode.TIMEOUT


class NotFound(PgConsoleError):
    """Targeted object or rows do not exist."""

    exit_code: int = ExitCode.NOT_FOUND
