"""Output format selection and TTY auto-detection."""

from __future__ import annotations

import sys
from enum import StrEnum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from pgconsole.core.models import QueryResult
    from pgconsole.formatters.base import Formatter


class OutputFormat(StrEnum):
    TABLE = "table"
    JSON = "json"


def detect_tty() -> bool:
    return sys.stdout.isatty()


def resolve_format(format_flag: str | None) -> str:
    """Explicit --format wins; otherwise table for a TTY, json for pipes."""
    if format_flag is not None:
        return format_flag
    return "table" if detect_tty() else "json"


def get_formatter(
    format_flag: str | None = None,
    *,
    compact: bool = False,
    width: int = 40,
) -> Formatter:
    # Import here to trigger registry population from formatter modules.
    import pgconsole.formatters.json  # noqa: F401
    import pgconsole.formatters.table  # noqa: F401
    from pgconsole.formatters.base import registry

    fmt_name = resolve_format(format_flag)

    kwargs: dict[str, object] = {}
    if fmt_name == "table":
        kwargs["width"] = width
    elif fmt_name == "json":
        kwargs["compact"] = compact

    return registry.get(fmt_name, **kwargs)


def write_output(formatter: Formatter, result: QueryResult) -> None:
    for line in formatter.format(result):
        sys.stdout.write(line + "\n")


def write_json(data: Any, *, compact: bool = False) -> None:
    from pgconsole.formatters.json import dumps

    sys.stdout.write(dumps(data, compact=compact) + "\n")
