"""Rich table formatter for QueryResult output."""

from __future__ import annotations

import shutil
from io import StringIO
from typing import TYPE_CHECKING, Any

from rich.console import Console
from rich.table import Table

from pgconsole.formatters.base import registry

if TYPE_CHECKING:
    from collections.abc import Iterator

    from pgconsole.core.models import QueryResult

_NO_RESULTS = "No results"
_NULL = "NULL"


def _truncate(value: str, width: int) -> str:
    if len(value) <= width:
        return value
    return value[: width - 1] + "…"


def _cell(value: Any, width: int) -> str:
    if value is None:
        return _NULL
    return _truncate(str(value), width)


class TableFormatter:
    def __init__(self, width: int = 40) -> None:
        self.width = width

    def format(self, result: QueryResult) -> Iterator[str]:
        if not result.rows:
            if result.columns:
                yield _NO_RESULTS
            else:
                yield result.status_message or f"{result.row_count} row(s) affected"
            return

        table = Table(show_edge=True, pad_edge=True)
        for name in result.columns:
            table.add_column(name, no_wrap=True)

        for row in result.rows:
            table.add_row(*(_cell(row[name], self.width) for name in result.columns))

        buf = StringIO()
        term_width = shutil.get_terminal_size((120, 24)).columns
        console = Console(file=buf, force_terminal=True, width=term_width)
        console.print(table)
        yield buf.getvalue().rstrip("\n")


registry.register("table", TableFormatter)
