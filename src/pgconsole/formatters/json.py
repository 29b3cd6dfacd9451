"""JSON formatter for QueryResult output."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from pgconsole.formatters.base import registry

if TYPE_CHECKING:
    from collections.abc import Iterator

    from pgconsole.core.models import QueryResult


def _serialize_value(val: Any) -> Any:
    if isinstance(val, (int, float, str, bool, type(None))):
        return val
    if isinstance(val, (list, dict)):
        return val
    return str(val)


def dumps(data: Any, *, compact: bool = False) -> str:
    if compact:
        return json.dumps(data, default=str)
    return json.dumps(data, indent=2, default=str)


class JSONFormatter:
    def __init__(self, compact: bool = False) -> None:
        self.compact = compact

    def format(self, result: QueryResult) -> Iterator[str]:
        rows = [
            {name: _serialize_value(row[name]) for name in result.columns}
            for row in result.rows
        ]
        yield dumps(rows, compact=self.compact)


registry.register("json", JSONFormatter)
