"""Resolve raw SQL text for the query command.

Sources, highest priority first:
1. Inline (-e flag)
2. File path
3. stdin
"""

from __future__ import annotations

import sys
from pathlib import Path

from pgconsole.core.exceptions import MissingParameter


def resolve_query_source(
    inline: str | None,
    file_path: str | None,
) -> str:
    """Return SQL from inline text, a file, or piped stdin.

    Raises MissingParameter when no source is available or the text is blank.
    """
    if inline is not None:
        sql = inline
    elif file_path is not None:
        p = Path(file_path)
        if not p.exists():
            msg = (
                f"Query file not found: {file_path}\n"
                "Use -e for inline queries or pipe query via stdin."
            )
            raise MissingParameter(msg)
        sql = p.read_text()
    elif not sys.stdin.isatty():
        sql = sys.stdin.read()
    else:
        msg = "No query provided. Use -e, file path, or pipe to stdin."
        raise MissingParameter(msg)

    if not sql.strip():
        msg = "Query text is empty"
        raise MissingParameter(msg)
    return sql
