"""Identifier quoting for catalog names interpolated into SQL.

Table, column, role and policy names are the only caller text that is
spliced into statements; values always go through parameter binding.
"""

from __future__ import annotations

from pgconsole.core.exceptions import InvalidIdentifier

# NAMEDATALEN - 1; longer names are silently truncated by the server.
MAX_IDENTIFIER_BYTES = 63

_QUOTE = '"'


def validate_identifier(name: object) -> str:
    """Return name unchanged if it can be quoted safely, else raise."""
    if not isinstance(name, str) or name == "":
        msg = "Identifier must be a non-empty string"
        raise InvalidIdentifier(msg)
    if "\x00" in name:
        msg = "Identifier must not contain NUL characters"
        raise InvalidIdentifier(msg)
    if len(name.encode("utf-8")) > MAX_IDENTIFIER_BYTES:
        msg = (
            f"Identifier '{name[:20]}...' exceeds {MAX_IDENTIFIER_BYTES} bytes"
        )
        raise InvalidIdentifier(msg)
    return name


def quote_identifier(name: object) -> str:
    """Wrap a catalog name in double quotes, doubling embedded quotes."""
    valid = validate_identifier(name)
    return _QUOTE + valid.replace(_QUOTE, _QUOTE * 2) + _QUOTE


def unquote_identifier(quoted: str) -> str:
    """Inverse of quote_identifier, following the server's rules."""
    if len(quoted) < 2 or not (quoted.startswith(_QUOTE) and quoted.endswith(_QUOTE)):
        msg = f"Not a quoted identifier: {quoted!r}"
        raise InvalidIdentifier(msg)
    inner = quoted[1:-1]
    if inner.replace(_QUOTE * 2, "").count(_QUOTE):
        msg = f"Unescaped quote in identifier: {quoted!r}"
        raise InvalidIdentifier(msg)
    return inner.replace(_QUOTE * 2, _QUOTE)


def qualified_name(table: str, schema: str | None = None) -> str:
    if schema:
        return f"{quote_identifier(schema)}.{quote_identifier(table)}"
    return quote_identifier(table)


def escape_fragment(fragment: str) -> str:
    """Double % in raw SQL text so psycopg's %s parser keeps it literal."""
    return fragment.replace("%", "%%")
