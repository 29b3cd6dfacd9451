"""pgconsole - PostgreSQL administration core with schema, RLS and tunnel support."""

from pgconsole.__about__ import __version__

__all__ = ["__version__"]
