"""Output formatters for pgconsole."""

from pgconsole.formatters.base import Formatter, FormatterRegistry, registry
from pgconsole.formatters.json import JSONFormatter
from pgconsole.formatters.table import TableFormatter
