"""Tests for output format selection and TTY detection."""

import json

import pytest

from conftest import make_result
from pgconsole.cli.output import (
    OutputFormat,
    get_formatter,
    resolve_format,
    write_json,
    write_output,
)
from pgconsole.formatters.json import JSONFormatter
from pgconsole.formatters.table import TableFormatter


@pytest.mark.unit
def test_output_format_enum_values():
    assert OutputFormat.TABLE.value == "table"
    assert OutputFormat.JSON.value == "json"
    assert len(OutputFormat) == 2


@pytest.mark.unit
def test_resolve_format_explicit():
    assert resolve_format("json") == "json"
    assert resolve_format("table") == "table"


@pytest.mark.unit
def test_resolve_format_tty_defaults_to_table(monkeypatch):
    monkeypatch.setattr("pgconsole.cli.output.detect_tty", lambda: True)
    assert resolve_format(None) == "table"


@pytest.mark.unit
def test_resolve_format_non_tty_defaults_to_json(monkeypatch):
    monkeypatch.setattr("pgconsole.cli.output.detect_tty", lambda: False)
    assert resolve_format(None) == "json"


@pytest.mark.unit
def test_get_formatter_table_width():
    fmt = get_formatter("table", width=72)
    assert isinstance(fmt, TableFormatter)
    assert fmt.width == 72


@pytest.mark.unit
def test_get_formatter_json_compact():
    fmt = get_formatter("json", compact=True)
    assert isinstance(fmt, JSONFormatter)
    assert fmt.compact is True


@pytest.mark.unit
def test_write_output_streams_lines(capsys):
    write_output(JSONFormatter(compact=True), make_result([{"id": 1}]))
    assert capsys.readouterr().out == '[{"id": 1}]\n'


@pytest.mark.unit
def test_write_json(capsys):
    write_json({"ok": True}, compact=False)
    assert json.loads(capsys.readouterr().out) == {"ok": True}
