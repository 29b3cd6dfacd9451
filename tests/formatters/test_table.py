"""Tests for TableFormatter."""

import pytest

from conftest import make_result
from pgconsole.formatters.base import Formatter
from pgconsole.formatters.table import TableFormatter

ROWS = [{"id": 1, "name": "alice"}, {"id": 2, "name": "bob"}]


@pytest.mark.unit
def test_table_formatter_implements_protocol():
    assert isinstance(TableFormatter(), Formatter)


@pytest.mark.unit
def test_table_formatter_outputs_headers_and_values():
    output = "\n".join(TableFormatter().format(make_result(ROWS)))
    for text in ("id", "name", "alice", "bob"):
        assert text in output


@pytest.mark.unit
def test_table_formatter_empty_result_shows_no_results():
    lines = list(TableFormatter().format(make_result(columns=["id", "name"])))
    assert lines == ["No results"]


@pytest.mark.unit
def test_table_formatter_statement_without_rows():
    result = make_result(row_count=3, status_message="UPDATE 3")
    assert list(TableFormatter().format(result)) == ["UPDATE 3"]


@pytest.mark.unit
def test_table_formatter_row_count_fallback():
    result = make_result(row_count=2, status_message="")
    assert list(TableFormatter().format(result)) == ["2 row(s) affected"]


@pytest.mark.unit
def test_table_formatter_truncates_wide_values():
    long_val = "x" * 60
    output = "\n".join(TableFormatter(width=20).format(make_result([{"val": long_val}])))
    assert long_val not in output
    assert "…" in output


@pytest.mark.unit
def test_table_formatter_renders_null():
    output = "\n".join(TableFormatter().format(make_result([{"id": 1, "name": None}])))
    assert "NULL" in output
    assert "None" not in output
