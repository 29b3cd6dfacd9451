"""Tests for row browsing and mutation commands."""

import json
from unittest.mock import patch

import pytest

from conftest import make_result
from pgconsole.core.exceptions import InvalidParameter, MissingParameter
from pgconsole.core.models import Pagination, RowPage

PAGE = RowPage(
    columns=["id", "name"],
    rows=[{"id": 11, "name": "k"}, {"id": 12, "name": "l"}],
    pagination=Pagination.compute(2, 10, 25),
)


@pytest.mark.unit
class TestRows:
    def test_json_page(self, pg_cli):
        with patch("pgconsole.core.operations.fetch_rows", return_value=PAGE) as op:
            result = pg_cli(
                "rows", "items", "--page", "2", "--order-by", "id", "--direction", "DESC",
                "--where", "id > 10",
            )
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["pagination"] == {
            "page": 2,
            "page_size": 10,
            "total_rows": 25,
            "total_pages": 3,
        }
        request = op.call_args.args[2]
        assert request.page == 2
        assert request.order_by == "id"
        assert request.order_direction == "DESC"
        assert request.filter == "id > 10"

    def test_page_must_be_positive(self, pg_cli):
        result = pg_cli("rows", "items", "--page", "0")
        assert result.exit_code == 2


@pytest.mark.unit
class TestInsert:
    def test_insert_prints_stored_row(self, pg_cli):
        stored = make_result([{"id": 5, "name": "x"}], status_message="INSERT 0 1")
        with patch("pgconsole.core.operations.insert_row", return_value=stored) as op:
            result = pg_cli("insert", "items", '{"id": null, "name": "x"}')
        assert result.exit_code == 0
        assert json.loads(result.stdout) == [{"id": 5, "name": "x"}]
        assert op.call_args.args[2] == {"id": None, "name": "x"}

    @pytest.mark.parametrize("payload", ["not json", "[1, 2]"])
    def test_insert_rejects_non_object(self, pg_cli, payload):
        with patch("pgconsole.core.operations.insert_row") as op:
            result = pg_cli("insert", "items", payload)
        assert isinstance(result.exception, InvalidParameter)
        op.assert_not_called()


@pytest.mark.unit
class TestUpdateDelete:
    def test_update_where(self, pg_cli):
        changed = make_result([{"id": 1, "name": "y"}])
        with patch("pgconsole.core.operations.update_rows", return_value=changed) as op:
            result = pg_cli("update", "items", '{"name": "y"}', "--where", "id = 1")
        assert result.exit_code == 0
        assert op.call_args.args[2:4] == ({"name": "y"}, "id = 1")

    def test_update_by_key(self, pg_cli):
        changed = make_result([{"id": 1, "name": "y"}])
        with patch(
            "pgconsole.core.operations.update_row_by_key", return_value=changed
        ) as op:
            result = pg_cli("update", "items", '{"name": "y"}', "--key", '{"id": 1}')
        assert result.exit_code == 0
        assert op.call_args.args[3] == {"id": 1}

    def test_update_needs_target(self, pg_cli):
        result = pg_cli("update", "items", '{"name": "y"}')
        assert isinstance(result.exception, MissingParameter)

    def test_delete_rejects_both_targets(self, pg_cli):
        result = pg_cli("delete", "items", "--where", "id = 1", "--key", '{"id": 1}')
        assert isinstance(result.exception, InvalidParameter)

    def test_delete_by_key(self, pg_cli):
        gone = make_result([{"id": 3}])
        with patch("pgconsole.core.operations.delete_row_by_key", return_value=gone) as op:
            result = pg_cli("delete", "app.items", "--key", '{"id": 3}')
        assert result.exit_code == 0
        assert op.call_args.kwargs["schema"] == "app"
