"""Tests for pydantic data models."""

import pytest
from pydantic import ValidationError

from pgconsole.core.models import (
    ColumnDescriptor,
    ConnectionSpec,
    PageRequest,
    Pagination,
    QueryResult,
    TunnelSpec,
)


@pytest.mark.unit
class TestConnectionSpec:
    def test_defaults(self):
        spec = ConnectionSpec(host="h", username="u", database="d")
        assert spec.port == 5432
        assert spec.sslmode == "prefer"
        assert spec.tunnel is None
        assert spec.password_value() is None

    def test_password_hidden_from_repr_and_dump(self, spec):
        assert "s3cret-pw" not in repr(spec)
        assert "s3cret-pw" not in str(spec.model_dump())
        assert spec.password_value() == "s3cret-pw"

    def test_safe_description(self, spec):
        assert spec.safe_description() == "app@db.internal:5432/appdb"

    def test_safe_description_with_tunnel(self, spec, tunnel_spec):
        tunneled = spec.model_copy(update={"tunnel": tunnel_spec})
        desc = tunneled.safe_description()
        assert desc.endswith("via ssh ops@bastion.example.com:22")
        assert "ssh-pw" not in desc

    def test_frozen(self, spec):
        with pytest.raises(ValidationError):
            spec.host = "other"


@pytest.mark.unit
class TestTunnelSpec:
    def test_uses_key(self):
        assert TunnelSpec(host="h", username="u", private_key="KEY").uses_key
        assert not TunnelSpec(host="h", username="u", password="pw").uses_key

    def test_empty_key_is_not_a_key(self):
        assert not TunnelSpec(host="h", username="u", private_key="").uses_key


@pytest.mark.unit
class TestColumnDescriptor:
    def test_serial_is_auto_generated(self):
        col = ColumnDescriptor(
            name="id",
            data_type="integer",
            nullable=False,
            default_expression="nextval('users_id_seq'::regclass)",
        )
        assert col.is_auto_generated

    def test_identity_is_auto_generated(self):
        col = ColumnDescriptor(name="id", data_type="bigint", nullable=False, is_identity=True)
        assert col.is_auto_generated

    def test_plain_default_is_not(self):
        col = ColumnDescriptor(
            name="created", data_type="timestamp", nullable=True, default_expression="now()"
        )
        assert not col.is_auto_generated


@pytest.mark.unit
class TestQueryResult:
    def test_rows_must_match_columns(self):
        with pytest.raises(ValidationError, match="do not match columns"):
            QueryResult(columns=["a", "b"], rows=[{"a": 1}], row_count=1)

    def test_column_order_enforced(self):
        with pytest.raises(ValidationError):
            QueryResult(columns=["a", "b"], rows=[{"b": 2, "a": 1}], row_count=1)

    def test_valid(self):
        result = QueryResult(columns=["a"], rows=[{"a": 1}, {"a": None}], row_count=2)
        assert result.status_message == ""


@pytest.mark.unit
class TestPaging:
    def test_offset(self):
        assert PageRequest(page=3, page_size=10).offset == 20

    def test_page_must_be_positive(self):
        with pytest.raises(ValidationError):
            PageRequest(page=0)

    def test_page_size_must_be_positive(self):
        with pytest.raises(ValidationError):
            PageRequest(page_size=0)

    def test_pagination_rounds_up(self):
        p = Pagination.compute(3, 10, 25)
        assert p.total_pages == 3
        assert p.total_rows == 25

    def test_pagination_empty_table(self):
        assert Pagination.compute(1, 10, 0).total_pages == 0

    def test_pagination_exact_multiple(self):
        assert Pagination.compute(1, 5, 20).total_pages == 4
