"""Tests for row level security commands."""

import json
from unittest.mock import patch

import pytest

from pgconsole.core.models import (
    OperationResult,
    PolicyCommand,
    PolicyListing,
    RLSPolicy,
    RlsTableState,
)

LISTING = PolicyListing(
    policies=[
        RLSPolicy(
            schema_name="public",
            table="docs",
            name="owner_only",
            command=PolicyCommand.SELECT,
            using_expression="(owner = CURRENT_USER)",
            roles=["app_user"],
        )
    ],
    tables_with_rls=[RlsTableState(table="docs", rls_enabled=True, rls_forced=False)],
)


@pytest.mark.unit
class TestPolicyList:
    def test_json(self, pg_cli):
        with patch("pgconsole.core.operations.list_policies", return_value=LISTING) as op:
            result = pg_cli("policy", "list", "docs")
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["policies"][0]["name"] == "owner_only"
        assert data["tables_with_rls"][0]["rls_enabled"] is True
        assert op.call_args.args[1] == "docs"

    def test_whole_schema(self, pg_cli):
        with patch("pgconsole.core.operations.list_policies", return_value=LISTING) as op:
            pg_cli("policy", "list")
        assert op.call_args.args[1] is None

    def test_table_output(self, pg_cli):
        with patch("pgconsole.core.operations.list_policies", return_value=LISTING):
            result = pg_cli("--format", "table", "policy", "list")
        assert result.exit_code == 0
        assert "owner_only" in result.stdout
        assert "PERMISSIVE" in result.stdout


@pytest.mark.unit
class TestPolicyWrites:
    def test_upsert(self, pg_cli):
        ack = OperationResult(message="Policy 'p' applied to 'docs'")
        with patch("pgconsole.core.operations.upsert_policy", return_value=ack) as op:
            result = pg_cli(
                "policy", "upsert", "docs", "p",
                "--command", "UPDATE",
                "--role", "app_user",
                "--role", "auditor",
                "--using", "owner = current_user",
                "--with-check", "owner = current_user",
                "--restrictive",
            )
        assert result.exit_code == 0
        policy = op.call_args.args[2]
        assert policy.name == "p"
        assert policy.command is PolicyCommand.UPDATE
        assert policy.roles == ["app_user", "auditor"]
        assert policy.permissive is False

    def test_upsert_defaults(self, pg_cli):
        ack = OperationResult(message="ok")
        with patch("pgconsole.core.operations.upsert_policy", return_value=ack) as op:
            pg_cli("policy", "upsert", "docs", "p", "--using", "true")
        policy = op.call_args.args[2]
        assert policy.command is PolicyCommand.ALL
        assert policy.roles == []
        assert policy.permissive is True

    def test_delete(self, pg_cli):
        ack = OperationResult(message="Policy 'p' removed from 'docs'")
        with patch("pgconsole.core.operations.delete_policy", return_value=ack) as op:
            result = pg_cli("policy", "delete", "docs", "p")
        assert result.exit_code == 0
        assert op.call_args.args[1:3] == ("docs", "p")

    @pytest.mark.parametrize(
        ("flags", "enabled", "forced"),
        [
            ([], True, None),
            (["--disable"], False, None),
            (["--enable", "--force"], True, True),
            (["--no-force"], True, False),
        ],
    )
    def test_rls_toggle(self, pg_cli, flags, enabled, forced):
        ack = OperationResult(message="ok")
        with patch(
            "pgconsole.core.operations.set_row_level_security", return_value=ack
        ) as op:
            result = pg_cli("policy", "rls", "docs", *flags)
        assert result.exit_code == 0
        assert op.call_args.args[2:4] == (enabled, forced)
