"""Tests for exit code mapping through run()."""

from unittest.mock import patch

import pytest

from pgconsole.cli.main import run
from pgconsole.core.exceptions import (
    ConfigError,
    ConnectionRefused,
    MissingParameter,
    NotFound,
    QueryTimeout,
    TunnelAuthError,
)
from pgconsole.core.exit_codes import ExitCode


@pytest.mark.unit
@pytest.mark.parametrize(
    ("error", "code"),
    [
        (ConnectionRefused("refused"), ExitCode.NETWORK_ERROR),
        (TunnelAuthError("denied"), ExitCode.TUNNEL_ERROR),
        (MissingParameter("missing"), ExitCode.INPUT_ERROR),
        (ConfigError("bad config"), ExitCode.CONFIG_ERROR),
        (QueryTimeout("slow"), ExitCode.TIMEOUT),
        (NotFound("gone"), ExitCode.NOT_FOUND),
    ],
)
def test_run_maps_error_to_exit_code(error, code):
    with patch("pgconsole.cli.main.app", side_effect=error):
        with pytest.raises(SystemExit) as exc_info:
            run()
    assert exc_info.value.code == code


@pytest.mark.unit
def test_run_prints_error_message(capsys):
    with patch("pgconsole.cli.main.app", side_effect=NotFound("Table 'public.x' not found")):
        with pytest.raises(SystemExit):
            run()
    assert "Error: Table 'public.x' not found" in capsys.readouterr().err


@pytest.mark.unit
def test_run_unexpected_error_exits_one():
    with patch("pgconsole.cli.main.app", side_effect=RuntimeError("boom")):
        with pytest.raises(SystemExit) as exc_info:
            run()
    assert exc_info.value.code == 1


@pytest.mark.unit
def test_run_keyboard_interrupt():
    with patch("pgconsole.cli.main.app", side_effect=KeyboardInterrupt):
        with pytest.raises(SystemExit) as exc_info:
            run()
    assert exc_info.value.code == 130


@pytest.mark.unit
def test_run_passes_through_system_exit():
    with patch("pgconsole.cli.main.app", side_effect=SystemExit(0)):
        with pytest.raises(SystemExit) as exc_info:
            run()
    assert exc_info.value.code == 0
