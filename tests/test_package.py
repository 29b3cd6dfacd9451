"""Tests for package structure and imports."""

import pytest


@pytest.mark.unit
def test_package_imports():
    import pgconsole

    assert pgconsole is not None


@pytest.mark.unit
def test_version_accessible():
    from pgconsole import __version__

    assert isinstance(__version__, str)
    assert len(__version__) > 0


@pytest.mark.unit
def test_version_format():
    """Version follows semver format."""
    from pgconsole import __version__

    parts = __version__.split(".")
    assert len(parts) == 3
    for part in parts:
        assert part.isdigit()


@pytest.mark.unit
def test_version_value():
    from pgconsole import __version__

    assert __version__ == "0.1.0"
