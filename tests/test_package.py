"""Tests for package structure and imports."""

import pytest


@pytest.mark.unit
def test_package_imports():
    import gridstream

    assert gridstream is not None


@pytest.mark.unit
def test_version_format():
    from gridstream import __version__

    parts = __version__.split(".")
    assert len(parts) == 3
    for part in parts:
        assert part.isdigit()


@pytest.mark.unit
def test_version_matches_about():
    from gridstream import __version__
    from gridstream.__about__ import __version__ as about_version

    assert __version__ == about_version
