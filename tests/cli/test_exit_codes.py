"""Tests for exit code mapping through run()."""

from unittest.mock import patch

import pytest

from gridstream.cli.main import run
from gridstream.core.exceptions import (
    CancelledOperation,
    ConfigError,
    DataSourceError,
    InputError,
    NetworkError,
)
from gridstream.core.exit_codes import ExitCode


def _run_with(side_effect):
    with patch("gridstream.cli.main.app", side_effect=side_effect):
        with pytest.raises(SystemExit) as exc_info:
            run()
    return exc_info.value.code


@pytest.mark.unit
@pytest.mark.parametrize(
    ("error", "code"),
    [
        (NetworkError("fail"), ExitCode.NETWORK_ERROR),
        (InputError("bad input"), ExitCode.INPUT_ERROR),
        (ConfigError("bad config"), ExitCode.CONFIG_ERROR),
        (DataSourceError(["Data source has been moved or deleted."]), ExitCode.DATA_SOURCE_ERROR),
        (CancelledOperation("stopped", is_user=True), ExitCode.CANCELLED),
    ],
)
def test_run_maps_gridstream_errors(error, code):
    assert _run_with(error) == code


@pytest.mark.unit
def test_run_keyboard_interrupt():
    assert _run_with(KeyboardInterrupt()) == ExitCode.CANCELLED


@pytest.mark.unit
def test_run_unexpected_error_is_general(capsys):
    assert _run_with(RuntimeError("kaboom")) == ExitCode.GENERAL_ERROR
    assert "kaboom" in capsys.readouterr().err


@pytest.mark.unit
def test_run_passes_system_exit_through():
    assert _run_with(SystemExit(0)) == 0
