"""Tests for logging setup."""

import pytest

from gridstream.core.logging import get_logger, setup_logging


@pytest.mark.unit
class TestSetupLogging:
    def test_setup_default(self):
        setup_logging()

    def test_setup_verbose(self):
        setup_logging(verbose=True)

    def test_explicit_level(self):
        setup_logging(level="warning")

    def test_unknown_level(self):
        with pytest.raises(ValueError, match="Unknown log level"):
            setup_logging(level="chatty")


@pytest.mark.unit
class TestLogOutput:
    def test_log_to_stderr(self, capsys):
        """Log output goes to stderr so stdout stays clean for data."""
        setup_logging(verbose=True)
        log = get_logger("adapter", tab_id="t1")
        log.info("batch appended", rows=10)

        captured = capsys.readouterr()
        assert captured.out == ""
        assert "batch appended" in captured.err
        assert "t1" in captured.err

    def test_debug_hidden_by_default(self, capsys):
        setup_logging()
        get_logger("engine").debug("opening stream")

        captured = capsys.readouterr()
        assert "opening stream" not in captured.err
