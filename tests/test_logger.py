"""Tests for logger.py -- setup_logging() and JsonFormatter.

Covers:
- CLI mode logging (stderr handler, optional file handler)
- Daemon mode logging (file handler only)
- Level resolution: debug flag, LOG_LEVEL, config level, per-mode default
- JSON formatter output
- Third-party logger silencing

Strategy: Mock logging.basicConfig to verify setup_logging passes correct args,
since pytest's log capture plugin interferes with actual basicConfig calls.
"""

import json
import logging
import sys
from unittest.mock import patch

from freesync.logger import JsonFormatter, setup_logging


def _close_file_handlers(handlers):
    for h in handlers:
        if isinstance(h, logging.FileHandler):
            h.close()


# ---------------------------------------------------------------------------
# setup_logging tests
# ---------------------------------------------------------------------------


class TestSetupLogging:
    """Tests for setup_logging()."""

    @patch("freesync.logger.logging.basicConfig")
    def test_cli_mode_logs_to_stderr(self, mock_basic):
        """CLI mode passes StreamHandler(stderr) to basicConfig."""
        setup_logging(mode="cli")

        mock_basic.assert_called_once()
        handlers = mock_basic.call_args[1]["handlers"]
        assert len(handlers) == 1
        assert isinstance(handlers[0], logging.StreamHandler)
        assert handlers[0].stream is sys.stderr

    @patch("freesync.logger.logging.basicConfig")
    def test_daemon_mode_logs_to_file_only(self, mock_basic, tmp_path):
        log_file = str(tmp_path / "watch.log")
        setup_logging(mode="daemon", log_file=log_file)

        handlers = mock_basic.call_args[1]["handlers"]
        assert len(handlers) == 1
        assert isinstance(handlers[0], logging.FileHandler)
        assert handlers[0].baseFilename == log_file
        _close_file_handlers(handlers)

    @patch("freesync.logger.logging.basicConfig")
    def test_daemon_mode_uses_log_file_env(
        self, mock_basic, tmp_path, monkeypatch
    ):
        log_file = str(tmp_path / "env.log")
        monkeypatch.setenv("LOG_FILE", log_file)
        setup_logging(mode="daemon")

        handlers = mock_basic.call_args[1]["handlers"]
        assert handlers[0].baseFilename == log_file
        _close_file_handlers(handlers)

    @patch("freesync.logger.logging.basicConfig")
    def test_cli_mode_with_log_file(self, mock_basic, tmp_path):
        """CLI mode with log_file creates both stderr and file handlers."""
        setup_logging(mode="cli", log_file=str(tmp_path / "cli.log"))

        handlers = mock_basic.call_args[1]["handlers"]
        file_handlers = [
            h for h in handlers if isinstance(h, logging.FileHandler)
        ]
        assert len(handlers) == 2
        assert len(file_handlers) == 1
        _close_file_handlers(handlers)

    @patch("freesync.logger.logging.basicConfig")
    def test_debug_overrides_level(self, mock_basic, monkeypatch):
        """debug=True beats both LOG_LEVEL and the config level."""
        monkeypatch.setenv("LOG_LEVEL", "ERROR")
        setup_logging(mode="cli", debug=True, level="WARNING")

        assert mock_basic.call_args[1]["level"] == logging.DEBUG

    @patch("freesync.logger.logging.basicConfig")
    def test_env_log_level_beats_config_level(self, mock_basic, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "ERROR")
        setup_logging(mode="cli", level="DEBUG")

        assert mock_basic.call_args[1]["level"] == logging.ERROR

    @patch("freesync.logger.logging.basicConfig")
    def test_config_level_used_when_env_unset(self, mock_basic):
        setup_logging(mode="cli", level="warning")

        assert mock_basic.call_args[1]["level"] == logging.WARNING

    @patch("freesync.logger.logging.basicConfig")
    def test_cli_default_level_is_info(self, mock_basic):
        setup_logging(mode="cli")

        assert mock_basic.call_args[1]["level"] == logging.INFO

    @patch("freesync.logger.logging.basicConfig")
    def test_daemon_default_level_is_warning(self, mock_basic, tmp_path):
        setup_logging(mode="daemon", log_file=str(tmp_path / "d.log"))

        kwargs = mock_basic.call_args[1]
        assert kwargs["level"] == logging.WARNING
        _close_file_handlers(kwargs["handlers"])

    @patch("freesync.logger.logging.basicConfig")
    def test_unknown_level_falls_back_to_info(self, mock_basic, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "CHATTY")
        setup_logging(mode="cli")

        assert mock_basic.call_args[1]["level"] == logging.INFO

    @patch("freesync.logger.logging.basicConfig")
    def test_json_format_uses_json_formatter(self, mock_basic):
        setup_logging(mode="cli", debug_format="json")

        handlers = mock_basic.call_args[1]["handlers"]
        assert isinstance(handlers[0].formatter, JsonFormatter)

    @patch("freesync.logger.logging.basicConfig")
    def test_third_party_silenced(self, _mock_basic):
        """Non-DEBUG mode silences the AWS SDK and watcher loggers."""
        setup_logging(mode="cli")

        assert logging.getLogger("botocore").level == logging.WARNING
        assert logging.getLogger("urllib3").level == logging.WARNING
        assert logging.getLogger("watchfiles").level == logging.WARNING


# ---------------------------------------------------------------------------
# JsonFormatter tests
# ---------------------------------------------------------------------------


class TestJsonFormatter:
    """Tests for JsonFormatter."""

    def _record(self, msg, args=(), exc_info=None, level=logging.INFO):
        return logging.LogRecord(
            name="freesync.sync.engine",
            level=level,
            pathname="engine.py",
            lineno=1,
            msg=msg,
            args=args,
            exc_info=exc_info,
        )

    def test_basic_output(self):
        """Formatted output is valid JSON with required keys."""
        formatter = JsonFormatter(datefmt="%Y-%m-%d %H:%M:%S")
        data = json.loads(
            formatter.format(self._record("Uploaded %s", ("a.md",)))
        )

        assert "ts" in data
        assert data["level"] == "INFO"
        assert data["logger"] == "freesync.sync.engine"
        assert data["msg"] == "Uploaded a.md"
        assert "exc" not in data

    def test_includes_exception(self):
        formatter = JsonFormatter()
        try:
            raise ValueError("test error")
        except ValueError:
            exc_info = sys.exc_info()

        output = formatter.format(
            self._record("failed", exc_info=exc_info, level=logging.ERROR)
        )
        data = json.loads(output)

        assert "ValueError" in data["exc"]
        assert "\n" not in output
