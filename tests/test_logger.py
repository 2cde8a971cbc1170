"""Tests for logger.py: setup_logging() and JsonFormatter.

Covers:
- stderr handler (stdout stays free for reports)
- Optional log file handler
- Debug level override
- Environment variable LOG_LEVEL handling
- JSON formatter output
- Third-party logger silencing

Strategy: Mock logging.basicConfig to verify setup_logging passes correct args,
since pytest's log capture plugin interferes with actual basicConfig calls.
"""

import json
import logging
import re
import sys
from unittest.mock import patch

from docmirror.logger import JsonFormatter, setup_logging


# ---------------------------------------------------------------------------
# setup_logging tests
# ---------------------------------------------------------------------------


class TestSetupLogging:
    """Tests for setup_logging()."""

    @patch("docmirror.logger.logging.basicConfig")
    def test_logs_to_stderr(self, mock_basic):
        """A StreamHandler(stderr) is always passed to basicConfig."""
        setup_logging()

        mock_basic.assert_called_once()
        kwargs = mock_basic.call_args[1]
        handlers = kwargs["handlers"]
        assert len(handlers) == 1
        assert isinstance(handlers[0], logging.StreamHandler)
        assert handlers[0].stream is sys.stderr
        assert kwargs["force"] is True

    @patch("docmirror.logger.logging.basicConfig")
    def test_log_file_adds_file_handler(self, mock_basic, tmp_path):
        """log_file adds a FileHandler next to the stderr handler."""
        log_file = str(tmp_path / "docmirror.log")
        setup_logging(log_file=log_file)

        handlers = mock_basic.call_args[1]["handlers"]
        file_handlers = [h for h in handlers if isinstance(h, logging.FileHandler)]
        assert len(handlers) == 2
        assert len(file_handlers) == 1
        assert file_handlers[0].baseFilename == log_file
        for h in file_handlers:
            h.close()

    @patch("docmirror.logger.logging.basicConfig")
    def test_debug_overrides_level(self, mock_basic):
        """debug=True passes DEBUG level to basicConfig."""
        setup_logging(debug=True)

        kwargs = mock_basic.call_args[1]
        assert kwargs["level"] == logging.DEBUG

    @patch("docmirror.logger.logging.basicConfig")
    def test_env_log_level_honored(self, mock_basic, monkeypatch):
        """LOG_LEVEL env var is reflected in basicConfig level."""
        monkeypatch.setenv("LOG_LEVEL", "ERROR")
        setup_logging()

        kwargs = mock_basic.call_args[1]
        assert kwargs["level"] == logging.ERROR

    @patch("docmirror.logger.logging.basicConfig")
    def test_debug_beats_env(self, mock_basic, monkeypatch):
        """debug=True overrides LOG_LEVEL env var."""
        monkeypatch.setenv("LOG_LEVEL", "ERROR")
        setup_logging(debug=True)

        kwargs = mock_basic.call_args[1]
        assert kwargs["level"] == logging.DEBUG

    @patch("docmirror.logger.logging.basicConfig")
    def test_unknown_env_level_falls_back_to_info(self, mock_basic, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "CHATTY")
        setup_logging()

        assert mock_basic.call_args[1]["level"] == logging.INFO

    @patch("docmirror.logger.logging.basicConfig")
    def test_default_level_is_info(self, mock_basic, monkeypatch):
        """Default level is INFO."""
        monkeypatch.delenv("LOG_LEVEL", raising=False)
        setup_logging()

        kwargs = mock_basic.call_args[1]
        assert kwargs["level"] == logging.INFO

    @patch("docmirror.logger.logging.basicConfig")
    def test_json_format_uses_json_formatter(self, mock_basic):
        """debug_format='json' sets JsonFormatter on handlers."""
        setup_logging(debug_format="json")

        handlers = mock_basic.call_args[1]["handlers"]
        assert all(isinstance(h.formatter, JsonFormatter) for h in handlers)

    @patch("docmirror.logger.logging.basicConfig")
    def test_third_party_silenced(self, _mock_basic, monkeypatch):
        """Non-DEBUG mode silences urllib3/requests loggers."""
        monkeypatch.delenv("LOG_LEVEL", raising=False)
        setup_logging()

        assert logging.getLogger("urllib3").level == logging.WARNING
        assert logging.getLogger("requests").level == logging.WARNING


# ---------------------------------------------------------------------------
# JsonFormatter tests
# ---------------------------------------------------------------------------


def _record(msg, args=(), level=logging.INFO, exc_info=None, name="docmirror.sync.engine"):
    return logging.LogRecord(
        name=name,
        level=level,
        pathname="engine.py",
        lineno=42,
        msg=msg,
        args=args,
        exc_info=exc_info,
    )


class TestJsonFormatter:
    """One JSON object per record with ts/level/logger/msg (+exc)."""

    def test_fields(self):
        formatter = JsonFormatter(datefmt="%Y-%m-%d %H:%M:%S")
        data = json.loads(formatter.format(_record("(%d/%d) Processing %s", (1, 3, "Intro"))))

        assert data["level"] == "INFO"
        assert data["logger"] == "docmirror.sync.engine"
        assert data["msg"] == "(1/3) Processing Intro"
        assert re.match(r"^\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}$", data["ts"])
        assert "exc" not in data

    def test_exception_included_on_one_line(self):
        formatter = JsonFormatter()
        try:
            raise RuntimeError("page vanished")
        except RuntimeError:
            exc_info = sys.exc_info()

        output = formatter.format(
            _record("Failed to sync %s", ("docs/a.md",), logging.ERROR, exc_info)
        )

        assert "\n" not in output
        data = json.loads(output)
        assert data["level"] == "ERROR"
        assert "RuntimeError: page vanished" in data["exc"]
