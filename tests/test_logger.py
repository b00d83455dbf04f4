"""Tests for logger module."""

import logging
import sys
from unittest.mock import patch

from casekeeper.util.logger import (
    DATE_FORMAT,
    LOG_FORMAT,
    ColorFormatter,
    get_log_filepath,
    get_logger,
    handle_exception,
    setup_logger,
    should_use_color,
)


def make_record(level, msg):
    return logging.LogRecord(
        name="test", level=level, pathname="test.py", lineno=10,
        msg=msg, args=(), exc_info=None, func="test_func",
    )


class TestShouldUseColor:
    """Tests for should_use_color function."""

    @patch('sys.stderr.isatty')
    def test_should_use_color_tty(self, mock_isatty):
        mock_isatty.return_value = True
        assert should_use_color() is True

    @patch('sys.stderr.isatty')
    def test_should_use_color_exception(self, mock_isatty):
        """Test color returns False on exception."""
        mock_isatty.side_effect = Exception("Error")
        assert should_use_color() is False


class TestColorFormatter:
    """Tests for ColorFormatter class."""

    def test_levels_are_wrapped_in_their_colour(self):
        formatter = ColorFormatter(LOG_FORMAT, datefmt=DATE_FORMAT)

        assert formatter.format(make_record(logging.DEBUG, "dbg")).startswith("\033[36m")
        assert formatter.format(make_record(logging.ERROR, "err")).startswith("\033[31m")
        assert formatter.format(make_record(logging.ERROR, "err")).endswith("\033[0m")

    def test_unknown_level_is_not_coloured(self):
        formatter = ColorFormatter("%(message)s")

        assert formatter.format(make_record(25, "custom")) == "custom"


class TestSetupLogger:
    """Tests for setup_logger function."""

    def test_setup_logger_creates_logger(self):
        logger = setup_logger("casekeeper_test_logger_1")

        assert logger.name == "casekeeper_test_logger_1"
        assert logger.level == logging.DEBUG
        assert logger.propagate is False

    def test_setup_logger_does_not_stack_handlers(self):
        logger1 = setup_logger("casekeeper_test_logger_2")
        handler_count = len(logger1.handlers)
        logger2 = get_logger("casekeeper_test_logger_2")

        assert logger1 is logger2
        assert len(logger2.handlers) == handler_count == 2

    def test_session_log_file_is_shared(self):
        assert get_log_filepath() == get_log_filepath()
        assert get_log_filepath().suffix == ".log"


class TestHandleException:
    """Tests for the excepthook replacement."""

    def test_errors_are_logged(self):
        with patch.object(logging.Logger, "error") as mock_error:
            handle_exception(ValueError, ValueError("boom"), None)

        mock_error.assert_called_once()
        assert mock_error.call_args.args[0] == "Uncaught exception"

    def test_keyboard_interrupt_uses_default_hook(self):
        with patch.object(sys, "__excepthook__") as default_hook:
            handle_exception(KeyboardInterrupt, KeyboardInterrupt(), None)

        default_hook.assert_called_once()
