# tests/test_logging_config.py

"""Tests for the per-run logging configuration."""

import logging
import unittest

from price_aggregator.config.logging_config import (
    ROOT_LOGGER,
    setup_logging,
)


class TestLoggingConfig(unittest.TestCase):
    """Verify logging setup behaviour."""

    def setUp(self) -> None:
        """Clean up the project logger before each test."""
        logging.getLogger(ROOT_LOGGER).handlers.clear()

    def tearDown(self) -> None:
        for handler in logging.getLogger(ROOT_LOGGER).handlers:
            handler.close()
        logging.getLogger(ROOT_LOGGER).handlers.clear()

    def _console_handler(self) -> logging.Handler:
        return next(
            h
            for h in logging.getLogger(ROOT_LOGGER).handlers
            if not isinstance(h, logging.FileHandler)
        )

    def test_setup_creates_log_file(self) -> None:
        """setup_logging returns a path that exists on disk."""
        log_path = setup_logging()
        self.assertTrue(log_path.exists())

    def test_log_file_naming_convention(self) -> None:
        """Log file name matches run_YYYYMMDD_HHMMSS.log format."""
        log_path = setup_logging()
        self.assertRegex(log_path.name, r"^run_\d{8}_\d{6}\.log$")

    def test_file_and_console_levels(self) -> None:
        """File handler logs DEBUG, console only WARNING."""
        setup_logging()
        handlers = logging.getLogger(ROOT_LOGGER).handlers
        file_handlers = [
            h for h in handlers if isinstance(h, logging.FileHandler)
        ]
        stream_handlers = [
            h
            for h in handlers
            if isinstance(h, logging.StreamHandler)
            and not isinstance(h, logging.FileHandler)
        ]
        self.assertEqual(file_handlers[0].level, logging.DEBUG)
        self.assertEqual(stream_handlers[0].level, logging.WARNING)

    def test_console_level_is_configurable(self) -> None:
        """A verbose console level reaches the stderr handler."""
        setup_logging(console_level=logging.INFO)
        self.assertEqual(self._console_handler().level, logging.INFO)

    def test_repeated_call_reuses_file_and_updates_level(self) -> None:
        """A second call returns the same file and applies the new level."""
        first = setup_logging()
        second = setup_logging(console_level=logging.DEBUG)
        self.assertEqual(first, second)
        self.assertEqual(self._console_handler().level, logging.DEBUG)

    def test_repeated_calls_no_duplicate_handlers(self) -> None:
        """Calling setup_logging twice does not duplicate handlers."""
        setup_logging()
        count_before = len(logging.getLogger(ROOT_LOGGER).handlers)
        setup_logging()
        self.assertEqual(
            count_before, len(logging.getLogger(ROOT_LOGGER).handlers)
        )

    def test_child_loggers_propagate(self) -> None:
        """Module loggers reach the project file handler."""
        log_path = setup_logging()
        logging.getLogger("price_aggregator.retry").warning(
            "propagation check"
        )
        for handler in logging.getLogger(ROOT_LOGGER).handlers:
            handler.flush()
        self.assertIn(
            "propagation check",
            log_path.read_text(encoding="utf-8"),
        )


if __name__ == "__main__":
    unittest.main()
