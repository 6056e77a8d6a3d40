"""Unit tests for logging setup."""

import json
import logging

import structlog

from mediameta.config import LoggingConfig
from mediameta.utils.logger import get_logger, setup_logging


class TestSetupLogging:
    """Test setup_logging function."""

    def test_json_file_output_with_context(self, tmp_path):
        """Test JSON events reach the log file with bound context merged in."""
        log_file = tmp_path / "logs" / "mediameta.log"
        setup_logging(LoggingConfig(format="json", level="info", output=str(log_file)))

        with structlog.contextvars.bound_contextvars(batch_index=3):
            get_logger("mediameta.tests.logger").info("Lookup started", source="tmdb")

        event = json.loads(log_file.read_text().strip().splitlines()[-1])
        assert event["event"] == "Lookup started"
        assert event["source"] == "tmdb"
        assert event["batch_index"] == 3
        assert event["level"] == "info"

    def test_quiet_http_loggers(self):
        """Test HTTP library loggers are raised to WARNING."""
        setup_logging(LoggingConfig(level="debug"))

        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("httpcore").level == logging.WARNING
        assert logging.getLogger().level == logging.DEBUG
