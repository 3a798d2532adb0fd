"""Tests for logging configuration"""
import logging
import os
import tempfile
from pathlib import Path
from unittest.mock import Mock, patch

from logging_config import (
    setup_structured_logging,
    get_logger,
    log_scrape_completed,
    log_server_startup,
    log_error
)

from conftest import make_config


class TestLoggingConfig:
    """Test logging configuration and structured logging"""

    def teardown_method(self):
        logging.basicConfig(level=logging.WARNING, handlers=[logging.NullHandler()], force=True)

    def test_setup_structured_logging(self):
        """Test structured logging setup"""
        with tempfile.TemporaryDirectory() as tmp_dir:
            log_file = Path(tmp_dir) / "logs" / "test.log"
            config = make_config(log_file=log_file, log_level="DEBUG")

            setup_structured_logging(config)
            get_logger("test").info("Written to file", scrape=1)
            for handler in logging.getLogger().handlers:
                handler.flush()

            assert log_file.exists()
            assert "Written to file" in log_file.read_text()
            assert logging.getLogger("test").isEnabledFor(logging.DEBUG)

    def test_noisy_loggers_quieted(self):
        """Test that HTTP client loggers are raised to warning"""
        setup_structured_logging(make_config())

        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("httpcore").level == logging.WARNING
        assert logging.getLogger("uvicorn.access").level == logging.WARNING

    def test_development_vs_production_logging(self):
        """Test different logging configurations for development vs production"""
        config = make_config()

        with patch.dict(os.environ, {"ENVIRONMENT": "development"}):
            setup_structured_logging(config)
            get_logger("test").info("Test development log")

        with patch.dict(os.environ, {"ENVIRONMENT": "production"}):
            setup_structured_logging(config)
            get_logger("test").info("Test production log")

    def test_get_logger(self):
        """Test getting structured logger"""
        logger = get_logger("test_logger")

        assert logger is not None
        assert hasattr(logger, 'info')
        assert hasattr(logger, 'warning')
        assert hasattr(logger, 'error')


class TestLogHelpers:
    """Test the structured event helpers"""

    def test_log_scrape_completed(self):
        logger = Mock()

        log_scrape_completed(logger, samples_count=18, duration=0.12345, had_error=True)

        logger.info.assert_called_once_with(
            "Scrape finished",
            samples_count=18,
            duration_seconds=0.123,
            had_error=True,
            event_type="scrape_completed",
        )

    def test_log_server_startup(self):
        """Test structured server startup logging"""
        logger = Mock()
        config = make_config(metric_filters=["Datastore"])

        log_server_startup(logger, config)

        kwargs = logger.info.call_args.kwargs
        assert kwargs["event_type"] == "server_startup"
        assert kwargs["metric_filters"] == ["Datastore"]
        assert kwargs["listen_address"] == "0.0.0.0:9126"
        assert "api_key" not in kwargs

    def test_log_error(self):
        """Test structured error logging"""
        logger = Mock()

        log_error(logger, ValueError("Test error"), {"component": "test"})
        log_error(logger, ValueError("Test error"))

        first, second = logger.error.call_args_list
        assert first.kwargs["error_type"] == "ValueError"
        assert first.kwargs["context"] == {"component": "test"}
        assert second.kwargs["context"] == {}
