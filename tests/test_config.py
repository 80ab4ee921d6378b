import logging
from unittest.mock import MagicMock, patch

import pytest

from kvcache.config import DEFAULT_LOG_LEVEL, DEFAULT_URL, CacheConfig, setup_logging


class TestCacheConfig:
    """Test environment driven configuration."""

    def test_defaults(self):
        config = CacheConfig.from_env()

        assert config.url == DEFAULT_URL == "locmem://"
        assert config.log_level == DEFAULT_LOG_LEVEL
        assert config.plugins == []

    def test_environment_variables(self, monkeypatch):
        monkeypatch.setenv("KVCACHE_URL", "redis://localhost:6379/1?prefix=app")
        monkeypatch.setenv("KVCACHE_LOG_LEVEL", "debug")
        monkeypatch.setenv("KVCACHE_DRIVERS", "pkg.one, pkg.two,,")

        config = CacheConfig.from_env()

        assert config.url == "redis://localhost:6379/1?prefix=app"
        assert config.log_level == "DEBUG"
        assert config.plugins == ["pkg.one", "pkg.two"]

    def test_blank_values_use_defaults(self, monkeypatch):
        monkeypatch.setenv("KVCACHE_URL", "   ")
        monkeypatch.setenv("KVCACHE_LOG_LEVEL", "")

        config = CacheConfig.from_env()

        assert config.url == DEFAULT_URL
        assert config.log_level == DEFAULT_LOG_LEVEL


class TestSetupLogging:
    """Test setup_logging function."""

    def test_setup_logging_default_level(self):
        """Test setup_logging with default log level."""
        try:
            setup_logging()
        except Exception as e:
            pytest.fail(f"setup_logging() raised an exception: {e}")

    @patch("logging.basicConfig")
    @patch("logging.getLogger")
    def test_setup_logging_custom_level(self, mock_get_logger, mock_basic_config):
        setup_logging("DEBUG")

        call_args = mock_basic_config.call_args
        assert call_args[1]["level"] == logging.DEBUG
        assert call_args[1]["force"] is True

    @patch("logging.basicConfig")
    @patch("logging.getLogger")
    def test_setup_logging_from_environment(self, mock_get_logger, mock_basic_config, monkeypatch):
        monkeypatch.setenv("KVCACHE_LOG_LEVEL", "error")

        setup_logging()

        assert mock_basic_config.call_args[1]["level"] == logging.ERROR

    @patch("logging.basicConfig")
    @patch("logging.getLogger")
    def test_setup_logging_no_logging(self, mock_get_logger, mock_basic_config):
        """Test setup_logging with NO logging level."""
        setup_logging("NO")

        call_args = mock_basic_config.call_args
        # Should set level higher than CRITICAL to disable logging
        assert call_args[1]["level"] > logging.CRITICAL

    @patch("logging.basicConfig")
    @patch("logging.getLogger")
    def test_setup_logging_invalid_level(self, mock_get_logger, mock_basic_config):
        setup_logging("INVALID")

        # Should default to INFO for invalid levels
        assert mock_basic_config.call_args[1]["level"] == logging.INFO

    @patch("logging.basicConfig")
    @patch("logging.getLogger")
    def test_setup_logging_caps_redis_logger(self, mock_get_logger, mock_basic_config):
        """The redis client logger never goes below INFO."""
        loggers = {}

        def get_logger_side_effect(name):
            return loggers.setdefault(name, MagicMock())

        mock_get_logger.side_effect = get_logger_side_effect

        setup_logging("DEBUG")

        loggers["kvcache"].setLevel.assert_called_once_with(logging.DEBUG)
        loggers["redis"].setLevel.assert_called_once_with(logging.INFO)
