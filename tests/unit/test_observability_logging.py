"""Unit tests for structured logging configuration."""

import logging
from unittest.mock import MagicMock, patch

import pytest

from uniclass_gateway.observability.logging import (
    StructuredLogger,
    clear_request_context,
    correlation_id_scope,
    get_logger,
    setup_logging,
    update_request_context,
)


@pytest.mark.unit
class TestStructuredLogger:
    """Tests for StructuredLogger class."""

    def test_init(self):
        """Test StructuredLogger initialization."""
        logger = StructuredLogger()
        assert logger._configured is False

    @patch("uniclass_gateway.observability.logging.logging.basicConfig")
    @patch("uniclass_gateway.observability.logging.structlog.configure")
    def test_setup_logging_json_format(self, mock_configure, mock_basic_config):
        """Test setup with JSON format."""
        logger = StructuredLogger()
        logger.setup_logging(json_format=True, log_level="INFO")

        assert logger._configured is True
        mock_basic_config.assert_called_once()
        assert mock_basic_config.call_args[1]["force"] is True

        processors = mock_configure.call_args[1]["processors"]
        assert type(processors[-1]).__name__ == "JSONRenderer"

    @patch("uniclass_gateway.observability.logging.logging.basicConfig")
    @patch("uniclass_gateway.observability.logging.structlog.configure")
    def test_setup_logging_console_format(self, mock_configure, mock_basic_config):
        """Test setup with console format."""
        logger = StructuredLogger()
        logger.setup_logging(json_format=False, log_level="DEBUG")

        processors = mock_configure.call_args[1]["processors"]
        assert type(processors[-1]).__name__ == "ConsoleRenderer"

    @patch("uniclass_gateway.observability.logging.logging.basicConfig")
    @patch("uniclass_gateway.observability.logging.structlog.configure")
    def test_setup_logging_with_extra_processors(self, mock_configure, mock_basic_config):
        """Test setup with extra processors."""
        logger = StructuredLogger()
        extra_processor = MagicMock()

        logger.setup_logging(json_format=True, extra_processors=[extra_processor])

        assert extra_processor in mock_configure.call_args[1]["processors"]

    @patch("uniclass_gateway.observability.logging.logging.basicConfig")
    @patch("uniclass_gateway.observability.logging.structlog.configure")
    def test_setup_logging_already_configured(self, mock_configure, mock_basic_config):
        """Test setup when already configured."""
        logger = StructuredLogger()
        logger._configured = True

        logger.setup_logging(json_format=True)

        mock_configure.assert_not_called()

    @patch("uniclass_gateway.observability.logging.structlog.configure")
    def test_later_setup_applies_new_level(self, mock_configure):
        """Reconfiguring replaces the root handler, so the new level takes effect."""
        root = logging.getLogger()
        original_level = root.level
        original_handlers = root.handlers[:]

        try:
            StructuredLogger().setup_logging(log_level="INFO")
            StructuredLogger().setup_logging(log_level="DEBUG")
            assert root.level == logging.DEBUG

            StructuredLogger().setup_logging(log_level="WARNING")
            assert root.level == logging.WARNING
        finally:
            root.handlers[:] = original_handlers
            root.setLevel(original_level)

    def test_add_correlation_id(self):
        """Correlation ID is added when set."""
        logger = StructuredLogger()

        with correlation_id_scope("corr-1"):
            result = logger._add_correlation_id(None, "info", {})

        assert result["correlation_id"] == "corr-1"
        assert "correlation_id" not in logger._add_correlation_id(None, "info", {})

    def test_add_request_context_does_not_override(self):
        """Request context fills gaps but never overwrites event keys."""
        logger = StructuredLogger()
        try:
            update_request_context(endpoint="batch-match-uniclass", event="ignored")
            result = logger._add_request_context(None, "info", {"event": "batch_received"})
        finally:
            clear_request_context()

        assert result == {"event": "batch_received", "endpoint": "batch-match-uniclass"}


@pytest.mark.unit
class TestContextHelpers:
    """Tests for correlation and request context helpers."""

    def test_correlation_id_scope_resets(self):
        """The previous value is restored on exit."""
        logger = StructuredLogger()

        with correlation_id_scope("outer"):
            with correlation_id_scope("inner"):
                assert logger._add_correlation_id(None, "info", {})["correlation_id"] == "inner"
            assert logger._add_correlation_id(None, "info", {})["correlation_id"] == "outer"

    def test_update_request_context_merges(self):
        """Successive updates accumulate until cleared."""
        logger = StructuredLogger()

        try:
            update_request_context(endpoint="match-uniclass")
            update_request_context(batch_size=3)
            event = logger._add_request_context(None, "info", {})
        finally:
            clear_request_context()

        assert event == {"endpoint": "match-uniclass", "batch_size": 3}
        assert logger._add_request_context(None, "info", {}) == {}


@pytest.mark.unit
class TestModuleFunctions:
    """Tests for module-level setup and lookup."""

    @patch("uniclass_gateway.observability.logging.StructuredLogger.setup_logging")
    def test_setup_logging_returns_configured_manager(self, mock_setup):
        manager = setup_logging(json_format=False, log_level="WARNING")

        assert isinstance(manager, StructuredLogger)
        mock_setup.assert_called_once_with(json_format=False, log_level="WARNING")

    def test_get_logger(self):
        logger = get_logger("uniclass_gateway.test")
        assert hasattr(logger, "info")
