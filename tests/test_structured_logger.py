"""
Tests for StructuredLogger, JSON file logging with rotation and the
process-wide log level.
"""

import json
import logging
import logging.handlers

import pytest

# =============================================================================
# TEST JSON FORMATTER
# =============================================================================


class TestJsonFormatter:
    """Tests for the JsonFormatter class."""

    def test_format_returns_valid_json(self):
        """format() returns a valid JSON string."""
        from skills.common.SKILL import JsonFormatter

        formatter = JsonFormatter()
        record = logging.LogRecord(
            name="test", level=logging.INFO, pathname="", lineno=0,
            msg="Test message", args=(), exc_info=None,
        )
        record.extra_fields = {"component": "coordinator", "session_id": "session_1"}

        parsed = json.loads(formatter.format(record))

        assert parsed["level"] == "INFO"
        assert parsed["message"] == "Test message"
        assert parsed["component"] == "coordinator"
        assert parsed["session_id"] == "session_1"
        assert "timestamp" in parsed

    def test_format_without_extra_fields(self):
        """format() works without extra_fields attribute."""
        from skills.common.SKILL import JsonFormatter

        record = logging.LogRecord(
            name="test", level=logging.WARNING, pathname="", lineno=0,
            msg="Warning message", args=(), exc_info=None,
        )

        parsed = json.loads(JsonFormatter().format(record))

        assert parsed["level"] == "WARNING"


# =============================================================================
# TEST STRUCTURED LOGGER
# =============================================================================


class TestStructuredLogger:
    """Tests for StructuredLogger construction and context."""

    def test_init(self):
        from skills.common.SKILL import StructuredLogger

        logger = StructuredLogger("test_init_component", "session_1")

        assert logger.component == "test_init_component"
        assert logger.session_id == "session_1"
        assert logger.logger.name == "lead_enrich.test_init_component"
        assert logger._json_file_handler is None

    def test_bind_scopes_session(self):
        from skills.common.SKILL import StructuredLogger

        base = StructuredLogger("test_bind_component")
        bound = base.bind("session_abc")

        assert bound.session_id == "session_abc"
        assert bound.logger is base.logger
        assert base.session_id is None

    def test_single_stream_handler(self):
        """Re-creating a component logger does not stack handlers."""
        from skills.common.SKILL import StructuredLogger

        first = StructuredLogger("test_handler_component")
        count = len(first.logger.handlers)
        StructuredLogger("test_handler_component")

        assert len(first.logger.handlers) == count

    def test_context_in_message(self, caplog):
        from skills.common.SKILL import StructuredLogger

        logger = StructuredLogger("test_context_component", "session_9")
        with caplog.at_level(logging.INFO, logger="lead_enrich.test_context_component"):
            logger.info("Row done", row_index=3, error=None)

        record = caplog.records[-1]
        assert record.getMessage().startswith("Row done [")
        assert "component=test_context_component" in record.getMessage()
        assert "session_id=session_9" in record.getMessage()
        assert "row_index=3" in record.getMessage()
        assert "error" not in record.extra_fields


# =============================================================================
# TEST LOG LEVEL
# =============================================================================


class TestSetLogLevel:

    @pytest.fixture(autouse=True)
    def restore_level(self):
        from skills.common.SKILL import set_log_level
        yield
        set_log_level("INFO")

    def test_existing_loggers_updated(self):
        from skills.common.SKILL import StructuredLogger, set_log_level

        logger = StructuredLogger("test_level_existing")
        set_log_level("DEBUG")

        assert logger.logger.level == logging.DEBUG

    def test_later_loggers_inherit_level(self):
        from skills.common.SKILL import StructuredLogger, set_log_level

        set_log_level("warning")
        logger = StructuredLogger("test_level_later")

        assert logger.logger.level == logging.WARNING

    def test_suppressed_below_level(self, caplog):
        from skills.common.SKILL import StructuredLogger, set_log_level

        logger = StructuredLogger("test_level_suppressed")
        set_log_level(logging.ERROR)

        with caplog.at_level(logging.DEBUG):
            logger.info("hidden")

        assert not [r for r in caplog.records if r.name == "lead_enrich.test_level_suppressed"]


# =============================================================================
# TEST FILE LOGGING SETUP
# =============================================================================


class TestFileLogging:
    """Tests for setup_file_logging()."""

    def test_creates_log_directory(self, tmp_path):
        """setup_file_logging() creates the log directory."""
        from skills.common.SKILL import StructuredLogger

        log_dir = tmp_path / "custom_logs"
        StructuredLogger("test_dir_create_component").setup_file_logging(log_dir=str(log_dir))

        assert log_dir.exists()

    def test_file_contains_valid_json(self, tmp_path):
        """Each line in the log file is valid JSON with context fields."""
        from skills.common.SKILL import StructuredLogger

        log_dir = tmp_path / "logs"
        logger = StructuredLogger("test_json_valid_component", "session_7")
        logger.setup_file_logging(log_dir=str(log_dir))

        logger.info("First message", rows=42)
        logger.warning("Second message", fields=3)

        lines = (log_dir / "test_json_valid_component.log").read_text().strip().split("\n")

        assert len(lines) == 2
        first = json.loads(lines[0])
        assert first["rows"] == 42
        assert first["session_id"] == "session_7"
        assert json.loads(lines[1])["level"] == "WARNING"

    def test_rotation_at_max_bytes(self, tmp_path):
        """Log file rotates when max_bytes is exceeded."""
        from skills.common.SKILL import StructuredLogger

        log_dir = tmp_path / "logs"
        logger = StructuredLogger("test_rotation_component")
        logger.setup_file_logging(log_dir=str(log_dir), max_bytes=200, backup_count=2)

        for i in range(100):
            logger.info(f"Message number {i} with some padding data")

        log_files = list(log_dir.glob("test_rotation_component.log*"))
        assert 1 < len(log_files) <= 3

    def test_cli_log_dir_option(self, tmp_path):
        """lead-enrich --log-dir attaches a JSON file handler to batch logs."""
        from click.testing import CliRunner

        from agents.coordinator import main

        log_dir = tmp_path / "batch_logs"
        result = CliRunner().invoke(main, ["--log-dir", str(log_dir), "fields", "--help"])

        coordinator_logger = logging.getLogger("lead_enrich.coordinator")
        file_handlers = [h for h in coordinator_logger.handlers
                         if isinstance(h, logging.handlers.RotatingFileHandler)]
        for handler in file_handlers:
            coordinator_logger.removeHandler(handler)
            handler.close()

        assert result.exit_code == 0
        assert log_dir.exists()
        assert file_handlers
