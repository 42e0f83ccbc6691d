"""Tests for logging configuration."""

import json
import logging
import sys

import pytest
from rich.logging import RichHandler

from edm_registry.infrastructure.logging_config import StructuredFormatter, get_logger, setup_logging


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


def make_record(message="Write rejected", **extra):
    record = logging.LogRecord("edm_registry.test", logging.WARNING, __file__, 10, message, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestStructuredFormatter:
    """Test suite for StructuredFormatter."""

    def test_json_fields(self):
        """Test the standard fields of a JSON log line."""
        payload = json.loads(StructuredFormatter().format(make_record()))

        assert payload["level"] == "WARNING"
        assert payload["logger"] == "edm_registry.test"
        assert payload["message"] == "Write rejected"
        assert payload["timestamp"].endswith("Z")
        assert "exception" not in payload

    def test_extra_fields_are_carried(self):
        """Test that extra record attributes are included in the JSON output."""
        payload = json.loads(StructuredFormatter().format(make_record(entity="OrgRole", rule="fk_exists")))

        assert payload["entity"] == "OrgRole"
        assert payload["rule"] == "fk_exists"
        assert "args" not in payload

    def test_exception_included(self):
        """Test that exception tracebacks are formatted into the payload."""
        try:
            raise ValueError("bad")
        except ValueError:
            record = make_record()
            record.exc_info = sys.exc_info()

        payload = json.loads(StructuredFormatter().format(record))

        assert "ValueError: bad" in payload["exception"]


class TestSetupLogging:
    """Test suite for setup_logging."""

    def test_plain_console(self, restore_root_logger):
        """Test plain console logging and the quieted tenacity logger."""
        setup_logging(log_level="debug")

        (handler,) = restore_root_logger.handlers
        assert restore_root_logger.level == logging.DEBUG
        assert not isinstance(handler.formatter, StructuredFormatter)
        assert logging.getLogger("tenacity").level == logging.WARNING

    def test_json(self, restore_root_logger):
        """Test that use_json installs the StructuredFormatter."""
        setup_logging(use_json=True)

        (handler,) = restore_root_logger.handlers
        assert isinstance(handler.formatter, StructuredFormatter)

    def test_rich_console(self, restore_root_logger):
        """Test that rich_console installs a RichHandler."""
        setup_logging(rich_console=True, log_level="WARNING")

        (handler,) = restore_root_logger.handlers
        assert isinstance(handler, RichHandler)
        assert handler.level == logging.WARNING

    def test_unknown_level_falls_back_to_info(self, restore_root_logger):
        """Test that an unknown level name falls back to INFO."""
        setup_logging(log_level="chatty")
        assert restore_root_logger.level == logging.INFO

    def test_get_logger(self):
        """Test that get_logger returns the standard named logger."""
        assert get_logger("edm_registry.cli") is logging.getLogger("edm_registry.cli")
