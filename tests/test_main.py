"""Tests for logging setup."""

import json
import logging
import os
import sys
from collections.abc import Iterator
from unittest.mock import patch

import pytest

from lightstep_operator.main import JsonFormatter, resolve_log_level, setup_logging


@pytest.fixture
def restore_root_logger() -> Iterator[logging.Logger]:
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield root
    root.handlers = handlers
    root.setLevel(level)


def make_record(**extra: object) -> logging.LogRecord:
    record = logging.LogRecord(
        name="lightstep_operator.reconciler",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="Created %s",
        args=("resource",),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJsonFormatter:
    """Tests for structured log output."""

    def test_basic_fields(self) -> None:
        data = json.loads(JsonFormatter().format(make_record()))

        assert data["level"] == "INFO"
        assert data["message"] == "Created resource"
        assert data["logger"] == "lightstep_operator.reconciler"
        assert data["timestamp"].endswith("Z")

    def test_extra_fields(self) -> None:
        """Test that extra= fields become top-level keys."""
        data = json.loads(JsonFormatter().format(make_record(kind="stream", resource_id="abc")))

        assert data["kind"] == "stream"
        assert data["resource_id"] == "abc"
        assert "pathname" not in data

    def test_exception(self) -> None:
        try:
            raise ValueError("boom")
        except ValueError:
            record = make_record()
            record.exc_info = sys.exc_info()

        data = json.loads(JsonFormatter().format(record))

        assert "ValueError: boom" in data["exception"]


class TestSetupLogging:
    """Tests for setup_logging."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            (None, logging.INFO),
            ("debug", logging.DEBUG),
            ("WARNING", logging.WARNING),
            ("chatty", logging.INFO),
        ],
    )
    def test_resolve_log_level(self, value: str | None, expected: int) -> None:
        assert resolve_log_level(value) == expected

    def test_json_by_default(self, restore_root_logger: logging.Logger) -> None:
        with patch.dict(os.environ, {}, clear=True):
            setup_logging()

        assert isinstance(restore_root_logger.handlers[-1].formatter, JsonFormatter)
        assert restore_root_logger.level == logging.INFO
        assert logging.getLogger("httpx").level == logging.WARNING

    def test_text_format_from_env(self, restore_root_logger: logging.Logger) -> None:
        with patch.dict(os.environ, {"LOG_FORMAT": "text", "LOG_LEVEL": "debug"}, clear=True):
            setup_logging()

        assert not isinstance(restore_root_logger.handlers[-1].formatter, JsonFormatter)
        assert restore_root_logger.level == logging.DEBUG
