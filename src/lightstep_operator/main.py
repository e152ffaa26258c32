"""Main entry point for the lso command.

Logging is configured here, once per process, before the CLI runs. The
library modules only ever obtain loggers; they never install handlers.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import UTC, datetime

from .cli import cli

LOG_LEVEL_ENV = "LOG_LEVEL"
LOG_FORMAT_ENV = "LOG_FORMAT"

DEFAULT_LOG_LEVEL = "INFO"
JSON_LOG_FORMAT = "json"
TEXT_LOG_FORMAT = "text"
TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# Attributes every LogRecord carries; anything else came in through extra=
RESERVED_RECORD_ATTRIBUTES = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "exc_info",
        "exc_text",
        "thread",
        "threadName",
        "taskName",
        "message",
    }
)


class JsonFormatter(logging.Formatter):
    """Format logs as JSON for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }

        for key, value in record.__dict__.items():
            if key not in RESERVED_RECORD_ATTRIBUTES:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def resolve_log_level(value: str | None) -> int:
    """Map a level name to its numeric value. Unknown names fall back to INFO."""
    level = logging.getLevelName((value or DEFAULT_LOG_LEVEL).strip().upper())
    if isinstance(level, int):
        return level
    return logging.INFO


def setup_logging(level: str | None = None, log_format: str | None = None) -> None:
    """Configure logging for the CLI.

    Logs go to stderr so that command output on stdout stays machine-readable.

    Args:
        level: Level name. Defaults to LOG_LEVEL, then INFO.
        log_format: "json" (default) or "text". Defaults to LOG_FORMAT.
    """
    if level is None:
        level = os.environ.get(LOG_LEVEL_ENV)
    if log_format is None:
        log_format = os.environ.get(LOG_FORMAT_ENV, JSON_LOG_FORMAT)

    handler = logging.StreamHandler(sys.stderr)
    if log_format.strip().lower() == TEXT_LOG_FORMAT:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))
    else:
        handler.setFormatter(JsonFormatter())

    root_logger = logging.getLogger()
    root_logger.addHandler(handler)
    root_logger.setLevel(resolve_log_level(level))

    # Reduce noise from the HTTP stack
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def run() -> None:
    """Entry point for the lso CLI."""
    setup_logging()
    cli(prog_name="lso")


if __name__ == "__main__":
    run()
