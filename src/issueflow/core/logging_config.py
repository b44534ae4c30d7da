"""Centralized logging configuration for issueflow.

Usage:
    from issueflow.core.logging_config import configure_logging

    # Configure once at application startup
    configure_logging(level="DEBUG")

    # Modules use standard loggers
    logger = logging.getLogger(__name__)

Environment Variables:
    ISSUEFLOW_LOG_LEVEL: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    ISSUEFLOW_LOG_FORMAT: Output format ("text" or "json")
    ISSUEFLOW_LOG_FILE: Optional log file path
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime
from typing import Any, Literal

TEXT_FORMAT = "%(asctime)s.%(msecs)03d - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Attributes every LogRecord carries; anything else came in through `extra`.
_STANDARD_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys() | {"message", "taskName"}
)

_configured = False


class JsonFormatter(logging.Formatter):
    """One JSON object per record.

    {"timestamp": "...", "level": "INFO", "logger": "issueflow.coordinator",
     "message": "...", "extra": {...}}
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        extra = {k: v for k, v in record.__dict__.items() if k not in _STANDARD_ATTRS}
        if extra:
            log_data["extra"] = extra

        return json.dumps(log_data, default=str)


def configure_logging(
    level: str | None = None,
    format: Literal["text", "json"] | None = None,
    file_path: str | None = None,
    force: bool = False,
) -> None:
    """Configure root logging once per process.

    Explicit arguments win over ISSUEFLOW_LOG_* environment variables.
    Subsequent calls are ignored unless force=True.

    Args:
        level: Log level name. Defaults to ISSUEFLOW_LOG_LEVEL or "WARNING".
        format: "text" or "json". Defaults to ISSUEFLOW_LOG_FORMAT or "text".
        file_path: Optional extra file handler. Defaults to ISSUEFLOW_LOG_FILE.
        force: Reconfigure even if already configured.

    Raises:
        ValueError: If level is not a known log level name.
    """
    global _configured
    if _configured and not force:
        return

    level = (level or os.environ.get("ISSUEFLOW_LOG_LEVEL", "WARNING")).upper()
    format = format or os.environ.get("ISSUEFLOW_LOG_FORMAT", "text")  # type: ignore[assignment]
    file_path = file_path or os.environ.get("ISSUEFLOW_LOG_FILE")

    numeric_level = logging.getLevelName(level)
    if not isinstance(numeric_level, int):
        raise ValueError(f"Unknown log level: {level}")

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()

    if format == "json":
        formatter: logging.Formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(TEXT_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if file_path:
        file_handler = logging.FileHandler(file_path)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    _configured = True
