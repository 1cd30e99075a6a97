"""Logging configuration for elysium-lsp.

The language server speaks the protocol over stdout, so every handler
installed here writes to stderr.
"""

import json
import logging
import sys
from typing import Any

LOGGER_NAME = "elysium_lsp"

TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Attributes every LogRecord carries; anything else came in through ``extra=``
_RECORD_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__
) | {"message", "asctime", "taskName"}


def setup_logging(
    level: int | str = logging.INFO,
    json_format: bool = False,
) -> logging.Logger:
    """
    Route elysium-lsp and pygls logging to stderr.

    Args:
        level: Numeric level or a name such as "debug"
        json_format: Emit one JSON object per line instead of text

    Returns:
        The package root logger
    """
    if isinstance(level, str):
        level = parse_level(level)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    if json_format:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT, datefmt=DATE_FORMAT))

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = False
    logger.handlers.clear()
    logger.addHandler(handler)

    # pygls is chatty about protocol traffic; keep it at warnings and above
    pygls_logger = logging.getLogger("pygls")
    pygls_logger.setLevel(max(level, logging.WARNING))
    pygls_logger.propagate = False
    pygls_logger.handlers.clear()
    pygls_logger.addHandler(handler)

    return logger


def parse_level(name: str) -> int:
    """Translate a level name ("info", "DEBUG", ...) to its numeric value.

    Unknown names fall back to INFO.
    """
    value = logging.getLevelName(name.strip().upper())
    if isinstance(value, int):
        return value
    return logging.INFO


class JsonFormatter(logging.Formatter):
    """One JSON object per record; ``extra=`` fields become top-level keys."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "component": record.name.removeprefix(f"{LOGGER_NAME}."),
            "message": record.getMessage(),
        }

        for key, value in record.__dict__.items():
            if key not in _RECORD_ATTRS and key not in log_data:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def get_logger(name: str) -> logging.Logger:
    """Logger for one component, e.g. ``get_logger("hooks")``."""
    return logging.getLogger(f"{LOGGER_NAME}.{name}")
