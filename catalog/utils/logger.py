"""Logging configuration"""

import logging
import sys
from typing import Optional, TextIO

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
CONTEXT_FORMAT = DEFAULT_FORMAT + " %(context)s"


class ContextFormatter(logging.Formatter):
    """Render the sanitized ``extra=`` fields attached by pipeline loggers."""

    def __init__(self, fmt: str, reserved: frozenset[str]) -> None:
        super().__init__(fmt)
        self._reserved = reserved

    def format(self, record: logging.LogRecord) -> str:
        context = {
            key: value
            for key, value in record.__dict__.items()
            if key not in self._reserved and not key.startswith("_")
        }
        record.context = " ".join(f"{key}={value}" for key, value in sorted(context.items()))
        return super().format(record)


_RESERVED_ATTRS = frozenset(logging.LogRecord("", 0, "", 0, "", None, None).__dict__) | {"message", "asctime", "context"}


def setup_logger(
    name: str,
    level: int = logging.INFO,
    format_string: Optional[str] = None,
    stream: TextIO | None = None,
) -> logging.Logger:
    """
    Set up a logger with consistent formatting

    Args:
        name: Logger name, usually the ``catalog`` package root
        level: Logging level
        format_string: Custom format string; defaults to one that appends context
        stream: Output stream, stdout when omitted

    Returns:
        Configured logger
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Avoid duplicate handlers
    if logger.handlers:
        return logger

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(ContextFormatter(format_string or CONTEXT_FORMAT, _RESERVED_ATTRS))
    logger.addHandler(handler)

    return logger


def configure_catalog_logging(debug: bool = False) -> logging.Logger:
    """Attach the stdout handler to the package root so module loggers inherit it."""
    return setup_logger("catalog", level=logging.DEBUG if debug else logging.INFO)
