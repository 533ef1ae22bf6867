"""
Logging utilities for the diagram toolkit.

Provides a centralized logging configuration for the entire package. Every
handler installed by :func:`setup_logging` carries a :class:`RedactingFilter`,
so share-link keys that end up in a message (for example inside an httpx
error that quotes the request URL) are masked before they are written.
"""

from __future__ import annotations

import logging
import re
import sys
from typing import TextIO

# Package root logger
_root_logger = logging.getLogger("excalidraw_agent")

REDACTED = "[redacted]"

# "#json=<id>,<key>" and "#room=<id>,<key>", plain or percent-encoded
_SHARE_KEY = re.compile(
    r"((?:#|%23)(?:json|room)(?:=|%3D)[^,\s&]+?(?:,|%2C))[A-Za-z0-9_\-]+",
    re.IGNORECASE,
)
_KEY_FIELD = re.compile(r"""((?:"|')?encryptionKey(?:"|')?\s*[:=]\s*(?:"|')?)[A-Za-z0-9_\-]+""")


def redact_secrets(text: str) -> str:
    """Mask share-link encryption keys in ``text``."""
    text = _SHARE_KEY.sub(rf"\1{REDACTED}", text)
    return _KEY_FIELD.sub(rf"\1{REDACTED}", text)


class RedactingFilter(logging.Filter):
    """Rewrite each record's message with :func:`redact_secrets` applied."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = redact_secrets(message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def setup_logging(
    level: str | int = "INFO",
    format: str | None = None,
    stream: TextIO | None = None,
    file: str | None = None,
) -> None:
    """
    Configure logging for the toolkit.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL) or int
        format: Custom log format string
        stream: Output stream (defaults to stderr)
        file: Optional file path to write logs

    Example:
        from excalidraw_agent.logging import setup_logging

        setup_logging("DEBUG", file="excalidraw-agent.log")
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    _root_logger.setLevel(level)
    _root_logger.handlers.clear()

    formatter = logging.Formatter(format or "%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    handlers: list[logging.Handler] = [logging.StreamHandler(stream or sys.stderr)]
    if file:
        handlers.append(logging.FileHandler(file))

    for handler in handlers:
        handler.setFormatter(formatter)
        handler.setLevel(level)
        handler.addFilter(RedactingFilter())
        _root_logger.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    """
    Get a child logger for a submodule.

    Example:
        logger = get_logger("resolver")
        logger.debug("Resolving share link via remote parse service")
    """
    if name.startswith("excalidraw_agent."):
        return logging.getLogger(name)
    return logging.getLogger(f"excalidraw_agent.{name}")
