"""Logging helpers built on loguru."""

from __future__ import annotations

import sys
from typing import Any

from loguru import logger


def setup_logging(level: str = "INFO") -> None:
    """Replace loguru's default sink with one stderr sink at ``level``."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level,
        format=(
            "<green>{time:HH:mm:ss}</green> | <level>{level: <7}</level> | "
            "{name}:{function} | {message} | {extra}"
        ),
    )


def bind_context(**kwargs: Any):
    """Return a logger with bound contextual fields (session/level)."""
    return logger.bind(**{k: v for k, v in kwargs.items() if v is not None})


def preview(token: str | None, width: int = 16) -> str:
    """Short, log-safe preview of a state token."""
    if not token:
        return "<empty>"
    if len(token) <= width:
        return token
    return f"{token[:width]}...({len(token)} chars)"
