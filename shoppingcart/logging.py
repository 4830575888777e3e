"""
Centralized logging configuration for the cart engine.

Usage:
    from shoppingcart.logging import get_logger
    logger = get_logger(__name__)

    logger.info("Cart stored")
    logger.error("Failed to restore cart", exc_info=True)
"""

import logging
import os
import sys
from functools import cache

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_FORMAT_SIMPLE = "%(levelname)s - %(name)s - %(message)s"


def _get_log_level(environ=None) -> int:
    """Log level from CART_LOG_LEVEL, then LOG_LEVEL, default INFO."""
    env = os.environ if environ is None else environ
    level_name = env.get("CART_LOG_LEVEL") or env.get("LOG_LEVEL", "INFO")
    level = getattr(logging, level_name.upper(), None)
    return level if isinstance(level, int) else logging.INFO


def _configure_root_logger() -> None:
    """Configure root logger with appropriate handlers."""
    root = logging.getLogger()

    # Only configure if no handlers exist
    if root.handlers:
        return

    root.setLevel(_get_log_level())

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(_get_log_level())

    # Log collectors add their own timestamps
    simple = os.environ.get("CART_LOG_FORMAT", "").lower() == "simple"
    formatter = logging.Formatter(LOG_FORMAT_SIMPLE if simple else LOG_FORMAT)
    handler.setFormatter(formatter)

    root.addHandler(handler)


_configure_root_logger()


@cache
def get_logger(name: str) -> logging.Logger:
    """
    Get or create a logger with the given name.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured logger instance
    """
    return logging.getLogger(name)


def _escape_log_injection(value: str) -> str:
    """Escape control characters that could forge log entries (CWE-117)."""
    return (
        value.replace("\n", "\\n")
        .replace("\r", "\\r")
        .replace("\t", "\\t")
        .replace("\x00", "")
    )


def sanitize_id_for_logging(id_value: object | None) -> str:
    """
    Sanitize a caller-supplied identifier (row id, cart identifier) for logging.

    Truncates to the first 8 characters and escapes log injection characters.

    Returns:
        Sanitized ID string or "N/A" if empty
    """
    if id_value is None or id_value == "":
        return "N/A"
    safe_value = _escape_log_injection(str(id_value))
    return safe_value[:8] if len(safe_value) > 8 else safe_value


def sanitize_string_for_logging(value: str | None, max_length: int = 50) -> str:
    """
    Sanitize free text (item names, instance names) for logging.

    Args:
        value: String value to sanitize (can be None)
        max_length: Maximum length to keep (default: 50)

    Returns:
        Sanitized string or "N/A" if None
    """
    if not value:
        return "N/A"
    safe_value = _escape_log_injection(str(value))
    if len(safe_value) <= max_length:
        return safe_value
    return safe_value[:max_length] + "..."


__all__ = [
    "LOG_FORMAT",
    "LOG_FORMAT_SIMPLE",
    "get_logger",
    "sanitize_id_for_logging",
    "sanitize_string_for_logging",
]
