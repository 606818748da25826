"""
Centralized logger configuration for casport.

Provides a unified logging interface that can be customized by the user.
By default, uses Python's standard logging with the 'casport' namespace.

Usage:
    # Use default logger
    from casport.core.logger import get_logger
    logger = get_logger(__name__)
    logger.info("Message")

    # Set custom logger (e.g., structlog, loguru)
    from casport.core.logger import set_logger
    import structlog
    set_logger(structlog.get_logger())
"""

import logging
from typing import Any

# Global logger instance - defaults to standard logging
_custom_logger: Any = None

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(migration_id)s] - %(message)s"


def set_logger(logger: Any) -> None:
    """
    Set a custom logger for all casport components.

    Args:
        logger: A logger instance (e.g., structlog logger, loguru logger)
                Must support debug/info/warning/error/exception methods.
                Pass None to go back to standard logging.
    """
    global _custom_logger
    _custom_logger = logger


def get_logger(name: str = "casport") -> Any:
    """
    Get a logger instance.

    If a custom logger was set via set_logger(), returns that.
    Otherwise, returns a standard Python logger with the given name.

    Args:
        name: Logger name (typically __name__ of the calling module)

    Returns:
        A logger instance
    """
    if _custom_logger is not None:
        return _custom_logger

    logger = logging.getLogger(name)

    # Library default: stay silent unless the application configures handlers
    if not logger.handlers:
        logger.addHandler(logging.NullHandler())

    return logger


def configure_default_logging(
    level: int | str = logging.INFO,
    json_format: bool = False,
    format_string: str = DEFAULT_FORMAT,
) -> None:
    """
    Configure console logging for the 'casport' namespace.

    Args:
        level: Logging level (name or number)
        json_format: Emit one JSON object per line instead of plain text
        format_string: Log message format for plain text output
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    from casport.monitoring.logging import MigrationContextFilter, MigrationJsonFormatter

    handler = logging.StreamHandler()
    if json_format:
        handler.setFormatter(MigrationJsonFormatter())
    else:
        handler.addFilter(MigrationContextFilter())
        handler.setFormatter(logging.Formatter(format_string))

    casport_logger = logging.getLogger("casport")
    casport_logger.handlers = [
        h for h in casport_logger.handlers if isinstance(h, logging.NullHandler)
    ]
    casport_logger.addHandler(handler)
    casport_logger.setLevel(level)
