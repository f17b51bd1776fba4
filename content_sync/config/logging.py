"""Logging configuration using loguru with automatic dev/prod detection."""

import sys

from loguru import logger


def configure_logging(level: str = "INFO", log_format: str = "json") -> None:
    """
    Configure loguru for the CLI and the oracle client.

    Behavior:
    - Development (TTY + console format): Colorized, human-readable output
    - Production (non-TTY or json format): JSON-structured logs to stdout

    Args:
        level: Minimum log level
        log_format: "console" or "json"
    """
    logger.remove()

    is_tty = sys.stderr.isatty()
    use_console_format = log_format.lower() == "console"

    # Records logged without get_logger() still need a component for the format
    logger.configure(extra={"component": "content_sync"})

    if is_tty and use_console_format:
        logger.add(
            sys.stderr,
            format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{extra[component]}</cyan> | <level>{message}</level>",
            level=level,
            colorize=True,
        )
    else:
        logger.add(
            sys.stdout,
            format="{message}",
            level=level,
            serialize=True,
            diagnose=False,
        )


def get_logger(component: str):
    """
    Get a logger instance bound to a specific component name.

    Args:
        component: Component/module name for log context

    Returns:
        Logger instance with component context

    Example:
        >>> log = get_logger("oracle")
        >>> log.info("Requesting verification")
    """
    return logger.bind(component=component)


__all__ = ["logger", "get_logger", "configure_logging"]
