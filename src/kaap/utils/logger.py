"""Logging setup.

Routes structlog events through the standard library so the CLI can
render them with Rich.
"""

import logging
import sys

import structlog
from rich.console import Console
from rich.logging import RichHandler


def setup_logger(
    name: str = "kaap",
    level: str = "INFO",
    rich_handler: bool = True,
) -> logging.Logger:
    """Setup logger with optional rich formatting.

    Args:
        name: Root logger name for the package
        level: Log level name
        rich_handler: Render with Rich on stderr instead of plain stdout

    Returns:
        Configured package logger
    """
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level.upper()))

    # Remove existing handlers to avoid duplicates
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    handler: logging.Handler
    if rich_handler:
        handler = RichHandler(
            console=Console(stderr=True),
            show_time=True,
            show_path=False,
            markup=False,
            rich_tracebacks=True,
        )
        formatter = logging.Formatter(fmt="%(message)s", datefmt="[%X]")
    else:
        handler = logging.StreamHandler(sys.stdout)
        formatter = logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    handler.setFormatter(formatter)
    logger.addHandler(handler)
    logger.propagate = False

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    return logger
