"""
Logging utilities for stepgraph.

Provides structured logging with component-specific context.
"""

import logging
import sys
from datetime import datetime, timezone
from typing import Optional
from functools import lru_cache

from ..core.config import settings


class ComponentLogFormatter(logging.Formatter):
    """Custom formatter for component-specific logging."""

    COLORS = {
        "DEBUG": "\033[36m",     # Cyan
        "INFO": "\033[32m",      # Green
        "WARNING": "\033[33m",   # Yellow
        "ERROR": "\033[31m",     # Red
        "CRITICAL": "\033[35m",  # Magenta
        "RESET": "\033[0m"
    }

    COMPONENT_COLORS = {
        "Executor": "\033[94m",   # Light Blue
        "ToolLoop": "\033[96m",   # Light Cyan
        "FanOut": "\033[93m",     # Light Yellow
        "Memory": "\033[95m",     # Light Magenta
        "Provider": "\033[92m",   # Light Green
        "CLI": "\033[97m",        # White
    }

    def __init__(self, use_colors: bool = True):
        super().__init__()
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]

        component = getattr(record, "component", "System")

        if self.use_colors:
            level_color = self.COLORS.get(record.levelname, "")
            component_color = self.COMPONENT_COLORS.get(component, "\033[37m")
            reset = self.COLORS["RESET"]

            return (
                f"{timestamp} | "
                f"{level_color}{record.levelname:8s}{reset} | "
                f"{component_color}[{component:10s}]{reset} | "
                f"{record.getMessage()}"
            )
        else:
            return (
                f"{timestamp} | {record.levelname:8s} | "
                f"[{component:10s}] | {record.getMessage()}"
            )


class ComponentLogger(logging.Logger):
    """Extended logger with component context support."""

    DEFAULT_COMPONENT = "System"

    def with_component(self, component: str) -> logging.LoggerAdapter:
        """
        Return an adapter that tags every record with ``component``.

        Each call gets its own adapter; the shared logger is never modified,
        so concurrent tasks and threads keep their own component names.
        """
        return logging.LoggerAdapter(self, {"component": component})

    def _log(self, level, msg, args, exc_info=None, extra=None, **kwargs):
        extra = dict(extra or {})
        extra.setdefault("component", self.DEFAULT_COMPONENT)
        super()._log(level, msg, args, exc_info, extra, **kwargs)


def setup_logger(
    name: str = "stepgraph",
    level: Optional[str] = None,
    use_colors: bool = True
) -> ComponentLogger:
    """
    Set up and configure the application logger.

    Args:
        name: Logger name
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        use_colors: Whether to use colored output

    Returns:
        Configured ComponentLogger instance
    """
    # Register custom logger class
    logging.setLoggerClass(ComponentLogger)

    logger = logging.getLogger(name)

    # Clear existing handlers
    logger.handlers.clear()

    log_level = level or ("DEBUG" if settings.debug_mode else settings.log_level)
    logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(ComponentLogFormatter(use_colors=use_colors))
    logger.addHandler(console_handler)

    # Prevent propagation to root logger
    logger.propagate = False

    return logger


@lru_cache()
def get_logger(name: str = "stepgraph") -> ComponentLogger:
    """
    Get or create a cached logger instance.

    Args:
        name: Logger name

    Returns:
        ComponentLogger instance
    """
    return setup_logger(name)
