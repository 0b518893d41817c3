"""
Utility modules for logging and helper functions.
"""

from .logger import setup_logger, get_logger
from .helpers import async_retry, gather_with_concurrency, truncate_text

__all__ = ["setup_logger", "get_logger", "async_retry", "gather_with_concurrency", "truncate_text"]
