"""Core utilities for the SnapName application."""

from snapname.app.core.cache import TTLCache, get_cache, reset_cache
from snapname.app.core.config import settings
from snapname.app.core.logging import get_logger, setup_logging

__all__ = [
    "TTLCache",
    "get_cache",
    "reset_cache",
    "settings",
    "get_logger",
    "setup_logging",
]
