"""Core utilities: logging, exceptions, caching."""

from prescience.core.cache import CacheHit, TTLCache
from prescience.core.exceptions import PrescienceError
from prescience.core.logging import get_logger, setup_logging

__all__ = [
    "CacheHit",
    "PrescienceError",
    "TTLCache",
    "get_logger",
    "setup_logging",
]
