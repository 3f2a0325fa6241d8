"""
chatcache exception hierarchy.

All custom exceptions inherit from ChatCacheException so callers can
catch a single base type when they want a broad safety net.  Cache
operations themselves do not raise for bad input; these cover
configuration loading and background-task misuse.
"""


class ChatCacheException(Exception):
    """Base exception for all chatcache errors."""


class ConfigurationError(ChatCacheException, ValueError):
    """Raised when configuration is invalid or cannot be loaded."""


class SchedulerError(ChatCacheException):
    """Raised when a cleanup scheduler is used incorrectly."""
