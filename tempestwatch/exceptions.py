"""
TEMPESTWATCH Exception Hierarchy.

Exceptions raised inside the ingestion service. None of these cross the
orchestrator's public boundary; they are caught there, logged, and turned
into error notifications.
"""

__all__ = [
    "TempestWatchError",
    "ConfigurationError",
]


class TempestWatchError(Exception):
    """Base class for all TEMPESTWATCH errors."""


class ConfigurationError(TempestWatchError):
    """Raised when configuration cannot be loaded or validated."""
