"""
TEMPESTWATCH Logging Configuration

Provides centralized logging configuration for the TEMPESTWATCH ingestion
service with support for:
- Rotating file handlers with size limits
- Console output
- Per-service log level configuration
- Correlation IDs for tracing start sequences and cloud control frames
- Convenience helpers (log_exception, log_timing)

Usage:
    from tempestwatch.logging_config import setup_logging, get_logger, log_exception
    from tempestwatch.logging_config import correlation_context, generate_correlation_id

    # Initialize logging at application startup
    setup_logging(log_level="INFO", log_file="tempestwatch.log")

    # Get a logger for your module
    logger = get_logger(__name__)
    logger.info("Broadcast listener bound", extra={"port": 50222})

    # Log exceptions with full traceback
    try:
        await orchestrator.start()
    except Exception as e:
        log_exception(logger, "Failed to start ingestion", e)

    # Tag every log line of a start sequence
    with correlation_context(prefix="start"):
        logger.info("Connecting cloud stream")
"""

import logging
import sys
import time
import traceback
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from pathlib import Path
from typing import Generator, Optional

from tempestwatch.constants import LOG_BACKUP_COUNT, LOG_DATE_FORMAT, LOG_MAX_BYTES

# Module-level constants
ROOT_LOGGER_NAME = "tempestwatch"
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DEFAULT_LOG_FORMAT_WITH_CORRELATION = (
    "%(asctime)s - %(name)s - %(levelname)s - [%(correlation_id)s] - %(message)s"
)

# Log level mapping for per-service configuration
LOG_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

# =============================================================================
# Correlation ID Support
# =============================================================================

_correlation_id: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)


class CorrelationIdFilter(logging.Filter):
    """Logging filter that adds correlation ID to log records.

    The correlation ID is stored in a ContextVar, so concurrent asyncio tasks
    each see their own value.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = _correlation_id.get() or "-"
        return True


def get_correlation_id() -> Optional[str]:
    """Get the current correlation ID, or None if not set."""
    return _correlation_id.get()


def set_correlation_id(correlation_id: Optional[str]) -> None:
    """Set the correlation ID for the current context.

    Prefer correlation_context() for automatic cleanup.
    """
    _correlation_id.set(correlation_id)


def generate_correlation_id(prefix: str = "tw") -> str:
    """Generate a new unique correlation ID.

    Args:
        prefix: Prefix for the ID (default: "tw")

    Returns:
        A unique correlation ID string, e.g. "listen-a1b2c3d4".
    """
    short_uuid = uuid.uuid4().hex[:8]
    return f"{prefix}-{short_uuid}"


@contextmanager
def correlation_context(
    correlation_id: Optional[str] = None,
    prefix: str = "tw",
) -> Generator[str, None, None]:
    """Context manager for setting a correlation ID.

    Generates a correlation ID if none is provided and restores the previous
    value when the context exits.

    Args:
        correlation_id: Optional correlation ID to use. If None, generates one.
        prefix: Prefix for auto-generated IDs (default: "tw")

    Yields:
        The correlation ID being used.
    """
    cid = correlation_id or generate_correlation_id(prefix)
    token = _correlation_id.set(cid)
    try:
        yield cid
    finally:
        _correlation_id.reset(token)


def setup_logging(
    log_level: str = DEFAULT_LOG_LEVEL,
    log_file: Optional[str | Path] = None,
    enable_correlation: bool = True,
) -> None:
    """Configure logging for the TEMPESTWATCH application.

    Sets up the tempestwatch logger with a console handler and an optional
    rotating file handler. Should be called once at application startup.

    Args:
        log_level: Default logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path to log file. If provided, enables file logging
                  with rotation.
        enable_correlation: If True, include correlation ID in log output.
    """
    level = LOG_LEVELS.get(log_level.upper(), logging.INFO)

    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(level)

    # Clear any existing handlers and filters
    for handler in root_logger.handlers:
        handler.close()
    root_logger.handlers.clear()
    root_logger.filters.clear()

    log_format = (
        DEFAULT_LOG_FORMAT_WITH_CORRELATION if enable_correlation else DEFAULT_LOG_FORMAT
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(log_format, LOG_DATE_FORMAT))
    root_logger.addHandler(console_handler)

    if log_file:
        from logging.handlers import RotatingFileHandler

        file_path = Path(log_file)
        file_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            file_path,
            maxBytes=LOG_MAX_BYTES,
            backupCount=LOG_BACKUP_COUNT,
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter(log_format, LOG_DATE_FORMAT))
        root_logger.addHandler(file_handler)

    # Records from child loggers bypass logger-level filters, so the
    # correlation filter sits on every handler.
    if enable_correlation:
        for handler in root_logger.handlers:
            handler.addFilter(CorrelationIdFilter())


def get_logger(name: str) -> logging.Logger:
    """Get a logger for a specific module or service.

    Returns a child logger under the tempestwatch namespace for consistent
    configuration inheritance.

    Args:
        name: Logger name (typically __name__ of the calling module)

    Example:
        logger = get_logger(__name__)   # in services/tempest/stream_client.py
        # -> "tempestwatch.services.tempest.stream_client"
    """
    if not name.startswith(ROOT_LOGGER_NAME):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)


def set_service_level(service_name: str, level: str) -> None:
    """Set log level for a specific service package.

    Args:
        service_name: Name of the service package (e.g., "tempest", "simulators")
        level: Log level string (DEBUG, INFO, WARNING, ERROR, CRITICAL)

    Example:
        set_service_level("tempest", "DEBUG")  # Verbose wire-level logging
    """
    logger_name = f"{ROOT_LOGGER_NAME}.services.{service_name}"
    logger = logging.getLogger(logger_name)
    logger.setLevel(LOG_LEVELS.get(level.upper(), logging.INFO))


# =============================================================================
# Convenience Helpers
# =============================================================================


def log_exception(
    logger: logging.Logger,
    message: str,
    exc: BaseException,
    level: int = logging.ERROR,
    include_traceback: bool = True,
) -> None:
    """Log an exception with optional full traceback.

    Args:
        logger: Logger instance to use
        message: Context message describing what operation failed
        exc: The exception that was raised
        level: Log level to use (default: ERROR)
        include_traceback: If True, include full traceback in log
    """
    exc_type = type(exc).__name__
    exc_message = str(exc)

    extra = {
        "exception_type": exc_type,
        "exception_message": exc_message,
    }

    if include_traceback:
        tb = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        extra["exception_traceback"] = tb
        logger.log(level, f"{message}: [{exc_type}] {exc_message}\n{tb}", extra=extra)
    else:
        logger.log(level, f"{message}: [{exc_type}] {exc_message}", extra=extra)


@contextmanager
def log_timing(
    logger: logging.Logger,
    operation: str,
    level: int = logging.DEBUG,
    warn_threshold_sec: Optional[float] = None,
) -> Generator[None, None, None]:
    """Context manager to log the duration of an operation.

    Optionally emits a warning if the operation exceeds a threshold.

    Example:
        with log_timing(logger, "cloud_start", warn_threshold_sec=10.0):
            await stream_client.connect()
    """
    start_time = time.perf_counter()
    logger.log(level, f"{operation} started")

    try:
        yield
    finally:
        elapsed = time.perf_counter() - start_time
        extra = {
            "operation": operation,
            "elapsed_seconds": round(elapsed, 3),
        }

        if warn_threshold_sec is not None and elapsed > warn_threshold_sec:
            logger.warning(
                f"{operation} completed in {elapsed:.3f}s "
                f"(exceeded {warn_threshold_sec}s threshold)",
                extra=extra,
            )
        else:
            logger.log(level, f"{operation} completed in {elapsed:.3f}s", extra=extra)
