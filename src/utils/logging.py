"""Structured logging for scheduling jobs: correlation IDs, timing, and masking of feed URLs and user IDs."""

import asyncio
import hashlib
import logging
import time
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from functools import wraps
from typing import Any, Callable, Optional
from urllib.parse import urlsplit

from src.utils.logging_config import LoggingConfig, get_logger

_correlation_id_var: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)


def generate_correlation_id(prefix: str = "job") -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def get_correlation_id() -> Optional[str]:
    return _correlation_id_var.get()


@contextmanager
def correlation_context(correlation_id: Optional[str] = None):
    """Tag every log line inside the block with one correlation ID (generated if not given)."""
    token = _correlation_id_var.set(correlation_id or generate_correlation_id())
    try:
        yield _correlation_id_var.get()
    finally:
        _correlation_id_var.reset(token)


class CorrelationIdFilter(logging.Filter):
    """Copies the current correlation ID onto records that do not carry one."""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "correlation_id", None) is None:
            correlation_id = get_correlation_id()
            if correlation_id:
                record.correlation_id = correlation_id
        return True


def _short_hash(value: str, length: int) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()[:length]


def mask_ical_url(url: Optional[str]) -> Optional[str]:
    """
    Mask a calendar feed URL for logging.

    Feed URLs carry access tokens in their path or query string, so only the
    host and a short hash of the full URL are kept.
    """
    if not url or not LoggingConfig.LOG_MASK_SENSITIVE:
        return url
    host = urlsplit(url).netloc or "unknown-host"
    return f"{host}/...#{_short_hash(url, 10)}"


def mask_user_id(user_id: Optional[str]) -> Optional[str]:
    """Shorten long user IDs to a prefix plus hash."""
    if not user_id or not LoggingConfig.LOG_MASK_SENSITIVE or len(user_id) <= 12:
        return user_id
    return f"{user_id[:4]}...{_short_hash(user_id, 8)}"


class StructuredLogger:
    """Wraps a stdlib logger so structured fields can be passed as keyword arguments."""

    def __init__(self, logger: logging.Logger):
        self.logger = logger
        if not any(isinstance(f, CorrelationIdFilter) for f in logger.filters):
            logger.addFilter(CorrelationIdFilter())

    def _log(self, level: int, message: str, exc_info: bool = False, **fields: Any) -> None:
        if self.logger.isEnabledFor(level):
            self.logger.log(level, message, extra=fields, exc_info=exc_info)

    def debug(self, message: str, **fields: Any) -> None:
        self._log(logging.DEBUG, message, **fields)

    def info(self, message: str, **fields: Any) -> None:
        self._log(logging.INFO, message, **fields)

    def warning(self, message: str, **fields: Any) -> None:
        self._log(logging.WARNING, message, **fields)

    def error(self, message: str, exc_info: bool = False, **fields: Any) -> None:
        self._log(logging.ERROR, message, exc_info=exc_info, **fields)

    def exception(self, message: str, **fields: Any) -> None:
        self._log(logging.ERROR, message, exc_info=True, **fields)


def get_structured_logger(name: str) -> StructuredLogger:
    return StructuredLogger(get_logger(name))


@contextmanager
def log_timing(operation_name: str, logger: Optional[StructuredLogger] = None, **context: Any):
    """Log how long the block took, and warn when it passes the slow-operation threshold."""
    logger = logger or get_structured_logger(__name__)
    started = time.perf_counter()
    logger.debug(f"Starting {operation_name}", operation=operation_name, **context)

    try:
        yield
    finally:
        elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
        logger.info(f"Completed {operation_name}", operation=operation_name, duration_ms=elapsed_ms, **context)
        if elapsed_ms > LoggingConfig.LOG_SLOW_OPERATION_THRESHOLD_MS:
            logger.warning(
                f"Slow operation: {operation_name}",
                operation=operation_name,
                duration_ms=elapsed_ms,
                threshold_ms=LoggingConfig.LOG_SLOW_OPERATION_THRESHOLD_MS,
                **context
            )


def timed(operation_name: Optional[str] = None, logger: Optional[StructuredLogger] = None):
    """Decorator form of ``log_timing`` for sync and async functions."""
    def decorator(func: Callable) -> Callable:
        name = operation_name or func.__qualname__
        log = logger or get_structured_logger(func.__module__)

        if asyncio.iscoroutinefunction(func):
            @wraps(func)
            async def async_wrapper(*args, **kwargs):
                with log_timing(name, log):
                    return await func(*args, **kwargs)
            return async_wrapper

        @wraps(func)
        def sync_wrapper(*args, **kwargs):
            with log_timing(name, log):
                return func(*args, **kwargs)
        return sync_wrapper

    return decorator
