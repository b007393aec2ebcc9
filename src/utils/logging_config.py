"""Logging configuration for scheduling jobs, driven by environment variables."""

import os
import logging
import sys
from typing import Optional
from pythonjsonlogger import jsonlogger

SERVICE_NAME = "media-tracker-scheduling"


class LoggingConfig:
    """Log output settings."""

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
    LOG_FORMAT = os.environ.get("LOG_FORMAT", "json").lower()
    LOG_MASK_SENSITIVE = os.environ.get("LOG_MASK_SENSITIVE", "true").lower() == "true"
    LOG_SLOW_OPERATION_THRESHOLD_MS = int(os.environ.get("LOG_SLOW_OPERATION_THRESHOLD_MS", "1000"))
    ENVIRONMENT = os.environ.get("ENVIRONMENT", "production")

    # Libraries that log every request or every skipped calendar property
    QUIET_LOGGERS = ("httpx", "httpcore", "hpack", "supabase", "postgrest", "icalendar")

    @classmethod
    def level(cls) -> int:
        return getattr(logging, cls.LOG_LEVEL, logging.INFO)

    @classmethod
    def build_formatter(cls) -> logging.Formatter:
        if cls.LOG_FORMAT == "json":
            return SchedulingJsonFormatter(
                "%(timestamp)s %(levelname)s %(name)s %(message)s",
                timestamp=True
            )
        return logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    @classmethod
    def setup_logging(cls, stream: Optional[object] = None) -> None:
        """Route all logs to one stdout handler; safe to call more than once."""
        root_logger = logging.getLogger()
        root_logger.setLevel(cls.level())
        root_logger.handlers.clear()

        handler = logging.StreamHandler(stream or sys.stdout)
        handler.setLevel(cls.level())
        handler.setFormatter(cls.build_formatter())
        root_logger.addHandler(handler)

        for name in cls.QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)


class SchedulingJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter that stamps every line with the service and environment."""

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)
        log_record.setdefault("service", SERVICE_NAME)
        log_record.setdefault("environment", LoggingConfig.ENVIRONMENT)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
