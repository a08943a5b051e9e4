"""
Logging Configuration for the Engagement API.

This module provides a centralized logging setup. Development runs get
color-coded, human-readable console output; every other environment gets
structured JSON suitable for log shippers. Each record carries the request's
correlation ID when one is set.

Key Components:
- `CorrelationFilter`: injects the current correlation ID into each record.
- `JSONFormatter`: renders records, including `extra` fields, as one JSON
  object per line.
- `ColoredConsoleFormatter`: colors the level name for local development.
- `get_logging_config` / `setup_logging`: build and apply the `dictConfig`.
- `log_function_call`: decorator logging entry, exit, failure and timing of
  service calls.

The correlation ID lives in a `ContextVar`, so concurrent requests served on
the same event loop each see their own ID.
"""

import functools
import json
import logging
import logging.config
import os
import time
from datetime import datetime, timezone
from typing import Dict, Any, Optional
from contextvars import ContextVar

# Context variable for request correlation ID
correlation_id: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

_RESERVED_ATTRS = {
    "name",
    "msg",
    "args",
    "levelname",
    "levelno",
    "pathname",
    "filename",
    "module",
    "lineno",
    "funcName",
    "created",
    "msecs",
    "relativeCreated",
    "thread",
    "threadName",
    "processName",
    "process",
    "taskName",
    "getMessage",
    "exc_info",
    "exc_text",
    "stack_info",
    "correlation_id",
}


class CorrelationFilter(logging.Filter):
    """Filter that adds correlation ID to log records"""

    def filter(self, record: logging.LogRecord) -> bool:
        corr_id = correlation_id.get()
        if corr_id:
            record.correlation_id = corr_id
        return True


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging"""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if hasattr(record, "correlation_id"):
            log_entry["correlation_id"] = record.correlation_id

        if record.exc_info:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": self.formatException(record.exc_info),
            }

        # Add extra fields
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and key not in log_entry:
                log_entry[key] = value

        return json.dumps(log_entry, default=str)


class ColoredConsoleFormatter(logging.Formatter):
    """Colored console formatter for development"""

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        timestamp = datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S")

        corr_id = getattr(record, "correlation_id", None)
        corr_part = f" [{corr_id}]" if corr_id else ""

        formatted = (
            f"{color}[{timestamp}] {record.levelname:8} {record.name}{corr_part}: "
            f"{record.getMessage()}{self.RESET}"
        )

        if record.exc_info:
            formatted += "\n" + self.formatException(record.exc_info)

        return formatted


def get_logging_config(
    environment: Optional[str] = None, log_level: Optional[str] = None
) -> Dict[str, Any]:
    """Get logging configuration based on environment"""

    environment = (environment or os.getenv("ENVIRONMENT", "development")).lower()
    log_level = (log_level or os.getenv("LOG_LEVEL", "INFO")).upper()

    config = {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "correlation": {"()": CorrelationFilter},
        },
        "formatters": {
            "json": {
                "()": JSONFormatter,
            },
            "colored_console": {
                "()": ColoredConsoleFormatter,
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": log_level,
                "formatter": "colored_console" if environment == "development" else "json",
                "filters": ["correlation"],
                "stream": "ext://sys.stdout",
            },
        },
        "loggers": {
            # Application loggers
            "api": {"level": log_level, "handlers": ["console"], "propagate": False},
            "services": {"level": log_level, "handlers": ["console"], "propagate": False},
            "core": {"level": log_level, "handlers": ["console"], "propagate": False},
            # Third-party loggers
            "uvicorn": {"level": "INFO", "handlers": ["console"], "propagate": False},
            "sqlalchemy.engine": {
                "level": "WARNING",
                "handlers": ["console"],
                "propagate": False,
            },
        },
        "root": {"level": log_level, "handlers": ["console"]},
    }

    # Add file logging for production
    if environment == "production":
        config["handlers"]["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": log_level,
            "formatter": "json",
            "filters": ["correlation"],
            "filename": os.getenv("LOG_FILE", "/var/log/engagement_api/app.log"),
            "maxBytes": 10485760,  # 10MB
            "backupCount": 5,
        }

        for logger_config in config["loggers"].values():
            logger_config["handlers"].append("file")
        config["root"]["handlers"].append("file")

    return config


def setup_logging(environment: Optional[str] = None, log_level: Optional[str] = None):
    """Initialize logging configuration"""
    logging.config.dictConfig(get_logging_config(environment, log_level))

    logger = logging.getLogger("core.logging")
    logger.info(
        f"Logging initialized for {environment or os.getenv('ENVIRONMENT', 'development')} environment"
    )


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance with the specified name"""
    return logging.getLogger(name)


def set_correlation_id(corr_id: str):
    """Set correlation ID for the current context"""
    correlation_id.set(corr_id)


def get_correlation_id() -> Optional[str]:
    """Get correlation ID from the current context"""
    return correlation_id.get()


def log_function_call(logger: logging.Logger):
    """Decorator to log coroutine calls with execution time"""

    def decorator(func):
        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs):
            start_time = time.time()
            logger.debug(
                f"Calling {func.__name__}",
                extra={"args_count": len(args), "kwargs_keys": list(kwargs.keys())},
            )

            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                logger.error(
                    f"Failed {func.__name__}: {str(e)}",
                    extra={
                        "execution_time_ms": round((time.time() - start_time) * 1000, 2),
                        "success": False,
                        "error_type": type(e).__name__,
                    },
                    exc_info=True,
                )
                raise

            logger.debug(
                f"Completed {func.__name__}",
                extra={
                    "execution_time_ms": round((time.time() - start_time) * 1000, 2),
                    "success": True,
                },
            )
            return result

        return async_wrapper

    return decorator
