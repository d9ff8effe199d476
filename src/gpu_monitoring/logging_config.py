"""
Structured Logging Configuration for the GPU Monitoring API

Provides:
- JSON formatted logs for log shippers
- Request ID tracking across log entries
- Request completion logging with level chosen by status code
"""

import json
import logging
import sys
import uuid
from contextvars import ContextVar
from datetime import datetime
from typing import Optional

# Context variable for request ID tracking
request_id_ctx: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

_RESERVED_ATTRS = frozenset((
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "exc_info", "exc_text", "thread", "threadName",
    "message", "taskName",
))


class JSONFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Output format:
    {
        "timestamp": "2026-10-19T08:00:00.000Z",
        "level": "INFO",
        "logger": "gpu_monitoring.server",
        "message": "Request completed",
        "request_id": "1a2b3c4d",
        "extra": { ... }
    }
    """

    def format(self, record: logging.LogRecord) -> str:
        log_obj = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        request_id = request_id_ctx.get()
        if request_id:
            log_obj["request_id"] = request_id

        extra_fields = {
            key: value for key, value in record.__dict__.items()
            if key not in _RESERVED_ATTRS
        }
        if extra_fields:
            log_obj["extra"] = extra_fields

        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_obj, default=str)


def setup_logging(level: str = "INFO", json_format: bool = True) -> logging.Logger:
    """
    Configure logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON formatting (True) or plain text (False)

    Returns:
        Configured root logger
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if json_format:
        formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    # Access logs come from our middleware
    uvicorn_access = logging.getLogger("uvicorn.access")
    uvicorn_access.handlers = []
    uvicorn_access.setLevel(logging.CRITICAL)
    uvicorn_access.propagate = False

    return root_logger


def get_uvicorn_log_config(json_format: bool = True) -> dict:
    """
    Get a uvicorn logging configuration matching setup_logging().

    Pass this to uvicorn.run(log_config=...).
    """
    handler = {
        "class": "logging.StreamHandler",
        "stream": "ext://sys.stdout",
    }
    config = {
        "version": 1,
        "disable_existing_loggers": False,
        "handlers": {"default": handler},
        "loggers": {
            "uvicorn": {"handlers": ["default"], "level": "INFO", "propagate": False},
            "uvicorn.error": {"handlers": ["default"], "level": "INFO", "propagate": False},
            "uvicorn.access": {"handlers": [], "level": "CRITICAL", "propagate": False},
        },
    }
    if json_format:
        config["formatters"] = {
            "json": {"()": "gpu_monitoring.logging_config.JSONFormatter"},
        }
        handler["formatter"] = "json"
    return config


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the given name."""
    return logging.getLogger(name)


def generate_request_id() -> str:
    """Generate a short unique request ID."""
    return str(uuid.uuid4())[:8]


def set_request_id(request_id: Optional[str]) -> None:
    """Set the request ID for the current context."""
    request_id_ctx.set(request_id)


def get_request_id() -> Optional[str]:
    """Get the request ID for the current context."""
    return request_id_ctx.get()


def log_request(
    logger: logging.Logger,
    method: str,
    path: str,
    status_code: int,
    duration_ms: float,
    **extra
) -> None:
    """
    Log a completed HTTP request with standard fields.

    Args:
        logger: Logger instance
        method: HTTP method
        path: Request path
        status_code: Response status code
        duration_ms: Request duration in milliseconds
        **extra: Additional fields to include
    """
    log_data = {
        "method": method,
        "path": path,
        "status_code": status_code,
        "duration_ms": round(duration_ms, 2),
        **extra
    }

    if status_code >= 500:
        logger.error("Request failed", extra=log_data)
    elif status_code >= 400:
        logger.warning("Request client error", extra=log_data)
    else:
        logger.info("Request completed", extra=log_data)
