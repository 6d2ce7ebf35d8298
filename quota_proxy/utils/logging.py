"""
Structured logging for the GPT quota proxy.

Provides:
- JSON structured logging for production environments
- Single-line human-readable logging for development
- Request context (request_id, user_id) propagation
- Sensitive data filtering (API keys, bearer tokens)
- Timing of upstream calls
"""

import json
import logging
import re
import sys
import time
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

# Context variables for request tracking
request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
user_id_var: ContextVar[Optional[str]] = ContextVar("user_id", default=None)

# Patterns for sensitive data that should be redacted
SENSITIVE_PATTERNS: list[re.Pattern] = [
    re.compile(r'api[_-]?key["\']?\s*[:=]\s*["\']?[\w-]+', re.IGNORECASE),
    re.compile(r'secret["\']?\s*[:=]\s*["\']?[\w-]+', re.IGNORECASE),
    re.compile(r'token["\']?\s*[:=]\s*["\']?[\w.-]+', re.IGNORECASE),
    re.compile(r'bearer\s+[\w.-]+', re.IGNORECASE),
    re.compile(r'authorization["\']?\s*[:=]\s*["\']?[^\s,}]+', re.IGNORECASE),
    re.compile(r'sk-(?:proj-)?[\w-]{8,}'),  # OpenAI secret keys
    re.compile(r'eyJ[\w-]+\.eyJ[\w-]+\.[\w-]+', re.IGNORECASE),  # JWT tokens
]

REDACTED = "[REDACTED]"

# Fields to exclude from extra data in JSON logs
EXCLUDED_RECORD_ATTRS = frozenset({
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "exc_info", "exc_text", "thread", "threadName",
    "request_id", "user_id", "message", "taskName",
})


def redact_sensitive_data(message: str) -> str:
    """
    Redact sensitive data from log messages.

    Args:
        message: The log message to sanitize

    Returns:
        Message with sensitive data replaced with [REDACTED]
    """
    if not message:
        return message

    result = message
    for pattern in SENSITIVE_PATTERNS:
        result = pattern.sub(REDACTED, result)
    return result


class RequestContextFilter(logging.Filter):
    """Add request context to all log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get() or "-"
        record.user_id = user_id_var.get() or "-"
        return True


class SensitiveDataFilter(logging.Filter):
    """Filter sensitive data from log messages."""

    def filter(self, record: logging.LogRecord) -> bool:
        if record.msg:
            record.msg = redact_sensitive_data(str(record.msg))
        if record.args:
            record.args = tuple(
                redact_sensitive_data(str(arg)) if isinstance(arg, str) else arg
                for arg in record.args
            )
        return True


class JSONFormatter(logging.Formatter):
    """
    JSON formatter for structured logging in production.

    Outputs logs as single-line JSON objects:
    {
        "timestamp": "2024-01-15T10:30:00.123456Z",
        "level": "INFO",
        "logger": "quota_proxy.usage.ledger",
        "message": "Reserved usage slot 1/3 ...",
        "service": "gpt-quota-proxy",
        "request_id": "abc-123",
        "user_id": "user-456",
        "extra": {...}
    }
    """

    def __init__(self, service_name: str = "gpt-quota-proxy"):
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.service_name,
            "request_id": getattr(record, "request_id", "-"),
            "user_id": getattr(record, "user_id", "-"),
        }

        # Add source location for errors and above
        if record.levelno >= logging.ERROR:
            log_data["source"] = {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            }

        if record.exc_info:
            log_data["exception"] = redact_sensitive_data(self.formatException(record.exc_info))

        extra_fields = {
            k: v for k, v in record.__dict__.items()
            if k not in EXCLUDED_RECORD_ATTRS and not k.startswith("_")
        }
        if extra_fields:
            log_data["extra"] = extra_fields

        return json.dumps(log_data, default=str, ensure_ascii=False)


class DevelopmentFormatter(logging.Formatter):
    """
    Single-line format for local runs.

    Format: HH:MM:SS LEVEL    [req_id] [user_id] logger - message
    Ids are cut to eight characters.
    """

    def __init__(self):
        super().__init__(
            fmt="%(asctime)s %(levelname)-8s [%(request_id).8s] [%(user_id).8s] %(name)s - %(message)s",
            datefmt="%H:%M:%S",
        )

    def formatException(self, ei) -> str:
        return redact_sensitive_data(super().formatException(ei))


# Third-party loggers that are too chatty at INFO
QUIET_LOGGERS = ("uvicorn.access", "httpx", "httpcore", "openai", "asyncio")


def setup_logging(
    service_name: str = "gpt-quota-proxy",
    level: str = "INFO",
    json_format: bool = False,
) -> logging.Logger:
    """
    Install a single stdout handler on the root logger.

    Called once by the server before the rest of the application is
    imported. Existing root handlers are replaced.

    Args:
        service_name: Value of the ``service`` field in JSON logs.
        level: Log level name.
        json_format: JSON lines instead of the development format.

    Returns:
        The root logger.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for existing in root_logger.handlers[:]:
        root_logger.removeHandler(existing)

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(RequestContextFilter())
    handler.addFilter(SensitiveDataFilter())
    handler.setFormatter(JSONFormatter(service_name) if json_format else DevelopmentFormatter())
    root_logger.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    root_logger.info(f"Logging configured at {level} ({'json' if json_format else 'development'} format)")
    return root_logger


def set_request_context(
    request_id: Optional[str] = None,
    user_id: Optional[str] = None,
) -> None:
    """
    Set request context for the current async context.

    Args:
        request_id: Unique identifier for the request
        user_id: Authenticated user identifier
    """
    if request_id is not None:
        request_id_var.set(request_id)
    if user_id is not None:
        user_id_var.set(user_id)


def clear_request_context() -> None:
    """Clear request context after request completion."""
    request_id_var.set(None)
    user_id_var.set(None)


def get_request_id() -> Optional[str]:
    """Get current request ID from context."""
    return request_id_var.get()


class Timer:
    """
    Context manager for timing operations.

    Usage:
        with Timer("openai_chat_completion", logger):
            response = await client.chat.completions.create(...)
    """

    def __init__(
        self,
        name: str,
        logger: Optional[logging.Logger] = None,
        log_level: int = logging.DEBUG,
    ):
        self.name = name
        self.logger = logger
        self.log_level = log_level
        self.start_time: Optional[float] = None
        self.elapsed_ms: float = 0

    def __enter__(self) -> "Timer":
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self.start_time is not None:
            self.elapsed_ms = (time.perf_counter() - self.start_time) * 1000

        if self.logger:
            self.logger.log(
                self.log_level,
                f"{self.name} completed in {self.elapsed_ms:.2f}ms",
                extra={
                    "operation": self.name,
                    "duration_ms": round(self.elapsed_ms, 2),
                    "success": exc_type is None,
                },
            )
