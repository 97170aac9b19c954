from __future__ import annotations

import logging
import os
import sys
from typing import Any, Optional

import structlog

from tradelog.utils.config import get_settings

REDACTED = "***REDACTED***"
SENSITIVE_KEYS = {"password", "secret", "token", "access_token", "account_number"}
MASKED_KEYS = {"email", "admin_email"}

# libraries that log every request or multipart chunk at INFO
NOISY_LOGGERS = ("uvicorn.access", "multipart", "python_multipart")


def mask_email(value: str) -> str:
    local, sep, domain = value.partition("@")
    if not sep:
        return REDACTED
    return f"{local[:1]}***@{domain}"


def sanitize_log_data(data: dict[str, Any]) -> dict[str, Any]:
    sanitized: dict[str, Any] = {}
    for key, value in data.items():
        k = key.lower()
        if k in SENSITIVE_KEYS:
            sanitized[key] = REDACTED
        elif k in MASKED_KEYS and isinstance(value, str):
            sanitized[key] = mask_email(value)
        elif isinstance(value, dict):
            sanitized[key] = sanitize_log_data(value)
        elif isinstance(value, list):
            sanitized[key] = [sanitize_log_data(v) if isinstance(v, dict) else v for v in value]
        else:
            sanitized[key] = value
    return sanitized


def _redact(logger: Any, method: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    return sanitize_log_data(event_dict)


def setup_logging(level: Optional[str] = None) -> None:
    """JSON lines to stdout, and to the log file when one is configured."""
    settings = get_settings()
    log_level = getattr(logging, (level or settings.log_level).upper(), logging.INFO)

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if settings.log_file:
        os.makedirs(os.path.dirname(settings.log_file) or ".", exist_ok=True)
        handlers.append(logging.FileHandler(settings.log_file, mode="a"))

    logging.basicConfig(format="%(message)s", level=log_level, handlers=handlers, force=True)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            _redact,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def bind_request(user_id: Optional[str], path: str) -> None:
    """Attach the caller to every log line emitted while serving this request."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(user_id=user_id or "anonymous", path=path)


def clear_request() -> None:
    structlog.contextvars.clear_contextvars()
