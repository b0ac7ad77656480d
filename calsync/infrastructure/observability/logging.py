"""
structlog configuration for the API process and the sync worker.

Logs are one JSON object per line on stdout. OAuth secrets passed as
keyword fields are redacted before rendering.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.stdlib import LoggerFactory

_SECRET_FIELDS = ("access_token", "refresh_token", "client_secret", "code")
_QUIET_LOGGERS = ("httpx", "httpcore", "uvicorn.access")


def _drop_secret_fields(logger, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    for field in _SECRET_FIELDS:
        if field in event_dict:
            event_dict[field] = "[redacted]"
    return event_dict


def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure structlog on top of stdlib logging.

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL
    """
    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            _drop_secret_fields,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def preview(value: str | None, length: int = 8) -> str:
    """Log-safe prefix of an opaque value such as a state, code or token."""
    if not value:
        return ""
    return value[:length] + "..."


def log_request(method: str, path: str, status_code: int, duration_ms: float, user_id: str = None):
    """One line per HTTP request; 4xx/5xx at warning level."""
    fields = {
        "method": method,
        "path": path,
        "status_code": status_code,
        "duration_ms": duration_ms,
    }
    if user_id:
        fields["user_id"] = user_id

    logger = get_logger("http")
    if status_code >= 400:
        logger.warning("HTTP request failed", **fields)
    else:
        logger.info("HTTP request completed", **fields)
