"""
Structured logging configuration for the credential provisioner.
Provides consistent logging across all components.
"""

import logging
import sys
import time
from functools import wraps
from typing import Any, Dict, Optional
import structlog
from config.app_config import get_config

# Event keys whose values are credentials or service secrets
SECRET_KEYS = frozenset({
    "password",
    "admin_password",
    "app_token",
    "Auth_Password_str",
    "X-VPNADMIN-PASSWORD",
    "X-Gotify-Key",
})

REDACTED = "***"

def redact_secrets(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """structlog processor masking secret values, including one level of nested dicts."""
    for key, value in list(event_dict.items()):
        if key in SECRET_KEYS:
            event_dict[key] = REDACTED
        elif isinstance(value, dict) and SECRET_KEYS.intersection(value):
            event_dict[key] = {k: (REDACTED if k in SECRET_KEYS else v) for k, v in value.items()}
    return event_dict

def setup_structured_logging(log_level: Optional[str] = None) -> None:
    """Setup structured logging configuration."""
    level = log_level or get_config().monitoring.log_level

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper(), logging.INFO)
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            redact_secrets,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer()
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)

class LoggerMixin:
    """Mixin to add logging capabilities to classes."""

    @property
    def logger(self) -> structlog.BoundLogger:
        """Get logger for this class."""
        return get_logger(self.__class__.__name__)

def log_performance(func):
    """
    Decorator timing a document or remote operation.

    Arguments are never logged since they carry credentials. When the bound
    instance exposes a ``protocol`` it is added to the event.
    """

    @wraps(func)
    def wrapper(*args, **kwargs):
        log = get_logger(func.__module__)
        protocol = getattr(args[0], "protocol", None) if args else None
        if isinstance(protocol, str):
            log = log.bind(protocol=protocol)
        started = time.monotonic()

        try:
            result = func(*args, **kwargs)
        except Exception as e:
            log.warning(
                "Operation failed",
                operation=func.__qualname__,
                elapsed_ms=round((time.monotonic() - started) * 1000, 2),
                error_type=type(e).__name__
            )
            raise
        log.debug(
            "Operation completed",
            operation=func.__qualname__,
            elapsed_ms=round((time.monotonic() - started) * 1000, 2)
        )
        return result
    return wrapper
