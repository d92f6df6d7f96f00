# src/utils/logging_config.py
"""
Centralized structlog setup.

Development renders coloured console lines, production renders JSON.
Call configure_logging() once per process (Home.py and the API do).
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Any, Dict

import structlog
from structlog.types import EventDict, Processor

SENSITIVE_KEYS = {
    "password", "api_key", "secret", "token", "authorization",
    "service_key", "encryption_key",
}

_configured = False


def add_app_context(logger: logging.Logger, method_name: str, event_dict: EventDict) -> EventDict:
    event_dict["app"] = "spark"
    return event_dict


def sanitize_event(logger: logging.Logger, method_name: str, event_dict: EventDict) -> EventDict:
    """Redact secrets and truncate very long values (raw model replies, base64)."""

    def _sanitize(d: Dict[str, Any]) -> Dict[str, Any]:
        out = {}
        for key, value in d.items():
            if any(s in str(key).lower() for s in SENSITIVE_KEYS):
                out[key] = "***REDACTED***"
            elif isinstance(value, dict):
                out[key] = _sanitize(value)
            elif isinstance(value, str) and len(value) > 1000:
                out[key] = value[:100] + "...[truncated]"
            else:
                out[key] = value
        return out

    return _sanitize(event_dict)


def configure_logging(environment: str | None = None) -> None:
    global _configured
    environment = environment or os.getenv("SPARK_ENV", "development")

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        add_app_context,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        sanitize_event,
    ]

    if environment == "production":
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = shared_processors + [
            structlog.dev.ConsoleRenderer(
                colors=True,
                exception_formatter=structlog.dev.plain_traceback,
            ),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    if not _configured:
        logging.basicConfig(format="%(message)s", stream=sys.stdout, level=logging.INFO)
        _configured = True


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
