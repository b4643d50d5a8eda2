"""Structured logging for the VWBL client.

The client only emits events through `get_logger`; `setup_logging` is for
applications that want the client's events rendered alongside their own.
Content keys and wallet signatures are masked before rendering.
"""

import logging
import sys
from typing import Any, cast

import structlog

from vwbl.config import Settings, get_settings

SECRET_FIELDS = frozenset(
    {"key", "signature", "private_key", "api_key", "access_key", "secret_key"}
)

# Chatty below WARNING during uploads and RPC calls
CLIENT_LIBRARY_LOGGERS = ("httpx", "httpcore", "botocore", "boto3", "urllib3", "web3")


def redact_secrets(_logger: Any, _method: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Mask values bound under secret field names."""
    for field in SECRET_FIELDS.intersection(event_dict):
        if event_dict[field]:
            event_dict[field] = "***"
    return event_dict


def setup_logging(settings: Settings | None = None) -> None:
    """Route client events through structlog.

    Args:
        settings: Client settings; defaults to the cached environment settings
    """
    settings = settings or get_settings()
    log_level = logging.DEBUG if settings.app_debug else logging.INFO

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        redact_secrets,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]
    if settings.is_development:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))
    else:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=log_level)
    logging.getLogger("vwbl").setLevel(log_level)
    for name in CLIENT_LIBRARY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a logger instance."""
    return cast(structlog.stdlib.BoundLogger, structlog.get_logger(name))
