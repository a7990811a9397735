"""Structured logging configuration for all services.

Gateway auth tokens, provider API keys and the provisioner secret travel
through deployment payloads, so every event passes through a masking
processor before rendering.

Usage:
    from shared.logging_config import setup_logging
    import structlog

    setup_logging(service_name="api")  # Uses env defaults for format/level
    logger = structlog.get_logger()
    logger.info("event_name", key1=value1, key2=value2)
"""

import logging
import os
import sys
from typing import Any, Literal

import structlog
from structlog.types import EventDict, Processor

MASK = "********"

SENSITIVE_KEYS = frozenset(
    {
        "token",
        "auth_token",
        "secret",
        "provisioner_secret",
        "password",
        "api_key",
        "authorization",
        "value",
    }
)


def _mask(value: Any) -> Any:
    if isinstance(value, dict):
        return {
            k: MASK if str(k).lower() in SENSITIVE_KEYS and v else _mask(v)
            for k, v in value.items()
        }
    if isinstance(value, list):
        return [_mask(v) for v in value]
    return value


def mask_sensitive_values(_logger: Any, _method: str, event_dict: EventDict) -> EventDict:
    """Replace values of sensitive keys, including nested dicts, with a mask."""
    for key, value in list(event_dict.items()):
        if key.lower() in SENSITIVE_KEYS and value:
            event_dict[key] = MASK
        elif isinstance(value, (dict, list)):
            event_dict[key] = _mask(value)
    return event_dict


def _renderer(log_format: str) -> Processor:
    if log_format == "json":
        return structlog.processors.JSONRenderer(sort_keys=False)
    return structlog.dev.ConsoleRenderer(
        colors=sys.stdout.isatty(), exception_formatter=structlog.dev.plain_traceback
    )


def setup_logging(
    service_name: str | None = None,
    log_format: Literal["json", "console"] | None = None,
    log_level: str | None = None,
) -> None:
    """Configure structlog for a service process.

    Arguments left as None fall back to SERVICE_NAME, LOG_FORMAT and LOG_LEVEL
    from the environment. JSON output is meant for production log shipping,
    console output for local runs.
    """
    service_name = service_name or os.getenv("SERVICE_NAME", "unknown")
    log_format = log_format or os.getenv("LOG_FORMAT", "console")
    log_level = (log_level or os.getenv("LOG_LEVEL", "INFO")).upper()

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level, logging.INFO),
        force=True,
    )
    # httpx logs every request line at INFO, including system-surface URLs
    logging.getLogger("httpx").setLevel(logging.WARNING)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.CallsiteParameterAdder(
                {
                    structlog.processors.CallsiteParameter.FUNC_NAME,
                    structlog.processors.CallsiteParameter.LINENO,
                }
            ),
            mask_sensitive_values,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            _renderer(log_format),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    structlog.contextvars.bind_contextvars(service=service_name)

    structlog.get_logger().info(
        "logging_initialized", service=service_name, log_format=log_format, log_level=log_level
    )


def bind_deployment_context(deployment_id: str, **extra: Any) -> None:
    """Bind deployment_id (and any extra keys) to every subsequent event."""
    structlog.contextvars.bind_contextvars(deployment_id=deployment_id, **extra)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
