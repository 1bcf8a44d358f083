"""
Shared logging configuration for Tile Rules.

Library code calls ``get_logger`` and ``caller_fields``. Hosts call
``configure_logging`` once at startup and may bind request-scoped fields
(a request id, say) with ``structlog.contextvars.bind_contextvars``; they are
merged into every event.
"""

import sys
import logging
from typing import Any, Dict, Mapping

import structlog


def configure_logging(service_name: str, log_level: str = "info") -> None:
    """Configure structured JSON logging for a host process."""
    level = getattr(logging, log_level.upper())

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            add_service_context,
            structlog.processors.JSONRenderer()
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    logging.getLogger(service_name).setLevel(level)


def add_service_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add the top-level package of the emitting logger as ``service``."""
    logger_name = event_dict.get("logger", "")
    if "." in logger_name:
        event_dict["service"] = logger_name.split(".")[0]

    return event_dict


def caller_fields(user: Mapping, organization: Mapping) -> Dict[str, Any]:
    """Correlation fields for the caller an evaluation runs on behalf of.

    Only identifiers are taken from the facets; absent ones are omitted.
    """
    fields = {}
    user_id = user.get("user_id")
    if user_id is not None:
        fields["user_id"] = user_id
    tenant_id = organization.get("organization_id")
    if tenant_id is not None:
        fields["tenant_id"] = tenant_id
    return fields


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)
