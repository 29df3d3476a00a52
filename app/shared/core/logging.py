import sys
import structlog
import logging
from app.shared.core.config import get_settings

SENSITIVE_FIELDS = {
    "email", "password", "token", "secret", "api_key",
    "access_key_id", "secret_access_key", "client_secret", "service_account_json",
}


def sensitive_field_redactor(logger, method_name, event_dict):
    """
    Redact credentials and PII before rendering.
    Provider secrets must never reach the log sink, even in DEBUG.
    """
    for field in SENSITIVE_FIELDS:
        if field in event_dict:
            event_dict[field] = "[REDACTED]"

    for container in ["metadata", "payload", "details", "credentials"]:
        if container in event_dict and isinstance(event_dict[container], dict):
            for field in SENSITIVE_FIELDS:
                if field in event_dict[container]:
                    event_dict[container][field] = "[REDACTED]"

    return event_dict


def setup_logging():
    settings = get_settings()

    if settings.DEBUG:
        renderer = structlog.dev.ConsoleRenderer()
        min_level = logging.DEBUG
    else:
        renderer = structlog.processors.JSONRenderer()
        min_level = logging.INFO

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        sensitive_field_redactor,
        renderer
    ]

    structlog.configure(
        processors=processors,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Route stdlib logging (uvicorn, sqlalchemy) to stdout in the same format
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=min_level,
    )


def audit_log(event: str, user_id: str, details: dict = None):
    """Standardized helper for ownership-sensitive write events."""
    logger = structlog.get_logger("audit")
    logger.info(
        "audit_event",
        audit_event=event,
        user_id=str(user_id),
        metadata=details or {},
    )
