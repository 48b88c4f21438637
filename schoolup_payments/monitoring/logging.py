"""
Structured logging configuration.

Every event is one JSON line carrying the service name, the environment and
the request id bound by the API middleware. Payer phone numbers are masked
before rendering, and kwacha amounts render as plain strings.
"""
import logging
import sys
from decimal import Decimal
from typing import Any, Optional

import structlog
from pythonjsonlogger import jsonlogger

from schoolup_payments.config import Settings, get_settings

PHONE_FIELDS = ("payer_phone", "phone", "contact_phone")

# Libraries whose INFO output duplicates our own request events
QUIET_LOGGERS = ("uvicorn.access", "httpx")


def mask_phone(phone: str) -> str:
    """Keep the country code and the last three digits: +260*******003."""
    if len(phone) <= 7:
        return "*" * len(phone)
    return phone[:4] + "*" * (len(phone) - 7) + phone[-3:]


def mask_payer_phones(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    for field in PHONE_FIELDS:
        value = event_dict.get(field)
        if isinstance(value, str):
            event_dict[field] = mask_phone(value)
    return event_dict


def render_amounts(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """JSONRenderer would repr() a Decimal as Decimal('1000.00')."""
    for key, value in event_dict.items():
        if isinstance(value, Decimal):
            event_dict[key] = str(value)
    return event_dict


def service_context(settings: Settings):
    """Build a processor stamping every event with the service identity."""

    def add_service_context(
        logger: Any, method_name: str, event_dict: dict[str, Any]
    ) -> dict[str, Any]:
        event_dict.setdefault("app_name", settings.app_name)
        event_dict.setdefault("app_env", settings.app_env)
        event_dict.setdefault("currency", settings.currency)
        return event_dict

    return add_service_context


def setup_logging(settings: Optional[Settings] = None) -> None:
    """
    Route structlog and stdlib logging to JSON lines on stdout.

    Args:
        settings: Source of log level and service identity (defaults to env)
    """
    settings = settings or get_settings()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            service_context(settings),
            mask_payer_phones,
            render_amounts,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, settings.log_level))
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        jsonlogger.JsonFormatter(
            "%(asctime)s %(levelname)s %(name)s %(message)s",
            rename_fields={"asctime": "@timestamp", "levelname": "level", "name": "logger"},
        )
    )
    root_logger.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.get_logger(__name__).info(
        "logging_configured",
        log_level=settings.log_level,
        app_env=settings.app_env,
    )
