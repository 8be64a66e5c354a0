"""
Structured Logging Configuration Module

Module loggers live under ``credit_engine.<area>`` (``credit_engine.schedule``,
``credit_engine.allocation``, ``credit_engine.credits`` ...). Business events
such as recorded or voided payments go through ``log_action`` so they carry
the operator, action and affected resource as separate JSON fields.
"""

import logging
import json
from datetime import datetime, timezone
from typing import Optional

from .config import get_config


STRUCTURED_FIELDS = ("correlation_id", "user_id", "action", "resource", "extra")

TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class JSONFormatter(logging.Formatter):
    """Render each record as one JSON object, omitting empty fields"""

    def format(self, record):
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "module": record.module,
            "message": record.getMessage(),
        }
        for field in STRUCTURED_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                log_entry[field] = value

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def setup_logging(level: Optional[str] = None, logger_name: str = "credit_engine") -> logging.Logger:
    """
    Attach a single handler to the engine's root logger.

    Args:
        level: Log level name; defaults to the configured ``log_level``
        logger_name: Logger to configure

    Returns:
        The configured logger
    """
    settings = get_config()
    logger = logging.getLogger(logger_name)

    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handler = logging.FileHandler(settings.log_file) if settings.log_file else logging.StreamHandler()
    if settings.log_format == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))

    logger.addHandler(handler)
    logger.setLevel((level or settings.log_level).upper())
    logger.propagate = False

    return logger


def get_logger(area: Optional[str] = None) -> logging.Logger:
    """Logger for an engine area, e.g. ``get_logger("credits")``"""
    return logging.getLogger(f"credit_engine.{area}" if area else "credit_engine")


def log_action(logger: logging.Logger, level: str, message: str,
               user_id: Optional[str] = None, action: Optional[str] = None,
               resource: Optional[str] = None, correlation_id: Optional[str] = None,
               extra: Optional[dict] = None):
    """
    Log a business event with structured fields.

    Args:
        logger: Module logger
        level: Level name (info, warning ...)
        message: Human readable message
        user_id: Operator who triggered the event
        action: Event name, e.g. ``payment_recorded``
        resource: Affected record, e.g. ``credit:<id>``
        correlation_id: Id shared by events of one request
        extra: Event specific data
    """
    levelno = logging.getLevelName(level.upper())
    if not logger.isEnabledFor(levelno):
        return

    record = logger.makeRecord(logger.name, levelno, __name__, 0, message, (), None)
    fields = {
        "user_id": user_id,
        "action": action,
        "resource": resource,
        "correlation_id": correlation_id,
        "extra": extra,
    }
    for name, value in fields.items():
        if value:
            setattr(record, name, value)

    logger.handle(record)
