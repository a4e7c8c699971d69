"""Structured JSON logging helpers for reminder dispatch events."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

from sms_reminders.utils.phone import mask_phone

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: int = logging.INFO) -> None:
    """Configure process-wide logging for scheduler and CLI entrypoints."""
    logging.basicConfig(level=level, format=LOG_FORMAT)


class JsonFormatter(logging.Formatter):
    """Format log records as JSON with the dispatch event fields."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "reminder_kind": getattr(record, "reminder_kind", "unknown"),
            "recipient": mask_phone(getattr(record, "recipient", "")),
            "idempotency_key": getattr(record, "idempotency_key", None),
            "status": getattr(record, "status", record.levelname.lower()),
        }

        error_code = getattr(record, "error_code", None)
        error_message = getattr(record, "error_message", None)
        if error_code is not None:
            payload["error_code"] = error_code
        if error_message is not None:
            payload["error_message"] = error_message

        message = record.getMessage()
        if message:
            payload["message"] = message

        return json.dumps(payload, ensure_ascii=False)


def get_structured_logger(name: str = "sms_reminders.dispatch") -> logging.Logger:
    """Return a logger configured to emit JSON records."""
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    logger.setLevel(logging.INFO)
    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    logger.addHandler(handler)
    logger.propagate = False
    return logger


def log_dispatch_event(
    logger: logging.Logger,
    *,
    reminder_kind: str,
    recipient: str,
    idempotency_key: str,
    status: str,
    message: str = "",
    error_code: str | None = None,
    error_message: str | None = None,
) -> None:
    """Emit a structured dispatch event."""
    extra: dict[str, Any] = {
        "reminder_kind": reminder_kind,
        "recipient": recipient,
        "idempotency_key": idempotency_key,
        "status": status,
        "error_code": error_code,
        "error_message": error_message,
    }
    level = logging.WARNING if status == "failed" else logging.INFO
    logger.log(level, message, extra=extra)
