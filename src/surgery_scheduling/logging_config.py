"""Logging configuration for the surgery scheduling system."""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

# Booking identifiers passed through ``extra=`` and copied into JSON records.
CONTEXT_FIELDS = ("surgery_id", "doctor_id", "patient_id", "theater_id")

TEXT_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


class JSONFormatter(logging.Formatter):
    """Render each record as a single JSON object."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for field in CONTEXT_FIELDS:
            if hasattr(record, field):
                log_data[field] = getattr(record, field)
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_data, default=str)


def configure_logging(level: str | None = None, fmt: str | None = None) -> logging.Logger:
    """Attach a stderr handler to the package logger.

    ``level`` and ``fmt`` default to SURGERY_LOG_LEVEL (INFO) and
    SURGERY_LOG_FORMAT (``text`` or ``json``). Calling it again replaces the
    handler rather than stacking another one.
    """
    level_name = (level or os.environ.get("SURGERY_LOG_LEVEL") or "INFO").upper()
    log_level = getattr(logging, level_name, None)
    if not isinstance(log_level, int):
        log_level = logging.INFO
    fmt = (fmt or os.environ.get("SURGERY_LOG_FORMAT") or "text").lower()

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if fmt == "json" else logging.Formatter(TEXT_FORMAT))
    handler.set_name("surgery_scheduling")

    package_logger = logging.getLogger("surgery_scheduling")
    for existing in list(package_logger.handlers):
        if existing.get_name() == "surgery_scheduling":
            package_logger.removeHandler(existing)
    package_logger.addHandler(handler)
    package_logger.setLevel(log_level)
    return package_logger
