"""
Logging setup - human-readable in development, JSON lines when LOG_FORMAT=json.

Usage:
    from logging_config import setup_logging
    setup_logging(get_settings())

Modules log through logging.getLogger(__name__).
"""

import json
import logging
import sys
from datetime import datetime, timezone

from config import Settings

TEXT_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


class JsonFormatter(logging.Formatter):
    """One JSON object per record, for log aggregators."""

    def format(self, record: logging.LogRecord) -> str:
        log_obj = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_obj, default=str)


def setup_logging(settings: Settings) -> None:
    """Configure the root logger once; repeated calls replace the handler."""
    handler = logging.StreamHandler(sys.stdout)
    if settings.log_format == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))

    root = logging.getLogger()
    for existing in list(root.handlers):
        if getattr(existing, "_insight_map", False):
            root.removeHandler(existing)
    handler._insight_map = True  # type: ignore[attr-defined]
    root.addHandler(handler)
    root.setLevel(getattr(logging, settings.log_level, logging.INFO))
