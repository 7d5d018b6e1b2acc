"""
Logging setup for the engine.

One stderr handler on the root logger: JSON lines when TRIAGE_LOG_JSON
is set, a plain one-line format otherwise. Level from TRIAGE_LOG_LEVEL.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Optional

from .config import Settings, get_settings


# Context the services attach through `extra=`
CONTEXT_FIELDS = (
    "group_key",
    "sequence",
    "ticket_id",
    "work_order_id",
    "architect_id",
    "event_type",
)

READABLE_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


class JSONFormatter(logging.Formatter):
    """One JSON object per record, engine context included."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in CONTEXT_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                entry[key] = str(value)
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


def configure_logging(settings: Optional[Settings] = None) -> logging.Handler:
    """Replace the root handlers with a single stderr handler and return it."""
    settings = settings or get_settings()
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    if settings.log_json:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(READABLE_FORMAT, "%H:%M:%S"))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)
    return handler
