"""
Structured logging for the pricing engine.

Engines log through ``treeshop.<engine>`` loggers and attach job context
(``line_item_id``, ``work_order_id``) as ``extra``; both formatters below
surface that context so a quote or reconciliation can be traced end to end.
"""
import logging
import json
import sys
from datetime import datetime, timezone
from typing import Optional

# Record attributes promoted to top-level keys when present
EXTRA_FIELDS = ("request_id", "line_item_id", "work_order_id", "duration_ms")

QUIET_LOGGERS = ("uvicorn.access", "httpcore", "httpx", "watchfiles")


def _context(record: logging.LogRecord) -> dict:
    return {
        name: getattr(record, name)
        for name in EXTRA_FIELDS
        if getattr(record, name, None) is not None
    }


class JSONFormatter(logging.Formatter):
    """One JSON object per line, for log shippers."""
    def format(self, record):
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "function": record.funcName,
            "line": record.lineno,
        }
        log_entry.update(_context(record))
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, default=str)


class ContextTextFormatter(logging.Formatter):
    """Human-readable lines with job context appended as key=value pairs."""
    def __init__(self):
        super().__init__("%(asctime)s [%(name)s] %(levelname)s: %(message)s")

    def format(self, record):
        line = super().format(record)
        context = _context(record)
        if context:
            line += " " + " ".join(f"{k}={v}" for k, v in context.items())
        return line


def setup_logging(level: str = "INFO", json_output: bool = True, engine_level: Optional[str] = None):
    """
    Configure root logging once at startup.

    ``engine_level`` overrides the level of the ``treeshop`` logger tree only,
    e.g. DEBUG to trace every score and price while the API stays at INFO.
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter() if json_output else ContextTextFormatter())
    root.handlers = [handler]

    if engine_level:
        logging.getLogger("treeshop").setLevel(getattr(logging, engine_level.upper(), logging.INFO))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
