"""Logging setup for the Thing System.

One stdout handler, JSON lines or plain text. Records are stamped with
the current request id (set by the request context middleware) so log
lines from one HTTP request can be grouped. Lines from the background
watcher and reconciler threads carry the thread name instead.
"""

import contextvars
import json
import logging
import sys
import threading
from datetime import datetime, timezone
from typing import Optional

# Set by the request context middleware; empty outside a request.
request_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("request_id", default="")

_TEXT_FORMAT = "%(asctime)s %(levelname)-8s %(name)s [%(request_id)s] %(message)s"

# Third-party loggers capped at WARNING.
_NOISY_LOGGERS = ("uvicorn.access", "sqlalchemy.engine")

_STANDARD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "request_id"}


class _RequestIdFilter(logging.Filter):
    """Attach ``record.request_id``: the request id, or the thread name."""

    def filter(self, record: logging.LogRecord) -> bool:
        rid = request_id_var.get()
        if not rid and threading.current_thread() is not threading.main_thread():
            rid = record.threadName
        record.request_id = rid or "-"
        return True


class _JsonFormatter(logging.Formatter):
    """Render a record as one JSON object; ``extra`` fields become top-level keys."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "request_id": getattr(record, "request_id", "-"),
            "message": record.getMessage(),
        }
        entry.update(
            (key, value) for key, value in vars(record).items()
            if key not in _STANDARD_ATTRS and key not in entry
        )
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def setup_logging(log_level: Optional[str] = None, log_format: Optional[str] = None) -> None:
    """Install the root handler.

    Args:
        log_level: standard level name, INFO when omitted.
        log_format: ``"json"`` (default) or ``"text"``.
    """
    level = (log_level or "INFO").upper()
    fmt = (log_format or "json").lower()

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(_RequestIdFilter())
    if fmt == "json":
        handler.setFormatter(_JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(_TEXT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).debug("Logging configured (level=%s, format=%s)", level, fmt)
