"""
Structured logging for the tracker.

- Production: one JSON object per line, tagged with the service name
- Development: short colored lines with the task/user context appended
- LOG_LEVEL env variable overrides the level

Services pass workflow context through ``extra``:

    logger.info("Task %s: %s -> %s", ..., extra={"task_id": task.id,
                                                 "user_id": actor.id,
                                                 "event_type": "rollback"})

``RequestContextFilter`` stamps every record emitted inside a request with
the request id set by ``tracker.middleware.timing``, so service log lines
can be joined to the access log line of the same request.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

from flask import g, has_request_context

SERVICE_NAME = "change-request-tracker"

# Request-level fields (set by the timing middleware)
REQUEST_KEYS = ("method", "path", "status", "duration_ms", "remote_addr", "request_id")
# Workflow-level fields (set by services)
CONTEXT_KEYS = ("task_id", "user_id", "event_type")

_QUIET_LOGGERS = ("werkzeug", "sqlalchemy.engine", "alembic", "flask_limiter")


class RequestContextFilter(logging.Filter):
    """Copy ``g.request_id`` onto records that do not carry one."""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "request_id", None) is None and has_request_context():
            record.request_id = getattr(g, "request_id", None)
        return True


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "service": SERVICE_NAME,
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for key in REQUEST_KEYS + CONTEXT_KEYS:
            value = getattr(record, key, None)
            if value is not None:
                entry[key] = value
        if record.exc_info and record.exc_info[0] is not None:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    LEVEL_COLORS = {
        logging.DEBUG: "\033[2m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[1;31m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, "")
        clock = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        line = f"{color}{clock} {record.levelname[:4]}{self.RESET} {record.name}: {record.getMessage()}"

        context = [
            f"{key.split('_')[0]}={str(getattr(record, key))[:8]}"
            for key in ("task_id", "user_id")
            if getattr(record, key, None)
        ]
        if getattr(record, "event_type", None):
            context.append(record.event_type)
        if getattr(record, "duration_ms", None) is not None:
            context.append(f"{record.duration_ms:.0f}ms")
        if context:
            line += f"  [{' '.join(context)}]"

        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(app):
    """
    Install one stderr handler on the root logger.

    JSON when the app is neither in debug nor testing mode, readable
    otherwise. Safe to call once per ``create_app``: earlier handlers are
    dropped first.
    """
    testing = app.config.get("TESTING", False)
    as_json = not app.config.get("DEBUG", False) and not testing

    level_name = os.getenv("LOG_LEVEL", "INFO" if as_json else "DEBUG").upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.INFO

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if as_json else ReadableFormatter())
    handler.addFilter(RequestContextFilter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)
    app.logger.setLevel(level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    if not testing:
        app.logger.info("Logging configured (level=%s, json=%s)", level_name, as_json)
