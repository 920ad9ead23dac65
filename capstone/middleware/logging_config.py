"""
Logging for the workflow service.

Every record emitted while a request is being served is stamped with the
request id and the acting identity (reg_num, role) by
``RequestContextFilter``, so service-layer calls such as
``logger.info(..., extra={"team_id": ...})`` only pass the workflow fields.

- LOG_FORMAT=json     one JSON object per line, HTTP fields nested under "http"
- LOG_FORMAT=readable colored single line with actor and team context
- unset               readable under DEBUG/TESTING, JSON otherwise
- LOG_LEVEL env var   default DEBUG in development, INFO in production
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

from flask import g, has_request_context

# Set from the Flask request context unless the caller passed them in ``extra=``
_ACTOR_FIELDS = ("request_id", "reg_num", "role")
# Passed by the request timing hook
_HTTP_FIELDS = ("method", "path", "status", "duration_ms", "remote_addr")
# Passed by services: the team a transition concerns, the request family
# (guide/expert) and the incident reference of a persistence failure
_WORKFLOW_FIELDS = ("team_id", "family", "reference")


class RequestContextFilter(logging.Filter):
    """Copy request id and acting identity from ``flask.g`` onto the record."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not has_request_context():
            return True
        identity = getattr(g, "identity", None)
        context = {
            "request_id": getattr(g, "request_id", None),
            "reg_num": identity.reg_num if identity else None,
            "role": identity.role if identity else None,
        }
        for key, value in context.items():
            if getattr(record, key, None) is None:
                setattr(record, key, value)
        return True


class JSONFormatter(logging.Formatter):

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in _ACTOR_FIELDS + _WORKFLOW_FIELDS:
            val = getattr(record, key, None)
            if val is not None:
                entry[key] = val
        http = {k: getattr(record, k) for k in _HTTP_FIELDS if getattr(record, k, None) is not None}
        if http:
            entry["http"] = http
        if record.levelno >= logging.WARNING:
            entry["at"] = f"{record.module}.{record.funcName}:{record.lineno}"
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """``12:00:01 INFO     [S1/student team=TEAM-0001] capstone.x: message``"""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, color: bool = True):
        super().__init__()
        self.color = color

    @staticmethod
    def context(record: logging.LogRecord) -> str:
        parts = []
        reg_num = getattr(record, "reg_num", None)
        if reg_num:
            role = getattr(record, "role", None)
            parts.append(f"{reg_num}/{role}" if role else reg_num)
        for key, label in (("team_id", "team"), ("family", "family"), ("reference", "ref")):
            val = getattr(record, key, None)
            if val:
                parts.append(f"{label}={val}")
        return f" [{' '.join(parts)}]" if parts else ""

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        level = f"{record.levelname:<8}"
        if self.color:
            level = f"{self.COLORS.get(record.levelname, '')}{level}{self.RESET}"
        duration = getattr(record, "duration_ms", None)
        dur_str = f" [{duration:.0f}ms]" if duration is not None else ""
        line = f"{ts} {level}{self.context(record)} {record.name}: {record.getMessage()}{dur_str}"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(app):
    """Install one stderr handler on the root logger, formatted per LOG_FORMAT."""
    is_testing = app.config.get("TESTING", False)
    is_prod = not app.config.get("DEBUG", False) and not is_testing

    level_name = os.getenv("LOG_LEVEL", "INFO" if is_prod else "DEBUG")
    level = getattr(logging, level_name.upper(), logging.INFO)

    fmt = (app.config.get("LOG_FORMAT") or ("json" if is_prod else "readable")).lower()
    if fmt not in ("json", "readable"):
        raise RuntimeError(f"LOG_FORMAT must be 'json' or 'readable', got {fmt!r}")
    formatter = JSONFormatter() if fmt == "json" else ReadableFormatter(color=sys.stderr.isatty())

    # Cleared first so repeated app creation in tests does not duplicate output
    root = logging.getLogger()
    root.handlers.clear()
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)
    handler.addFilter(RequestContextFilter())
    handler.setLevel(level)
    root.addHandler(handler)
    root.setLevel(level)

    for noisy in ("werkzeug", "sqlalchemy.engine"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    app.logger.setLevel(level)

    if not is_testing:
        app.logger.info("Logging configured: level=%s format=%s", level_name, fmt)
    return handler
