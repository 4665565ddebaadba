"""
Logging setup for the procurement service.

Every record emitted while a request is being served is stamped with the
request id, organization and user taken from ``flask.g``
(``RequestContextFilter``).  Services add procurement context themselves:

    logger.warning("Approve denied", extra={"purchase_request_id": req.id})

Formats:
    readable  coloured one-liners, default outside production
    json      one JSON object per line, default in production

``LOG_LEVEL`` and ``LOG_FORMAT`` (config or environment) override both
defaults.
"""

import json
import logging
import sys
from datetime import datetime, timezone

from flask import g, has_request_context

# Access-log fields written by middleware/timing.py
HTTP_FIELDS = ("method", "path", "status", "duration_ms", "remote_addr")

# Tenant and procurement context, in display order
CONTEXT_FIELDS = (
    "request_id",
    "organization_id",
    "user_id",
    "site_id",
    "area_id",
    "purchase_request_id",
)

EXTRA_FIELDS = HTTP_FIELDS + CONTEXT_FIELDS

_CONTEXT_LABELS = {
    "request_id": "rid",
    "organization_id": "org",
    "user_id": "user",
    "site_id": "site",
    "area_id": "area",
    "purchase_request_id": "pr",
}

# record attribute <- flask.g attribute
_FROM_G = (
    ("request_id", "request_id"),
    ("organization_id", "jwt_org_id"),
    ("user_id", "jwt_user_id"),
)


def _fields(record: logging.LogRecord, names) -> dict:
    values = {}
    for name in names:
        value = getattr(record, name, None)
        if value is not None:
            values[name] = value
    return values


class RequestContextFilter(logging.Filter):
    """Copy request id, organization and user from ``g`` onto the record.

    Values passed explicitly through ``extra`` win over the request's.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if has_request_context():
            for field, attr in _FROM_G:
                if getattr(record, field, None) is None:
                    value = g.get(attr)
                    if value is not None:
                        setattr(record, field, value)
        return True


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "source": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        entry.update(_fields(record, EXTRA_FIELDS))
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """``12:00:01 WARNING  procurement.services.request_service: org=3 pr=17 Approve denied``"""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        context = "".join(
            f" {_CONTEXT_LABELS[name]}={value}"
            for name, value in _fields(record, CONTEXT_FIELDS).items()
            if name != "request_id"
        )
        line = f"{color}{ts} {record.levelname:<8}{self.RESET} {record.name}:{context} {record.getMessage()}"
        duration = getattr(record, "duration_ms", None)
        if duration is not None:
            line += f" [{duration:.0f}ms]"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(app):
    """Install one stderr handler on the root logger for *app*."""
    testing = app.config.get("TESTING", False)
    production = not app.config.get("DEBUG", False) and not testing

    level_name = str(app.config.get("LOG_LEVEL") or ("INFO" if production else "DEBUG")).upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.INFO
    fmt = (app.config.get("LOG_FORMAT") or ("json" if production else "readable")).lower()

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if fmt == "json" else ReadableFormatter())
    handler.addFilter(RequestContextFilter())
    handler.setLevel(level)

    root = logging.getLogger()
    # create_app runs once per test session and once per worker; never stack handlers
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for noisy in ("werkzeug", "sqlalchemy.engine"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
    app.logger.setLevel(level)

    if not testing:
        app.logger.info("Logging configured: level=%s format=%s", level_name, fmt)
