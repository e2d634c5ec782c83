"""
Logging setup for the API process.

``LOG_FORMAT`` picks the formatter (``json`` for log shipping, ``readable``
for a terminal) and ``LOG_LEVEL`` the threshold; both come from the app
config so each environment class carries its own defaults.

Request, audit and error records pass structured fields through
``extra=``; the JSON formatter copies the known ones into the payload.
"""

import json
import logging
import sys
from datetime import datetime, timezone

# Fields lifted from ``extra`` into JSON output, grouped by producer
REQUEST_FIELDS = ("request_id", "method", "path", "status", "duration_ms", "remote_addr")
AUDIT_FIELDS = (
    "event_type", "action", "entity_type", "entity_id",
    "user_id", "project_id", "required_permission", "user_role",
)
ERROR_FIELDS = ("error_code",)
STRUCTURED_FIELDS = REQUEST_FIELDS + AUDIT_FIELDS + ERROR_FIELDS

QUIET_LOGGERS = ("werkzeug", "sqlalchemy.engine", "urllib3")


def _utc_stamp(record: logging.LogRecord) -> str:
    return datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat()


class JSONFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": _utc_stamp(record),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "where": f"{record.module}:{record.lineno}",
        }
        entry.update(
            (name, getattr(record, name))
            for name in STRUCTURED_FIELDS
            if getattr(record, name, None) is not None
        )
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """Single-line colored output for local runs."""

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, "")
        stamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        line = f"{color}{stamp} {record.levelname:<8}{self.RESET} {record.name}: {record.getMessage()}"

        tags = []
        if getattr(record, "duration_ms", None) is not None:
            tags.append(f"{record.duration_ms:.0f}ms")
        if getattr(record, "user_id", None) is not None:
            tags.append(f"user={record.user_id}")
        if getattr(record, "request_id", None):
            tags.append(record.request_id)
        if tags:
            line += f" [{' '.join(tags)}]"

        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(app):
    """Install one stderr handler on the root logger from the app's config."""
    level_name = str(app.config.get("LOG_LEVEL", "INFO")).upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.INFO

    use_json = app.config.get("LOG_FORMAT", "json") == "json"
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if use_json else ReadableFormatter())
    handler.setLevel(level)

    # Replaced, not appended: the factory runs once per test session app
    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    app.logger.setLevel(level)

    app.logger.debug("Logging ready: level=%s format=%s", level_name, "json" if use_json else "readable")
