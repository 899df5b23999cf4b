"""
Logging setup for CivicFix.

One stderr handler on the root logger:
    production  → one JSON object per line (request extras included)
    development → coloured single-line records with duration / request id
    testing     → same as development, WARNING and above unless LOG_LEVEL says otherwise
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

# Attributes the timing middleware attaches via ``extra=``
REQUEST_FIELDS = (
    "method", "path", "status", "duration_ms", "remote_addr",
    "request_id", "report_id", "device_id", "api_role",
)

QUIET_LOGGERS = ("urllib3", "werkzeug", "sqlalchemy.engine", "httpx", "google_genai")


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "where": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        entry.update({
            key: getattr(record, key)
            for key in REQUEST_FIELDS
            if getattr(record, key, None) is not None
        })
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    LEVEL_COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelname, "")
        when = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        line = f"{color}{when} {record.levelname:<8}{self.RESET} {record.name}: {record.getMessage()}"

        duration = getattr(record, "duration_ms", None)
        if duration is not None:
            line += f" [{duration:.0f}ms]"
        request_id = getattr(record, "request_id", None)
        if request_id:
            line += f" ({request_id})"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _default_level(app):
    if app.config.get("TESTING"):
        return "WARNING"
    return "DEBUG" if app.config.get("DEBUG") else "INFO"


def configure_logging(app):
    """Install the root handler. LOG_LEVEL overrides the per-environment default."""
    is_prod = not app.config.get("DEBUG") and not app.config.get("TESTING")
    level_name = os.getenv("LOG_LEVEL", _default_level(app)).upper()
    level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if is_prod else ReadableFormatter())
    handler.setLevel(level)

    root = logging.getLogger()
    # create_app may run more than once per process (tests, CLI)
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    app.logger.setLevel(level)

    app.logger.info("Logging configured: level=%s format=%s", level_name, "json" if is_prod else "readable")
