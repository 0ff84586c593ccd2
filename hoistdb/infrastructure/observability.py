"""Storage Logging — structured records for the hoistdb logger tree, configured from Settings.

Invariants:
    - Every formatted line carries timestamp, level, logger name and message
    - Storage extras (namespace, table, backend, operation, ...) appear only when set
    - setup_logging() configures the "hoistdb" logger only; the root logger is left alone
    - Calling setup_logging() again replaces the handler it installed before

Design Decisions:
    - Importing hoistdb configures nothing; a host calls setup_logging() once, either with
      explicit values or with LOG_LEVEL / LOG_FORMAT read from Settings
    - JSON and text renderings share one extras lookup so both show the same fields
"""

import json
import logging
from datetime import datetime, timezone

from hoistdb.config import get_settings

LOGGER_NAME = "hoistdb"

STORAGE_EXTRAS = (
    "namespace", "table", "backend", "operation", "error_code",
    "affected", "record_id", "duration_ms", "path",
)


def storage_extras(record: logging.LogRecord) -> dict:
    return {
        key: record.__dict__[key]
        for key in STORAGE_EXTRAS
        if record.__dict__.get(key) is not None
    }


class JSONFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **storage_extras(record),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


class TextFormatter(logging.Formatter):
    """Readable line with the storage extras appended as key=value pairs."""

    def __init__(self):
        super().__init__("%(asctime)s %(levelname)s %(name)s: %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        extras = storage_extras(record)
        if not extras:
            return line
        tail = " ".join(f"{key}={value}" for key, value in extras.items())
        # keep the traceback after the extras
        head, sep, rest = line.partition("\n")
        return f"{head} [{tail}]{sep}{rest}"


class _StorageHandler(logging.StreamHandler):
    """Marks the handler setup_logging() owns."""


def setup_logging(
    level: str | None = None, fmt: str | None = None,
) -> logging.Handler:
    """Attach a stream handler to the hoistdb logger.

    Missing arguments come from Settings (LOG_LEVEL, LOG_FORMAT).
    Returns the installed handler.
    """
    if level is None or fmt is None:
        settings = get_settings()
        level = level or settings.log_level
        fmt = fmt or settings.log_format

    handler = _StorageHandler()
    handler.setFormatter(JSONFormatter() if fmt.lower() == "json" else TextFormatter())

    logger = logging.getLogger(LOGGER_NAME)
    for old in [h for h in logger.handlers if isinstance(h, _StorageHandler)]:
        logger.removeHandler(old)
        old.close()
    logger.addHandler(handler)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    return handler
