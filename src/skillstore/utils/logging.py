"""Root logger setup for the CLI and tools.

Modules log through ``logging.getLogger(__name__)``; only entry points call
configure_logging. Lines go to stderr so command output on stdout stays
machine-readable.
"""

from __future__ import annotations

import json
import logging
import logging.config
from datetime import datetime, timezone

CONSOLE_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


class JsonFormatter(logging.Formatter):
    """One JSON object per record: ts, level, logger, message[, exc_info]."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).strftime(
                "%Y-%m-%dT%H:%M:%SZ"
            ),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(entry, sort_keys=True)


def configure_logging(level: str = "INFO", json_logs: bool = False, force: bool = True) -> None:
    """Install a single stderr handler on the root logger.

    With force=False an already-configured root logger (pytest, an
    embedding application) is left untouched.
    """
    root = logging.getLogger()
    if root.handlers and not force:
        return
    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "console": {"format": CONSOLE_FORMAT},
            "json": {"()": JsonFormatter},
        },
        "handlers": {
            "stderr": {
                "class": "logging.StreamHandler",
                "stream": "ext://sys.stderr",
                "formatter": "json" if json_logs else "console",
            },
        },
        "root": {"handlers": ["stderr"], "level": level},
    })
