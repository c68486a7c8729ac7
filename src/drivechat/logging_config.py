"""JSON logging setup shared by the API process and the ingestion audit trail."""

from __future__ import annotations

import json
import logging
import logging.config
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

AUDIT_LOGGER_NAME = "drivechat.ingest.audit"
_AUDIT_LOG_PATH = Path("logs") / "ingest_audit.log"

# Client libraries that log every HTTP request at INFO.
_NOISY_LOGGERS = ("httpx", "httpcore", "google.auth", "urllib3", "chromadb")

_LOG_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime", "taskName"}


class MinimalJSONFormatter(logging.Formatter):
    """Render a record as one JSON object per line.

    Dict messages are merged into the top level so structured events stay
    queryable; attributes passed through ``extra=`` are copied as well.
    """

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401 - inherited
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        payload: dict[str, Any] = {
            "timestamp": created.isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "module": record.name,
        }

        if isinstance(record.msg, dict):
            payload.update(record.msg)
        elif message := record.getMessage():
            payload["message"] = message

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        payload.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _LOG_RECORD_ATTRS and not key.startswith("_")
        )
        return json.dumps(payload, ensure_ascii=False, default=str)


def configure_logging(level: str = "INFO", *, audit_log_path: Path | None = None) -> None:
    """Send JSON logs to stderr and per-file ingestion entries to the audit file."""

    audit_path = audit_log_path or _AUDIT_LOG_PATH
    audit_path.parent.mkdir(parents=True, exist_ok=True)

    loggers: dict[str, dict[str, Any]] = {
        name: {"level": "WARNING"} for name in _NOISY_LOGGERS
    }
    loggers[AUDIT_LOGGER_NAME] = {
        "level": "INFO",
        "handlers": ["audit_file"],
        "propagate": False,
    }

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {"json": {"()": MinimalJSONFormatter}},
            "handlers": {
                "console": {"class": "logging.StreamHandler", "formatter": "json"},
                "audit_file": {
                    "class": "logging.FileHandler",
                    "filename": str(audit_path),
                    "encoding": "utf-8",
                    "formatter": "json",
                },
            },
            "root": {"level": level, "handlers": ["console"]},
            "loggers": loggers,
        }
    )
