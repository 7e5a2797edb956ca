"""Log output for the pmclock process.

Two renderings are supported: plain text for a terminal, and NDJSON for
log shippers.  A JSON line always names the emitting ``service`` and,
when known, its ``version``.  Fields the scheduler passes through
``extra=`` (deadlines, offsets, lateness) become top-level keys.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler
from typing import Any

from pmclock._settings import LoggingSettings

_MB = 1024 * 1024

_TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# Attributes every LogRecord carries; anything else came from ``extra=``.
_RESERVED = frozenset(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__,
) | {"message", "asctime", "taskName"}


class JsonFormatter(logging.Formatter):
    """Render one record as one JSON object on one line.

    Fixed keys are ``timestamp`` (UTC, ISO 8601), ``level``, ``logger``,
    ``message`` and ``service``.  ``version`` appears only when set;
    ``exception`` and ``stack_info`` only when the record has them.
    Non-serialisable ``extra=`` values fall back to ``str()``.
    """

    def __init__(self, *, service: str = "", version: str = "") -> None:
        super().__init__()
        self._service = service
        self._version = version

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self._service,
        }
        if self._version:
            entry["version"] = self._version

        entry.update(
            (key, value)
            for key, value in record.__dict__.items()
            if key not in _RESERVED and key not in entry
        )

        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        if record.stack_info:
            entry["stack_info"] = self.formatStack(record.stack_info)

        return json.dumps(entry, default=str)


def _formatter(
    settings: LoggingSettings, service: str, version: str
) -> logging.Formatter:
    if settings.format == "json":
        return JsonFormatter(service=service, version=version)
    return logging.Formatter(_TEXT_FORMAT)


def configure_logging(
    settings: LoggingSettings,
    *,
    service: str,
    version: str = "",
) -> None:
    """Point the root logger at stderr and, optionally, a rotating file.

    Handlers installed earlier are discarded, so calling this twice
    does not duplicate output.  The file rolls over at
    ``max_file_size_mb`` and keeps ``backup_count`` old copies.
    """
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)

    formatter = _formatter(settings, service, version)
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if settings.file is not None:
        handlers.append(
            RotatingFileHandler(
                settings.file,
                maxBytes=settings.max_file_size_mb * _MB,
                backupCount=settings.backup_count,
            )
        )
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)

    root.setLevel(settings.level)
