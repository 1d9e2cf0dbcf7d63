"""Structured logging setup for labctl.

Two formatters are available, selected by ``settings.log_format``:

- ``json``: one JSON object per record, for log shippers
- ``text``: human-readable single lines for interactive use

Any attributes passed through ``extra=`` on a log call are carried into the
JSON payload under the ``extra`` key.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone

from labctl.config import settings

SERVICE_NAME = "labctl"

# Attributes present on every LogRecord; anything else came in via extra=
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None)).keys()
) | {"message", "asctime", "taskName"}


def _record_extras(record: logging.LogRecord) -> dict:
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _RESERVED_ATTRS and not key.startswith("_")
    }


class LabJSONFormatter(logging.Formatter):
    """Format log records as JSON lines."""

    def __init__(self, operation_id: str | None = None):
        super().__init__()
        self.operation_id = operation_id

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": SERVICE_NAME,
        }
        if self.operation_id:
            payload["operation_id"] = self.operation_id
        extras = _record_extras(record)
        if extras:
            payload["extra"] = extras
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class LabTextFormatter(logging.Formatter):
    """Format log records as readable text lines."""

    def __init__(self, operation_id: str | None = None):
        super().__init__(
            fmt="%(asctime)s %(levelname)-7s [%(tag)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        # Keep the tag short so columns stay aligned
        self.tag = (operation_id or SERVICE_NAME)[:8]

    def format(self, record: logging.LogRecord) -> str:
        record.tag = self.tag
        return super().format(record)


def setup_logging(operation_id: str | None = None) -> None:
    """Configure the root logger from settings.

    Replaces any handlers previously installed by this function so repeated
    calls (CLI entry point, tests) do not duplicate output.
    """
    level = getattr(logging, str(settings.log_level).upper(), logging.INFO)
    if settings.log_format == "json":
        formatter: logging.Formatter = LabJSONFormatter(operation_id=operation_id)
    else:
        formatter = LabTextFormatter(operation_id=operation_id)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)
    handler._labctl_handler = True  # type: ignore[attr-defined]

    root = logging.getLogger()
    for existing in list(root.handlers):
        if getattr(existing, "_labctl_handler", False):
            root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)
