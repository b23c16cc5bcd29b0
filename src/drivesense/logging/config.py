"""Logging configuration helpers.

Modules inside :mod:`drivesense` attach structured context to their log
records through ``extra={"event": ..., ...}``. :class:`JsonFormatter`
renders those fields so hosts can ship pipeline diagnostics as JSON lines.
"""

from __future__ import annotations

import json
import logging
import sys
from typing import Any, Mapping, TextIO

__all__ = ["JsonFormatter", "setup_logging"]


_RESERVED_ATTRIBUTES = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None)).keys()
) | {"message", "asctime"}

_DEFAULT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _json_safe(value: Any) -> Any:
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, Mapping):
        return {str(key): _json_safe(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_json_safe(item) for item in value]
    return str(value)


class JsonFormatter(logging.Formatter):
    """Format log records as single-line JSON documents."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in vars(record).items():
            if key in _RESERVED_ATTRIBUTES or key.startswith("_"):
                continue
            payload[key] = _json_safe(value)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, sort_keys=True)


def setup_logging(
    level: int | str = logging.INFO,
    *,
    json_output: bool = False,
    stream: TextIO | None = None,
    logger_name: str = "drivesense",
) -> logging.Logger:
    """Attach a single stream handler to the ``drivesense`` logger tree.

    Calling the function again replaces the handler installed by a previous
    call instead of stacking duplicates.
    """

    logger = logging.getLogger(logger_name)
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        if not isinstance(resolved, int):
            raise ValueError(f"Unknown logging level: {level!r}")
        level = resolved
    logger.setLevel(level)

    for handler in list(logger.handlers):
        if getattr(handler, "_drivesense_handler", False):
            logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(JsonFormatter() if json_output else logging.Formatter(_DEFAULT_FORMAT))
    handler._drivesense_handler = True  # type: ignore[attr-defined]
    logger.addHandler(handler)
    return logger
