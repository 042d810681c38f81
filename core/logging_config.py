"""Logging configuration for the passkey flows."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional

from core.time import utc_now_isoformat

if TYPE_CHECKING:  # pragma: no cover
    from flask import Flask


_APP_HANDLER_ATTR = "_is_passkey_stream_handler"

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(app: "Flask", level: Optional[str] = None) -> None:
    """Attach a stream handler to the application logger if missing."""

    logger = app.logger
    for handler in logger.handlers:
        if getattr(handler, _APP_HANDLER_ATTR, False):
            break
    else:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        setattr(handler, _APP_HANDLER_ATTR, True)
        logger.addHandler(handler)

    resolved = logging.getLevelName((level or "INFO").upper())
    if not isinstance(resolved, int):
        resolved = logging.INFO
    logger.setLevel(resolved)
    logging.getLogger("shared").setLevel(resolved)


class StructuredLogger:
    """Helper for emitting structured JSON logs for authentication events."""

    def __init__(self, logger: logging.Logger, defaults: Optional[Mapping[str, Any]] = None):
        self._logger = logger
        self._defaults: Dict[str, Any] = dict(defaults or {})

    def bind(self, **extra: Any) -> "StructuredLogger":
        """Return a new logger with additional default fields."""

        merged = dict(self._defaults)
        merged.update(extra)
        return StructuredLogger(self._logger, merged)

    def _emit(self, level: int, event: str, **fields: Any) -> None:
        if not self._logger.isEnabledFor(level):
            return
        payload: Dict[str, Any] = {
            "ts": utc_now_isoformat(),
            "event": event,
            "level": logging.getLevelName(level),
        }
        payload.update(self._defaults)
        payload.update(fields)
        message = json.dumps(payload, ensure_ascii=False, default=str)
        self._logger.log(level, message, extra={"event": event})

    def info(self, event: str, **fields: Any) -> None:
        self._emit(logging.INFO, event, **fields)

    def warning(self, event: str, **fields: Any) -> None:
        self._emit(logging.WARNING, event, **fields)


def structured_logger(logger_name: str, **defaults: Any) -> StructuredLogger:
    """Return a :class:`StructuredLogger` writing to *logger_name*."""

    return StructuredLogger(logging.getLogger(logger_name), defaults)


__all__ = ["LOG_FORMAT", "StructuredLogger", "configure_logging", "structured_logger"]
