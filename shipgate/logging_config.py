"""Shared logging configuration utilities."""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from shipgate.config.env import parse_bool_env


DEFAULT_JSON_ENV_KEYS = ("SHIPGATE_LOG_JSON", "LOG_JSON")
PLAIN_FORMAT = "%(asctime)s %(levelname)s %(name)s [run_id=%(run_id)s gate_id=%(gate_id)s] %(message)s"


def _should_use_json(env: dict[str, str]) -> bool:
    for key in DEFAULT_JSON_ENV_KEYS:
        if key in env:
            parsed = parse_bool_env(env.get(key))
            if parsed is not None:
                return parsed
    return False


def _resolve_context_value(record: logging.LogRecord, key: str) -> str:
    value = getattr(record, key, None)
    return "" if value is None else str(value)


class JsonLogFormatter(logging.Formatter):
    """Formats logs as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        shipgate_error = self._resolve_shipgate_error(record)
        error_category = getattr(record, "error_category", None)
        error_severity = getattr(record, "error_severity", None)
        error_context = getattr(record, "error_context", None)
        if shipgate_error:
            error_category = error_category or shipgate_error.get("category")
            error_severity = error_severity or shipgate_error.get("severity")
            error_context = error_context or shipgate_error.get("context")
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "run_id": _resolve_context_value(record, "run_id"),
            "gate_id": _resolve_context_value(record, "gate_id"),
            "message": record.getMessage(),
        }
        if shipgate_error is not None:
            payload["shipgate_error"] = shipgate_error
        if error_category is not None:
            payload["error_category"] = self._serialize_enum(error_category)
        if error_severity is not None:
            payload["error_severity"] = self._serialize_enum(error_severity)
        if error_context is not None:
            payload["error_context"] = error_context
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload)

    @staticmethod
    def _serialize_enum(value: Any) -> Any:
        if isinstance(value, Enum):
            return value.value
        return value

    @staticmethod
    def _resolve_shipgate_error(record: logging.LogRecord) -> Optional[dict[str, Any]]:
        error = getattr(record, "shipgate_error", None)
        if error is None:
            return None
        if isinstance(error, dict):
            return error
        to_dict = getattr(error, "to_dict", None)
        if callable(to_dict):
            return to_dict()
        return {"detail": str(error)}


class PlainTextFormatter(logging.Formatter):
    """Human-friendly formatter for terminals."""

    def format(self, record: logging.LogRecord) -> str:
        record.run_id = _resolve_context_value(record, "run_id")
        record.gate_id = _resolve_context_value(record, "gate_id")
        return super().format(record)


def init_logging(
    *,
    level: Optional[int] = None,
    json_enabled: Optional[bool] = None,
    stream: Optional[Any] = None,
) -> None:
    """Initialize logging for the command-line entry point."""

    if level is None:
        level_name = os.getenv("SHIPGATE_LOG_LEVEL", os.getenv("LOG_LEVEL", "INFO")).upper()
        level = logging.getLevelName(level_name)
        if isinstance(level, str):
            level = logging.INFO

    if json_enabled is None:
        json_enabled = _should_use_json(dict(os.environ))

    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    if json_enabled:
        handler.setFormatter(JsonLogFormatter())
    else:
        handler.setFormatter(PlainTextFormatter(PLAIN_FORMAT))

    logging.basicConfig(level=level, handlers=[handler], force=True)
