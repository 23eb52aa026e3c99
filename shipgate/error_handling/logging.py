"""Structured logging of ShipgateError instances."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Union

from shipgate.error_handling.errors import ShipgateError


def error_log_extra(error: ShipgateError) -> Dict[str, Any]:
    """
    Record extras for ``error``.

    The run and gate ids from the error context are lifted to top-level
    ``run_id`` / ``gate_id`` attributes, which the log formatters print on
    every line.
    """
    payload = error.to_dict()
    return {
        "run_id": error.context.run_id or "",
        "gate_id": error.context.gate_id or "",
        "shipgate_error": payload,
        "error_category": payload["category"],
        "error_severity": payload["severity"],
    }


def log_shipgate_error(
    error: ShipgateError,
    message: str,
    *,
    logger: Optional[Union[logging.Logger, logging.LoggerAdapter]] = None,
    level: int = logging.ERROR,
) -> None:
    """Log ``error`` with its taxonomy and run context."""
    log = logger or logging.getLogger(__name__)
    log.log(level, "%s: %s", message, error.message, extra=error_log_extra(error))
