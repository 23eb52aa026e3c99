"""
Custom Exception Classes for shipgate.

Provides a hierarchy of exceptions for the failure modes of a quality gate
run, so callers can tell instrumentation problems, broken storage and bad
configuration apart from genuine quality failures.
"""

from __future__ import annotations

import json
import os
import traceback
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class ErrorSeverity(str, Enum):
    """Severity levels for shipgate errors."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """Categories of shipgate errors."""
    VALIDATION = "validation"
    PROCESSING = "processing"
    CONFIGURATION = "configuration"
    INFRASTRUCTURE = "infrastructure"
    UNKNOWN = "unknown"


@dataclass
class ErrorContext:
    """Context information for an error."""
    run_id: Optional[str] = None
    gate_id: Optional[str] = None
    criteria_id: Optional[str] = None
    timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
    )
    additional: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "gate_id": self.gate_id,
            "criteria_id": self.criteria_id,
            "timestamp": self.timestamp,
            "additional": self.additional,
        }


class ShipgateError(Exception):
    """
    Base exception for all shipgate errors.

    Carries structured error information for logging and for the
    ``errors`` list of a gate execution.
    """

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        retryable: bool = False,
        context: Optional[ErrorContext] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category
        self.severity = severity
        self.retryable = retryable
        self.context = context or ErrorContext()
        self.cause = cause
        self._debug_enabled = os.getenv("SHIPGATE_DEBUG", "0").strip().lower() in {"1", "true", "yes", "y", "on"}
        self.traceback_str = traceback.format_exc() if cause and self._debug_enabled else None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize error for logging/storage."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "severity": self.severity.value,
            "retryable": self.retryable,
            "context": self.context.to_dict(),
            "cause": str(self.cause) if self.cause else None,
            "traceback": self.traceback_str if self._debug_enabled else None,
        }

    def to_json(self) -> str:
        """Serialize error to JSON string."""
        return json.dumps(self.to_dict(), indent=2)


class MetricResolutionError(ShipgateError):
    """A criterion's metric has no usable value in the context or the built-ins."""

    def __init__(
        self,
        message: str,
        metric: str,
        **kwargs,
    ):
        context = kwargs.pop("context", None) or ErrorContext()
        context.additional["metric"] = metric

        super().__init__(
            message,
            category=ErrorCategory.VALIDATION,
            retryable=False,
            context=context,
            **kwargs,
        )
        self.metric = metric


class GateTimeoutError(ShipgateError):
    """Raised when a gate's criteria pass runs past its deadline."""

    def __init__(self, message: str, timeout: float, **kwargs):
        context = kwargs.pop("context", None) or ErrorContext()
        context.additional["timeout"] = timeout

        super().__init__(
            message,
            category=ErrorCategory.PROCESSING,
            context=context,
            **kwargs,
        )
        self.timeout = timeout


class StorageError(ShipgateError):
    """Error reading or writing a persisted document."""

    def __init__(
        self,
        message: str,
        key: Optional[str] = None,
        **kwargs,
    ):
        kwargs.setdefault("retryable", True)

        context = kwargs.pop("context", None) or ErrorContext()
        context.additional["key"] = key

        super().__init__(
            message,
            category=ErrorCategory.INFRASTRUCTURE,
            context=context,
            **kwargs,
        )
        self.key = key


class ConfigurationError(ShipgateError):
    """Error in configuration (invalid document, invalid adjustment)."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        issues: Optional[Dict[str, str]] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", None) or ErrorContext()
        context.additional["config_key"] = config_key

        super().__init__(
            message,
            category=ErrorCategory.CONFIGURATION,
            severity=ErrorSeverity.CRITICAL,
            retryable=False,
            context=context,
            **kwargs,
        )
        self.config_key = config_key
        self.issues = issues or {}


class InitializationError(ShipgateError):
    """The manager could not load its persisted state."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.INFRASTRUCTURE,
            severity=ErrorSeverity.CRITICAL,
            **kwargs,
        )
