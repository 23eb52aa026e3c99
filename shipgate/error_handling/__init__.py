"""
shipgate Error Handling Module.

Provides:
- A structured exception hierarchy
- Retry with exponential backoff for storage writes
- Cooperative deadlines for gate execution

Usage:
    from shipgate.error_handling import (
        Deadline,
        MetricResolutionError,
        retry_call,
    )
"""

from .errors import (
    ConfigurationError,
    ErrorCategory,
    ErrorContext,
    ErrorSeverity,
    GateTimeoutError,
    InitializationError,
    MetricResolutionError,
    ShipgateError,
    StorageError,
)
from .logging import error_log_extra, log_shipgate_error
from .retry import (
    RetryConfig,
    retry_call,
    retry_with_backoff,
)
from .timeout import Deadline, monitored_deadline

__all__ = [
    "ConfigurationError",
    "Deadline",
    "ErrorCategory",
    "ErrorContext",
    "ErrorSeverity",
    "GateTimeoutError",
    "InitializationError",
    "MetricResolutionError",
    "RetryConfig",
    "ShipgateError",
    "StorageError",
    "error_log_extra",
    "log_shipgate_error",
    "monitored_deadline",
    "retry_call",
    "retry_with_backoff",
]
