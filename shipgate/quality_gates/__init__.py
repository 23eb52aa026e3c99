"""
Quality gate evaluation.

Gates bundle weighted, thresholded criteria evaluated against a run's
metrics context. See :class:`shipgate.manager.QualityGateManager` for the
orchestration surface.
"""

from .configuration import adjust_thresholds, default_configuration
from .criteria import calculate_criterion_score, compare, evaluate_criterion
from .exception_registry import ExceptionRegistry
from .gate_executor import GateExecutor, classify
from .history import ExecutionHistory
from .metrics import BUILTIN_METRICS, MetricRegistry, MetricsContext, coerce_metric_value
from .models import (
    ComparisonOperator,
    Criterion,
    CriterionResult,
    Gate,
    GateExecution,
    GateLevel,
    GateStatus,
    GlobalSettings,
    LevelThreshold,
    QualityGateConfiguration,
    QualityGateException,
    RunResult,
    RunSummary,
)

__all__ = [
    "BUILTIN_METRICS",
    "ComparisonOperator",
    "Criterion",
    "CriterionResult",
    "ExceptionRegistry",
    "ExecutionHistory",
    "Gate",
    "GateExecution",
    "GateExecutor",
    "GateLevel",
    "GateStatus",
    "GlobalSettings",
    "LevelThreshold",
    "MetricRegistry",
    "MetricsContext",
    "QualityGateConfiguration",
    "QualityGateException",
    "RunResult",
    "RunSummary",
    "adjust_thresholds",
    "calculate_criterion_score",
    "classify",
    "coerce_metric_value",
    "compare",
    "default_configuration",
    "evaluate_criterion",
]
