"""Metric resolution for gate criteria.

A criterion names a metric. The run's context is consulted first; when the
context has no entry, a registered built-in aggregate may compute the value
from raw inputs in the same context. Anything else is an error: an unknown
metric or a malformed value signals broken instrumentation and must not be
scored as zero.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from shipgate.error_handling import MetricResolutionError

logger = logging.getLogger(__name__)

BuiltinMetric = Callable[["MetricsContext"], float]


def coerce_metric_value(value: Any, metric: str) -> float:
    """Convert a context value to a finite float or raise MetricResolutionError."""
    if isinstance(value, bool):
        raise MetricResolutionError(
            f"Metric '{metric}' has non-numeric value {value!r}", metric=metric
        )
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            raise MetricResolutionError(
                f"Metric '{metric}' has non-numeric value {value!r}", metric=metric
            ) from None
    else:
        raise MetricResolutionError(
            f"Metric '{metric}' has non-numeric value of type {type(value).__name__}",
            metric=metric,
        )
    if not math.isfinite(number):
        raise MetricResolutionError(
            f"Metric '{metric}' is not a finite number: {value!r}", metric=metric
        )
    return number


def _test_pass_rate(ctx: "MetricsContext") -> float:
    total = ctx.number("totalTests")
    passed = ctx.number("passedTests")
    return passed / total * 100 if total > 0 else 0.0


def _code_coverage(ctx: "MetricsContext") -> float:
    return ctx.number("codeCoverage")


def _performance_score(ctx: "MetricsContext") -> float:
    response_time = ctx.number("responseTime")
    memory_usage = ctx.number("memoryUsage")
    cpu_usage = ctx.number("cpuUsage")

    score = 100.0
    if response_time > 100:
        score -= min(30.0, (response_time - 100) / 10)
    if memory_usage > 512:
        score -= min(30.0, (memory_usage - 512) / 50)
    if cpu_usage > 80:
        score -= min(40.0, (cpu_usage - 80) / 2)
    return max(0.0, score)


def _security_score(ctx: "MetricsContext") -> float:
    vulnerabilities = ctx.number("vulnerabilities")
    tests_passed = ctx.number("securityTestsPassed")
    total_tests = ctx.number("totalSecurityTests", default=1.0)

    ratio = tests_passed / total_tests * 100 if total_tests > 0 else 0.0
    return max(0.0, ratio - vulnerabilities * 10)


def _quality_score(ctx: "MetricsContext") -> float:
    code_smells = ctx.number("codeSmells")
    duplications = ctx.number("duplications")
    maintainability = ctx.number("maintainabilityIndex", default=100.0)
    return max(0.0, maintainability - code_smells * 2 - duplications * 5)


BUILTIN_METRICS: Dict[str, BuiltinMetric] = {
    "test_pass_rate": _test_pass_rate,
    "code_coverage": _code_coverage,
    "performance_score": _performance_score,
    "security_score": _security_score,
    "quality_score": _quality_score,
}


class MetricRegistry:
    """Named aggregate computations available when the context lacks a metric."""

    def __init__(self, builtins: Optional[Mapping[str, BuiltinMetric]] = None) -> None:
        self._builtins: Dict[str, BuiltinMetric] = dict(
            BUILTIN_METRICS if builtins is None else builtins
        )

    def register(self, name: str, fn: BuiltinMetric, *, replace: bool = False) -> None:
        if name in self._builtins and not replace:
            raise ValueError(f"Metric '{name}' is already registered")
        self._builtins[name] = fn

    def get(self, name: str) -> Optional[BuiltinMetric]:
        return self._builtins.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._builtins

    def names(self) -> List[str]:
        return sorted(self._builtins)


class MetricsContext:
    """
    Per-run metric values keyed by name.

    Example:
        ctx = MetricsContext({"totalTests": 50, "passedTests": 49})
        ctx.resolve("test_pass_rate")  # 98.0
    """

    def __init__(
        self,
        values: Optional[Mapping[str, Any]] = None,
        registry: Optional[MetricRegistry] = None,
    ) -> None:
        self._values: Dict[str, Any] = dict(values or {})
        self.registry = registry or MetricRegistry()

    def has(self, metric: str) -> bool:
        return self._values.get(metric) is not None

    def number(self, key: str, default: float = 0.0) -> float:
        """Raw input for a built-in; absent keys take ``default``."""
        if not self.has(key):
            return default
        return coerce_metric_value(self._values[key], key)

    def resolve(self, metric: str) -> float:
        if self.has(metric):
            return coerce_metric_value(self._values[metric], metric)
        builtin = self.registry.get(metric)
        if builtin is None:
            raise MetricResolutionError(
                f"Metric '{metric}' not found in context and has no built-in computation",
                metric=metric,
            )
        try:
            value = builtin(self)
        except MetricResolutionError:
            raise
        except (ArithmeticError, TypeError, ValueError) as exc:
            raise MetricResolutionError(
                f"Built-in metric '{metric}' failed: {exc}", metric=metric, cause=exc
            ) from exc
        return coerce_metric_value(value, metric)

    def unresolvable(self, metrics: Iterable[str]) -> List[str]:
        """Metric names neither the context nor the registry can supply."""
        missing = []
        for metric in metrics:
            if not self.has(metric) and metric not in self.registry and metric not in missing:
                missing.append(metric)
        return missing

