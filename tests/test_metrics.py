import math

import pytest

from shipgate.error_handling import MetricResolutionError
from shipgate.quality_gates.metrics import MetricRegistry, MetricsContext, coerce_metric_value


def test_context_value_wins_over_builtin():
    ctx = MetricsContext({"test_pass_rate": 42, "totalTests": 10, "passedTests": 10})
    assert ctx.resolve("test_pass_rate") == 42.0


def test_test_pass_rate_builtin():
    assert MetricsContext({"totalTests": 50, "passedTests": 49}).resolve("test_pass_rate") == pytest.approx(98.0)


def test_test_pass_rate_without_tests_is_zero():
    assert MetricsContext({}).resolve("test_pass_rate") == 0.0


def test_code_coverage_passthrough():
    assert MetricsContext({"codeCoverage": 77.5}).resolve("code_coverage") == 77.5
    assert MetricsContext({}).resolve("code_coverage") == 0.0


def test_performance_score_penalties():
    ctx = MetricsContext({"responseTime": 200, "memoryUsage": 1012, "cpuUsage": 100})
    assert ctx.resolve("performance_score") == pytest.approx(70.0)


def test_performance_score_penalties_are_capped_and_floored():
    ctx = MetricsContext({"responseTime": 10_000, "memoryUsage": 100_000, "cpuUsage": 500})
    assert ctx.resolve("performance_score") == 0.0

    healthy = MetricsContext({"responseTime": 50, "memoryUsage": 128, "cpuUsage": 10})
    assert healthy.resolve("performance_score") == 100.0


def test_security_score():
    ctx = MetricsContext({"securityTestsPassed": 8, "totalSecurityTests": 10, "vulnerabilities": 1})
    assert ctx.resolve("security_score") == pytest.approx(70.0)

    # totalSecurityTests defaults to 1
    assert MetricsContext({"securityTestsPassed": 1}).resolve("security_score") == 100.0
    assert MetricsContext({"securityTestsPassed": 1, "vulnerabilities": 20}).resolve("security_score") == 0.0


def test_quality_score():
    ctx = MetricsContext({"codeSmells": 5, "duplications": 2})
    assert ctx.resolve("quality_score") == pytest.approx(80.0)

    ctx = MetricsContext({"maintainabilityIndex": 60, "codeSmells": 50})
    assert ctx.resolve("quality_score") == 0.0


def test_unknown_metric_raises():
    with pytest.raises(MetricResolutionError) as excinfo:
        MetricsContext({}).resolve("flux_capacitance")
    assert excinfo.value.metric == "flux_capacitance"
    assert excinfo.value.retryable is False


@pytest.mark.parametrize("value", ["abc", True, float("nan"), math.inf, [1, 2], {"a": 1}])
def test_malformed_values_raise(value):
    with pytest.raises(MetricResolutionError):
        MetricsContext({"latency": value}).resolve("latency")


def test_numeric_strings_coerce():
    assert coerce_metric_value(" 85 ", "coverage") == 85.0
    assert MetricsContext({"latency": "12.5"}).resolve("latency") == 12.5


def test_none_is_treated_as_absent():
    ctx = MetricsContext({"code_coverage": None, "codeCoverage": 64})
    assert ctx.resolve("code_coverage") == 64.0

    with pytest.raises(MetricResolutionError):
        MetricsContext({"latency": None}).resolve("latency")


def test_malformed_builtin_input_raises():
    with pytest.raises(MetricResolutionError):
        MetricsContext({"totalTests": "lots", "passedTests": 3}).resolve("test_pass_rate")


def test_registry_accepts_custom_builtins():
    registry = MetricRegistry()
    registry.register("error_budget", lambda ctx: 100 - ctx.number("errorRate") * 10)

    ctx = MetricsContext({"errorRate": 2}, registry=registry)
    assert ctx.resolve("error_budget") == 80.0


def test_registry_rejects_duplicate_names_unless_replacing():
    registry = MetricRegistry()
    with pytest.raises(ValueError):
        registry.register("quality_score", lambda ctx: 1.0)

    registry.register("quality_score", lambda ctx: 1.0, replace=True)
    assert MetricsContext({}, registry=registry).resolve("quality_score") == 1.0


def test_failing_builtin_becomes_resolution_error():
    registry = MetricRegistry()
    registry.register("ratio", lambda ctx: ctx.number("a") / ctx.number("b"))

    with pytest.raises(MetricResolutionError):
        MetricsContext({"a": 1, "b": 0}, registry=registry).resolve("ratio")


def test_unresolvable_lists_unknown_metrics_once():
    ctx = MetricsContext({"latency": 3})
    missing = ctx.unresolvable(["latency", "code_coverage", "flux", "flux", "warp"])
    assert missing == ["flux", "warp"]
