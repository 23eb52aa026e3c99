from datetime import timedelta

import pytest

from shipgate.quality_gates.exception_registry import ExceptionRegistry
from shipgate.quality_gates.gate_executor import GateExecutor, band_status, tally_status
from shipgate.quality_gates.metrics import MetricRegistry, MetricsContext
from shipgate.quality_gates.models import (
    Criterion,
    Gate,
    GateLevel,
    GateStatus,
    LevelThreshold,
    utc_now,
)


def _criterion(id, metric, threshold, operator, weight=1, mandatory=False):
    return Criterion(
        id=id,
        name=id.replace("-", " ").title(),
        metric=metric,
        threshold=threshold,
        operator=operator,
        weight=weight,
        mandatory=mandatory,
    )


def _gate(*criteria, timeout=60, level=GateLevel.MINOR):
    return Gate(id="gate-under-test", name="Gate Under Test", level=level, criteria=tuple(criteria), timeout=timeout)


def _execute(gate, context, threshold=LevelThreshold(80, 2), exceptions=None, registry=None, **kwargs):
    executor = GateExecutor(exceptions or ExceptionRegistry(), **kwargs)
    return executor.execute(gate, MetricsContext(context, registry=registry), threshold)


def test_all_passing_gate():
    gate = _gate(_criterion("coverage", "code_coverage", 80, ">="), _criterion("bugs", "bugs", 0, "=="))

    execution = _execute(gate, {"code_coverage": 90, "bugs": 0})

    assert execution.status == GateStatus.PASS
    assert execution.errors == []
    assert [r.criteria_id for r in execution.results] == ["coverage", "bugs"]
    assert execution.overall_score == pytest.approx((82.5 + 100) / 2)
    assert execution.execution_time >= 0
    assert execution.end_time >= execution.start_time


def test_failed_mandatory_criterion_zeroes_the_gate():
    gate = _gate(
        _criterion("latency", "latency", 100, "<=", weight=1, mandatory=True),
        _criterion("coverage", "code_coverage", 80, ">=", weight=100),
    )

    execution = _execute(gate, {"latency": 101, "code_coverage": 100})

    assert execution.status == GateStatus.FAIL
    assert execution.overall_score == 0.0


def test_weighted_average_uses_criterion_weights():
    gate = _gate(
        _criterion("heavy", "heavy", 10, ">=", weight=10),
        _criterion("light", "light", 5, "==", weight=1),
    )

    execution = _execute(gate, {"heavy": 0, "light": 5})

    scores = {r.criteria_id: r.score for r in execution.results}
    assert scores == {"heavy": 0.0, "light": 100.0}
    assert execution.overall_score == pytest.approx(100 / 11)


def test_resolution_error_fails_the_gate():
    gate = _gate(_criterion("coverage", "code_coverage", 80, ">="), _criterion("mystery", "mystery_metric", 1, ">="))

    execution = _execute(gate, {"code_coverage": 95})

    assert execution.status == GateStatus.FAIL
    assert execution.overall_score == 0.0
    assert len(execution.errors) == 1
    assert execution.errors[0].startswith("Criteria mystery: ")
    failed = execution.results[1]
    assert failed.status == GateStatus.FAIL
    assert failed.score == 0.0
    assert failed.passed is False


def test_malformed_context_value_fails_the_gate():
    gate = _gate(_criterion("coverage", "code_coverage", 80, ">="))

    execution = _execute(gate, {"code_coverage": "n/a"})

    assert execution.status == GateStatus.FAIL
    assert execution.errors


def test_exception_skips_without_resolving_metric():
    exceptions = ExceptionRegistry()
    exception = exceptions.create(
        "gate-under-test", "metric pipeline down", "qa-lead", utc_now() + timedelta(hours=1), criteria_id="mystery"
    )
    gate = _gate(_criterion("coverage", "code_coverage", 80, ">="), _criterion("mystery", "mystery_metric", 1, ">="))

    execution = _execute(gate, {"code_coverage": 95}, exceptions=exceptions)

    assert execution.errors == []
    skipped = execution.results[1]
    assert skipped.status == GateStatus.SKIP
    assert skipped.passed is True
    assert skipped.score == 100.0
    assert exception.id in skipped.message
    assert execution.status == GateStatus.PASS


def test_timeout_keeps_partial_results_and_fails(fake_clock):
    registry = MetricRegistry()

    def slow_metric(ctx):
        fake_clock.advance(10)
        return 100

    registry.register("slow_metric", slow_metric)
    gate = _gate(
        _criterion("first", "slow_metric", 100, "=="),
        _criterion("second", "slow_metric", 100, "=="),
        timeout=5,
    )

    execution = _execute(gate, {}, registry=registry, clock=fake_clock)

    assert execution.status == GateStatus.FAIL
    assert execution.overall_score == 0.0
    assert execution.errors == ["Gate execution timeout after 5s"]
    assert [r.criteria_id for r in execution.results] == ["first"]


def test_timeout_falls_back_to_default(fake_clock):
    registry = MetricRegistry()
    registry.register("slow_metric", lambda ctx: fake_clock.advance(30) or 1.0)
    gate = _gate(_criterion("only", "slow_metric", 1, "=="), timeout=0)

    executor = GateExecutor(ExceptionRegistry(), clock=fake_clock)
    execution = executor.execute(
        gate, MetricsContext({}, registry=registry), LevelThreshold(80, 2), default_timeout=20
    )

    assert execution.status == GateStatus.FAIL
    assert execution.errors == ["Gate execution timeout after 20s"]


def test_band_warning_when_tally_fails():
    # 72.5 sits in [0.8 * 90, 90)
    gate = _gate(
        _criterion("exact", "exact", 1, "=="),
        _criterion("coverage", "code_coverage", 100, ">="),
    )

    execution = _execute(gate, {"exact": 1, "code_coverage": 90}, threshold=LevelThreshold(90, 0))

    assert execution.overall_score == pytest.approx(72.5)
    assert execution.status == GateStatus.WARNING


def test_low_score_with_too_many_failures_fails():
    gate = _gate(
        _criterion("exact", "exact", 1, "=="),
        _criterion("coverage", "code_coverage", 100, ">="),
    )

    execution = _execute(gate, {"exact": 1, "code_coverage": 10}, threshold=LevelThreshold(90, 0))

    assert execution.status == GateStatus.FAIL


def test_tolerated_failures_lift_status_to_warning():
    gate = _gate(
        _criterion("coverage", "code_coverage", 80, ">=", weight=7),
        _criterion("quality", "quality_score", 80, ">=", weight=5),
    )

    execution = _execute(gate, {"code_coverage": 70, "quality_score": 75}, threshold=LevelThreshold(80, 2))

    assert execution.overall_score < 64
    assert execution.status == GateStatus.WARNING


def test_badly_failing_gate_is_not_lifted_by_tolerated_failures():
    # Both criteria score 6.25, well under half of the 80 pass bar
    gate = _gate(
        _criterion("coverage", "code_coverage", 80, ">=", weight=7),
        _criterion("quality", "quality_score", 80, ">=", weight=5),
    )

    execution = _execute(gate, {"code_coverage": 10, "quality_score": 10}, threshold=LevelThreshold(80, 2))

    assert execution.overall_score == pytest.approx(6.25)
    assert execution.status == GateStatus.FAIL


def test_gate_without_criteria_fails():
    execution = _execute(_gate(), {})

    assert execution.results == []
    assert execution.overall_score == 0.0
    assert execution.status == GateStatus.FAIL


def test_band_status_boundaries():
    assert band_status(80, 80) == GateStatus.PASS
    assert band_status(64, 80) == GateStatus.WARNING
    assert band_status(63.99, 80) == GateStatus.FAIL


def test_tally_status_weights_passes():
    gate = _gate(_criterion("a", "a", 1, "=="), _criterion("b", "b", 1, "=="))
    execution = _execute(gate, {"a": 1, "b": 2})
    weights = {"a": 9.0, "b": 1.0}

    assert tally_status(execution.results, weights, LevelThreshold(90, 0)) == GateStatus.PASS
    assert tally_status(execution.results, weights, LevelThreshold(95, 0)) == GateStatus.FAIL
    assert tally_status(execution.results, weights, LevelThreshold(95, 1)) == GateStatus.WARNING
