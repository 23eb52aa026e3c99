"""Gate execution: evaluate every criterion of one gate and classify it.

Criteria run in declared order under a cooperative deadline. Classification
is fail-closed: any evaluation error or timeout fails the gate outright, as
does any failed mandatory criterion. Otherwise the weighted score places the
gate in a pass / warning / fail band, and the weighted pass tally can lift
it to the better status. Tolerated failures lift a gate to WARNING only
while its score stays above half the pass bar.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

from shipgate.config.constants import TALLY_WARNING_FLOOR_RATIO, WARNING_BAND_RATIO
from shipgate.error_handling import (
    ErrorContext,
    GateTimeoutError,
    MetricResolutionError,
    monitored_deadline,
)

from .criteria import errored_result, evaluate_criterion, skipped_result
from .exception_registry import ExceptionRegistry
from .metrics import MetricsContext
from .models import (
    CriterionResult,
    Gate,
    GateExecution,
    GateStatus,
    LevelThreshold,
    utc_now,
)

logger = logging.getLogger(__name__)

_STATUS_RANK = {GateStatus.FAIL: 0, GateStatus.WARNING: 1, GateStatus.PASS: 2}


def band_status(score: float, min_pass_rate: float) -> GateStatus:
    if score >= min_pass_rate:
        return GateStatus.PASS
    if score >= min_pass_rate * WARNING_BAND_RATIO:
        return GateStatus.WARNING
    return GateStatus.FAIL


def tally_status(
    results: List[CriterionResult],
    weights: Dict[str, float],
    threshold: LevelThreshold,
) -> GateStatus:
    """Status from the weighted share of passing criteria and the failure count."""
    total_weight = sum(weights.get(r.criteria_id, 0.0) for r in results)
    passed_weight = sum(weights.get(r.criteria_id, 0.0) for r in results if r.passed)
    pass_rate = passed_weight / total_weight * 100 if total_weight > 0 else 0.0
    failures = sum(1 for r in results if not r.passed)
    if pass_rate >= threshold.min_pass_rate:
        return GateStatus.PASS
    if failures <= threshold.max_failures:
        return GateStatus.WARNING
    return GateStatus.FAIL


def weighted_score(results: List[CriterionResult], weights: Dict[str, float]) -> float:
    total_weight = sum(weights.get(r.criteria_id, 0.0) for r in results)
    if total_weight <= 0:
        return 0.0
    return sum(r.score * weights.get(r.criteria_id, 0.0) for r in results) / total_weight


def classify(
    gate: Gate,
    results: List[CriterionResult],
    errors: List[str],
    threshold: LevelThreshold,
) -> Tuple[GateStatus, float]:
    """Return (status, overall score) for a finished criteria pass."""
    if errors:
        return GateStatus.FAIL, 0.0

    mandatory = {c.id for c in gate.criteria if c.mandatory}
    if any(r.criteria_id in mandatory and not r.passed for r in results):
        return GateStatus.FAIL, 0.0

    weights = {c.id: c.weight for c in gate.criteria}
    score = weighted_score(results, weights)
    status = band_status(score, threshold.min_pass_rate)
    if results:
        tally = tally_status(results, weights, threshold)
        if tally == GateStatus.WARNING and score < threshold.min_pass_rate * TALLY_WARNING_FLOOR_RATIO:
            tally = GateStatus.FAIL
        if _STATUS_RANK[tally] > _STATUS_RANK[status]:
            status = tally
    return status, score


class GateExecutor:
    """
    Runs one gate against a metrics context.

    Example:
        executor = GateExecutor(exceptions)
        execution = executor.execute(gate, MetricsContext(ctx), threshold, default_timeout=300)
    """

    def __init__(
        self,
        exceptions: ExceptionRegistry,
        *,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = utc_now,
    ) -> None:
        self.exceptions = exceptions
        self._clock = clock
        self._now = now

    def execute(
        self,
        gate: Gate,
        context: MetricsContext,
        threshold: LevelThreshold,
        *,
        default_timeout: float = 0,
        run_id: Optional[str] = None,
    ) -> GateExecution:
        start_time = self._now()
        started = self._clock()
        results: List[CriterionResult] = []
        errors: List[str] = []
        warnings: List[str] = []

        timeout = gate.timeout or default_timeout
        timeout_message = f"Gate execution timeout after {timeout:g}s"
        timed_out = False

        with monitored_deadline(f"gate {gate.id}", timeout, clock=self._clock) as deadline:
            try:
                for criterion in gate.criteria:
                    error_context = ErrorContext(run_id=run_id, gate_id=gate.id, criteria_id=criterion.id)
                    deadline.check(timeout_message, context=error_context)

                    exception = self.exceptions.find_in_effect(gate.id, criterion.id, now=self._now())
                    if exception is not None:
                        results.append(skipped_result(criterion, exception.id, exception.reason))
                        warnings.append(
                            f"Criteria {criterion.id} skipped by exception {exception.id} "
                            f"(approved by {exception.approver})"
                        )
                        continue

                    try:
                        actual = context.resolve(criterion.metric)
                    except MetricResolutionError as exc:
                        logger.warning("Gate %s criteria %s: %s", gate.id, criterion.id, exc.message)
                        errors.append(f"Criteria {criterion.id}: {exc.message}")
                        results.append(errored_result(criterion, exc.message))
                        continue

                    result = evaluate_criterion(criterion, actual)
                    results.append(result)
                    if not result.passed and not criterion.mandatory:
                        warnings.append(f"Optional criteria {criterion.id} failed: {result.message}")

                deadline.check(timeout_message, context=ErrorContext(run_id=run_id, gate_id=gate.id))
            except GateTimeoutError as exc:
                timed_out = True
                logger.error("Gate %s: %s", gate.id, exc.message)
                errors.append(exc.message)

        if timed_out:
            status, score = GateStatus.FAIL, 0.0
        else:
            status, score = classify(gate, results, errors, threshold)

        end_time = self._now()
        execution_time = (self._clock() - started) * 1000
        logger.info(
            "Gate %s finished: status=%s score=%.1f (%d criteria, %d errors)",
            gate.id,
            status.value,
            score,
            len(results),
            len(errors),
        )
        return GateExecution(
            gate_id=gate.id,
            status=status,
            results=results,
            overall_score=score,
            execution_time=execution_time,
            start_time=start_time,
            end_time=end_time,
            errors=errors,
            warnings=warnings,
        )
