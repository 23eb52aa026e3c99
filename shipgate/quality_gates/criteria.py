"""Single-criterion evaluation: comparison and 0-100 scoring."""

from __future__ import annotations

import logging
import operator as _op
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from .models import ComparisonOperator, Criterion, CriterionResult, GateStatus, utc_now

logger = logging.getLogger(__name__)

_COMPARATORS: Dict[str, Callable[[float, float], bool]] = {
    ComparisonOperator.GT.value: _op.gt,
    ComparisonOperator.LT.value: _op.lt,
    ComparisonOperator.GE.value: _op.ge,
    ComparisonOperator.LE.value: _op.le,
    ComparisonOperator.EQ.value: _op.eq,
    ComparisonOperator.NE.value: _op.ne,
}


@dataclass(frozen=True)
class Verdict:
    passed: bool
    score: float


def compare(actual: float, operator: str, threshold: float) -> bool:
    """Apply ``operator``; an unknown operator never passes."""
    comparator = _COMPARATORS.get(operator)
    if comparator is None:
        logger.warning("Unknown comparison operator %r; treating as failed", operator)
        return False
    return comparator(actual, threshold)


def calculate_criterion_score(actual: float, threshold: float, operator: str, passed: bool) -> float:
    """
    Score a comparison on 0-100.

    Passing ``>=`` / ``<=`` comparisons earn 80 plus up to 20 for headroom
    relative to the threshold; other passing comparisons earn 100. Failures
    earn at most 50, decreasing with relative distance from the threshold.
    A zero threshold has no relative scale: 100 when passed, 0 when failed.
    Scores never leave 0-100, even for negative thresholds.
    """
    if threshold == 0:
        return 100.0 if passed else 0.0

    if passed:
        if operator == ComparisonOperator.GE.value:
            return max(0.0, min(100.0, 80 + (actual - threshold) / threshold * 20))
        if operator == ComparisonOperator.LE.value:
            return max(0.0, min(100.0, 80 + (threshold - actual) / threshold * 20))
        return 100.0

    distance = abs(actual - threshold) / abs(threshold)
    return max(0.0, 50 - distance * 50)


def evaluate(criterion: Criterion, actual: float) -> Verdict:
    passed = compare(actual, criterion.operator, criterion.threshold)
    score = calculate_criterion_score(actual, criterion.threshold, criterion.operator, passed)
    return Verdict(passed=passed, score=score)


def evaluate_criterion(criterion: Criterion, actual: float) -> CriterionResult:
    """Compare a resolved metric value against ``criterion``."""
    verdict = evaluate(criterion, actual)
    return CriterionResult(
        criteria_id=criterion.id,
        status=GateStatus.PASS if verdict.passed else GateStatus.FAIL,
        actual_value=actual,
        expected_value=criterion.threshold,
        operator=criterion.operator,
        passed=verdict.passed,
        score=verdict.score,
        message=f"{criterion.name}: {_fmt(actual)} {criterion.operator} {_fmt(criterion.threshold)} - "
        f"{'PASS' if verdict.passed else 'FAIL'}",
        timestamp=utc_now(),
    )


def skipped_result(criterion: Criterion, exception_id: str, reason: str) -> CriterionResult:
    return CriterionResult(
        criteria_id=criterion.id,
        status=GateStatus.SKIP,
        actual_value=0,
        expected_value=criterion.threshold,
        operator=criterion.operator,
        passed=True,
        score=100.0,
        message=f"Skipped due to active exception {exception_id}: {reason}",
        timestamp=utc_now(),
    )


def errored_result(criterion: Criterion, error: str, actual: Optional[float] = None) -> CriterionResult:
    return CriterionResult(
        criteria_id=criterion.id,
        status=GateStatus.FAIL,
        actual_value=actual if actual is not None else 0,
        expected_value=criterion.threshold,
        operator=criterion.operator,
        passed=False,
        score=0.0,
        message=f"Error: {error}",
        timestamp=utc_now(),
    )


def _fmt(value: float) -> str:
    return f"{value:g}"
