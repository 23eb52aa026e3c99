"""Gate configuration: built-in defaults, persistence and threshold edits.

Configurations are treated as values. Every edit builds a new
``QualityGateConfiguration`` and the manager swaps it in only after the
document has been written.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, Optional

from shipgate.config.constants import CONFIGURATION_VERSION
from shipgate.config.validation import ensure_valid_configuration
from shipgate.error_handling import ConfigurationError
from shipgate.storage import DocumentStore

from .models import (
    Criterion,
    Gate,
    GateLevel,
    GlobalSettings,
    LevelThreshold,
    QualityGateConfiguration,
    utc_now,
)

logger = logging.getLogger(__name__)


def default_configuration(now: Optional[datetime] = None) -> QualityGateConfiguration:
    """The three-gate configuration seeded when no document exists."""
    gates = [
        Gate(
            id="critical-functionality",
            name="Critical Functionality",
            level=GateLevel.CRITICAL,
            description="Essential functionality must work correctly",
            criteria=(
                Criterion(
                    id="test-pass-rate",
                    name="Test Pass Rate",
                    description="Percentage of tests that pass",
                    metric="test_pass_rate",
                    threshold=100,
                    operator="==",
                    weight=10,
                    mandatory=True,
                    category="testing",
                ),
                Criterion(
                    id="critical-bugs",
                    name="Critical Bugs",
                    description="Number of critical bugs",
                    metric="critical_bugs",
                    threshold=0,
                    operator="==",
                    weight=10,
                    mandatory=True,
                    category="quality",
                ),
            ),
            blocking=True,
            enabled=True,
            order=1,
            dependencies=(),
            timeout=300,
        ),
        Gate(
            id="performance-standards",
            name="Performance Standards",
            level=GateLevel.MAJOR,
            description="Performance requirements must be met",
            criteria=(
                Criterion(
                    id="response-time",
                    name="Response Time",
                    description="Average response time in milliseconds",
                    metric="responseTime",
                    threshold=100,
                    operator="<=",
                    weight=8,
                    mandatory=True,
                    category="performance",
                ),
                Criterion(
                    id="memory-usage",
                    name="Memory Usage",
                    description="Memory usage in MB",
                    metric="memoryUsage",
                    threshold=512,
                    operator="<=",
                    weight=6,
                    mandatory=False,
                    category="performance",
                ),
            ),
            blocking=True,
            enabled=True,
            order=2,
            dependencies=("critical-functionality",),
            timeout=180,
        ),
        Gate(
            id="quality-metrics",
            name="Quality Metrics",
            level=GateLevel.MINOR,
            description="Code quality standards",
            criteria=(
                Criterion(
                    id="code-coverage",
                    name="Code Coverage",
                    description="Percentage of code covered by tests",
                    metric="code_coverage",
                    threshold=80,
                    operator=">=",
                    weight=7,
                    mandatory=False,
                    category="quality",
                ),
                Criterion(
                    id="code-quality",
                    name="Code Quality Score",
                    description="Overall code quality score",
                    metric="quality_score",
                    threshold=80,
                    operator=">=",
                    weight=5,
                    mandatory=False,
                    category="quality",
                ),
            ),
            blocking=False,
            enabled=True,
            order=3,
            dependencies=(),
            timeout=120,
        ),
    ]
    return QualityGateConfiguration(
        version=CONFIGURATION_VERSION,
        last_updated=now or utc_now(),
        gates=gates,
        global_settings=GlobalSettings(),
        thresholds={
            GateLevel.CRITICAL: LevelThreshold(min_pass_rate=100, max_failures=0),
            GateLevel.MAJOR: LevelThreshold(min_pass_rate=90, max_failures=1),
            GateLevel.MINOR: LevelThreshold(min_pass_rate=80, max_failures=2),
        },
    )


def configuration_from_document(payload: Any, *, source: str = "configuration") -> QualityGateConfiguration:
    """Validate a configuration document and build the model from its normalized form."""
    return QualityGateConfiguration.from_dict(ensure_valid_configuration(payload, source=source))


def adjust_thresholds(
    configuration: QualityGateConfiguration,
    level: GateLevel,
    adjustments: Dict[str, Any],
    *,
    now: Optional[datetime] = None,
) -> QualityGateConfiguration:
    """
    Return a copy of ``configuration`` with ``thresholds[level]`` partially updated.

    ``adjustments`` may carry ``min_pass_rate`` / ``minPassRate`` and
    ``max_failures`` / ``maxFailures``; keys with value ``None`` are ignored.

    Raises:
        ConfigurationError: unknown key or a negative value.
    """
    level = GateLevel(level)
    aliases = {
        "min_pass_rate": "min_pass_rate",
        "minPassRate": "min_pass_rate",
        "max_failures": "max_failures",
        "maxFailures": "max_failures",
    }
    changes: Dict[str, Any] = {}
    for key, value in adjustments.items():
        if key not in aliases:
            raise ConfigurationError(f"Unknown threshold field: {key}", config_key=f"thresholds.{level.value}")
        if value is None:
            continue
        field_name = aliases[key]
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ConfigurationError(
                f"Threshold {field_name} must be a number, got {value!r}",
                config_key=f"thresholds.{level.value}.{field_name}",
            )
        if value < 0:
            raise ConfigurationError(
                f"Threshold {field_name} must be non-negative, got {value}",
                config_key=f"thresholds.{level.value}.{field_name}",
            )
        changes[field_name] = int(value) if field_name == "max_failures" else value

    thresholds = copy.deepcopy(configuration.thresholds)
    thresholds[level] = replace(thresholds[level], **changes)
    logger.debug("Threshold changes for %s: %s", level.value, changes)
    return replace(configuration, thresholds=thresholds, last_updated=now or utc_now())


class ConfigurationRepository:
    """Loads the configuration document from a store."""

    def __init__(self, store: DocumentStore, key: str) -> None:
        self.store = store
        self.key = key

    def load(self) -> Optional[QualityGateConfiguration]:
        """The stored configuration, or None when no document exists."""
        payload = self.store.read_json(self.key)
        if payload is None:
            return None
        return configuration_from_document(payload, source=self.key)
