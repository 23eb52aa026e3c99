"""Quality gate data model.

Gate definitions are immutable; exceptions are mutable records toggled by
the registry; results and executions are produced once per run. Every
persisted record round-trips through ``to_dict()`` / ``from_dict()`` using
the camelCase document shape (``gateId``, ``overallScore``, ...).
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from shipgate.config.constants import CONFIGURATION_VERSION


class GateLevel(str, Enum):
    """Selects the threshold bucket a gate's score is compared against."""
    CRITICAL = "critical"
    MAJOR = "major"
    MINOR = "minor"


class GateStatus(str, Enum):
    """Terminal classification of a criterion result or a gate execution."""
    PASS = "pass"
    FAIL = "fail"
    WARNING = "warning"
    SKIP = "skip"


class ComparisonOperator(str, Enum):
    GT = ">"
    LT = "<"
    GE = ">="
    LE = "<="
    EQ = "=="
    NE = "!="


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """ISO-8601 in UTC with a trailing ``Z``."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def parse_timestamp(value: Union[str, datetime]) -> datetime:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class Criterion:
    """A single thresholded check against one metric."""
    id: str
    name: str
    metric: str
    threshold: float
    operator: str
    weight: float = 1.0
    mandatory: bool = False
    description: str = ""
    category: str = "general"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "metric": self.metric,
            "threshold": self.threshold,
            "operator": self.operator,
            "weight": self.weight,
            "mandatory": self.mandatory,
            "category": self.category,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Criterion":
        return cls(
            id=data["id"],
            name=data.get("name") or data["id"],
            description=data.get("description", ""),
            metric=data["metric"],
            threshold=data["threshold"],
            operator=data["operator"],
            weight=data.get("weight", 1.0),
            mandatory=bool(data.get("mandatory", False)),
            category=data.get("category", "general"),
        )


@dataclass(frozen=True)
class Gate:
    """A named, ordered bundle of criteria for one quality dimension."""
    id: str
    name: str
    level: GateLevel
    criteria: Tuple[Criterion, ...] = ()
    description: str = ""
    blocking: bool = False
    enabled: bool = True
    order: int = 0
    dependencies: Tuple[str, ...] = ()
    # Seconds; 0 falls back to the global default timeout
    timeout: float = 0

    def get_criterion(self, criteria_id: str) -> Optional[Criterion]:
        for criterion in self.criteria:
            if criterion.id == criteria_id:
                return criterion
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "level": self.level.value,
            "description": self.description,
            "criteria": [c.to_dict() for c in self.criteria],
            "blocking": self.blocking,
            "enabled": self.enabled,
            "order": self.order,
            "dependencies": list(self.dependencies),
            "timeout": self.timeout,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Gate":
        return cls(
            id=data["id"],
            name=data.get("name") or data["id"],
            level=GateLevel(data["level"]),
            description=data.get("description", ""),
            criteria=tuple(Criterion.from_dict(c) for c in data.get("criteria", [])),
            blocking=bool(data.get("blocking", False)),
            enabled=bool(data.get("enabled", True)),
            order=int(data.get("order", 0)),
            dependencies=tuple(data.get("dependencies", [])),
            timeout=data.get("timeout", 0),
        )


@dataclass
class QualityGateException:
    """A time-bounded, auditable override for a gate or one of its criteria."""
    id: str
    gate_id: str
    reason: str
    approver: str
    approved_at: datetime
    expires_at: datetime
    criteria_id: Optional[str] = None
    conditions: List[str] = field(default_factory=list)
    active: bool = True

    def is_in_effect(
        self,
        gate_id: str,
        criteria_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> bool:
        now = now or utc_now()
        if not self.active or self.gate_id != gate_id:
            return False
        if self.expires_at <= now:
            return False
        if criteria_id is None or self.criteria_id is None:
            return True
        return self.criteria_id == criteria_id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "gateId": self.gate_id,
            "criteriaId": self.criteria_id,
            "reason": self.reason,
            "approver": self.approver,
            "approvedAt": format_timestamp(self.approved_at),
            "expiresAt": format_timestamp(self.expires_at),
            "conditions": list(self.conditions),
            "active": self.active,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QualityGateException":
        return cls(
            id=data["id"],
            gate_id=data["gateId"],
            criteria_id=data.get("criteriaId"),
            reason=data.get("reason", ""),
            approver=data.get("approver", ""),
            approved_at=parse_timestamp(data["approvedAt"]),
            expires_at=parse_timestamp(data["expiresAt"]),
            conditions=list(data.get("conditions", [])),
            active=bool(data.get("active", True)),
        )


@dataclass(frozen=True)
class CriterionResult:
    """Outcome of one criterion in one gate execution."""
    criteria_id: str
    status: GateStatus
    actual_value: float
    expected_value: float
    operator: str
    passed: bool
    score: float
    message: str
    timestamp: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "criteriaId": self.criteria_id,
            "status": self.status.value,
            "actualValue": self.actual_value,
            "expectedValue": self.expected_value,
            "operator": self.operator,
            "passed": self.passed,
            "score": self.score,
            "message": self.message,
            "timestamp": format_timestamp(self.timestamp),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CriterionResult":
        return cls(
            criteria_id=data["criteriaId"],
            status=GateStatus(data["status"]),
            actual_value=data.get("actualValue", 0),
            expected_value=data.get("expectedValue", 0),
            operator=data.get("operator", ""),
            passed=bool(data.get("passed", False)),
            score=data.get("score", 0),
            message=data.get("message", ""),
            timestamp=parse_timestamp(data["timestamp"]),
        )


@dataclass
class GateExecution:
    """Everything one gate produced in one run."""
    gate_id: str
    status: GateStatus
    results: List[CriterionResult]
    overall_score: float
    execution_time: float  # milliseconds
    start_time: datetime
    end_time: datetime
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def skipped_count(self) -> int:
        return sum(1 for r in self.results if r.status == GateStatus.SKIP)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "gateId": self.gate_id,
            "status": self.status.value,
            "results": [r.to_dict() for r in self.results],
            "overallScore": self.overall_score,
            "executionTime": self.execution_time,
            "startTime": format_timestamp(self.start_time),
            "endTime": format_timestamp(self.end_time),
            "errors": list(self.errors),
            "warnings": list(self.warnings),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GateExecution":
        return cls(
            gate_id=data["gateId"],
            status=GateStatus(data["status"]),
            results=[CriterionResult.from_dict(r) for r in data.get("results", [])],
            overall_score=data.get("overallScore", 0),
            execution_time=data.get("executionTime", 0),
            start_time=parse_timestamp(data["startTime"]),
            end_time=parse_timestamp(data["endTime"]),
            errors=list(data.get("errors", [])),
            warnings=list(data.get("warnings", [])),
        )


@dataclass
class GlobalSettings:
    """Run-wide execution settings."""
    enable_parallel_execution: bool = False
    max_concurrent_gates: int = 3
    default_timeout: float = 300
    fail_fast: bool = True
    retry_attempts: int = 2
    retry_delay: float = 1000  # milliseconds

    def to_dict(self) -> Dict[str, Any]:
        return {
            "enableParallelExecution": self.enable_parallel_execution,
            "maxConcurrentGates": self.max_concurrent_gates,
            "defaultTimeout": self.default_timeout,
            "failFast": self.fail_fast,
            "retryAttempts": self.retry_attempts,
            "retryDelay": self.retry_delay,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GlobalSettings":
        defaults = cls()
        return cls(
            enable_parallel_execution=bool(
                data.get("enableParallelExecution", defaults.enable_parallel_execution)
            ),
            max_concurrent_gates=int(data.get("maxConcurrentGates", defaults.max_concurrent_gates)),
            default_timeout=data.get("defaultTimeout", defaults.default_timeout),
            fail_fast=bool(data.get("failFast", defaults.fail_fast)),
            retry_attempts=int(data.get("retryAttempts", defaults.retry_attempts)),
            retry_delay=data.get("retryDelay", defaults.retry_delay),
        )


@dataclass
class LevelThreshold:
    """Pass bar and tolerated failure count for one gate level."""
    min_pass_rate: float
    max_failures: int

    def to_dict(self) -> Dict[str, Any]:
        return {"minPassRate": self.min_pass_rate, "maxFailures": self.max_failures}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LevelThreshold":
        return cls(min_pass_rate=data["minPassRate"], max_failures=int(data["maxFailures"]))


@dataclass
class QualityGateConfiguration:
    """Gate definitions plus global settings and per-level thresholds."""
    version: str
    last_updated: datetime
    gates: List[Gate]
    global_settings: GlobalSettings
    thresholds: Dict[GateLevel, LevelThreshold]

    def get_gate(self, gate_id: str) -> Optional[Gate]:
        for gate in self.gates:
            if gate.id == gate_id:
                return gate
        return None

    def threshold_for(self, level: GateLevel) -> LevelThreshold:
        return self.thresholds[level]

    def enabled_gates(self) -> List[Gate]:
        """Enabled gates in execution order; ties keep declaration order."""
        return sorted((g for g in self.gates if g.enabled), key=lambda g: g.order)

    def touched(self, when: Optional[datetime] = None) -> "QualityGateConfiguration":
        return replace(self, last_updated=when or utc_now())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "lastUpdated": format_timestamp(self.last_updated),
            "gates": [g.to_dict() for g in self.gates],
            "globalSettings": self.global_settings.to_dict(),
            "thresholds": {
                level.value: self.thresholds[level].to_dict() for level in GateLevel
            },
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QualityGateConfiguration":
        return cls(
            version=str(data.get("version", CONFIGURATION_VERSION)),
            last_updated=parse_timestamp(data["lastUpdated"]) if data.get("lastUpdated") else utc_now(),
            gates=[Gate.from_dict(g) for g in data.get("gates", [])],
            global_settings=GlobalSettings.from_dict(data.get("globalSettings", {})),
            thresholds={
                GateLevel(level): LevelThreshold.from_dict(values)
                for level, values in data["thresholds"].items()
            },
        )


@dataclass
class RunSummary:
    total: int = 0
    passed: int = 0
    failed: int = 0
    warnings: int = 0
    skipped: int = 0
    blocked: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "passed": self.passed,
            "failed": self.failed,
            "warnings": self.warnings,
            "skipped": self.skipped,
            "blocked": self.blocked,
        }


@dataclass
class RunResult:
    """Outcome of one execute_quality_gates call. Not persisted as a whole."""
    overall_status: GateStatus
    executions: List[GateExecution]
    summary: RunSummary
    recommendations: List[str]
    start_time: datetime = field(default_factory=utc_now)
    end_time: datetime = field(default_factory=utc_now)
    run_id: str = ""
    report_key: Optional[str] = None

    def get_execution(self, gate_id: str) -> Optional[GateExecution]:
        for execution in self.executions:
            if execution.gate_id == gate_id:
                return execution
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "runId": self.run_id,
            "overallStatus": self.overall_status.value,
            "executions": [e.to_dict() for e in self.executions],
            "summary": self.summary.to_dict(),
            "recommendations": list(self.recommendations),
            "startTime": format_timestamp(self.start_time),
            "endTime": format_timestamp(self.end_time),
            "reportKey": self.report_key,
        }
