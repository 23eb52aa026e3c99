"""
Pydantic schemas for the quality gate configuration document.

The configuration document is what ``settings/quality-gates.json`` holds and
what ``replace_configuration`` accepts. Structural checks run through these
models; cross-record checks (unique ids, known dependencies) run as model
validators so a single call reports everything wrong with a document.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from shipgate.error_handling import ConfigurationError

_LEVELS = ("critical", "major", "minor")
_OPERATORS = (">", "<", ">=", "<=", "==", "!=")


class _Document(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class CriterionDocument(_Document):
    """One criterion inside a gate."""
    id: str = Field(..., min_length=1)
    name: str = ""
    description: str = ""
    metric: str = Field(..., min_length=1)
    threshold: float = Field(..., ge=0)
    operator: str
    weight: float = Field(default=1.0, gt=0)
    mandatory: bool = False
    category: str = "general"

    @field_validator("operator")
    @classmethod
    def validate_operator(cls, v: str) -> str:
        if v not in _OPERATORS:
            raise ValueError(f"Unknown comparison operator {v!r}")
        return v


class GateDocument(_Document):
    """A gate definition."""
    id: str = Field(..., min_length=1)
    name: str = ""
    description: str = ""
    level: str
    criteria: List[CriterionDocument] = Field(default_factory=list)
    blocking: bool = False
    enabled: bool = True
    order: int = 0
    dependencies: List[str] = Field(default_factory=list)
    timeout: float = Field(default=0, ge=0)

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        if v not in _LEVELS:
            raise ValueError(f"Unknown gate level {v!r}")
        return v

    @field_validator("criteria")
    @classmethod
    def validate_unique_criteria(cls, v: List[CriterionDocument]) -> List[CriterionDocument]:
        ids = [c.id for c in v]
        if len(ids) != len(set(ids)):
            duplicates = sorted({id_ for id_ in ids if ids.count(id_) > 1})
            raise ValueError(f"Duplicate criteria IDs found: {duplicates}")
        return v


class GlobalSettingsDocument(_Document):
    enable_parallel_execution: bool = Field(default=False, alias="enableParallelExecution")
    max_concurrent_gates: int = Field(default=3, ge=1, alias="maxConcurrentGates")
    default_timeout: float = Field(default=300, ge=0, alias="defaultTimeout")
    fail_fast: bool = Field(default=True, alias="failFast")
    retry_attempts: int = Field(default=2, ge=0, alias="retryAttempts")
    retry_delay: float = Field(default=1000, ge=0, alias="retryDelay")


class LevelThresholdDocument(_Document):
    min_pass_rate: float = Field(..., ge=0, alias="minPassRate")
    max_failures: int = Field(..., ge=0, alias="maxFailures")


class ConfigurationDocument(_Document):
    """Complete configuration document."""
    version: str = Field(..., min_length=1)
    last_updated: Optional[str] = Field(default=None, alias="lastUpdated")
    gates: List[GateDocument]
    global_settings: GlobalSettingsDocument = Field(
        default_factory=GlobalSettingsDocument, alias="globalSettings"
    )
    thresholds: Dict[str, LevelThresholdDocument]

    @field_validator("thresholds")
    @classmethod
    def validate_threshold_levels(
        cls, v: Dict[str, LevelThresholdDocument]
    ) -> Dict[str, LevelThresholdDocument]:
        missing = [level for level in _LEVELS if level not in v]
        if missing:
            raise ValueError(f"Missing thresholds for levels: {missing}")
        unknown = sorted(set(v) - set(_LEVELS))
        if unknown:
            raise ValueError(f"Unknown threshold levels: {unknown}")
        return v

    @model_validator(mode="after")
    def validate_gate_graph(self) -> "ConfigurationDocument":
        ids = [g.id for g in self.gates]
        if len(ids) != len(set(ids)):
            duplicates = sorted({id_ for id_ in ids if ids.count(id_) > 1})
            raise ValueError(f"Duplicate gate IDs found: {duplicates}")
        known = set(ids)
        for gate in self.gates:
            unknown = [dep for dep in gate.dependencies if dep not in known]
            if unknown:
                raise ValueError(f"Gate {gate.id!r} depends on unknown gates: {unknown}")
            if gate.id in gate.dependencies:
                raise ValueError(f"Gate {gate.id!r} depends on itself")
        return self


def _format_errors(exc: ValidationError) -> Dict[str, str]:
    errors: Dict[str, str] = {}
    for err in exc.errors():
        key = ".".join(str(part) for part in err.get("loc", ())) or "document"
        errors[key] = err.get("msg", "invalid value")
    return errors


def _parse(payload: Any) -> Tuple[Optional[ConfigurationDocument], Dict[str, str]]:
    if not isinstance(payload, dict):
        return None, {"document": "Configuration document must be a JSON object"}
    try:
        return ConfigurationDocument.model_validate(payload), {}
    except ValidationError as exc:
        return None, _format_errors(exc)


def validate_configuration_document(payload: Any) -> Dict[str, str]:
    """
    Validate a configuration document.

    Returns:
        Mapping of field path to error message; empty when the document is valid.

    Example:
        errors = validate_configuration_document(payload)
        for key, msg in errors.items():
            print(f"Validation error in {key}: {msg}")
    """
    return _parse(payload)[1]


def ensure_valid_configuration(payload: Any, *, source: str = "configuration") -> Dict[str, Any]:
    """
    Validate ``payload`` and return its normalized form.

    The returned document carries coerced values (``"80"`` becomes ``80.0``)
    and defaults for omitted fields, in the camelCase shape of the stored
    document.

    Raises:
        ConfigurationError: listing every problem in ``payload``.
    """
    document, errors = _parse(payload)
    if document is None:
        summary = "; ".join(f"{key}: {msg}" for key, msg in sorted(errors.items()))
        raise ConfigurationError(
            f"Invalid {source}: {summary}",
            config_key=source,
            issues=errors,
        )
    return document.model_dump(by_alias=True)
