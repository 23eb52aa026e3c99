"""Bounded history of gate executions, newest last."""

from __future__ import annotations

import copy
from typing import Any, Iterable, List, Optional

from shipgate.config.constants import DEFAULT_HISTORY_LIMIT

from .models import GateExecution


class ExecutionHistory:
    def __init__(
        self,
        executions: Optional[Iterable[GateExecution]] = None,
        limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> None:
        if limit < 1:
            raise ValueError(f"History limit must be >= 1, got {limit}")
        self.limit = limit
        self._executions: List[GateExecution] = []
        self.extend(executions or [])

    @classmethod
    def from_document(
        cls, payload: Optional[List[Any]], limit: int = DEFAULT_HISTORY_LIMIT
    ) -> "ExecutionHistory":
        if payload is None:
            return cls(limit=limit)
        if not isinstance(payload, list):
            raise ValueError("History document must be a JSON array")
        return cls((GateExecution.from_dict(item) for item in payload), limit=limit)

    def to_document(self) -> List[Any]:
        return [execution.to_dict() for execution in self._executions]

    def extend(self, executions: Iterable[GateExecution]) -> None:
        self._executions.extend(executions)
        if len(self._executions) > self.limit:
            del self._executions[: len(self._executions) - self.limit]

    def snapshot(self) -> List[GateExecution]:
        return list(self._executions)

    def restore(self, executions: List[GateExecution]) -> None:
        self._executions = list(executions)

    def entries(self, limit: Optional[int] = None) -> List[GateExecution]:
        """Copies of the most recent ``limit`` entries (all when None)."""
        records = self._executions if limit is None else self._executions[-limit:] if limit > 0 else []
        return copy.deepcopy(records)

    def __len__(self) -> int:
        return len(self._executions)
