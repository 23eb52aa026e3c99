"""
Shared pytest fixtures for shipgate tests.

Managers built here run against an in-memory document store seeded with the
default gate configuration, with retry delays zeroed so storage failure
tests do not sleep.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any, Callable, Dict, Optional

import pytest

from shipgate.config import ManagerSettings
from shipgate.config.constants import CONFIGURATION_KEY
from shipgate.manager import QualityGateManager
from shipgate.quality_gates.configuration import default_configuration
from shipgate.storage import DocumentStore, InMemoryDocumentStore


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def seed_configuration() -> Callable[..., Dict[str, Any]]:
    """Write the default configuration (retry delay 0) with global overrides."""

    def _seed(target: DocumentStore, **global_overrides: Any) -> Dict[str, Any]:
        configuration = default_configuration()
        settings = replace(configuration.global_settings, retry_delay=0, **global_overrides)
        payload = replace(configuration, global_settings=settings).to_dict()
        target.write_json(CONFIGURATION_KEY, payload)
        return payload

    return _seed


@pytest.fixture
def make_manager(seed_configuration) -> Callable[..., QualityGateManager]:
    def _make(
        target: Optional[DocumentStore] = None,
        *,
        settings: Optional[ManagerSettings] = None,
        **kwargs: Any,
    ) -> QualityGateManager:
        target = target if target is not None else InMemoryDocumentStore()
        if not target.exists(CONFIGURATION_KEY):
            seed_configuration(target)
        manager = QualityGateManager(target, settings or ManagerSettings(), **kwargs)
        manager.initialize()
        return manager

    return _make


@pytest.fixture
def passing_context() -> Dict[str, Any]:
    return {
        "test_pass_rate": 100,
        "critical_bugs": 0,
        "responseTime": 80,
        "memoryUsage": 256,
        "code_coverage": 85,
        "quality_score": 85,
    }
