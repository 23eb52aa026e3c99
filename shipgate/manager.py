"""Quality gate manager: the orchestration and administration surface.

The manager owns the configuration, the exception registry and the
execution history. Runs and administrative edits are serialized by a
single re-entrant lock; every getter hands out deep copies. Each mutation
is written through the document store (with retries) before the in-memory
state is considered committed, and a write that still fails after the
configured retries is raised to the caller.

Usage:
    manager = QualityGateManager(FilesystemDocumentStore(".shipgate"))
    manager.initialize()
    result = manager.execute_quality_gates({"test_pass_rate": 100, "critical_bugs": 0})
    if result.overall_status == GateStatus.FAIL:
        print("\\n".join(result.recommendations))
"""

from __future__ import annotations

import copy
import logging
import threading
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from shipgate.config import ManagerSettings, load_manager_settings
from shipgate.error_handling import (
    ConfigurationError,
    InitializationError,
    ShipgateError,
    StorageError,
    log_shipgate_error,
    retry_call,
)
from shipgate.quality_gates.configuration import (
    ConfigurationRepository,
    adjust_thresholds,
    configuration_from_document,
    default_configuration,
)
from shipgate.quality_gates.exception_registry import ExceptionRegistry
from shipgate.quality_gates.gate_executor import GateExecutor
from shipgate.quality_gates.history import ExecutionHistory
from shipgate.quality_gates.metrics import MetricRegistry, MetricsContext
from shipgate.quality_gates.models import (
    Gate,
    GateExecution,
    GateLevel,
    GateStatus,
    GlobalSettings,
    QualityGateConfiguration,
    QualityGateException,
    RunResult,
    RunSummary,
    utc_now,
)
from shipgate.quality_reports import render_execution_report
from shipgate.storage import DocumentStore, FilesystemDocumentStore

logger = logging.getLogger(__name__)


def new_run_id() -> str:
    return f"run-{uuid.uuid4().hex[:12]}"


def summarize(executions: List[GateExecution], blocked: bool) -> RunSummary:
    return RunSummary(
        total=len(executions),
        passed=sum(1 for e in executions if e.status == GateStatus.PASS),
        failed=sum(1 for e in executions if e.status == GateStatus.FAIL),
        warnings=sum(1 for e in executions if e.status == GateStatus.WARNING),
        skipped=sum(e.skipped_count for e in executions),
        blocked=blocked,
    )


def determine_overall_status(executions: List[GateExecution], blocked: bool) -> GateStatus:
    if blocked:
        return GateStatus.FAIL
    if any(e.status == GateStatus.FAIL for e in executions):
        return GateStatus.FAIL
    if any(e.status == GateStatus.WARNING for e in executions):
        return GateStatus.WARNING
    return GateStatus.PASS


def build_recommendations(
    executions: List[GateExecution],
    blocked: bool,
    configuration: QualityGateConfiguration,
) -> List[str]:
    """Ordered, human-facing explanation of a run's outcome."""

    def gate_name(gate_id: str) -> str:
        gate = configuration.get_gate(gate_id)
        return gate.name if gate else gate_id

    recommendations: List[str] = []
    if blocked:
        recommendations.append("Deployment is blocked by failing quality gates")
        recommendations.append("Address critical issues before proceeding")

    failed = [e for e in executions if e.status == GateStatus.FAIL]
    if failed:
        recommendations.append(f"{len(failed)} quality gate(s) failed")
        for execution in failed:
            recommendations.append(f"  - {gate_name(execution.gate_id)}: Review and fix failing criteria")

    warned = [e for e in executions if e.status == GateStatus.WARNING]
    if warned:
        recommendations.append(f"{len(warned)} quality gate(s) have warnings")
        for execution in warned:
            recommendations.append(f"  - {gate_name(execution.gate_id)}: Below the pass threshold")
        recommendations.append("Consider improving these areas for better quality")

    if all(e.status == GateStatus.PASS for e in executions):
        recommendations.append("All quality gates passed successfully")
        recommendations.append("Ready for deployment")
    return recommendations


def plan_batches(gates: List[Gate], max_concurrent: int, fail_fast: bool) -> List[List[Gate]]:
    """
    Split ordered gates into runs of mutually independent gates.

    A batch closes before a gate that depends on one of its members, when it
    reaches ``max_concurrent``, and (under fail-fast) right after a blocking
    gate, so a blocking failure never has later gates running beside it.
    """
    batches: List[List[Gate]] = []
    current: List[Gate] = []
    for gate in gates:
        members = {g.id for g in current}
        if current and (len(current) >= max_concurrent or members.intersection(gate.dependencies)):
            batches.append(current)
            current = []
        current.append(gate)
        if fail_fast and gate.blocking:
            batches.append(current)
            current = []
    if current:
        batches.append(current)
    return batches


class QualityGateManager:
    """Runs quality gates and administers their configuration and exceptions."""

    def __init__(
        self,
        store: Optional[DocumentStore] = None,
        settings: Optional[ManagerSettings] = None,
        *,
        metric_registry: Optional[MetricRegistry] = None,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = utc_now,
    ) -> None:
        self.settings = settings or load_manager_settings()
        self.store: DocumentStore = store if store is not None else FilesystemDocumentStore(
            self.settings.storage_root
        )
        self.metric_registry = metric_registry or MetricRegistry()
        self._clock = clock
        self._now = now
        self._lock = threading.RLock()
        self._configuration_repository = ConfigurationRepository(self.store, self.settings.configuration_key)
        self._configuration: Optional[QualityGateConfiguration] = None
        self._exceptions = ExceptionRegistry(clock=now)
        self._history = ExecutionHistory(limit=self.settings.history_limit)
        self._initialized = False

    @classmethod
    def from_settings(cls, settings: Optional[ManagerSettings] = None, **kwargs: Any) -> "QualityGateManager":
        settings = settings or load_manager_settings()
        return cls(FilesystemDocumentStore(settings.storage_root), settings, **kwargs)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self) -> None:
        """
        Load configuration, exceptions and history from the store.

        Absent documents are not an error: the configuration is seeded with
        the built-in defaults (and written back), exceptions and history
        start empty.

        Raises:
            InitializationError: a document exists but cannot be read or parsed,
                or the seeded configuration cannot be written.
        """
        with self._lock:
            try:
                configuration = self._configuration_repository.load()
                exceptions = ExceptionRegistry.from_document(
                    self.store.read_json(self.settings.exceptions_key), clock=self._now
                )
                history = ExecutionHistory.from_document(
                    self.store.read_json(self.settings.history_key), limit=self.settings.history_limit
                )
            except ShipgateError as exc:
                raise InitializationError(
                    f"Failed to load quality gate state: {exc.message}", cause=exc
                ) from exc
            except (KeyError, TypeError, ValueError) as exc:
                raise InitializationError(
                    f"Failed to parse quality gate state: {exc}", cause=exc
                ) from exc

            if configuration is None:
                configuration = default_configuration(now=self._now())
                logger.info("No configuration at %s; seeding defaults", self.settings.configuration_key)
                try:
                    self._write(self.settings.configuration_key, configuration.to_dict(), configuration.global_settings)
                except StorageError as exc:
                    raise InitializationError(
                        f"Failed to seed default configuration: {exc.message}", cause=exc
                    ) from exc

            self._configuration = configuration
            self._exceptions = exceptions
            self._history = history
            self._initialized = True
            logger.info(
                "Quality gate manager initialized: %d gates, %d exceptions, %d history entries",
                len(configuration.gates),
                len(exceptions),
                len(history),
            )

    def _ensure_initialized(self) -> QualityGateConfiguration:
        if not self._initialized:
            self.initialize()
        if self._configuration is None:
            raise InitializationError("Quality gate manager has no configuration loaded")
        return self._configuration

    def _write(self, key: str, payload: Any, global_settings: Optional[GlobalSettings] = None) -> None:
        self._persist(self.store.write_json, key, payload, global_settings)

    def _write_text(self, key: str, text: str, global_settings: GlobalSettings) -> None:
        self._persist(self.store.write_text, key, text, global_settings)

    def _persist(
        self,
        writer: Callable[[str, Any], None],
        key: str,
        value: Any,
        global_settings: Optional[GlobalSettings],
    ) -> None:
        settings = global_settings or self._ensure_initialized().global_settings
        try:
            retry_call(
                writer,
                key,
                value,
                retry_attempts=settings.retry_attempts,
                retry_delay=settings.retry_delay / 1000,
            )
        except OSError as exc:
            raise StorageError(f"Failed to write {key}: {exc}", key=key, cause=exc) from exc

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    def execute_quality_gates(self, context: Union[Mapping[str, Any], MetricsContext, None] = None) -> RunResult:
        """
        Run every enabled gate against ``context`` and persist the outcome.

        Raises:
            StorageError: the execution history (or the report) could not be
                written after retries. In-memory history is left unchanged.
        """
        with self._lock:
            configuration = self._ensure_initialized()
            run_id = new_run_id()
            metrics = (
                context
                if isinstance(context, MetricsContext)
                else MetricsContext(context or {}, registry=self.metric_registry)
            )
            gates = configuration.enabled_gates()
            start_time = self._now()
            log_extra = {"run_id": run_id}
            logger.info("Starting quality gate run %s with %d gates", run_id, len(gates), extra=log_extra)

            missing = metrics.unresolvable(c.metric for g in gates for c in g.criteria)
            if missing:
                logger.warning(
                    "Metrics with no context value or built-in computation: %s",
                    ", ".join(missing),
                    extra=log_extra,
                )

            executor = GateExecutor(self._exceptions, clock=self._clock, now=self._now)
            settings = configuration.global_settings
            if settings.enable_parallel_execution and settings.max_concurrent_gates > 1:
                executions, blocked = self._run_batched(executor, gates, metrics, configuration, run_id)
            else:
                executions, blocked = self._run_sequential(executor, gates, metrics, configuration, run_id)

            result = RunResult(
                overall_status=determine_overall_status(executions, blocked),
                executions=executions,
                summary=summarize(executions, blocked),
                recommendations=build_recommendations(executions, blocked, configuration),
                start_time=start_time,
                end_time=self._now(),
                run_id=run_id,
            )

            self._record_history(executions, settings, run_id)
            if self.settings.write_reports:
                result.report_key = self._write_report(result, configuration)

            logger.info(
                "Quality gate run %s finished: %s (%d passed, %d failed, %d warnings, blocked=%s)",
                run_id,
                result.overall_status.value,
                result.summary.passed,
                result.summary.failed,
                result.summary.warnings,
                result.summary.blocked,
                extra=log_extra,
            )
            return copy.deepcopy(result)

    def _dependencies_met(self, gate: Gate, completed: Dict[str, GateExecution]) -> bool:
        for dependency in gate.dependencies:
            execution = completed.get(dependency)
            if execution is None or execution.status == GateStatus.FAIL:
                return False
        return True

    def _execute_gate(
        self,
        executor: GateExecutor,
        gate: Gate,
        metrics: MetricsContext,
        configuration: QualityGateConfiguration,
        run_id: str,
    ) -> GateExecution:
        return executor.execute(
            gate,
            metrics,
            configuration.threshold_for(gate.level),
            default_timeout=configuration.global_settings.default_timeout,
            run_id=run_id,
        )

    def _run_sequential(
        self,
        executor: GateExecutor,
        gates: List[Gate],
        metrics: MetricsContext,
        configuration: QualityGateConfiguration,
        run_id: str,
    ) -> Tuple[List[GateExecution], bool]:
        executions: List[GateExecution] = []
        completed: Dict[str, GateExecution] = {}
        blocked = False
        fail_fast = configuration.global_settings.fail_fast

        for gate in gates:
            if not self._dependencies_met(gate, completed):
                logger.info("Skipping gate %s: dependencies not satisfied", gate.id, extra={"run_id": run_id})
                continue
            execution = self._execute_gate(executor, gate, metrics, configuration, run_id)
            executions.append(execution)
            completed[gate.id] = execution
            if gate.blocking and execution.status == GateStatus.FAIL:
                blocked = True
                logger.warning("Blocking gate %s failed", gate.id, extra={"run_id": run_id, "gate_id": gate.id})
                if fail_fast:
                    break
        return executions, blocked

    def _run_batched(
        self,
        executor: GateExecutor,
        gates: List[Gate],
        metrics: MetricsContext,
        configuration: QualityGateConfiguration,
        run_id: str,
    ) -> Tuple[List[GateExecution], bool]:
        settings = configuration.global_settings
        executions: List[GateExecution] = []
        completed: Dict[str, GateExecution] = {}
        blocked = False

        with ThreadPoolExecutor(max_workers=settings.max_concurrent_gates) as pool:
            for batch in plan_batches(gates, settings.max_concurrent_gates, settings.fail_fast):
                runnable = [g for g in batch if self._dependencies_met(g, completed)]
                runnable_ids = {g.id for g in runnable}
                for gate in batch:
                    if gate.id not in runnable_ids:
                        logger.info("Skipping gate %s: dependencies not satisfied", gate.id, extra={"run_id": run_id})
                futures = [
                    (gate, pool.submit(self._execute_gate, executor, gate, metrics, configuration, run_id))
                    for gate in runnable
                ]
                for gate, future in futures:
                    execution = future.result()
                    executions.append(execution)
                    completed[gate.id] = execution
                    if gate.blocking and execution.status == GateStatus.FAIL:
                        blocked = True
                        logger.warning(
                            "Blocking gate %s failed", gate.id, extra={"run_id": run_id, "gate_id": gate.id}
                        )
                if blocked and settings.fail_fast:
                    break
        return executions, blocked

    def _record_history(self, executions: List[GateExecution], settings: GlobalSettings, run_id: str) -> None:
        snapshot = self._history.snapshot()
        self._history.extend(executions)
        try:
            self._write(self.settings.history_key, self._history.to_document(), settings)
        except StorageError as exc:
            self._history.restore(snapshot)
            exc.context.run_id = run_id
            log_shipgate_error(exc, "Failed to persist execution history", logger=logger)
            raise

    def _report_key(self, result: RunResult) -> str:
        stamp = result.start_time.strftime("%Y%m%dT%H%M%SZ")
        return f"{self.settings.report_key_prefix}{stamp}-{result.run_id.split('-')[-1]}.md"

    def _write_report(self, result: RunResult, configuration: QualityGateConfiguration) -> str:
        key = self._report_key(result)
        text = render_execution_report(result, configuration)
        try:
            self._write_text(key, text, configuration.global_settings)
        except StorageError as exc:
            exc.context.run_id = result.run_id
            log_shipgate_error(exc, "Failed to write execution report", logger=logger)
            raise
        logger.info("Quality gate execution report saved: %s", key, extra={"run_id": result.run_id})
        return key

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    def create_exception(
        self,
        gate_id: str,
        reason: str,
        approver: str,
        expires_at: datetime,
        *,
        criteria_id: Optional[str] = None,
        approved_at: Optional[datetime] = None,
        conditions: Optional[Iterable[str]] = None,
    ) -> str:
        """Record an active exception and return its id."""
        with self._lock:
            configuration = self._ensure_initialized()
            gate = configuration.get_gate(gate_id)
            if gate is None:
                logger.warning("Creating exception for unknown gate %s", gate_id)
            elif criteria_id is not None and gate.get_criterion(criteria_id) is None:
                logger.warning("Creating exception for unknown criteria %s/%s", gate_id, criteria_id)

            exception = self._exceptions.create(
                gate_id,
                reason,
                approver,
                expires_at,
                criteria_id=criteria_id,
                approved_at=approved_at,
                conditions=conditions,
            )
            try:
                self._write(self.settings.exceptions_key, self._exceptions.to_document())
            except StorageError:
                self._exceptions.remove(exception.id)
                raise
            return exception.id

    def deactivate_exception(self, exception_id: str) -> bool:
        """Deactivate an exception; False when no such id exists."""
        with self._lock:
            self._ensure_initialized()
            before = {e.id: e.active for e in self._exceptions.list()}
            if not self._exceptions.deactivate(exception_id):
                return False
            try:
                self._write(self.settings.exceptions_key, self._exceptions.to_document())
            except StorageError:
                if before.get(exception_id):
                    self._exceptions.reactivate(exception_id)
                raise
            return True

    def adjust_quality_thresholds(
        self,
        level: Union[GateLevel, str],
        adjustments: Optional[Dict[str, Any]] = None,
        *,
        min_pass_rate: Optional[float] = None,
        max_failures: Optional[int] = None,
    ) -> None:
        """
        Partially update the thresholds of one level.

        Raises:
            ConfigurationError: unknown level or field, or a negative value.
        """
        try:
            level = GateLevel(level)
        except ValueError as exc:
            raise ConfigurationError(f"Unknown gate level: {level}", config_key="thresholds") from exc

        changes: Dict[str, Any] = dict(adjustments or {})
        if min_pass_rate is not None:
            changes["min_pass_rate"] = min_pass_rate
        if max_failures is not None:
            changes["max_failures"] = max_failures

        with self._lock:
            configuration = self._ensure_initialized()
            updated = adjust_thresholds(configuration, level, changes, now=self._now())
            self._commit_configuration(updated)
            logger.info("Adjusted quality thresholds for %s level", level.value)

    def replace_configuration(
        self, configuration: Union[QualityGateConfiguration, Mapping[str, Any]]
    ) -> None:
        """
        Replace the whole configuration after validating it.

        Raises:
            ConfigurationError: the document fails validation.
        """
        payload = (
            configuration.to_dict()
            if isinstance(configuration, QualityGateConfiguration)
            else dict(configuration)
        )
        updated = configuration_from_document(payload).touched(self._now())
        with self._lock:
            self._ensure_initialized()
            self._commit_configuration(updated)
            logger.info("Replaced quality gate configuration (%d gates)", len(updated.gates))

    def _commit_configuration(self, configuration: QualityGateConfiguration) -> None:
        self._write(self.settings.configuration_key, configuration.to_dict(), configuration.global_settings)
        self._configuration = configuration

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_configuration(self) -> QualityGateConfiguration:
        with self._lock:
            return copy.deepcopy(self._ensure_initialized())

    def get_exceptions(self, active_only: bool = False) -> List[QualityGateException]:
        with self._lock:
            self._ensure_initialized()
            return self._exceptions.list(active_only=active_only)

    def get_execution_history(self, limit: Optional[int] = None) -> List[GateExecution]:
        with self._lock:
            self._ensure_initialized()
            return self._history.entries(limit)
