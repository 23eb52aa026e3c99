"""Human-readable and JSON renderings of a quality gate run."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from shipgate.quality_gates.models import (
    Gate,
    GateExecution,
    QualityGateConfiguration,
    RunResult,
    format_timestamp,
    utc_now,
)

REPORT_TITLE = "# Quality Gate Execution Report"


def _yes_no(flag: bool) -> str:
    return "Yes" if flag else "No"


def _num(value: float) -> str:
    return f"{value:g}"


def _gate_section(execution: GateExecution, gate: Optional[Gate]) -> List[str]:
    lines = [
        f"### {gate.name if gate else execution.gate_id}",
        "",
        f"- **Status:** {execution.status.value.upper()}",
        f"- **Score:** {execution.overall_score:.1f}/100",
        f"- **Execution Time:** {execution.execution_time:.0f}ms",
        f"- **Level:** {gate.level.value if gate else 'unknown'}",
        f"- **Blocking:** {_yes_no(bool(gate and gate.blocking))}",
        "",
        "#### Criteria Results",
        "",
    ]
    for result in execution.results:
        criterion = gate.get_criterion(result.criteria_id) if gate else None
        name = criterion.name if criterion else result.criteria_id
        lines.append(
            f"- [{result.status.value.upper()}] **{name}**: {_num(result.actual_value)} "
            f"{result.operator} {_num(result.expected_value)} (Score: {result.score:.1f})"
        )

    if execution.errors:
        lines += ["", "#### Errors", ""]
        lines += [f"- {error}" for error in execution.errors]

    if execution.warnings:
        lines += ["", "#### Warnings", ""]
        lines += [f"- {warning}" for warning in execution.warnings]

    lines.append("")
    return lines


def render_execution_report(result: RunResult, configuration: QualityGateConfiguration) -> str:
    """Render a run as a Markdown document."""
    duration_ms = (result.end_time - result.start_time).total_seconds() * 1000
    summary = result.summary
    lines = [
        REPORT_TITLE,
        "",
        f"**Execution Time:** {format_timestamp(result.start_time)} - {format_timestamp(result.end_time)}",
        f"**Duration:** {duration_ms:.0f}ms",
        f"**Overall Status:** {result.overall_status.value.upper()}",
        "",
        "## Summary",
        "",
        f"- **Total Gates:** {summary.total}",
        f"- **Passed:** {summary.passed}",
        f"- **Failed:** {summary.failed}",
        f"- **Warnings:** {summary.warnings}",
        f"- **Skipped:** {summary.skipped}",
        f"- **Blocked:** {_yes_no(summary.blocked)}",
        "",
        "## Gate Results",
        "",
    ]
    for execution in result.executions:
        lines += _gate_section(execution, configuration.get_gate(execution.gate_id))

    lines += ["## Recommendations", ""]
    lines += list(result.recommendations)
    return "\n".join(lines) + "\n"


def build_report_payload(result: RunResult, configuration: QualityGateConfiguration) -> Dict[str, Any]:
    """JSON-ready report: the run plus the gate metadata needed to read it."""
    gates: Dict[str, Any] = {}
    for execution in result.executions:
        gate = configuration.get_gate(execution.gate_id)
        if gate is None:
            continue
        gates[gate.id] = {
            "name": gate.name,
            "level": gate.level.value,
            "blocking": gate.blocking,
            "criteria": {c.id: c.name for c in gate.criteria},
        }
    return {
        "generatedAt": format_timestamp(utc_now()),
        "configurationVersion": configuration.version,
        "durationMs": (result.end_time - result.start_time).total_seconds() * 1000,
        "result": result.to_dict(),
        "gates": gates,
    }
