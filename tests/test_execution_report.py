from datetime import datetime, timedelta, timezone

from shipgate.manager import build_recommendations, determine_overall_status, summarize
from shipgate.quality_gates.configuration import default_configuration
from shipgate.quality_gates.models import CriterionResult, GateExecution, GateStatus, RunResult
from shipgate.quality_reports import build_report_payload, render_execution_report

START = datetime(2026, 3, 2, 9, 30, tzinfo=timezone.utc)


def _result(criteria_id, status, actual, expected, operator, score):
    return CriterionResult(
        criteria_id=criteria_id,
        status=status,
        actual_value=actual,
        expected_value=expected,
        operator=operator,
        passed=status != GateStatus.FAIL,
        score=score,
        message="",
        timestamp=START,
    )


def _run():
    configuration = default_configuration(now=START)
    critical = GateExecution(
        gate_id="critical-functionality",
        status=GateStatus.FAIL,
        results=[
            _result("test-pass-rate", GateStatus.SKIP, 0, 100, "==", 100),
            _result("critical-bugs", GateStatus.FAIL, 2, 0, "==", 0),
        ],
        overall_score=0.0,
        execution_time=12.4,
        start_time=START,
        end_time=START + timedelta(milliseconds=12),
        errors=["Criteria critical-bugs: Metric 'critical_bugs' is not a finite number: nan"],
        warnings=["Criteria test-pass-rate skipped by exception exception-0123456789ab (approved by qa-lead)"],
    )
    executions = [critical]
    blocked = True
    result = RunResult(
        overall_status=determine_overall_status(executions, blocked),
        executions=executions,
        summary=summarize(executions, blocked),
        recommendations=build_recommendations(executions, blocked, configuration),
        start_time=START,
        end_time=START + timedelta(milliseconds=250),
        run_id="run-0123456789ab",
    )
    return result, configuration


def test_markdown_report_sections():
    result, configuration = _run()

    report = render_execution_report(result, configuration)

    assert report.startswith("# Quality Gate Execution Report\n")
    assert "**Execution Time:** 2026-03-02T09:30:00Z - 2026-03-02T09:30:00.250000Z" in report
    assert "**Duration:** 250ms" in report
    assert "**Overall Status:** FAIL" in report
    assert "- **Total Gates:** 1" in report
    assert "- **Skipped:** 1" in report
    assert "- **Blocked:** Yes" in report
    assert "### Critical Functionality" in report
    assert "- **Score:** 0.0/100" in report
    assert "- **Level:** critical" in report
    assert "- **Blocking:** Yes" in report
    assert "- [FAIL] **Critical Bugs**: 2 == 0 (Score: 0.0)" in report
    assert "- [SKIP] **Test Pass Rate**: 0 == 100 (Score: 100.0)" in report
    assert "#### Errors" in report
    assert "#### Warnings" in report


def test_markdown_report_lists_recommendations_verbatim():
    result, configuration = _run()

    report = render_execution_report(result, configuration)

    recommendations_section = report.split("## Recommendations\n", 1)[1]
    assert recommendations_section.strip().splitlines() == result.recommendations
    assert "  - Critical Functionality: Review and fix failing criteria" in recommendations_section


def test_report_payload_carries_gate_metadata():
    result, configuration = _run()

    payload = build_report_payload(result, configuration)

    assert payload["configurationVersion"] == "1.0"
    assert payload["durationMs"] == 250
    assert payload["result"]["overallStatus"] == "fail"
    assert payload["result"]["summary"]["blocked"] is True
    assert payload["gates"]["critical-functionality"]["blocking"] is True
    assert payload["gates"]["critical-functionality"]["criteria"]["critical-bugs"] == "Critical Bugs"
    assert payload["result"]["executions"][0]["results"][0]["status"] == "skip"
