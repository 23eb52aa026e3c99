"""Report rendering for quality gate runs."""

from .execution_report import REPORT_TITLE, build_report_payload, render_execution_report

__all__ = [
    "REPORT_TITLE",
    "build_report_payload",
    "render_execution_report",
]
