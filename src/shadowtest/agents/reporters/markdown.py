"""Markdown report for the last generation run (``.shadow/test-report.md``)."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from shadowtest.models.result import CaseStatus
from shadowtest.models.store import report_path

if TYPE_CHECKING:
    from pathlib import Path

    from shadowtest.models.result import TestGenerationResult

logger = logging.getLogger(__name__)

LOW_PASS_RATE = 70.0
EXCELLENT_PASS_RATE = 90.0
_MAX_FAILURE_MESSAGE_CHARS = 500


def pass_rate(result: TestGenerationResult) -> float | None:
    """Percentage of executed tests that passed, or ``None`` if none ran."""
    total = result.passed + result.failed
    if total == 0:
        return None
    return result.passed / total * 100


def recommendations(result: TestGenerationResult) -> list[str]:
    """Follow-up suggestions derived from the run's outcome."""
    recs: list[str] = []
    if result.aborted:
        recs.append(
            "The project's own code does not compile. Fix the listed build errors, "
            "then run generation again."
        )
    rate = pass_rate(result)
    if rate is not None and rate < LOW_PASS_RATE:
        recs.append(
            "Pass rate is below 70%. Review the failing tests; they may expose real bugs "
            "or rely on behaviour the code does not have."
        )
    if result.failed > 0:
        recs.append(f"Investigate the {result.failed} failing test(s) before trusting the suite.")
    if result.failures:
        recs.append(
            f"{len(result.failures)} target(s) produced no test. Check that the functions "
            "exist and the generative service is reachable."
        )
    if result.removed_mocks:
        recs.append("Some mocks pointed at modules that do not exist and were removed.")
    if rate is not None and rate >= EXCELLENT_PASS_RATE:
        recs.append("Excellent pass rate. Consider adding the generated tests to your suite.")
    return recs


def render_report(result: TestGenerationResult, *, now: datetime | None = None) -> str:
    """Render *result* as a Markdown document."""
    timestamp = (now or datetime.now(UTC)).strftime("%Y-%m-%d %H:%M:%S UTC")
    rate = pass_rate(result)

    lines = [
        "# Test Generation Report",
        "",
        f"_Generated {timestamp}_",
        "",
        "## Summary",
        "",
        "| Metric | Value |",
        "|---|---|",
        f"| Test blocks generated | {result.tests_generated} |",
        f"| Test file | `{result.test_file_path or '-'}` |",
        f"| Passed | {result.passed} |",
        f"| Failed | {result.failed} |",
        f"| Pass rate | {f'{rate:.1f}%' if rate is not None else 'n/a'} |",
        f"| Tests skipped by build errors | {'yes' if result.aborted else 'no'} |",
        "",
    ]

    if result.build_errors:
        lines += ["## Build Errors", ""]
        lines += [
            f"- `{e.file}:{e.line}` {e.message}{' (project code)' if e.is_user_code else ''}"
            for e in result.build_errors
        ]
        lines.append("")

    run = result.run_result
    failing = [c for c in run.cases if c.status in {CaseStatus.FAILED, CaseStatus.ERROR}] if run else []
    if failing:
        lines += ["## Failing Tests", ""]
        for case in failing:
            lines.append(f"### {case.name}")
            if case.failure_message:
                lines += ["", "```", case.failure_message[:_MAX_FAILURE_MESSAGE_CHARS], "```"]
            lines.append("")

    if result.failures:
        lines += ["## Targets Without Tests", ""]
        lines += [f"- `{f.function_name}` ({f.file_name}): {f.reason}" for f in result.failures]
        lines.append("")

    if result.removed_mocks:
        lines += ["## Removed Mocks", ""]
        lines += [f"- `{path}`" for path in result.removed_mocks]
        lines.append("")

    recs = recommendations(result)
    if recs:
        lines += ["## Recommendations", ""]
        lines += [f"{i}. {rec}" for i, rec in enumerate(recs, 1)]
        lines.append("")

    return "\n".join(lines)


def write_report(root: str | Path, result: TestGenerationResult) -> Path:
    """Write the report for *result* under the project's state directory."""
    path = report_path(root)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(render_report(result), encoding="utf-8")
    logger.info("Wrote report to %s", path)
    return path
