"""Jest adapter — ``--json`` output parsing with per-case results."""

from __future__ import annotations

import logging

from shadowtest.adapters.base import RunnerAdapter, command_tokens, extract_json_object, to_float
from shadowtest.models.result import CaseResult, CaseStatus, RunOutcome

logger = logging.getLogger(__name__)


class JestAdapter(RunnerAdapter):
    """Jest, and anything that prints Jest's JSON result shape."""

    @property
    def name(self) -> str:
        return "jest"

    def matches(self, argv: list[str]) -> bool:
        return "jest" in command_tokens(argv)

    def structured_flags(self) -> list[str]:
        return ["--json"]

    def parse_output(self, stdout: str, raw_output: str) -> RunOutcome | None:
        return parse_jest_json(stdout, raw_output)


def parse_jest_json(stdout: str, raw_output: str) -> RunOutcome | None:
    """Parse Jest-style JSON into a ``RunOutcome``.

    The JSON contains a ``testResults`` array whose entries carry
    ``assertionResults`` with individual test outcomes, plus top-level
    ``numPassedTests``/``numFailedTests`` totals.  Returns ``None`` when no
    such object is present.
    """
    json_obj = extract_json_object(stdout)
    if json_obj is None or not _looks_like_jest(json_obj):
        logger.debug("Could not extract Jest JSON from runner output")
        return None

    cases: list[CaseResult] = []
    errors: list[str] = []

    raw_suites = json_obj.get("testResults", [])
    suites: list[dict[str, object]] = raw_suites if isinstance(raw_suites, list) else []

    for suite_obj in suites:
        suite: dict[str, object] = suite_obj if isinstance(suite_obj, dict) else {}
        file_path = str(suite.get("name", ""))

        raw_assertions = suite.get("assertionResults", [])
        assertions: list[dict[str, object]] = (
            raw_assertions if isinstance(raw_assertions, list) else []
        )
        if not assertions and suite.get("status") == "failed" and suite.get("message"):
            # The suite never ran (syntax error, bad import, …).
            errors.append(str(suite["message"]).strip())

        for assertion_obj in assertions:
            assertion: dict[str, object] = assertion_obj if isinstance(assertion_obj, dict) else {}
            raw_failure_msgs = assertion.get("failureMessages", [])
            failure_msgs: list[object] = (
                raw_failure_msgs if isinstance(raw_failure_msgs, list) else []
            )
            cases.append(
                CaseResult(
                    name=str(assertion.get("fullName") or assertion.get("title", "unknown")),
                    status=_map_status(str(assertion.get("status", "failed"))),
                    duration_ms=to_float(assertion.get("duration", 0)),
                    failure_message="\n".join(str(m) for m in failure_msgs),
                    file_path=file_path,
                )
            )

    passed = _count(json_obj, "numPassedTests")
    failed = _count(json_obj, "numFailedTests")
    if passed is None:
        passed = sum(1 for c in cases if c.status == CaseStatus.PASSED)
    if failed is None:
        failed = sum(1 for c in cases if c.status in {CaseStatus.FAILED, CaseStatus.ERROR})

    return RunOutcome(passed=passed, failed=failed, output=raw_output, cases=cases, errors=errors)


def _looks_like_jest(obj: dict[str, object]) -> bool:
    return "testResults" in obj or "numPassedTests" in obj or "numFailedTests" in obj


def _count(obj: dict[str, object], key: str) -> int | None:
    value = obj.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return int(value)


def _map_status(status: str) -> CaseStatus:
    """Map a Jest status string to ``CaseStatus``."""
    mapping: dict[str, CaseStatus] = {
        "passed": CaseStatus.PASSED,
        "failed": CaseStatus.FAILED,
        "skipped": CaseStatus.SKIPPED,
        "pending": CaseStatus.SKIPPED,
        "todo": CaseStatus.SKIPPED,
        "disabled": CaseStatus.SKIPPED,
    }
    return mapping.get(status, CaseStatus.ERROR)
