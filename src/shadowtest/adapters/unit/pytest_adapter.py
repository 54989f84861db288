"""pytest adapter — reads the terminal summary of a ``-q -rfE`` run.

pytest has no built-in JSON reporter, so the quiet summary line
(``3 passed, 1 failed in 0.12s``) and the short test summary
(``FAILED tests/x.py::test_y - AssertionError``) are the structured output.
"""

from __future__ import annotations

import logging
import re

from shadowtest.adapters.base import RunnerAdapter, command_tokens, strip_ansi
from shadowtest.models.result import CaseResult, CaseStatus, RunOutcome

logger = logging.getLogger(__name__)

_SUMMARY_COUNT_RE = re.compile(r"(\d+) (passed|failed|errors?|skipped|xfailed|xpassed)")
_SUMMARY_LINE_RE = re.compile(r"^=*\s*\d+ (passed|failed|errors?|skipped|deselected).*\bin [\d.]+s", re.M)
_SHORT_SUMMARY_RE = re.compile(r"^(FAILED|ERROR) (\S+?)(?: - (.*))?$", re.M)


class PytestAdapter(RunnerAdapter):
    """pytest, invoked directly or as ``python -m pytest``."""

    @property
    def name(self) -> str:
        return "pytest"

    def matches(self, argv: list[str]) -> bool:
        return "pytest" in command_tokens(argv)

    def structured_flags(self) -> list[str]:
        return ["-q", "-rfE"]

    def parse_output(self, stdout: str, raw_output: str) -> RunOutcome | None:
        return parse_pytest_summary(stdout, raw_output)


def parse_pytest_summary(stdout: str, raw_output: str) -> RunOutcome | None:
    """Counts and failed cases from pytest's terminal summary.

    Errors during collection or setup count as failures.  Returns ``None``
    when the output has no summary line.
    """
    text = strip_ansi(stdout)
    summary_lines = [m.group(0) for m in _SUMMARY_LINE_RE.finditer(text)]
    if not summary_lines:
        logger.debug("No pytest summary line in runner output")
        return None

    # The last summary line is the final tally.
    last_line = summary_lines[-1]
    counts: dict[str, int] = {}
    for number, kind in _SUMMARY_COUNT_RE.findall(last_line):
        key = "error" if kind.startswith("error") else kind
        counts[key] = counts.get(key, 0) + int(number)

    cases = [
        CaseResult(
            name=node_id.split("::", 1)[-1],
            status=CaseStatus.FAILED if kind == "FAILED" else CaseStatus.ERROR,
            failure_message=(message or "").strip(),
            file_path=node_id.split("::", 1)[0],
        )
        for kind, node_id, message in _SHORT_SUMMARY_RE.findall(text)
    ]

    return RunOutcome(
        passed=counts.get("passed", 0) + counts.get("xpassed", 0),
        failed=counts.get("failed", 0) + counts.get("error", 0),
        output=raw_output,
        cases=cases,
    )
