"""Test executor — run the generated file and extract pass/fail counts.

Execution is best-effort: a launch failure or unreadable output yields a
``RunOutcome`` with 0/0 and whatever text was captured.  A run that times
out is still parsed from the output it produced before being killed.  Nothing
here raises into the pipeline.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

from shadowtest.adapters.base import strip_ansi
from shadowtest.adapters.unit.jest_adapter import JestAdapter
from shadowtest.adapters.unit.pytest_adapter import PytestAdapter
from shadowtest.adapters.unit.vitest_adapter import VitestAdapter
from shadowtest.models.result import RunOutcome
from shadowtest.utils.subprocess_runner import SubprocessError, run_subprocess, split_command

if TYPE_CHECKING:
    from pathlib import Path

    from shadowtest.adapters.base import RunnerAdapter

logger = logging.getLogger(__name__)

DEFAULT_RUN_TIMEOUT = 120.0

_PASSED_RE = re.compile(r"(\d+) passed")
_FAILED_RE = re.compile(r"(\d+) failed")
_ERROR_LINE_MARKERS = ("Error:", "FAIL", "●", "SyntaxError:", "TypeError:")
_MAX_ERROR_LINES = 20

# Vitest is checked before Jest so ``vitest`` never falls through to ``--json``.
_ADAPTERS: tuple[RunnerAdapter, ...] = (VitestAdapter(), JestAdapter(), PytestAdapter())


def adapter_for(argv: list[str]) -> RunnerAdapter | None:
    """The adapter whose runner *argv* invokes, if any."""
    for adapter in _ADAPTERS:
        if adapter.matches(argv):
            return adapter
    return None


def build_run_command(run_command: str, test_file_path: str) -> list[str]:
    """Argv for running *test_file_path* with the manifest's *run_command*.

    Raises:
        ValueError: If *run_command* is empty.
    """
    argv = split_command(run_command)
    if not argv:
        raise ValueError("run command is empty")
    adapter = adapter_for(argv)
    if adapter is None:
        return [*argv, test_file_path]
    return adapter.build_command(argv, test_file_path)


async def execute(
    test_file_path: str,
    run_command: str,
    *,
    cwd: Path | None = None,
    timeout: float = DEFAULT_RUN_TIMEOUT,
) -> RunOutcome:
    """Run the test file and return whatever counts can be extracted."""
    try:
        argv = build_run_command(run_command, test_file_path)
    except ValueError as exc:
        logger.warning("Cannot run tests: %s", exc)
        return RunOutcome(output=str(exc))

    logger.info("Running tests: %s", " ".join(argv))
    try:
        result = await run_subprocess(argv, cwd=cwd, timeout=timeout)
    except (SubprocessError, ValueError) as exc:
        logger.warning("Test runner could not be launched: %s", exc)
        return RunOutcome(output=str(exc))

    raw_output = result.combined_output
    adapter = adapter_for(argv)
    outcome = adapter.parse_output(result.stdout, raw_output) if adapter else None
    if outcome is None:
        outcome = parse_plain_output(raw_output, stderr=result.stderr)
    if result.timed_out:
        logger.warning("Test run timed out after %s seconds", timeout)
        outcome.output = f"Test run timed out after {timeout:g}s\n{outcome.output}".rstrip()

    logger.info("Tests finished: %d passed, %d failed", outcome.passed, outcome.failed)
    return outcome


def parse_plain_output(raw_output: str, *, stderr: str = "") -> RunOutcome:
    """Fallback extraction from unstructured runner output."""
    text = strip_ansi(raw_output)
    passed_match = _PASSED_RE.search(text)
    failed_match = _FAILED_RE.search(text)
    return RunOutcome(
        passed=int(passed_match.group(1)) if passed_match else 0,
        failed=int(failed_match.group(1)) if failed_match else 0,
        output=raw_output,
        errors=capture_error_lines(stderr),
    )


def capture_error_lines(stderr: str) -> list[str]:
    """Lines of *stderr* that look like runner or runtime errors."""
    lines: list[str] = []
    for line in strip_ansi(stderr).splitlines():
        stripped = line.strip()
        if stripped and any(marker in stripped for marker in _ERROR_LINE_MARKERS):
            lines.append(stripped)
            if len(lines) == _MAX_ERROR_LINES:
                break
    return lines
