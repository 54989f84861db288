"""Tests for the test executor (adapters/executor.py)."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from shadowtest.adapters.executor import (
    adapter_for,
    build_run_command,
    capture_error_lines,
    execute,
    parse_plain_output,
)
from shadowtest.utils.subprocess_runner import SubprocessError, SubprocessResult

_RUN = "shadowtest.adapters.executor.run_subprocess"


def _result(stdout: str = "", stderr: str = "", returncode: int = 0, **kwargs: object) -> SubprocessResult:
    return SubprocessResult(
        returncode=returncode,
        stdout=stdout,
        stderr=stderr,
        success=returncode == 0,
        **kwargs,  # type: ignore[arg-type]
    )


# ── Command construction ─────────────────────────────────────────


def test_adapter_for_prefers_vitest() -> None:
    adapter = adapter_for(["npx", "vitest", "run"])

    assert adapter is not None
    assert adapter.name == "vitest"


def test_adapter_for_unknown_runner() -> None:
    assert adapter_for(["npx", "mocha"]) is None


def test_build_run_command_unknown_runner_appends_file() -> None:
    assert build_run_command("npx mocha --exit", "UnitTests/a.test.js") == [
        "npx",
        "mocha",
        "--exit",
        "UnitTests/a.test.js",
    ]


def test_build_run_command_jest() -> None:
    assert build_run_command("npx jest", "UnitTests/a.test.ts") == [
        "npx",
        "jest",
        "--json",
        "UnitTests/a.test.ts",
    ]


def test_build_run_command_empty() -> None:
    with pytest.raises(ValueError, match="empty"):
        build_run_command("   ", "a.test.ts")


# ── Plain-text fallback ──────────────────────────────────────────


def test_parse_plain_output_counts() -> None:
    outcome = parse_plain_output("Tests: 1 failed, 4 passed, 5 total")

    assert outcome.passed == 4
    assert outcome.failed == 1


def test_parse_plain_output_no_counts_keeps_raw() -> None:
    outcome = parse_plain_output("something went wrong")

    assert outcome.passed == outcome.failed == 0
    assert outcome.output == "something went wrong"


def test_capture_error_lines() -> None:
    stderr = "\n".join(
        [
            "info: starting",
            "  ● add › handles zero",
            "TypeError: add is not a function",
            "FAIL UnitTests/a.test.ts",
            "",
        ]
        + ["Error: repeated"] * 30
    )

    lines = capture_error_lines(stderr)

    assert lines[:3] == [
        "● add › handles zero",
        "TypeError: add is not a function",
        "FAIL UnitTests/a.test.ts",
    ]
    assert len(lines) == 20


# ── execute ──────────────────────────────────────────────────────


async def test_execute_parses_jest_json_on_nonzero_exit(tmp_path: Path) -> None:
    report = {"numPassedTests": 3, "numFailedTests": 1, "testResults": []}
    fake = _result(stdout=json.dumps(report), stderr="FAIL UnitTests/a.test.ts", returncode=1)

    with patch(_RUN, new_callable=AsyncMock, return_value=fake) as run:
        outcome = await execute("UnitTests/a.test.ts", "npx jest", cwd=tmp_path, timeout=30)

    assert (outcome.passed, outcome.failed) == (3, 1)
    argv = run.call_args.args[0]
    assert argv == ["npx", "jest", "--json", "UnitTests/a.test.ts"]
    assert run.call_args.kwargs == {"cwd": tmp_path, "timeout": 30}


async def test_execute_falls_back_to_regex(tmp_path: Path) -> None:
    fake = _result(stdout="Tests: 2 passed, 2 total\n", stderr="Error: warning only", returncode=0)

    with patch(_RUN, new_callable=AsyncMock, return_value=fake):
        outcome = await execute("UnitTests/a.test.js", "npx mocha", cwd=tmp_path)

    assert outcome.passed == 2
    assert outcome.failed == 0
    assert outcome.errors == ["Error: warning only"]


async def test_execute_unparseable_output_defaults_to_zero(tmp_path: Path) -> None:
    fake = _result(stdout="garbled", stderr="", returncode=1)

    with patch(_RUN, new_callable=AsyncMock, return_value=fake):
        outcome = await execute("UnitTests/a.test.ts", "npx jest", cwd=tmp_path)

    assert outcome.passed == outcome.failed == 0
    assert outcome.output == "garbled"


async def test_execute_launch_failure(tmp_path: Path) -> None:
    error = SubprocessError("Command not found: npx", _result(returncode=-1))

    with patch(_RUN, new_callable=AsyncMock, side_effect=error):
        outcome = await execute("UnitTests/a.test.ts", "npx jest", cwd=tmp_path)

    assert outcome.passed == outcome.failed == 0
    assert outcome.output == "Command not found: npx"


async def test_execute_timeout(tmp_path: Path) -> None:
    fake = _result(stdout="partial", returncode=-1, timed_out=True)

    with patch(_RUN, new_callable=AsyncMock, return_value=fake):
        outcome = await execute("tests/test_generated.py", "pytest", cwd=tmp_path, timeout=5)

    assert outcome.total == 0
    assert outcome.output.startswith("Test run timed out after 5s")
    assert "partial" in outcome.output


async def test_execute_timeout_still_counts_captured_output(tmp_path: Path) -> None:
    fake = _result(stdout="3 passed, 1 failed", returncode=-1, timed_out=True)

    with patch(_RUN, new_callable=AsyncMock, return_value=fake):
        outcome = await execute("test/a.test.js", "npx mocha", cwd=tmp_path, timeout=5)

    assert (outcome.passed, outcome.failed) == (3, 1)
    assert outcome.output.startswith("Test run timed out after 5s")


async def test_execute_runner_that_hangs_after_reporting(tmp_path: Path) -> None:
    outcome = await execute(
        "UnitTests/generated.test.ts",
        "sh -c 'echo \"3 passed\"; exec sleep 5'",
        cwd=tmp_path,
        timeout=1,
    )

    assert outcome.passed == 3
    assert "timed out after 1s" in outcome.output


async def test_execute_empty_command(tmp_path: Path) -> None:
    with patch(_RUN, new_callable=AsyncMock) as run:
        outcome = await execute("a.test.ts", "", cwd=tmp_path)

    run.assert_not_awaited()
    assert "empty" in outcome.output


async def test_execute_pytest_summary(tmp_path: Path) -> None:
    stdout = (
        "..F\n"
        "FAILED tests/test_generated.py::test_x - assert 1 == 2\n"
        "2 passed, 1 failed in 0.05s\n"
    )
    fake = _result(stdout=stdout, returncode=1)

    with patch(_RUN, new_callable=AsyncMock, return_value=fake) as run:
        outcome = await execute("tests/test_generated.py", "pytest", cwd=tmp_path)

    assert run.call_args.args[0] == ["pytest", "-q", "-rfE", "tests/test_generated.py"]
    assert (outcome.passed, outcome.failed) == (2, 1)
    assert outcome.cases[0].name == "test_x"
