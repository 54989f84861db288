"""Tests for the async subprocess runner and cancellation token."""

from __future__ import annotations

from pathlib import Path

import pytest

from shadowtest.utils.cancellation import CancellationToken, PipelineCancelled, check_cancelled
from shadowtest.utils.subprocess_runner import (
    SubprocessError,
    SubprocessResult,
    run_subprocess,
    split_command,
)

# ── Basic execution ──────────────────────────────────────────────────


async def test_run_subprocess_success() -> None:
    result = await run_subprocess(["echo", "hello"])

    assert result.success
    assert result.returncode == 0
    assert "hello" in result.stdout
    assert result.timed_out is False
    assert result.duration_ms > 0


async def test_run_subprocess_with_working_directory(tmp_path: Path) -> None:
    (tmp_path / "sample.txt").write_text("content")

    result = await run_subprocess(["ls"], cwd=tmp_path)

    assert result.success
    assert "sample.txt" in result.stdout


async def test_run_subprocess_captures_stderr() -> None:
    result = await run_subprocess(["sh", "-c", "echo oops 1>&2"])

    assert result.returncode == 0
    assert "oops" in result.stderr
    assert result.stdout == ""


async def test_run_subprocess_nonzero_exit_code() -> None:
    result = await run_subprocess(["sh", "-c", "exit 42"])

    assert not result.success
    assert result.returncode == 42


async def test_run_subprocess_env_merged() -> None:
    result = await run_subprocess(["sh", "-c", "echo $SHADOWTEST_PROBE"], env={"SHADOWTEST_PROBE": "yes"})

    assert "yes" in result.stdout


# ── Timeouts and failures ────────────────────────────────────────────


async def test_run_subprocess_timeout_kills_process() -> None:
    result = await run_subprocess(["sleep", "5"], timeout=0.2)

    assert result.timed_out
    assert not result.success
    assert "timed out" in result.stderr


async def test_run_subprocess_timeout_keeps_output_printed_before_kill() -> None:
    result = await run_subprocess(["sh", "-c", "echo '3 passed'; exec sleep 5"], timeout=0.5)

    assert result.timed_out
    assert "3 passed" in result.stdout
    assert result.stderr.endswith("was killed")


async def test_run_subprocess_command_not_found() -> None:
    with pytest.raises(SubprocessError, match="Command not found"):
        await run_subprocess(["definitely-not-a-real-command-xyz"])


async def test_run_subprocess_check_raises_on_failure() -> None:
    with pytest.raises(SubprocessError) as exc_info:
        await run_subprocess(["sh", "-c", "exit 3"], check=True)

    assert exc_info.value.result.returncode == 3


async def test_run_subprocess_empty_command() -> None:
    with pytest.raises(ValueError, match="empty"):
        await run_subprocess([])


async def test_run_subprocess_invalid_timeout() -> None:
    with pytest.raises(ValueError, match="Timeout must be positive"):
        await run_subprocess(["echo"], timeout=0)


async def test_run_subprocess_missing_cwd(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="does not exist"):
        await run_subprocess(["echo"], cwd=tmp_path / "nope")


# ── Helpers ──────────────────────────────────────────────────────────


def test_combined_output() -> None:
    both = SubprocessResult(returncode=0, stdout="out", stderr="err", success=True)
    only_err = SubprocessResult(returncode=1, stdout="", stderr="err", success=False)

    assert both.combined_output == "out\nerr"
    assert only_err.combined_output == "err"


def test_split_command_honours_quotes() -> None:
    assert split_command('npx jest --testNamePattern "adds numbers"') == [
        "npx",
        "jest",
        "--testNamePattern",
        "adds numbers",
    ]


# ── Cancellation ─────────────────────────────────────────────────────


def test_token_starts_uncancelled() -> None:
    token = CancellationToken()
    assert not token.is_cancelled
    token.raise_if_cancelled("anything")


def test_token_raises_after_cancel() -> None:
    token = CancellationToken()
    token.cancel()

    with pytest.raises(PipelineCancelled, match="Pipeline cancelled before: build check") as exc_info:
        token.raise_if_cancelled("build check")
    assert exc_info.value.stage == "build check"


def test_check_cancelled_ignores_missing_token() -> None:
    check_cancelled(None, "synthesis")


def test_check_cancelled_polls_token() -> None:
    token = CancellationToken()
    token.cancel()
    token.cancel()

    with pytest.raises(PipelineCancelled):
        check_cancelled(token, "synthesis")
