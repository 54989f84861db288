"""Tests for the build-error checker and the repair state machine."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from shadowtest.agents.debuggers.build_check import TEMP_TSCONFIG, check_build, parse_tsc_output
from shadowtest.agents.debuggers.repair import BuildRepairLoop, RepairState
from shadowtest.llm.engine import LLMConnectionError, LLMResponse
from shadowtest.models.manifest import default_manifest
from shadowtest.models.result import BuildCheckResult, BuildError
from shadowtest.utils.cancellation import CancellationToken, PipelineCancelled
from shadowtest.utils.subprocess_runner import SubprocessError, SubprocessResult

_TSC_OUTPUT = """\
UnitTests/generated.test.ts(3,7): error TS2304: Cannot find name 'foo'.
UnitTests/generated.test.ts:3:7 - error TS2304: Cannot find name 'foo'.
src/math.ts:10:2 - error TS1005: ';' expected.
UnitTests/generated.test.ts(8,1): error TS2345: Argument of type 'string' is not assignable.
Found 3 errors.
"""


def _generated_error(message: str = "Cannot find name 'foo'.") -> BuildError:
    return BuildError("UnitTests/generated.test.ts", 3, 7, message, "TS2304", is_user_code=False)


def _user_error() -> BuildError:
    return BuildError("src/math.ts", 10, 2, "';' expected.", "TS1005", is_user_code=True)


def _fix_engine(fixed_code: str = "// fixed\n") -> MagicMock:
    engine = MagicMock()
    engine.generate = AsyncMock(
        return_value=LLMResponse(
            text=json.dumps({"status": "pass", "fixed_code": fixed_code}), model="gpt-4o"
        )
    )
    return engine


def _checker(*results: BuildCheckResult) -> AsyncMock:
    return AsyncMock(side_effect=list(results))


@pytest.fixture
def test_file(tmp_path: Path) -> Path:
    (tmp_path / "UnitTests").mkdir()
    path = tmp_path / "UnitTests" / "generated.test.ts"
    path.write_text("// broken\n")
    return path


# ── parse_tsc_output ─────────────────────────────────────────────


def test_parse_tsc_both_formats_deduplicated(tmp_path: Path) -> None:
    errors = parse_tsc_output(_TSC_OUTPUT, tmp_path, tmp_path / "UnitTests")

    assert [(e.file, e.line, e.code) for e in errors] == [
        ("UnitTests/generated.test.ts", 3, "TS2304"),
        ("src/math.ts", 10, "TS1005"),
        ("UnitTests/generated.test.ts", 8, "TS2345"),
    ]
    assert [e.is_user_code for e in errors] == [False, True, False]
    assert errors[0].column == 7
    assert errors[0].message == "Cannot find name 'foo'."


def test_parse_tsc_ignores_noise(tmp_path: Path) -> None:
    assert parse_tsc_output("Found 0 errors.\nnpm WARN something\n", tmp_path, tmp_path / "t") == []


# ── check_build ──────────────────────────────────────────────────


async def test_check_build_skipped_without_tsconfig(test_file: Path) -> None:
    root = test_file.parent.parent

    result = await check_build(root, test_file, root / "UnitTests")

    assert result.skipped
    assert not result.has_errors


async def test_check_build_skipped_for_javascript(tmp_path: Path) -> None:
    (tmp_path / "tsconfig.json").write_text("{}")
    js_file = tmp_path / "generated.test.js"
    js_file.write_text("")

    result = await check_build(tmp_path, js_file, tmp_path)

    assert result.skipped


async def test_check_build_runs_tsc_with_narrow_config(test_file: Path) -> None:
    root = test_file.parent.parent
    (root / "tsconfig.json").write_text("{}")
    seen_config: dict[str, object] = {}

    async def _fake_run(command: list[str], **kwargs: object) -> SubprocessResult:
        seen_config.update(json.loads((root / TEMP_TSCONFIG).read_text()))
        assert command == ["npx", "tsc", "-p", TEMP_TSCONFIG, "--pretty", "false"]
        return SubprocessResult(returncode=2, stdout=_TSC_OUTPUT, stderr="", success=False)

    with patch("shadowtest.agents.debuggers.build_check.run_subprocess", side_effect=_fake_run):
        result = await check_build(root, test_file, root / "UnitTests", timeout=5)

    assert seen_config["extends"] == "./tsconfig.json"
    assert seen_config["files"] == ["UnitTests/generated.test.ts"]
    assert seen_config["include"] == []
    assert not (root / TEMP_TSCONFIG).exists()
    assert result.has_errors
    assert len(result.user_errors) == 1
    assert len(result.generated_errors) == 2


async def test_check_build_launch_failure_is_skipped(test_file: Path) -> None:
    root = test_file.parent.parent
    (root / "tsconfig.json").write_text("{}")
    error = SubprocessError(
        "Command not found: npx",
        SubprocessResult(returncode=-1, stdout="", stderr="", success=False),
    )

    with patch("shadowtest.agents.debuggers.build_check.run_subprocess", side_effect=error):
        result = await check_build(root, test_file, root / "UnitTests")

    assert result.skipped
    assert not (root / TEMP_TSCONFIG).exists()


async def test_check_build_timeout_is_skipped(test_file: Path) -> None:
    root = test_file.parent.parent
    (root / "tsconfig.json").write_text("{}")
    timed_out = SubprocessResult(returncode=-1, stdout="", stderr="", success=False, timed_out=True)

    with patch(
        "shadowtest.agents.debuggers.build_check.run_subprocess",
        new_callable=AsyncMock,
        return_value=timed_out,
    ):
        result = await check_build(root, test_file, root / "UnitTests")

    assert result.skipped


async def test_check_build_cancelled(test_file: Path) -> None:
    root = test_file.parent.parent
    (root / "tsconfig.json").write_text("{}")
    token = CancellationToken()
    token.cancel()

    with (
        patch("shadowtest.agents.debuggers.build_check.run_subprocess", new_callable=AsyncMock) as run,
        pytest.raises(PipelineCancelled),
    ):
        await check_build(root, test_file, root / "UnitTests", cancel=token)

    run.assert_not_awaited()
    assert not (root / TEMP_TSCONFIG).exists()


# ── BuildRepairLoop ──────────────────────────────────────────────


class TestBuildRepairLoop:
    async def test_clean_build_executes(self, test_file: Path) -> None:
        engine = _fix_engine()
        loop = BuildRepairLoop(
            engine, test_file.parent.parent, default_manifest(), checker=_checker(BuildCheckResult())
        )

        outcome = await loop.run(test_file)

        assert outcome.state is RepairState.EXECUTE
        assert outcome.errors == []
        assert outcome.history == [RepairState.BUILD_CHECK, RepairState.EXECUTE]
        engine.generate.assert_not_awaited()

    async def test_skipped_check_executes(self, test_file: Path) -> None:
        loop = BuildRepairLoop(
            _fix_engine(),
            test_file.parent.parent,
            default_manifest(),
            checker=_checker(BuildCheckResult(skipped=True)),
        )

        outcome = await loop.run(test_file)

        assert outcome.state is RepairState.EXECUTE
        assert outcome.errors is None

    async def test_user_code_error_aborts_without_fix(self, test_file: Path) -> None:
        engine = _fix_engine()
        check = BuildCheckResult(has_errors=True, errors=[_generated_error(), _user_error()])
        loop = BuildRepairLoop(engine, test_file.parent.parent, default_manifest(), checker=_checker(check))

        outcome = await loop.run(test_file)

        assert outcome.aborted
        assert outcome.fix_requests == 0
        assert outcome.errors is not None
        assert _user_error() in outcome.errors
        engine.generate.assert_not_awaited()

    async def test_generated_error_repaired_then_executes(self, test_file: Path) -> None:
        engine = _fix_engine("const fixed = 1;\n")
        checker = _checker(
            BuildCheckResult(has_errors=True, errors=[_generated_error()]),
            BuildCheckResult(),
        )
        loop = BuildRepairLoop(engine, test_file.parent.parent, default_manifest(), checker=checker)

        outcome = await loop.run(test_file)

        assert outcome.state is RepairState.EXECUTE
        assert outcome.fix_requests == 1
        assert outcome.repaired
        assert outcome.errors == []
        assert test_file.read_text() == "const fixed = 1;\n"
        assert outcome.history == [
            RepairState.BUILD_CHECK,
            RepairState.REPAIR,
            RepairState.BUILD_CHECK,
            RepairState.EXECUTE,
        ]
        request = engine.generate.call_args.args[0]
        assert "UnitTests/generated.test.ts:3: Cannot find name 'foo'. (TS2304)" in request.messages[1].content

    async def test_repair_is_single_attempt(self, test_file: Path) -> None:
        engine = _fix_engine()
        still_broken = BuildCheckResult(has_errors=True, errors=[_generated_error("still bad")])
        checker = _checker(BuildCheckResult(has_errors=True, errors=[_generated_error()]), still_broken)
        loop = BuildRepairLoop(engine, test_file.parent.parent, default_manifest(), checker=checker)

        outcome = await loop.run(test_file)

        assert outcome.state is RepairState.EXECUTE
        assert outcome.fix_requests == 1
        assert outcome.errors == still_broken.errors
        assert engine.generate.await_count == 1
        assert checker.await_count == 2

    async def test_user_error_after_repair_aborts(self, test_file: Path) -> None:
        checker = _checker(
            BuildCheckResult(has_errors=True, errors=[_generated_error()]),
            BuildCheckResult(has_errors=True, errors=[_user_error()]),
        )
        loop = BuildRepairLoop(_fix_engine(), test_file.parent.parent, default_manifest(), checker=checker)

        outcome = await loop.run(test_file)

        assert outcome.aborted
        assert outcome.fix_requests == 1

    async def test_failed_fix_request_executes_anyway(self, test_file: Path) -> None:
        engine = MagicMock()
        engine.generate = AsyncMock(side_effect=LLMConnectionError("down"))
        checker = _checker(BuildCheckResult(has_errors=True, errors=[_generated_error()]))
        loop = BuildRepairLoop(engine, test_file.parent.parent, default_manifest(), checker=checker)

        outcome = await loop.run(test_file)

        assert outcome.state is RepairState.EXECUTE
        assert not outcome.repaired
        assert outcome.fix_requests == 1
        assert test_file.read_text() == "// broken\n"
        assert checker.await_count == 1

    async def test_cancellation_before_fix(self, test_file: Path) -> None:
        token = CancellationToken()
        token.cancel()
        engine = _fix_engine()
        checker = _checker(BuildCheckResult(has_errors=True, errors=[_generated_error()]))
        loop = BuildRepairLoop(
            engine, test_file.parent.parent, default_manifest(), cancel=token, checker=checker
        )

        with pytest.raises(PipelineCancelled):
            await loop.run(test_file)
        engine.generate.assert_not_awaited()

    async def test_default_checker_uses_tsc(self, test_file: Path) -> None:
        with patch(
            "shadowtest.agents.debuggers.repair.check_build",
            new_callable=AsyncMock,
            return_value=BuildCheckResult(skipped=True),
        ) as fake:
            outcome = await BuildRepairLoop(
                _fix_engine(), test_file.parent.parent, default_manifest()
            ).run(test_file)

        assert outcome.state is RepairState.EXECUTE
        fake.assert_awaited_once()
