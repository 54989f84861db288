"""Tests for the per-target UnitBuilder."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING
from unittest.mock import AsyncMock, MagicMock

import pytest

from shadowtest.agents.builders.unit import UnitBuilder, import_path
from shadowtest.llm.engine import GenerationRequest, LLMConnectionError, LLMResponse
from shadowtest.models.manifest import TestEnvManifest, default_manifest
from shadowtest.models.result import GeneratedTestBlock, GenerationFailure
from shadowtest.models.target import TestTarget
from shadowtest.parsing.extractor import Membership
from shadowtest.utils.cancellation import CancellationToken, PipelineCancelled

if TYPE_CHECKING:
    from pathlib import Path

_GENERATED = {
    "imports": ["import { add } from '../src/math';"],
    "mocks": [],
    "test_code": "describe('add', () => {\n  it('adds', () => {\n    expect(add(1, 2)).toBe(3);\n  });\n});",
}


@pytest.fixture
def mock_llm_engine() -> MagicMock:
    """LLM engine whose every request returns a valid generation response."""
    engine = MagicMock()
    engine.model_name = "gpt-4o"
    engine.generate = AsyncMock(
        return_value=LLMResponse(
            text=f"<json>{json.dumps(_GENERATED)}</json>",
            model="gpt-4o",
            prompt_tokens=500,
            completion_tokens=100,
        )
    )
    return engine


@pytest.fixture
def project(tmp_path: Path) -> Path:
    src = tmp_path / "src"
    src.mkdir()
    (src / "math.ts").write_text(
        "export function add(a: number, b: number): number {\n  return a + b;\n}\n\n"
        "export class Calculator {\n"
        "  static create(): Calculator {\n    return new Calculator();\n  }\n"
        "}\n"
    )
    return tmp_path


def _esm_manifest() -> TestEnvManifest:
    return TestEnvManifest(
        language="typescript",
        framework="vitest",
        import_style="esm",
        module_system="esm",
        test_directory="UnitTests",
        file_extension=".test.ts",
        run_command="npx vitest run",
    )


def _python_manifest() -> TestEnvManifest:
    return TestEnvManifest(
        language="python",
        framework="pytest",
        import_style="native",
        module_system="native",
        test_directory="tests",
        file_extension=".py",
        run_command="pytest",
    )


# ── import_path ──────────────────────────────────────────────────


def test_import_path_commonjs(tmp_path: Path) -> None:
    assert import_path(tmp_path, default_manifest(), "src/math.ts") == "../src/math"


def test_import_path_esm_keeps_js_suffix(tmp_path: Path) -> None:
    assert import_path(tmp_path, _esm_manifest(), "src/lib/math.ts") == "../src/lib/math.js"


def test_import_path_inside_test_directory(tmp_path: Path) -> None:
    assert import_path(tmp_path, default_manifest(), "UnitTests/helpers.ts") == "./helpers"


def test_import_path_python_src_layout(tmp_path: Path) -> None:
    assert import_path(tmp_path, _python_manifest(), "src/pkg/math.py") == "pkg.math"


def test_import_path_python_package_init(tmp_path: Path) -> None:
    assert import_path(tmp_path, _python_manifest(), "pkg/__init__.py") == "pkg"


def test_import_path_python_src_is_package(tmp_path: Path) -> None:
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "__init__.py").write_text("")

    assert import_path(tmp_path, _python_manifest(), "src/math.py") == "src.math"


# ── build_context ────────────────────────────────────────────────


def test_build_context_free_function(mock_llm_engine: MagicMock, project: Path) -> None:
    builder = UnitBuilder(mock_llm_engine, project, external_packages=["lodash"])
    target = TestTarget("add", "src/math.ts")
    source = (project / "src" / "math.ts").read_text()

    context = builder.build_context(target, source, default_manifest(), ["src/math.ts", "src/db.ts"])

    assert context.source_code.startswith("export function add(")
    assert context.membership is Membership.FREE
    assert context.return_type == "number"
    assert context.start_line == 1
    assert context.import_path == "../src/math"
    assert context.mock_targets == ["../src/math", "../src/db"]
    assert context.external_packages == ["lodash"]


def test_build_context_static_method(mock_llm_engine: MagicMock, project: Path) -> None:
    builder = UnitBuilder(mock_llm_engine, project)
    source = (project / "src" / "math.ts").read_text()

    context = builder.build_context(
        TestTarget("create", "src/math.ts"), source, default_manifest(), ["src/math.ts"]
    )

    assert context.membership is Membership.STATIC
    assert context.class_name == "Calculator"


def test_build_context_not_found_placeholder(mock_llm_engine: MagicMock, project: Path) -> None:
    builder = UnitBuilder(mock_llm_engine, project)

    context = builder.build_context(
        TestTarget("missing", "src/math.ts"), "const x = 1;\n", default_manifest(), []
    )

    assert context.source_code.startswith("// Source for missing was not found")
    assert context.return_type is None
    assert context.start_line is None


def test_build_context_unreadable_file(mock_llm_engine: MagicMock, project: Path) -> None:
    builder = UnitBuilder(mock_llm_engine, project)

    context = builder.build_context(
        TestTarget("fn", "src/gone.py"), None, _python_manifest(), []
    )

    assert context.source_code == "# Source file src/gone.py could not be read."
    assert context.membership is Membership.FREE


# ── synthesize ───────────────────────────────────────────────────


async def test_synthesize_returns_block(mock_llm_engine: MagicMock, project: Path) -> None:
    builder = UnitBuilder(mock_llm_engine, project)
    source = (project / "src" / "math.ts").read_text()

    block = await builder.synthesize(
        TestTarget("add", "src/math.ts"), source, default_manifest(), ["src/math.ts"]
    )

    assert isinstance(block, GeneratedTestBlock)
    assert block.function_name == "add"
    assert block.file_name == "src/math.ts"
    assert block.test_code.startswith("import { add } from '../src/math';\n\ndescribe('add'")
    mock_llm_engine.generate.assert_awaited_once()
    request: GenerationRequest = mock_llm_engine.generate.call_args.args[0]
    assert "export function add(" in request.messages[1].content


async def test_synthesize_passes_alias(mock_llm_engine: MagicMock, project: Path) -> None:
    builder = UnitBuilder(mock_llm_engine, project)

    await builder.synthesize(
        TestTarget("add", "src/math.ts"), "", default_manifest(), [], alias="addMath"
    )

    request: GenerationRequest = mock_llm_engine.generate.call_args.args[0]
    assert "addMath" in request.messages[1].content


async def test_synthesize_llm_failure_is_recorded(mock_llm_engine: MagicMock, project: Path) -> None:
    mock_llm_engine.generate.side_effect = LLMConnectionError("connection refused")
    builder = UnitBuilder(mock_llm_engine, project)

    result = await builder.synthesize(TestTarget("add", "src/math.ts"), "", default_manifest(), [])

    assert isinstance(result, GenerationFailure)
    assert result.reason == "connection refused"


async def test_synthesize_malformed_response_is_recorded(
    mock_llm_engine: MagicMock, project: Path
) -> None:
    mock_llm_engine.generate.return_value = LLMResponse(text="I can't do that.", model="gpt-4o")
    builder = UnitBuilder(mock_llm_engine, project)

    result = await builder.synthesize(TestTarget("add", "src/math.ts"), "", default_manifest(), [])

    assert isinstance(result, GenerationFailure)
    assert "Malformed test generation response" in result.reason


async def test_synthesize_checks_cancellation(mock_llm_engine: MagicMock, project: Path) -> None:
    token = CancellationToken()
    token.cancel()
    builder = UnitBuilder(mock_llm_engine, project, cancel=token)

    with pytest.raises(PipelineCancelled):
        await builder.synthesize(TestTarget("add", "src/math.ts"), "", default_manifest(), [])

    mock_llm_engine.generate.assert_not_awaited()
