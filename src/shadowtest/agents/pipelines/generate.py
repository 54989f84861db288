"""Generate pipeline — targets in, executed test file and result out.

Stages, in order:

1. Resolve the test environment (cached manifest or one setup request).
2. Cap the ranked target list and alias colliding function names.
3. Generate one test block per target, sequentially.
4. Assemble the blocks into a single test file.
5. Static validation (syntax, mock paths, annotations).
6. Build check with at most one repair, or abort on project-code errors.
7. Execute the file and extract pass/fail counts.

The result is persisted to ``.shadow/test-last.json``.  Only cancellation
escapes :func:`run_generation`; every other failure ends up in the
returned result's ``output``.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from shadowtest.adapters.executor import execute
from shadowtest.agents.analyzers.targets import select_targets
from shadowtest.agents.builders.unit import UnitBuilder
from shadowtest.agents.debuggers.repair import BuildRepairLoop
from shadowtest.agents.detectors.environment import ensure_environment
from shadowtest.agents.detectors.fingerprint import collect_fingerprint
from shadowtest.agents.validators.static import StaticValidator
from shadowtest.config import load_config
from shadowtest.models.result import (
    BuildError,
    GeneratedTestBlock,
    GenerationFailure,
    RunOutcome,
    TestGenerationResult,
)
from shadowtest.models.store import save_last_result
from shadowtest.utils.cancellation import PipelineCancelled, check_cancelled

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from shadowtest.config import ShadowConfig
    from shadowtest.llm.engine import LLMEngine
    from shadowtest.models.manifest import TestEnvManifest
    from shadowtest.models.target import TestTarget
    from shadowtest.utils.cancellation import CancellationToken

    type ProgressCallback = Callable[[int, int, str], None]

logger = logging.getLogger(__name__)

GENERATED_HEADER = "Generated by shadowtest. Regenerate instead of editing by hand."

_JS_IMPORT_RE = re.compile(
    r"^(?:import\s[^\n]*?from\s+['\"][^'\"]+['\"]|import\s+['\"][^'\"]+['\"]"
    r"|(?:const|let|var)\s+[^\n=]+=\s*require\(\s*['\"][^'\"]+['\"]\s*\))\s*;?\s*$"
)
_PY_IMPORT_RE = re.compile(r"^(?:from\s+[\w.]+\s+import\s+[^()\n]+|import\s+[\w., ]+)$")


@dataclass
class PipelineContext:
    """State shared by every stage of one run, loaded once."""

    project_root: Path
    manifest: TestEnvManifest
    config: ShadowConfig
    cancel: CancellationToken | None = None


async def run_generation(
    project_root: str | Path,
    targets: Sequence[TestTarget],
    llm_engine: LLMEngine,
    *,
    config: ShadowConfig | None = None,
    cap: int | None = None,
    cancel: CancellationToken | None = None,
    on_progress: ProgressCallback | None = None,
) -> TestGenerationResult:
    """Run the whole pipeline for *targets* in *project_root*.

    Raises:
        PipelineCancelled: *cancel* was triggered.
    """
    root = Path(project_root).resolve()
    try:
        config = config or load_config(root)
        manifest = await ensure_environment(
            root,
            llm_engine,
            cancel=cancel,
            install_timeout=config.pipeline.install_timeout,
        )
        context = PipelineContext(project_root=root, manifest=manifest, config=config, cancel=cancel)
        pipeline = GenerationPipeline(context, llm_engine, on_progress=on_progress)
        result = await pipeline.run(targets, cap=cap)
    except PipelineCancelled:
        logger.info("Pipeline cancelled")
        raise
    except Exception as exc:
        logger.exception("Generate pipeline failed: %s", exc)
        result = TestGenerationResult(output=f"Pipeline failed: {exc}")

    save_last_result(root, result)
    return result


class GenerationPipeline:
    """Runs stages 2 to 7 against an already-resolved :class:`PipelineContext`."""

    def __init__(
        self,
        context: PipelineContext,
        llm_engine: LLMEngine,
        *,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        self._ctx = context
        self._llm = llm_engine
        self._on_progress = on_progress

    @property
    def test_file(self) -> Path:
        ctx = self._ctx
        name = generated_file_name(ctx.manifest, ctx.config.pipeline.test_file_name)
        return ctx.project_root / ctx.manifest.test_directory / name

    async def run(self, targets: Sequence[TestTarget], *, cap: int | None = None) -> TestGenerationResult:
        ctx = self._ctx
        selected, aliases = select_targets(targets, cap or ctx.config.pipeline.cap)
        if not selected:
            return TestGenerationResult(output="No targets to generate tests for.")

        valid_files = list(dict.fromkeys(t.file for t in selected))
        sources = {file: _read_source(ctx.project_root / file) for file in valid_files}
        external = collect_fingerprint(ctx.project_root).dependencies
        builder = UnitBuilder(
            self._llm,
            ctx.project_root,
            external_packages=external,
            cancel=ctx.cancel,
        )

        # ── Generation ──────────────────────────────────────────────
        blocks: list[GeneratedTestBlock] = []
        failures: list[GenerationFailure] = []
        for index, target in enumerate(selected, start=1):
            if self._on_progress is not None:
                self._on_progress(index, len(selected), target.function_name)
            outcome = await builder.synthesize(
                target,
                sources[target.file],
                ctx.manifest,
                valid_files,
                alias=aliases.alias_for(target),
            )
            if isinstance(outcome, GenerationFailure):
                failures.append(outcome)
            else:
                blocks.append(outcome)

        if not blocks:
            logger.warning("No test could be generated for any of %d target(s)", len(selected))
            return TestGenerationResult(failures=failures, output=_failure_summary(failures))

        # ── Assembly and static validation ───────────────────────────
        code = assemble_test_file(blocks, ctx.manifest)
        validator = StaticValidator(self._llm, ctx.project_root, cancel=ctx.cancel)
        report = await validator.validate(code, ctx.manifest, valid_files)

        test_file = self.test_file
        test_file.parent.mkdir(parents=True, exist_ok=True)
        test_file.write_text(report.code, encoding="utf-8")
        relative_test = os.path.relpath(test_file, ctx.project_root).replace(os.sep, "/")
        logger.info("Wrote %d test block(s) to %s", len(blocks), relative_test)

        result = TestGenerationResult(
            tests_generated=len(blocks),
            test_file_path=relative_test,
            removed_mocks=report.removed_mocks,
            failures=failures,
        )

        # ── Build check and repair ───────────────────────────────────
        loop = BuildRepairLoop(
            self._llm,
            ctx.project_root,
            ctx.manifest,
            build_timeout=ctx.config.pipeline.build_timeout,
            cancel=ctx.cancel,
        )
        repair = await loop.run(test_file)
        result.build_errors = repair.errors
        result.build_errors_skipped_tests = repair.aborted
        if repair.aborted:
            result.output = _abort_summary(repair.errors or [])
            result.run_result = RunOutcome(output=result.output)
            return result

        # ── Execution ────────────────────────────────────────────────
        check_cancelled(ctx.cancel, "test execution")
        result.run_result = await execute(
            relative_test,
            ctx.manifest.run_command,
            cwd=ctx.project_root,
            timeout=ctx.config.pipeline.run_timeout,
        )
        result.output = _run_summary(result, report.syntax_valid)
        return result


# ── Assembly ─────────────────────────────────────────────────────


def generated_file_name(manifest: TestEnvManifest, base: str) -> str:
    """``<base>.test<ext>``, or ``test_<base>.py`` for pytest discovery."""
    ext = manifest.file_extension
    if manifest.is_python:
        return f"test_{base}{ext}"
    if ext.startswith((".test.", ".spec.")):
        return f"{base}{ext}"
    return f"{base}.test{ext}"


def assemble_test_file(blocks: Sequence[GeneratedTestBlock], manifest: TestEnvManifest) -> str:
    """Concatenate *blocks* in order, each under a provenance comment.

    A top-level import line already emitted by an earlier block is dropped
    from later ones.
    """
    prefix = manifest.comment_prefix
    import_re = _PY_IMPORT_RE if manifest.is_python else _JS_IMPORT_RE
    seen_imports: set[str] = set()
    parts = [f"{prefix} {GENERATED_HEADER}"]
    for block in blocks:
        lines: list[str] = []
        for line in block.test_code.strip("\n").splitlines():
            stripped = line.rstrip()
            if stripped and line == line.lstrip() and import_re.match(stripped):
                if stripped in seen_imports:
                    continue
                seen_imports.add(stripped)
            lines.append(line)
        parts.append(f"{prefix} Test for {block.function_name} from {block.file_name}\n" + "\n".join(lines))
    return "\n\n".join(parts) + "\n"


# ── Summaries ────────────────────────────────────────────────────


def _read_source(path: Path) -> str | None:
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        logger.warning("Could not read %s: %s", path, exc)
        return None


def _failure_summary(failures: Sequence[GenerationFailure]) -> str:
    lines = ["No tests were generated."]
    lines.extend(f"- {f.function_name} ({f.file_name}): {f.reason}" for f in failures)
    return "\n".join(lines)


def _abort_summary(errors: Sequence[BuildError]) -> str:
    user_errors = [e for e in errors if e.is_user_code] or list(errors)
    lines = ["Tests were not run: the project's own code does not compile."]
    lines.extend(f"- {e.describe()}" for e in user_errors)
    return "\n".join(lines)


def _run_summary(result: TestGenerationResult, syntax_valid: bool) -> str:
    lines = [
        f"Generated {result.tests_generated} test block(s) in {result.test_file_path}.",
        f"Passed: {result.passed}, failed: {result.failed}.",
    ]
    if result.failures:
        lines.append(f"{len(result.failures)} target(s) could not be generated:")
        lines.extend(f"- {f.function_name} ({f.file_name}): {f.reason}" for f in result.failures)
    if result.removed_mocks:
        lines.append("Removed mocks of non-existent modules: " + ", ".join(result.removed_mocks))
    if not syntax_valid:
        lines.append("The generated file still has syntax errors.")
    if result.build_errors:
        lines.append(f"{len(result.build_errors)} build error(s) remained after repair.")
    run = result.run_result
    if run is not None and run.total == 0:
        lines.append("No test counts could be extracted from the runner output.")
        lines.extend(f"  {line}" for line in run.errors)
    return "\n".join(lines)
