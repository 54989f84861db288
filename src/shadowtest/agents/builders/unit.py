"""Per-target synthesizer — one generation request per target function.

For each target the builder extracts the declaration from its source file,
works out how a test reaches it (free function, instance or static method),
computes the import path from the generated-test directory, and asks the
generative service for a single test block.  Any failure becomes a
:class:`GenerationFailure` so the run can continue with the other targets.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING

from shadowtest.llm.engine import LLMError
from shadowtest.llm.prompts.generation import GenerationContext, UnitTestTemplate
from shadowtest.llm.responses import parse_generation
from shadowtest.models.result import GeneratedTestBlock, GenerationFailure
from shadowtest.parsing.extractor import (
    Found,
    classify_membership,
    extract_function,
    extract_return_type,
)
from shadowtest.utils.cancellation import check_cancelled

if TYPE_CHECKING:
    from collections.abc import Sequence

    from shadowtest.llm.engine import LLMEngine
    from shadowtest.models.manifest import TestEnvManifest
    from shadowtest.models.target import TestTarget
    from shadowtest.utils.cancellation import CancellationToken

logger = logging.getLogger(__name__)

_SCRIPT_SUFFIXES = (".ts", ".tsx", ".mts", ".cts", ".js", ".jsx", ".mjs", ".cjs")


def import_path(
    project_root: Path,
    manifest: TestEnvManifest,
    file: str,
) -> str:
    """Path used to import *file* from a test in the manifest's test directory.

    JS/TS paths are relative, POSIX, ``./``-prefixed and extensionless (ESM
    projects keep a ``.js`` suffix).  Python paths are dotted module names.
    """
    if manifest.is_python:
        return _python_module_path(project_root, file)

    test_dir = project_root / manifest.test_directory
    relative = os.path.relpath(project_root / file, test_dir)
    posix = PurePosixPath(relative.replace(os.sep, "/"))
    if posix.suffix in _SCRIPT_SUFFIXES:
        posix = posix.with_suffix("")
    path = str(posix)
    if not path.startswith("."):
        path = f"./{path}"
    if manifest.import_style == "esm":
        path = f"{path}.js"
    return path


def _python_module_path(project_root: Path, file: str) -> str:
    parts = list(PurePosixPath(file.replace("\\", "/")).with_suffix("").parts)
    if len(parts) > 1 and parts[0] == "src" and not (project_root / "src" / "__init__.py").exists():
        parts = parts[1:]
    if parts and parts[-1] == "__init__":
        parts = parts[:-1]
    return ".".join(parts)


class UnitBuilder:
    """Turns one :class:`TestTarget` into a :class:`GeneratedTestBlock`.

    Exactly one generation call is made per target; callers run targets
    sequentially.
    """

    def __init__(
        self,
        llm_engine: LLMEngine,
        project_root: Path,
        *,
        external_packages: Sequence[str] = (),
        cancel: CancellationToken | None = None,
    ) -> None:
        self._llm = llm_engine
        self._root = project_root
        self._external_packages = list(external_packages)
        self._cancel = cancel
        self._template = UnitTestTemplate()

    async def synthesize(
        self,
        target: TestTarget,
        source_code: str | None,
        manifest: TestEnvManifest,
        valid_files: Sequence[str],
        *,
        alias: str | None = None,
    ) -> GeneratedTestBlock | GenerationFailure:
        """Generate the test block for *target*.

        Args:
            target: The function to test.
            source_code: Contents of ``target.file``, or ``None`` if unreadable.
            manifest: The project's test environment.
            valid_files: Project-relative files read for this batch; the only
                local modules a test may mock.
            alias: Name to use for the function when it collides with another
                target's name.

        Raises:
            PipelineCancelled: Cancellation was requested before the request.
        """
        context = self.build_context(target, source_code, manifest, valid_files, alias=alias)

        check_cancelled(self._cancel, f"generation for {target.function_name}")
        logger.info("Generating test for %s (%s)", target.function_name, target.file)
        prompt = self._template.render(context)
        try:
            response = await self._llm.generate(prompt.to_request())
            result = parse_generation(response.text)
        except LLMError as exc:
            logger.warning("Generation failed for %s: %s", target.function_name, exc)
            return GenerationFailure(
                function_name=target.function_name,
                file_name=target.file,
                reason=str(exc),
            )

        logger.debug(
            "Generated %d characters for %s (%d tokens)",
            len(result.test_code),
            target.function_name,
            response.total_tokens,
        )
        return GeneratedTestBlock(
            function_name=target.function_name,
            file_name=target.file,
            test_code=result.render(),
        )

    def build_context(
        self,
        target: TestTarget,
        source_code: str | None,
        manifest: TestEnvManifest,
        valid_files: Sequence[str],
        *,
        alias: str | None = None,
    ) -> GenerationContext:
        """Everything the generation request needs to know about *target*."""
        language = "python" if manifest.is_python else manifest.language
        prefix = manifest.comment_prefix

        if source_code is None:
            slice_code = f"{prefix} Source file {target.file} could not be read."
            extraction = None
        else:
            extraction = extract_function(source_code, target.function_name, language=language)
            if isinstance(extraction, Found):
                slice_code = extraction.code
            else:
                logger.debug("Extraction failed for %s: %s", target.function_name, extraction.reason)
                slice_code = (
                    f"{prefix} Source for {target.function_name} was not found in "
                    f"{target.file} ({extraction.reason}). Infer its behaviour from its name."
                )

        membership = (
            classify_membership(source_code, target.function_name, language=language)
            if source_code is not None
            else None
        )
        found = extraction if isinstance(extraction, Found) else None

        context = GenerationContext(
            target=target,
            manifest=manifest,
            source_code=slice_code,
            import_path=import_path(self._root, manifest, target.file),
            alias=alias,
            return_type=extract_return_type(found.code, language=language) if found else None,
            start_line=found.start_line if found else None,
            mock_targets=[import_path(self._root, manifest, f) for f in valid_files],
            external_packages=list(self._external_packages),
        )
        if membership is not None:
            context.membership = membership.kind
            context.class_name = membership.class_name
        return context
