"""Static validator — ordered syntax, mock-path and annotation passes."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from shadowtest.agents.validators.annotations import applies_to, complete_annotations
from shadowtest.agents.validators.mocks import MockPathChecker, check_mocks
from shadowtest.agents.validators.syntax import SyntaxValidator

if TYPE_CHECKING:
    from collections.abc import Iterable
    from pathlib import Path

    from shadowtest.llm.engine import LLMEngine
    from shadowtest.models.manifest import TestEnvManifest
    from shadowtest.utils.cancellation import CancellationToken

logger = logging.getLogger(__name__)


@dataclass
class StaticValidationReport:
    """Validated code and what each pass changed."""

    code: str
    syntax_valid: bool = True
    syntax_repaired: bool = False
    syntax_errors: list[str] = field(default_factory=list)
    removed_mocks: list[str] = field(default_factory=list)
    annotations_added: int = 0


class StaticValidator:
    """Runs the three passes in order over one assembled test file.

    Each pass leaves already-valid code unchanged, so running the validator
    again over its own output is a no-op (apart from a repeated syntax fix
    request when the code still does not parse).
    """

    def __init__(
        self,
        llm_engine: LLMEngine,
        project_root: Path,
        *,
        cancel: CancellationToken | None = None,
    ) -> None:
        self._root = project_root
        self._syntax = SyntaxValidator(llm_engine, cancel=cancel)

    async def validate(
        self,
        code: str,
        manifest: TestEnvManifest,
        valid_files: Iterable[str],
    ) -> StaticValidationReport:
        syntax = await self._syntax.run(code, manifest)
        report = StaticValidationReport(
            code=syntax.code,
            syntax_valid=syntax.valid,
            syntax_repaired=syntax.repaired,
            syntax_errors=list(syntax.errors),
        )

        checker = MockPathChecker(self._root, self._root / manifest.test_directory, valid_files)
        mocks = check_mocks(report.code, manifest, checker)
        report.code = mocks.code
        report.removed_mocks = mocks.removed

        if applies_to(manifest.file_extension):
            report.code, report.annotations_added = complete_annotations(report.code)

        logger.info(
            "Static validation: syntax %s, %d mock(s) removed, %d declaration(s) annotated",
            "ok" if report.syntax_valid else "invalid",
            len(report.removed_mocks),
            report.annotations_added,
        )
        return report
