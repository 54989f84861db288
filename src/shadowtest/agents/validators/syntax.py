"""Syntax pass — tree-sitter parse with a single repair attempt."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from shadowtest.adapters.base import ValidationResult
from shadowtest.llm.engine import LLMError
from shadowtest.llm.prompts.fix import FixContext, SyntaxFixTemplate
from shadowtest.llm.responses import parse_fix
from shadowtest.parsing.treesitter import error_spans, language_for_path
from shadowtest.utils.cancellation import check_cancelled

if TYPE_CHECKING:
    from shadowtest.llm.engine import LLMEngine
    from shadowtest.models.manifest import TestEnvManifest
    from shadowtest.utils.cancellation import CancellationToken

logger = logging.getLogger(__name__)


def syntax_language(manifest: TestEnvManifest) -> str:
    """Tree-sitter grammar for files with the manifest's extension."""
    detected = language_for_path(f"x{manifest.file_extension}")
    if detected is not None:
        return detected
    if manifest.is_python:
        return "python"
    return "typescript" if manifest.language.lower() == "typescript" else "javascript"


def check_syntax(code: str, language: str) -> ValidationResult:
    """Parse *code* and report the line range of every error node."""
    spans = error_spans(code, language)
    if not spans:
        return ValidationResult(valid=True)
    return ValidationResult(valid=False, errors=[span.describe() for span in spans])


@dataclass
class SyntaxPassResult:
    """Outcome of the syntax pass."""

    code: str
    valid: bool
    repaired: bool = False
    errors: list[str] = field(default_factory=list)
    """Errors in the original code (empty when it parsed first time)."""


class SyntaxValidator:
    """Checks generated code and asks for one fix when it does not parse."""

    def __init__(self, llm_engine: LLMEngine, *, cancel: CancellationToken | None = None) -> None:
        self._llm = llm_engine
        self._cancel = cancel
        self._template = SyntaxFixTemplate()

    async def run(self, code: str, manifest: TestEnvManifest) -> SyntaxPassResult:
        """Return the original code if it parses, the repair if that parses, else the original."""
        language = syntax_language(manifest)
        first = check_syntax(code, language)
        if first.valid:
            return SyntaxPassResult(code=code, valid=True)

        logger.info("Generated code has %d syntax error(s); requesting a fix", len(first.errors))
        check_cancelled(self._cancel, "syntax repair")
        prompt = self._template.render(FixContext(code=code, manifest=manifest, errors=first.errors))
        try:
            response = await self._llm.generate(prompt.to_request())
            fixed = parse_fix(response.text).fixed_code
        except LLMError as exc:
            logger.warning("Syntax repair failed: %s", exc)
            return SyntaxPassResult(code=code, valid=False, errors=first.errors)

        if check_syntax(fixed, language).valid:
            logger.info("Syntax repair accepted")
            return SyntaxPassResult(code=fixed, valid=True, repaired=True, errors=first.errors)

        logger.warning("Syntax repair still does not parse; keeping the original code")
        return SyntaxPassResult(code=code, valid=False, errors=first.errors)
