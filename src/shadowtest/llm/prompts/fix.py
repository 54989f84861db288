"""Fix prompts: repair a syntax error or compiler errors in generated test code."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from shadowtest.llm.prompts.base import (
    PromptSection,
    PromptTemplate,
    bullet_section,
    code_section,
)

if TYPE_CHECKING:
    from shadowtest.models.manifest import TestEnvManifest

FIX_SHAPE: dict[str, object] = {
    "status": "pass|fail|error",
    "fixed_code": "Complete fixed test code here",
    "explanation": "What was wrong and how it was fixed",
    "remaining_issues": ["Issues that could not be fixed"],
}


@dataclass
class FixContext:
    """Broken test code and the diagnostics that describe what is wrong."""

    code: str
    manifest: TestEnvManifest
    errors: list[str] = field(default_factory=list)
    file_path: str = ""


class SyntaxFixTemplate(PromptTemplate[FixContext]):
    """Ask for the smallest edit that makes the code parse again."""

    json_shape = FIX_SHAPE

    @property
    def name(self) -> str:
        return "syntax_fix"

    def _system_instruction(self, context: FixContext) -> str:
        return (
            "You are a test debugging expert.  The test code below does not parse. "
            "Fix only the syntax problems; keep every test case and assertion. "
            "Return the complete corrected file in fixed_code."
        )

    def _build_sections(self, context: FixContext) -> list[PromptSection]:
        return [
            bullet_section("Syntax Errors", context.errors),
            code_section("Test Code", context.code, context.manifest.language),
        ]


class BuildFixTemplate(PromptTemplate[FixContext]):
    """Ask for a compile-clean version of the generated test file."""

    json_shape = FIX_SHAPE

    @property
    def name(self) -> str:
        return "build_fix"

    def _system_instruction(self, context: FixContext) -> str:
        return (
            "You are a test debugging expert.  The generated test file fails to compile. "
            "Common causes are wrong import paths, duplicate identifiers, missing types "
            "and incorrect mock setup. Fix every listed error without deleting tests "
            "that compile. Return the complete corrected file in fixed_code."
        )

    def _build_sections(self, context: FixContext) -> list[PromptSection]:
        return [
            bullet_section("Compiler Errors", context.errors),
            code_section(
                "Test File",
                context.code,
                context.manifest.language,
                path=context.file_path,
            ),
        ]
