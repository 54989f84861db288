"""Per-target test generation prompt.

One request per target function: the extracted source slice, how the function
is reached (free, instance or static), the import path to use, and the closed
list of module paths the test is allowed to mock.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from shadowtest.llm.prompts.base import (
    PromptSection,
    PromptTemplate,
    bullet_section,
    code_section,
)
from shadowtest.parsing.extractor import Membership

if TYPE_CHECKING:
    from shadowtest.models.manifest import TestEnvManifest
    from shadowtest.models.target import TestTarget


_SYSTEM_INSTRUCTION = """\
You are an expert test engineer.  Write one focused, runnable unit test \
suite for a single function.

Follow these guidelines:
- Cover the happy path, the listed edge cases, and error handling.
- Use descriptive test names that explain the scenario being verified.
- Include every import the test needs, using exactly the import path given.
- Mock only the modules listed under "Allowed Mock Targets"; never invent paths.
- Do not repeat the implementation of the function under test.
- Output valid code with no placeholders or TODOs.\
"""

_FRAMEWORK_HINTS: dict[str, str] = {
    "jest": (
        "Framework: Jest. Use describe()/it() blocks, expect() assertions, "
        "jest.fn() and jest.mock('<path>') for mocks."
    ),
    "vitest": (
        "Framework: Vitest. Import describe/it/expect/vi from 'vitest'; "
        "mock with vi.fn() and vi.mock('<path>')."
    ),
    "mocha": "Framework: Mocha. Use describe()/it() with the project's assertion library.",
    "pytest": (
        "Framework: pytest. Write plain test_* functions with bare assert statements; "
        "use unittest.mock.patch('<module.attr>') for mocks."
    ),
}

GENERATION_SHAPE: dict[str, object] = {
    "imports": ["import { fn } from './path';"],
    "mocks": ["jest.mock('./dependency');"],
    "test_code": "describe('fn', () => { it('does something', () => { ... }); });",
}


@dataclass
class GenerationContext:
    """Everything the generation request says about one target."""

    target: TestTarget
    manifest: TestEnvManifest
    source_code: str
    """Extracted declaration, or a placeholder comment when it was not found."""

    import_path: str
    membership: Membership = Membership.FREE
    class_name: str = ""
    alias: str | None = None
    return_type: str | None = None
    start_line: int | None = None
    mock_targets: list[str] = field(default_factory=list)
    """Module paths (relative to the test file) the test may mock."""

    external_packages: list[str] = field(default_factory=list)


class UnitTestTemplate(PromptTemplate[GenerationContext]):
    """Framework-aware generation template for a single target."""

    json_shape = GENERATION_SHAPE

    @property
    def name(self) -> str:
        return "unit_test"

    def _system_instruction(self, context: GenerationContext) -> str:
        hint = _FRAMEWORK_HINTS.get(context.manifest.framework, "")
        return f"{_SYSTEM_INSTRUCTION}\n\n{hint}" if hint else _SYSTEM_INSTRUCTION

    def _build_sections(self, context: GenerationContext) -> list[PromptSection]:
        target = context.target
        location = f"{target.file}:{context.start_line}" if context.start_line else target.file
        sections = [
            code_section(
                "Function Under Test",
                context.source_code,
                context.manifest.language,
                path=location,
            ),
            PromptSection(label="How To Call It", content=self._invocation(context)),
            PromptSection(label="Import", content=self._import_instructions(context)),
        ]
        if context.return_type:
            sections.append(
                PromptSection(
                    label="Declared Return Type",
                    content=f"`{target.function_name}` returns `{context.return_type}`.",
                )
            )

        legal = [f"`{path}`" for path in context.mock_targets]
        legal.extend(f"`{pkg}` (package)" for pkg in context.external_packages)
        sections.append(
            bullet_section(
                "Allowed Mock Targets",
                legal,
                empty="No module mocks are allowed; use inline stubs instead.",
            )
        )

        why = [f"Priority: {target.priority}"]
        if target.rationale:
            why.append(f"Rationale: {target.rationale}")
        sections.append(bullet_section("Why This Function Matters", why))
        sections.append(bullet_section("Edge Cases To Cover", list(target.edge_cases)))
        return sections

    @staticmethod
    def _invocation(context: GenerationContext) -> str:
        name = context.target.function_name
        if context.membership is Membership.STATIC:
            return (
                f"`{name}` is a static method of class `{context.class_name}`: "
                f"call `{context.class_name}.{name}(...)`."
            )
        if context.membership is Membership.INSTANCE:
            return (
                f"`{name}` is an instance method of class `{context.class_name}`: construct an "
                f"instance (stub constructor dependencies) and call `instance.{name}(...)`."
            )
        return f"`{name}` is a standalone function: call it directly."

    @staticmethod
    def _import_instructions(context: GenerationContext) -> str:
        name = context.class_name or context.target.function_name
        path = context.import_path
        if context.manifest.is_python:
            line = f"from {path} import {name}"
        elif context.manifest.import_style == "esm" or context.manifest.is_typescript:
            line = f"import {{ {name} }} from '{path}';"
        else:
            line = f"const {{ {name} }} = require('{path}');"

        text = f"Import the code under test with exactly:\n\n```\n{line}\n```"
        if context.alias and not context.class_name:
            example = (
                f"{name} as {context.alias}"
                if context.manifest.is_python
                else f"{{ {name} as {context.alias} }}"
            )
            text += (
                f"\n\nAnother selected file exports a function with the same name, so "
                f"import it under the alias `{context.alias}` (`{example}`) and use that "
                f"alias everywhere, including the test titles."
            )
        elif context.alias:
            text += (
                f"\n\nUse `{context.alias}` as the describe() title and for any local "
                f"variables, so the suite does not clash with others in the same file."
            )
        return text
