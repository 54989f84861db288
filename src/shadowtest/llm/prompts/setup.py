"""Environment-setup prompt: ask which test framework, dependencies and config to use."""

from __future__ import annotations

from typing import TYPE_CHECKING

from shadowtest.llm.prompts.base import PromptSection, PromptTemplate, bullet_section

if TYPE_CHECKING:
    from shadowtest.agents.detectors.fingerprint import EnvironmentFingerprint

_SYSTEM_INSTRUCTION = """\
You are a test configuration expert.  Analyse the project summary and \
recommend the simplest working unit-test setup for it.

Rules:
- Prefer the test framework the project already declares.
- Only list dependencies that are not already installed.
- Only return config files the framework genuinely needs; never rewrite \
unrelated project files.
- ``run_command`` must run a single test file when the file path is appended.
- ``import_style`` is ``esm`` for ES modules, ``commonjs`` for require-based \
projects, and ``native`` for languages without a JS module system.\
"""

SETUP_SHAPE: dict[str, object] = {
    "language": "typescript|javascript|python",
    "framework": "jest|vitest|mocha|pytest",
    "dependencies": [{"name": "jest", "version": "^29.0.0", "dev": True}],
    "config_files": [{"path": "jest.config.js", "content": "module.exports = {...}"}],
    "import_style": "esm|commonjs|native",
    "module_system": "esm|commonjs|native",
    "test_directory": "UnitTests",
    "file_extension": ".test.ts",
    "run_command": "npx jest",
    "direct_command": "npx jest",
}


class EnvironmentSetupTemplate(PromptTemplate["EnvironmentFingerprint"]):
    """One request describing the project; the answer becomes the manifest."""

    json_shape = SETUP_SHAPE

    @property
    def name(self) -> str:
        return "environment_setup"

    def _system_instruction(self, context: EnvironmentFingerprint) -> str:
        return _SYSTEM_INSTRUCTION

    def _build_sections(self, context: EnvironmentFingerprint) -> list[PromptSection]:
        languages = [f"{lang}: {count} files" for lang, count in context.language_counts.items()]
        facts = [
            f"Primary language: {context.primary_language or 'unknown'}",
            f"package.json: {'present' if context.has_package_json else 'absent'}",
            f"tsconfig.json: {'present' if context.has_tsconfig else 'absent'}",
            f"Module type: {context.package_type or 'unspecified'}",
            f"Existing test framework: {context.existing_framework or 'none'}",
            f"Existing test directories: {', '.join(context.test_directories) or 'none'}",
            f"Existing test-runner configs: {', '.join(context.test_runner_configs) or 'none'}",
        ]
        sections = [
            PromptSection(label="Project", content=f"Root: {context.root}"),
            bullet_section("Languages", languages, empty="No source files detected."),
            bullet_section("Detected Setup", facts),
            bullet_section("Probably Missing Dependencies", context.missing_dependencies),
            PromptSection(label="File Structure", content="\n".join(context.files)),
        ]
        if context.package_json:
            sections.append(
                PromptSection(
                    label="Existing package.json",
                    content=f"```json\n{context.package_json}\n```",
                )
            )
        return sections
