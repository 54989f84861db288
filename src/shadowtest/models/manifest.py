"""TestEnvManifest — the persisted description of a project's test environment."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any

# snake_case attribute -> camelCase key in ``.shadow/test-env.json``
_JSON_KEYS: dict[str, str] = {
    "language": "language",
    "framework": "framework",
    "import_style": "importStyle",
    "module_system": "moduleSystem",
    "test_directory": "testDirectory",
    "file_extension": "fileExtension",
    "run_command": "runCommand",
    "direct_command": "directCommand",
}


@dataclass(frozen=True)
class TestEnvManifest:
    """Immutable record of how tests are written and run in one project.

    Created once per project by the environment profiler and reused for
    every later run until the file on disk is deleted.
    """

    __test__ = False

    language: str
    """Primary language, e.g. ``"typescript"`` or ``"python"``."""

    framework: str
    """Test framework, e.g. ``"jest"``, ``"vitest"``, ``"pytest"``."""

    import_style: str
    """``"esm"``, ``"commonjs"`` or ``"native"``."""

    module_system: str
    """Module system reported for the project (usually equals ``import_style``)."""

    test_directory: str
    """Directory, relative to the project root, that holds generated tests."""

    file_extension: str
    """Test file suffix including the leading dot, e.g. ``".test.ts"``."""

    run_command: str
    """Command that runs a single test file (the file path is appended)."""

    direct_command: str = ""
    """Runner invocation without package-manager indirection, if known."""

    @property
    def is_typescript(self) -> bool:
        return self.file_extension.endswith((".ts", ".tsx", ".mts", ".cts"))

    @property
    def is_python(self) -> bool:
        return self.language == "python" or self.file_extension.endswith(".py")

    @property
    def comment_prefix(self) -> str:
        """Line-comment marker for the generated test file."""
        return "#" if self.is_python else "//"

    def to_dict(self) -> dict[str, str]:
        """Serialise to the camelCase JSON shape stored on disk."""
        return {_JSON_KEYS[key]: value for key, value in asdict(self).items()}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TestEnvManifest:
        """Build a manifest from its on-disk JSON shape.

        Raises:
            KeyError: A required key is missing.
        """
        values: dict[str, str] = {}
        for attr, key in _JSON_KEYS.items():
            if key in data:
                values[attr] = str(data[key])
            elif attr in data:
                values[attr] = str(data[attr])
        values.setdefault("direct_command", "")
        values.setdefault("module_system", values.get("import_style", "commonjs"))
        missing = [attr for attr in _JSON_KEYS if attr not in values]
        if missing:
            raise KeyError(f"Manifest is missing keys: {', '.join(missing)}")
        return cls(**values)


def default_manifest() -> TestEnvManifest:
    """Manifest used when environment detection fails: TypeScript + Jest."""
    return TestEnvManifest(
        language="typescript",
        framework="jest",
        import_style="commonjs",
        module_system="commonjs",
        test_directory="UnitTests",
        file_extension=".test.ts",
        run_command="npx jest",
        direct_command="npx jest",
    )
