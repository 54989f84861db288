"""Environment fingerprint — a cheap scan of a project used to ask for a test setup."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from shadowtest.parsing.treesitter import EXTENSION_TO_LANGUAGE

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = logging.getLogger(__name__)

# Directories never descended into while scanning.
DEFAULT_SKIP_DIRS: frozenset[str] = frozenset(
    {
        ".git",
        ".hg",
        ".svn",
        "node_modules",
        "dist",
        "build",
        "out",
        "coverage",
        ".shadow",
        ".next",
        "__pycache__",
        ".venv",
        "venv",
        ".tox",
        ".nox",
        ".mypy_cache",
        ".ruff_cache",
        ".pytest_cache",
    }
)

KNOWN_TEST_DIRS: tuple[str, ...] = ("UnitTests", "__tests__", "tests", "test", "spec")

# Config files owned by a test runner; these are merged rather than skipped.
TEST_RUNNER_CONFIG_PREFIXES: tuple[str, ...] = (
    "jest.config.",
    "vitest.config.",
    "vitest.workspace.",
    ".mocharc.",
)
TEST_RUNNER_CONFIG_NAMES: frozenset[str] = frozenset({"pytest.ini", "conftest.py"})

_JS_FRAMEWORKS: tuple[str, ...] = ("vitest", "jest", "mocha", "jasmine", "ava")
_JS_MISSING_DEFAULTS: tuple[str, ...] = ("jest", "ts-jest", "@types/jest")
_PY_DEP_FILES: tuple[str, ...] = (
    "requirements.txt",
    "requirements-dev.txt",
    "requirements_dev.txt",
    "pyproject.toml",
    "setup.cfg",
    "Pipfile",
)
_PYTEST_RE = re.compile(r"\bpytest\b")

MAX_LISTED_FILES = 100
MAX_PACKAGE_JSON_CHARS = 4000


def is_test_runner_config(path: str | Path) -> bool:
    """Return ``True`` for files like ``jest.config.js`` or ``pytest.ini``."""
    name = Path(path).name
    return name in TEST_RUNNER_CONFIG_NAMES or name.startswith(TEST_RUNNER_CONFIG_PREFIXES)


@dataclass
class EnvironmentFingerprint:
    """What a quick scan of the project revealed."""

    root: str
    primary_language: str | None = None
    language_counts: dict[str, int] = field(default_factory=dict)
    """Source-file counts per language, sorted by count descending."""

    has_package_json: bool = False
    has_tsconfig: bool = False
    package_type: str = ""
    """``"type"`` field of ``package.json`` (``"module"`` means ESM)."""

    existing_framework: str | None = None
    """Test framework already declared by the project, if any."""

    dependencies: list[str] = field(default_factory=list)
    """Dependency names declared by the project manifest."""

    test_directories: list[str] = field(default_factory=list)
    test_runner_configs: list[str] = field(default_factory=list)
    missing_dependencies: list[str] = field(default_factory=list)
    """Packages the project probably needs before tests can run."""

    files: list[str] = field(default_factory=list)
    """A sample of source paths relative to the root."""

    package_json: str = ""
    """Raw ``package.json`` content (truncated) for the setup request."""

    @property
    def is_node_project(self) -> bool:
        return self.has_package_json or self.primary_language in {"typescript", "javascript"}


def _iter_source_files(root: Path, skip_dirs: frozenset[str]) -> Iterable[Path]:
    """Yield source files under *root*, skipping dependency and build dirs."""
    try:
        children = sorted(root.iterdir())
    except OSError:
        return
    for child in children:
        if child.is_dir():
            if child.name in skip_dirs:
                continue
            yield from _iter_source_files(child, skip_dirs)
        elif child.is_file() and child.suffix.lower() in EXTENSION_TO_LANGUAGE:
            yield child


def _normalise_language(language: str) -> str:
    return "typescript" if language == "tsx" else language


def _read_package_json(root: Path) -> dict[str, object] | None:
    path = root / "package.json"
    if not path.is_file():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("Could not read package.json: %s", exc)
        return None
    return data if isinstance(data, dict) else None


def _declared_node_dependencies(package: dict[str, object]) -> list[str]:
    names: list[str] = []
    for key in ("dependencies", "devDependencies", "peerDependencies"):
        section = package.get(key)
        if isinstance(section, dict):
            names.extend(str(name) for name in section)
    return names


def _detect_python_pytest(root: Path) -> bool:
    if (root / "pytest.ini").is_file() or (root / "conftest.py").is_file():
        return True
    for name in _PY_DEP_FILES:
        path = root / name
        if not path.is_file():
            continue
        try:
            if _PYTEST_RE.search(path.read_text(encoding="utf-8", errors="replace")):
                return True
        except OSError:
            continue
    return False


def collect_fingerprint(
    root: str | Path,
    *,
    skip_dirs: frozenset[str] | None = None,
) -> EnvironmentFingerprint:
    """Scan *root* and summarise its language, package setup and test tooling."""
    root_path = Path(root)
    if not root_path.is_dir():
        raise ValueError(f"Not a directory: {root_path}")

    effective_skip = skip_dirs if skip_dirs is not None else DEFAULT_SKIP_DIRS

    counts: dict[str, int] = {}
    files: list[str] = []
    for path in _iter_source_files(root_path, effective_skip):
        language = _normalise_language(EXTENSION_TO_LANGUAGE[path.suffix.lower()])
        counts[language] = counts.get(language, 0) + 1
        if len(files) < MAX_LISTED_FILES:
            files.append(path.relative_to(root_path).as_posix())

    ranked = dict(sorted(counts.items(), key=lambda item: (-item[1], item[0])))
    fingerprint = EnvironmentFingerprint(
        root=str(root_path),
        primary_language=next(iter(ranked), None),
        language_counts=ranked,
        has_tsconfig=(root_path / "tsconfig.json").is_file(),
        files=files,
    )

    package = _read_package_json(root_path)
    if package is not None:
        fingerprint.has_package_json = True
        fingerprint.package_type = str(package.get("type", ""))
        fingerprint.dependencies = _declared_node_dependencies(package)
        fingerprint.package_json = json.dumps(package, indent=2)[:MAX_PACKAGE_JSON_CHARS]
        declared = set(fingerprint.dependencies)
        fingerprint.existing_framework = next(
            (fw for fw in _JS_FRAMEWORKS if fw in declared), None
        )

    if fingerprint.primary_language == "python" and _detect_python_pytest(root_path):
        fingerprint.existing_framework = "pytest"

    fingerprint.test_directories = [d for d in KNOWN_TEST_DIRS if (root_path / d).is_dir()]
    fingerprint.test_runner_configs = sorted(
        child.name
        for child in root_path.iterdir()
        if child.is_file() and is_test_runner_config(child)
    )
    fingerprint.missing_dependencies = guess_missing_dependencies(fingerprint)

    logger.debug(
        "Fingerprint: language=%s framework=%s files=%d",
        fingerprint.primary_language,
        fingerprint.existing_framework,
        sum(counts.values()),
    )
    return fingerprint


def guess_missing_dependencies(fingerprint: EnvironmentFingerprint) -> list[str]:
    """Packages a project without a test framework will need."""
    if fingerprint.existing_framework:
        return []
    if fingerprint.primary_language in {"typescript", "javascript"} or fingerprint.has_package_json:
        declared = set(fingerprint.dependencies)
        return [dep for dep in _JS_MISSING_DEFAULTS if dep not in declared]
    if fingerprint.primary_language == "python":
        return ["pytest"]
    return []
