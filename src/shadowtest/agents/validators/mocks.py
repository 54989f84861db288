"""Mock-path legality pass.

A generated test may only mock bare packages, files that were read for the
batch, or local paths that actually exist.  Mocks of anything else point at
modules the model invented and are removed.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING

from shadowtest.parsing.extractor import find_matching

if TYPE_CHECKING:
    from collections.abc import Iterable

    from shadowtest.models.manifest import TestEnvManifest

logger = logging.getLogger(__name__)

MOCK_CALL_RE = re.compile(
    r"\b(?:jest\.(?:mock|doMock|unstable_mockModule)|vi\.(?:mock|doMock))"
    r"\s*\(\s*(['\"`])([^'\"`\n]+)\1"
)
PATCH_CALL_RE = re.compile(r"(?<![\w.])(?:mock\.|unittest\.mock\.)?patch\s*\(\s*(['\"])([^'\"\n]+)\1")

RESOLUTION_SUFFIXES: tuple[str, ...] = (
    "",
    ".ts",
    ".tsx",
    ".js",
    ".jsx",
    ".mjs",
    ".cjs",
    ".json",
    "/index.ts",
    "/index.tsx",
    "/index.js",
)

_SCRIPT_EXTENSIONS = (".js", ".mjs", ".cjs", ".jsx")
_REMOVABLE_PREFIX_RE = re.compile(r"^[ \t]*(?:await\s+|@)?$")


@dataclass
class MockPassResult:
    """Outcome of the mock legality pass."""

    code: str
    removed: list[str] = field(default_factory=list)
    """Mocked paths whose statements were deleted."""

    kept_illegal: list[str] = field(default_factory=list)
    """Illegal paths left in place because removing them would break the code."""


class MockPathChecker:
    """Decides whether a mocked module path refers to something real.

    Args:
        project_root: Root of the project under test.
        test_directory: Directory the generated test lives in.
        valid_files: Project-relative files read for this batch.
    """

    def __init__(self, project_root: Path, test_directory: Path, valid_files: Iterable[str]) -> None:
        self._root = project_root.resolve()
        self._test_dir = test_directory.resolve()
        self._valid = {_normalise(f) for f in valid_files}

    def is_legal(self, path: str) -> bool:
        """JS module specifier check (``jest.mock``/``vi.mock``)."""
        if not path.startswith((".", "/")):
            return True

        base = Path(path) if path.startswith("/") else self._test_dir / path
        bases = [base]
        # ESM specifiers name the emitted ``.js`` file, not the source.
        if base.suffix in _SCRIPT_EXTENSIONS:
            bases.append(base.with_suffix(""))

        for candidate_base in bases:
            for suffix in RESOLUTION_SUFFIXES:
                candidate = Path(f"{candidate_base}{suffix}")
                if self._relative(candidate) in self._valid or candidate.is_file():
                    return True
        return False

    def is_legal_python(self, target: str) -> bool:
        """``mock.patch`` target check: the module part must exist locally, or be external."""
        parts = [p for p in target.split(".") if p]
        if not parts:
            return False
        if not self._is_local_top_level(parts[0]):
            return True

        for length in (len(parts) - 1, len(parts)):
            if length < 1:
                continue
            module_path = "/".join(parts[:length])
            for base in (self._root, self._root / "src"):
                candidates = (
                    base / f"{module_path}.py",
                    base / module_path / "__init__.py",
                )
                for candidate in candidates:
                    if self._relative(candidate) in self._valid or candidate.is_file():
                        return True
                if (base / module_path).is_dir():
                    return True
        return False

    def _is_local_top_level(self, name: str) -> bool:
        return any(
            (base / f"{name}.py").is_file() or (base / name).is_dir()
            for base in (self._root, self._root / "src")
        )

    def _relative(self, path: Path) -> str:
        try:
            relative = path.resolve().relative_to(self._root)
        except ValueError:
            return ""
        return relative.as_posix()


def check_mocks(code: str, manifest: TestEnvManifest, checker: MockPathChecker) -> MockPassResult:
    """Delete every mock statement whose path *checker* rejects."""
    if manifest.is_python:
        pattern, is_legal = PATCH_CALL_RE, checker.is_legal_python
    else:
        pattern, is_legal = MOCK_CALL_RE, checker.is_legal

    result = MockPassResult(code=code)
    # Work from the end so earlier offsets stay valid.
    for match in reversed(list(pattern.finditer(code))):
        path = match.group(2)
        if is_legal(path):
            continue

        span = _statement_span(result.code, match.start(), match.end())
        if span is None:
            logger.warning("Mock of %s is illegal but cannot be removed safely", path)
            result.kept_illegal.insert(0, path)
            continue

        start, end = span
        logger.info("Removing mock of non-existent module %s", path)
        result.code = result.code[:start] + result.code[end:]
        result.removed.insert(0, path)
    return result


def _statement_span(code: str, call_start: int, match_end: int) -> tuple[int, int] | None:
    """Offsets covering the mock call from its line start through its close.

    Returns ``None`` when the call is part of a larger expression (an
    assignment or a ``with`` statement).
    """
    line_start = code.rfind("\n", 0, call_start) + 1
    if not _REMOVABLE_PREFIX_RE.match(code[line_start:call_start]):
        return None

    open_paren = code.find("(", call_start, match_end)
    close_paren = find_matching(code, open_paren, "(", ")") if open_paren != -1 else None
    if close_paren is None:
        return None

    end = close_paren + 1
    # Chained calls such as ``patch("x").start()``.
    while True:
        chained = re.match(r"\s*\.\s*\w+\s*\(", code[end:])
        if not chained:
            break
        chain_close = find_matching(code, end + chained.end() - 1, "(", ")")
        if chain_close is None:
            break
        end = chain_close + 1

    if code.startswith(";", end):
        end += 1
    newline = code.find("\n", end)
    rest = code[end:] if newline == -1 else code[end:newline]
    if rest.strip():
        return None
    return line_start, len(code) if newline == -1 else newline + 1


def _normalise(file: str) -> str:
    return PurePosixPath(file.replace("\\", "/")).as_posix().removeprefix("./")
