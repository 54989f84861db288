"""Abstract base class for test-runner adapters."""

from __future__ import annotations

import json
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from shadowtest.models.result import RunOutcome


@dataclass
class ValidationResult:
    """Result of validating generated test code."""

    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


class RunnerAdapter(ABC):
    """Knows how to ask one test runner for a structured summary and read it.

    Adapters never launch processes themselves; the executor owns the
    subprocess and hands the captured output to :meth:`parse_output`.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Runner identifier (e.g. ``'jest'``, ``'pytest'``)."""

    @abstractmethod
    def matches(self, argv: list[str]) -> bool:
        """Return ``True`` if *argv* invokes this runner."""

    @abstractmethod
    def structured_flags(self) -> list[str]:
        """Flags that make the runner print a machine-readable summary."""

    @abstractmethod
    def parse_output(self, stdout: str, raw_output: str) -> RunOutcome | None:
        """Extract counts from the runner's output, or ``None`` if it has none."""

    def build_command(self, argv: list[str], test_file: str) -> list[str]:
        """Append the structured-summary flags (once) and the test file."""
        extra = [flag for flag in self.structured_flags() if flag not in argv]
        if _is_package_script(argv) and "--" not in argv:
            return [*argv, "--", *extra, test_file]
        return [*argv, *extra, test_file]


def _is_package_script(argv: list[str]) -> bool:
    """``npm test`` style invocations need ``--`` before runner arguments."""
    return len(argv) >= 2 and argv[0] in {"npm", "pnpm", "yarn"} and argv[1] in {"test", "run", "t"}


def command_tokens(argv: list[str]) -> set[str]:
    """Basenames of every argv token, for runner matching."""
    return {token.rsplit("/", 1)[-1] for token in argv}


def extract_json_object(text: str) -> dict[str, object] | None:
    """Find and parse the outermost JSON object in *text*.

    Runners may emit non-JSON warnings before or after the JSON body.
    """
    start = text.find("{")
    if start == -1:
        return None

    end = text.rfind("}")
    if end == -1 or end < start:
        return None

    try:
        obj = json.loads(text[start : end + 1])
    except json.JSONDecodeError:
        return None

    if isinstance(obj, dict):
        return obj
    return None


def to_float(value: object) -> float:
    """Coerce *value* to ``float``, defaulting to ``0.0``."""
    try:
        return float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 0.0


_ANSI_RE = re.compile(r"\x1b\[[0-9;]*m")


def strip_ansi(text: str) -> str:
    return _ANSI_RE.sub("", text)
