"""Per-target outputs, build diagnostics, and the terminal result of a run."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


@dataclass(frozen=True)
class GeneratedTestBlock:
    """Test code produced for one target."""

    function_name: str
    file_name: str
    test_code: str


@dataclass(frozen=True)
class GenerationFailure:
    """A target for which no usable test could be produced."""

    function_name: str
    file_name: str
    reason: str

    def to_dict(self) -> dict[str, str]:
        return {
            "function_name": self.function_name,
            "file_name": self.file_name,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class BuildError:
    """One compiler diagnostic."""

    file: str
    line: int
    column: int
    message: str
    code: str = ""
    """Compiler error code, e.g. ``"TS2304"``."""

    is_user_code: bool = False
    """``True`` when the diagnostic points outside the generated-test directory."""

    def to_dict(self) -> dict[str, object]:
        return {
            "file": self.file,
            "line": self.line,
            "column": self.column,
            "message": self.message,
            "code": self.code,
            "is_user_code": self.is_user_code,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BuildError:
        return cls(
            file=str(data.get("file", "")),
            line=int(data.get("line", 0)),
            column=int(data.get("column", 0)),
            message=str(data.get("message", "")),
            code=str(data.get("code", "")),
            is_user_code=bool(data.get("is_user_code", False)),
        )

    def describe(self) -> str:
        return f"{self.file}:{self.line}: {self.message}"


@dataclass
class BuildCheckResult:
    """Outcome of one compiler pass over the generated test file."""

    has_errors: bool = False
    errors: list[BuildError] = field(default_factory=list)
    skipped: bool = False
    """``True`` when the project has nothing to type-check with."""

    raw_output: str = ""

    @property
    def user_errors(self) -> list[BuildError]:
        return [e for e in self.errors if e.is_user_code]

    @property
    def generated_errors(self) -> list[BuildError]:
        return [e for e in self.errors if not e.is_user_code]


class CaseStatus(Enum):
    """Outcome of a single test case."""

    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"
    ERROR = "error"


@dataclass
class CaseResult:
    """Result of a single test case execution."""

    name: str
    status: CaseStatus
    duration_ms: float = 0.0
    failure_message: str = ""
    file_path: str = ""

    def to_dict(self) -> dict[str, object]:
        return {
            "name": self.name,
            "status": self.status.value,
            "duration_ms": self.duration_ms,
            "failure_message": self.failure_message,
            "file_path": self.file_path,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CaseResult:
        try:
            status = CaseStatus(str(data.get("status", "error")))
        except ValueError:
            status = CaseStatus.ERROR
        return cls(
            name=str(data.get("name", "")),
            status=status,
            duration_ms=float(data.get("duration_ms", 0.0)),
            failure_message=str(data.get("failure_message", "")),
            file_path=str(data.get("file_path", "")),
        )


@dataclass
class RunOutcome:
    """Pass/fail counts extracted from one test-runner invocation."""

    passed: int = 0
    failed: int = 0
    output: str = ""
    """Captured runner output (or the launch error)."""

    cases: list[CaseResult] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    """Error lines captured from stderr when no structured output was found."""

    @property
    def total(self) -> int:
        return self.passed + self.failed

    def to_dict(self) -> dict[str, object]:
        return {
            "passed": self.passed,
            "failed": self.failed,
            "output": self.output,
            "cases": [c.to_dict() for c in self.cases],
            "errors": list(self.errors),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RunOutcome:
        return cls(
            passed=int(data.get("passed", 0)),
            failed=int(data.get("failed", 0)),
            output=str(data.get("output", "")),
            cases=[CaseResult.from_dict(c) for c in data.get("cases", []) if isinstance(c, dict)],
            errors=[str(e) for e in data.get("errors", [])],
        )


@dataclass
class TestGenerationResult:
    """Terminal output of one pipeline run, persisted to ``.shadow/test-last.json``."""

    __test__ = False

    tests_generated: int = 0
    test_file_path: str = ""
    build_errors: list[BuildError] | None = None
    build_errors_skipped_tests: bool | None = None
    run_result: RunOutcome | None = None
    removed_mocks: list[str] = field(default_factory=list)
    failures: list[GenerationFailure] = field(default_factory=list)
    output: str = ""
    """Human-readable summary of what happened."""

    @property
    def passed(self) -> int:
        return self.run_result.passed if self.run_result else 0

    @property
    def failed(self) -> int:
        return self.run_result.failed if self.run_result else 0

    @property
    def aborted(self) -> bool:
        return bool(self.build_errors_skipped_tests)

    def to_dict(self) -> dict[str, object]:
        return {
            "tests_generated": self.tests_generated,
            "test_file_path": self.test_file_path,
            "build_errors": (
                [e.to_dict() for e in self.build_errors] if self.build_errors is not None else None
            ),
            "build_errors_skipped_tests": self.build_errors_skipped_tests,
            "run_result": self.run_result.to_dict() if self.run_result else None,
            "removed_mocks": list(self.removed_mocks),
            "failures": [f.to_dict() for f in self.failures],
            "output": self.output,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TestGenerationResult:
        raw_errors = data.get("build_errors")
        raw_run = data.get("run_result")
        skipped = data.get("build_errors_skipped_tests")
        return cls(
            tests_generated=int(data.get("tests_generated", 0)),
            test_file_path=str(data.get("test_file_path", "")),
            build_errors=(
                [BuildError.from_dict(e) for e in raw_errors if isinstance(e, dict)]
                if isinstance(raw_errors, list)
                else None
            ),
            build_errors_skipped_tests=bool(skipped) if skipped is not None else None,
            run_result=RunOutcome.from_dict(raw_run) if isinstance(raw_run, dict) else None,
            removed_mocks=[str(m) for m in data.get("removed_mocks", [])],
            failures=[
                GenerationFailure(
                    function_name=str(f.get("function_name", "")),
                    file_name=str(f.get("file_name", "")),
                    reason=str(f.get("reason", "")),
                )
                for f in data.get("failures", [])
                if isinstance(f, dict)
            ],
            output=str(data.get("output", "")),
        )
