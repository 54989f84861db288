"""Build repair loop, modelled as an explicit state machine.

::

    START -> BUILD_CHECK -> EXECUTE
                         -> ABORT             (any error in project code)
                         -> REPAIR -> BUILD_CHECK -> EXECUTE | ABORT

At most one fix request is made per run.  After it the file is executed
whatever the second check says, unless that check blames project code.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from shadowtest.agents.debuggers.build_check import DEFAULT_BUILD_TIMEOUT, check_build
from shadowtest.llm.engine import LLMError
from shadowtest.llm.prompts.fix import BuildFixTemplate, FixContext
from shadowtest.llm.responses import parse_fix
from shadowtest.utils.cancellation import check_cancelled

if TYPE_CHECKING:
    from pathlib import Path

    from shadowtest.llm.engine import LLMEngine
    from shadowtest.models.manifest import TestEnvManifest
    from shadowtest.models.result import BuildCheckResult, BuildError
    from shadowtest.utils.cancellation import CancellationToken

logger = logging.getLogger(__name__)

MAX_FIX_REQUESTS = 1

type BuildChecker = Callable[[Path], Awaitable[BuildCheckResult]]


class RepairState(Enum):
    """States of the build repair loop."""

    START = "start"
    BUILD_CHECK = "build_check"
    REPAIR = "repair"
    EXECUTE = "execute"
    ABORT = "abort"


@dataclass
class RepairOutcome:
    """Where the loop ended and what the last build check reported."""

    state: RepairState
    """``EXECUTE`` or ``ABORT``."""

    errors: list[BuildError] | None = None
    """Diagnostics from the last check; ``None`` when the check was skipped."""

    fix_requests: int = 0
    repaired: bool = False
    """``True`` when a fix was written to the test file."""

    history: list[RepairState] = field(default_factory=list)

    @property
    def aborted(self) -> bool:
        return self.state == RepairState.ABORT


class BuildRepairLoop:
    """Drives one generated test file from build check to an execute/abort decision.

    Args:
        llm_engine: Engine used for the single fix request.
        project_root: Root of the project under test.
        manifest: The project's test environment.
        build_timeout: Compiler timeout in seconds.
        cancel: Optional cancellation token.
        checker: Replacement for the ``tsc`` check, called with the test file.
    """

    def __init__(
        self,
        llm_engine: LLMEngine,
        project_root: Path,
        manifest: TestEnvManifest,
        *,
        build_timeout: float = DEFAULT_BUILD_TIMEOUT,
        cancel: CancellationToken | None = None,
        checker: BuildChecker | None = None,
    ) -> None:
        self._llm = llm_engine
        self._root = project_root
        self._manifest = manifest
        self._timeout = build_timeout
        self._cancel = cancel
        self._checker = checker or self._check_with_tsc
        self._template = BuildFixTemplate()

    async def run(self, test_file: Path) -> RepairOutcome:
        outcome = RepairOutcome(state=RepairState.START)
        state = RepairState.BUILD_CHECK
        check: BuildCheckResult | None = None

        while state not in {RepairState.EXECUTE, RepairState.ABORT}:
            outcome.history.append(state)
            match state:
                case RepairState.BUILD_CHECK:
                    check = await self._checker(test_file)
                    state = self._after_check(check, outcome.fix_requests)
                case RepairState.REPAIR:
                    assert check is not None
                    outcome.fix_requests += 1
                    outcome.repaired = await self._request_fix(test_file, check.generated_errors)
                    state = RepairState.BUILD_CHECK if outcome.repaired else RepairState.EXECUTE
                case _:
                    state = RepairState.BUILD_CHECK

        outcome.history.append(state)
        outcome.state = state
        if check is not None and not check.skipped:
            outcome.errors = list(check.errors)
        return outcome

    @staticmethod
    def _after_check(check: BuildCheckResult, fix_requests: int) -> RepairState:
        if check.skipped or not check.has_errors:
            return RepairState.EXECUTE
        if check.user_errors:
            logger.warning(
                "Project code does not compile (%d error(s)); skipping test execution",
                len(check.user_errors),
            )
            return RepairState.ABORT
        if fix_requests >= MAX_FIX_REQUESTS:
            logger.info("Build errors remain after repair; executing anyway")
            return RepairState.EXECUTE
        return RepairState.REPAIR

    async def _request_fix(self, test_file: Path, errors: list[BuildError]) -> bool:
        """Ask for one fix and overwrite *test_file* with it."""
        check_cancelled(self._cancel, "build repair")
        code = test_file.read_text(encoding="utf-8")
        context = FixContext(
            code=code,
            manifest=self._manifest,
            errors=[f"{e.describe()} ({e.code})" if e.code else e.describe() for e in errors],
            file_path=test_file.name,
        )
        logger.info("Requesting a fix for %d build error(s)", len(errors))
        try:
            response = await self._llm.generate(self._template.render(context).to_request())
            fixed = parse_fix(response.text).fixed_code
        except LLMError as exc:
            logger.warning("Build repair failed: %s", exc)
            return False

        test_file.write_text(fixed, encoding="utf-8")
        return True

    async def _check_with_tsc(self, test_file: Path) -> BuildCheckResult:
        return await check_build(
            self._root,
            test_file,
            self._root / self._manifest.test_directory,
            timeout=self._timeout,
            cancel=self._cancel,
        )
