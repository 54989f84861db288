"""Build-error checker — type-check the generated test file with ``tsc``.

The project's own ``tsconfig.json`` is extended by a throwaway config that
compiles only the generated file, so the diagnostics cover that file and
whatever it pulls in from the project.  Diagnostics pointing outside the
generated-test directory are user-code errors: the project itself does not
compile, and no test rewrite can fix that.
"""

from __future__ import annotations

import json
import logging
import os
import re
from typing import TYPE_CHECKING

from shadowtest.models.result import BuildCheckResult, BuildError
from shadowtest.utils.cancellation import check_cancelled
from shadowtest.utils.subprocess_runner import SubprocessError, run_subprocess

if TYPE_CHECKING:
    from pathlib import Path

    from shadowtest.utils.cancellation import CancellationToken

logger = logging.getLogger(__name__)

DEFAULT_BUILD_TIMEOUT = 60.0
TEMP_TSCONFIG = "tsconfig.shadowtest.json"

_TS_EXTENSIONS = (".ts", ".tsx", ".mts", ".cts")

# src/a.ts(12,5): error TS2304: Cannot find name 'x'.
_PAREN_DIAGNOSTIC_RE = re.compile(
    r"^(?P<file>[^\s(][^(\n]*?)\((?P<line>\d+),(?P<col>\d+)\):\s*error\s+(?P<code>TS\d+):\s*(?P<msg>.*)$",
    re.MULTILINE,
)
# src/a.ts:12:5 - error TS2304: Cannot find name 'x'.
_COLON_DIAGNOSTIC_RE = re.compile(
    r"^(?P<file>[^\s:][^:\n]*?):(?P<line>\d+):(?P<col>\d+)\s+-\s+error\s+(?P<code>TS\d+):\s*(?P<msg>.*)$",
    re.MULTILINE,
)


async def check_build(
    project_root: Path,
    test_file_path: Path,
    test_directory: Path,
    *,
    timeout: float = DEFAULT_BUILD_TIMEOUT,
    cancel: CancellationToken | None = None,
) -> BuildCheckResult:
    """Compile *test_file_path* against the project's ``tsconfig.json``.

    Skipped (``skipped=True``, no errors) when the project has no
    ``tsconfig.json`` or the test file is not TypeScript.  A compiler that
    cannot be launched or times out is also reported as skipped.
    """
    tsconfig = project_root / "tsconfig.json"
    if not tsconfig.is_file() or not test_file_path.name.endswith(_TS_EXTENSIONS):
        logger.debug("Build check skipped for %s", test_file_path)
        return BuildCheckResult(skipped=True)

    temp_config = project_root / TEMP_TSCONFIG
    relative_test = os.path.relpath(test_file_path, project_root).replace(os.sep, "/")
    temp_config.write_text(
        json.dumps(
            {
                "extends": "./tsconfig.json",
                "compilerOptions": {"noEmit": True},
                "files": [relative_test],
                "include": [],
            },
            indent=2,
        ),
        encoding="utf-8",
    )

    try:
        check_cancelled(cancel, "build check")
        logger.info("Type-checking %s", relative_test)
        result = await run_subprocess(
            ["npx", "tsc", "-p", TEMP_TSCONFIG, "--pretty", "false"],
            cwd=project_root,
            timeout=timeout,
        )
    except SubprocessError as exc:
        logger.warning("Compiler could not be launched: %s", exc)
        return BuildCheckResult(skipped=True, raw_output=str(exc))
    finally:
        temp_config.unlink(missing_ok=True)

    if result.timed_out:
        logger.warning("Type-check timed out after %s seconds", timeout)
        return BuildCheckResult(skipped=True, raw_output=result.combined_output)

    errors = parse_tsc_output(result.combined_output, project_root, test_directory)
    logger.info(
        "Type-check found %d error(s), %d in project code",
        len(errors),
        sum(1 for e in errors if e.is_user_code),
    )
    return BuildCheckResult(has_errors=bool(errors), errors=errors, raw_output=result.combined_output)


def parse_tsc_output(output: str, project_root: Path, test_directory: Path) -> list[BuildError]:
    """Extract diagnostics in either ``tsc`` output format, deduplicated.

    Deduplication is by ``(file, line, message)`` and keeps first-seen order.
    """
    matches = sorted(
        [*_PAREN_DIAGNOSTIC_RE.finditer(output), *_COLON_DIAGNOSTIC_RE.finditer(output)],
        key=lambda m: m.start(),
    )
    seen: set[tuple[str, int, str]] = set()
    errors: list[BuildError] = []
    for match in matches:
        file = match.group("file").strip()
        line = int(match.group("line"))
        message = match.group("msg").strip()
        key = (file, line, message)
        if key in seen:
            continue
        seen.add(key)
        errors.append(
            BuildError(
                file=file,
                line=line,
                column=int(match.group("col")),
                message=message,
                code=match.group("code"),
                is_user_code=not _is_within(project_root / file, test_directory),
            )
        )
    return errors


def _is_within(path: Path, directory: Path) -> bool:
    try:
        path.resolve().relative_to(directory.resolve())
    except ValueError:
        return False
    return True
