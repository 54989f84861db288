"""Async child-process helper shared by the installer, compiler check and test executor."""

from __future__ import annotations

import asyncio
import logging
import os
import shlex
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = logging.getLogger(__name__)

_CHUNK = 64 * 1024


@dataclass
class SubprocessResult:
    returncode: int
    stdout: str
    stderr: str
    success: bool
    timed_out: bool = False
    duration_ms: float = 0.0

    @property
    def combined_output(self) -> str:
        return "\n".join(part for part in (self.stdout, self.stderr) if part)


class SubprocessError(Exception):
    """The command could not be started, or exited non-zero under ``check=True``."""

    def __init__(self, message: str, result: SubprocessResult) -> None:
        super().__init__(message)
        self.result = result


def split_command(command: str) -> list[str]:
    """Turn a manifest command such as ``npx jest --ci`` into argv."""
    return shlex.split(command, posix=os.name != "nt")


def _launch_failure(message: str, exc: OSError) -> SubprocessError:
    return SubprocessError(
        message, SubprocessResult(returncode=-1, stdout="", stderr=str(exc), success=False)
    )


async def _drain(stream: asyncio.StreamReader | None, sink: bytearray) -> None:
    if stream is None:
        return
    while chunk := await stream.read(_CHUNK):
        sink.extend(chunk)


async def _communicate(
    process: asyncio.subprocess.Process, timeout: float
) -> tuple[bytes, bytes, bool]:
    """Collect output as it arrives; on timeout, kill and keep what was read."""
    out, err = bytearray(), bytearray()
    try:
        await asyncio.wait_for(
            asyncio.gather(_drain(process.stdout, out), _drain(process.stderr, err), process.wait()),
            timeout=timeout,
        )
    except TimeoutError:
        logger.warning("Killing pid %s after %gs", process.pid, timeout)
        try:
            process.kill()
        except ProcessLookupError:
            pass
        await process.wait()
        if err and not err.endswith(b"\n"):
            err.extend(b"\n")
        err.extend(f"Process timed out after {timeout:g}s and was killed".encode())
        return bytes(out), bytes(err), True
    return bytes(out), bytes(err), False


async def run_subprocess(
    command: Sequence[str],
    *,
    cwd: Path | None = None,
    timeout: float = 120.0,
    env: dict[str, str] | None = None,
    check: bool = False,
) -> SubprocessResult:
    """Run *command* in *cwd* and capture its output.

    *env* entries are layered over the current environment.  A process that
    outlives *timeout* seconds is killed and comes back with
    ``timed_out=True`` and ``success=False``, carrying whatever it printed first.

    Raises:
        ValueError: Empty *command*, non-positive *timeout* or missing *cwd*.
        SubprocessError: The executable could not be started, or *check* is
            set and the command did not succeed.
    """
    if not command:
        raise ValueError("Command cannot be empty")
    if timeout <= 0:
        raise ValueError(f"Timeout must be positive, got {timeout}")
    work_dir = cwd.resolve() if cwd else Path.cwd()
    if not work_dir.exists():
        raise ValueError(f"Working directory does not exist: {work_dir}")

    argv = [str(part) for part in command]
    logger.debug("$ %s  (cwd=%s, timeout=%gs)", shlex.join(argv), work_dir, timeout)

    started = time.perf_counter()
    try:
        process = await asyncio.create_subprocess_exec(
            *argv,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=work_dir,
            env={**os.environ, **env} if env else None,
        )
    except FileNotFoundError as exc:
        logger.error("Command not found: %s", argv[0])
        raise _launch_failure(f"Command not found: {argv[0]}", exc) from exc
    except OSError as exc:
        logger.error("Could not launch %s: %s", argv[0], exc)
        raise _launch_failure(f"Subprocess execution failed: {exc}", exc) from exc

    out, err, timed_out = await _communicate(process, timeout)
    elapsed_ms = (time.perf_counter() - started) * 1000

    code = process.returncode
    if code is None or (timed_out and code == 0):
        code = -1
    result = SubprocessResult(
        returncode=code,
        stdout=out.decode("utf-8", errors="replace"),
        stderr=err.decode("utf-8", errors="replace"),
        success=code == 0 and not timed_out,
        timed_out=timed_out,
        duration_ms=elapsed_ms,
    )
    logger.debug("%s exited %d in %.0fms", argv[0], code, elapsed_ms)

    if check and not result.success:
        raise SubprocessError(f"Command failed with exit code {code}: {shlex.join(argv)}", result)
    return result
