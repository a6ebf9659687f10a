"""Subprocess execution with hard timeouts.

Every tool that shells out goes through :class:`ProcessRunner`. The runner never
raises for process-level problems: spawn failures, timeouts and stream errors are
reported as negative exit codes on the returned :class:`ProcessResult`, so tool
handlers decide how to present them.
"""

from __future__ import annotations

import logging
import subprocess
from collections.abc import Sequence
from contextlib import suppress
from dataclasses import dataclass
from os import PathLike
from pathlib import Path

import anyio
from anyio.abc import ByteReceiveStream

from code_assistant_mcp.config import DEFAULT_TIMEOUT_MS

logger = logging.getLogger(__name__)

SPAWN_FAILED = -1
TIMED_OUT = -2
SPAWN_ERROR = -3


@dataclass(frozen=True)
class ProcessResult:
    """Outcome of a single subprocess invocation.

    Attributes:
        code: Exit code of the process, or one of ``SPAWN_FAILED``,
            ``TIMED_OUT`` and ``SPAWN_ERROR``.
        stdout: Captured standard output (partial on timeout).
        stderr: Captured standard error (partial on timeout).
        error: Runner-level failure description, ``None`` when the process ran.
        pid: Process identifier, when the process was started.

    """

    code: int
    stdout: str = ""
    stderr: str = ""
    error: str | None = None
    pid: int | None = None

    @property
    def ok(self) -> bool:
        """Whether the process ran and exited with status 0."""
        return self.code == 0

    @property
    def timed_out(self) -> bool:
        """Whether the runner killed the process at its deadline."""
        return self.code == TIMED_OUT

    @property
    def failed_to_start(self) -> bool:
        """Whether the command could not be spawned at all."""
        return self.code in (SPAWN_FAILED, SPAWN_ERROR)

    def failure_message(self) -> str:
        """Best human-readable explanation for a failed run."""
        return (
            self.error or self.stderr.strip() or self.stdout.strip() or "unknown error"
        )


async def _drain(
    stream: ByteReceiveStream | None, chunks: list[bytes], errors: list[BaseException]
) -> None:
    if stream is None:
        return
    try:
        async for chunk in stream:
            chunks.append(chunk)
    except (OSError, anyio.BrokenResourceError) as exc:
        errors.append(exc)


def _decode(chunks: list[bytes]) -> str:
    return b"".join(chunks).decode("utf-8", errors="replace")


class ProcessRunner:
    """Spawn external commands inside the sandbox root with a hard deadline."""

    def __init__(
        self, default_cwd: Path, default_timeout_ms: int = DEFAULT_TIMEOUT_MS
    ) -> None:
        """Create a runner whose commands default to ``default_cwd``."""
        self.default_cwd = default_cwd
        self.default_timeout_ms = default_timeout_ms

    async def run(
        self,
        command: str,
        args: Sequence[str] = (),
        *,
        cwd: str | PathLike[str] | None = None,
        timeout_ms: int | None = None,
    ) -> ProcessResult:
        """Run ``command`` with ``args`` and capture its output.

        Args:
            command: Executable name or path.
            args: Arguments passed verbatim, no shell involved.
            cwd: Working directory, defaults to the sandbox root.
            timeout_ms: Deadline in milliseconds, defaults to the runner's.

        Returns:
            ProcessResult describing the single way the run ended.

        """
        timeout_ms = self.default_timeout_ms if timeout_ms is None else timeout_ms
        workdir = self.default_cwd if cwd is None else Path(cwd)
        argv = [command, *args]

        try:
            # stdin carries protocol frames, children must never inherit it
            process = await anyio.open_process(
                argv, cwd=workdir, stdin=subprocess.DEVNULL
            )
        except (
            FileNotFoundError,
            NotADirectoryError,
            ValueError,
            TypeError,
        ) as exc:
            # embedded NUL bytes and non-string arguments end up here too
            logger.warning("Spawn failed for %s: %s", command, exc)
            message = f"Spawn failed: {exc}"
            return ProcessResult(SPAWN_FAILED, stderr=message, error=message)
        except OSError as exc:
            logger.warning("Spawn error for %s: %s", command, exc)
            message = f"Spawn error: {exc}"
            return ProcessResult(SPAWN_ERROR, stderr=message, error=message)

        stdout_chunks: list[bytes] = []
        stderr_chunks: list[bytes] = []
        stream_errors: list[BaseException] = []
        returncode: int | None = None
        try:
            with anyio.move_on_after(timeout_ms / 1000) as deadline:
                async with anyio.create_task_group() as task_group:
                    task_group.start_soon(
                        _drain, process.stdout, stdout_chunks, stream_errors
                    )
                    task_group.start_soon(
                        _drain, process.stderr, stderr_chunks, stream_errors
                    )
                returncode = await process.wait()
        finally:
            if process.returncode is None:
                with suppress(ProcessLookupError):
                    process.kill()
            with anyio.CancelScope(shield=True):
                await process.aclose()

        stdout = _decode(stdout_chunks)
        stderr = _decode(stderr_chunks)
        if deadline.cancelled_caught:
            logger.warning("Command %s timed out after %sms", command, timeout_ms)
            return ProcessResult(
                TIMED_OUT,
                stdout,
                stderr,
                error=f"Timed out after {timeout_ms}ms",
                pid=process.pid,
            )
        if stream_errors:
            logger.warning("Stream error for %s: %s", command, stream_errors[0])
            return ProcessResult(
                SPAWN_ERROR,
                stdout,
                stderr,
                error=f"Spawn error: {stream_errors[0]}",
                pid=process.pid,
            )
        return ProcessResult(returncode or 0, stdout, stderr, pid=process.pid)
