"""Path containment for file-accessing tools."""

from __future__ import annotations

import logging
import os
import shutil
import time
from dataclasses import dataclass
from pathlib import Path

import anyio
import anyio.to_thread

from code_assistant_mcp.config import DEFAULT_MAX_READ_BYTES
from code_assistant_mcp.errors import AccessDeniedError, raise_mcp_error

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WriteOutcome:
    """What :meth:`PathSandbox.write_text` did to the target file."""

    path: Path
    existed: bool
    written: bool
    characters: int = 0
    backup_path: Path | None = None


class PathSandbox:
    """Resolve and police paths against a single root directory."""

    def __init__(
        self, root: Path, max_read_bytes: int = DEFAULT_MAX_READ_BYTES
    ) -> None:
        """Create a sandbox around ``root`` (made absolute and symlink-free)."""
        self.root = Path(root).resolve()
        self.max_read_bytes = max_read_bytes

    def resolve(self, path: str | os.PathLike[str]) -> Path:
        """Return the absolute, normalised form of ``path`` relative to the root."""
        return (self.root / Path(path)).resolve()

    def is_allowed(self, path: str | os.PathLike[str]) -> bool:
        """Check whether ``path`` is the root itself or lies below it."""
        return self.resolve(path).is_relative_to(self.root)

    def require(self, path: str | os.PathLike[str]) -> Path:
        """Resolve ``path`` or raise :class:`AccessDeniedError` if it escapes."""
        resolved = self.resolve(path)
        if not self.is_allowed(resolved):
            logger.warning("Denied access to %s (root %s)", path, self.root)
            raise AccessDeniedError(str(path))
        return resolved

    def relative(self, path: str | os.PathLike[str]) -> str:
        """Display form of ``path`` relative to the root when possible."""
        resolved = self.resolve(path)
        if resolved.is_relative_to(self.root):
            return resolved.relative_to(self.root).as_posix()
        return str(resolved)

    async def read_text(
        self, path: str | os.PathLike[str], start: int = 0, end: int | None = None
    ) -> str:
        """Read bytes ``[start, end)`` of a regular file inside the sandbox.

        The range is clamped to the file length and to ``max_read_bytes``, and
        only that range is read from disk.

        Raises:
            AccessDeniedError: If the path escapes the root.
            MCPError: If the target is missing or not a regular file.

        """
        target = anyio.Path(self.require(path))
        if not await target.exists():
            raise_mcp_error("NotFound", f"File not found: {path}", str(path))
        if not await target.is_file():
            raise_mcp_error("NotAFile", f"Not a file: {path}", str(path))

        size = (await target.stat()).st_size
        start = min(max(start, 0), size)
        limit = start + self.max_read_bytes
        stop = min(size, limit if end is None else min(end, limit))
        if stop <= start:
            return ""

        async with await target.open("rb") as handle:
            await handle.seek(start)
            data = await handle.read(stop - start)
        return data.decode("utf-8", errors="replace")

    async def write_text(
        self,
        path: str | os.PathLike[str],
        content: str,
        *,
        overwrite: bool = False,
        backup: bool = True,
    ) -> WriteOutcome:
        """Create or replace a file inside the sandbox.

        An existing file is only replaced when ``overwrite`` is set; with
        ``backup`` it is first copied to ``<name>.backup-<epoch ms>``. The backup
        is not transactional: a crash between copy and write leaves the backup
        next to a partially written original.
        """
        target = self.require(path)
        async_target = anyio.Path(target)
        existed = await async_target.exists()
        if existed and not await async_target.is_file():
            raise_mcp_error("NotAFile", f"Not a file: {path}", str(path))
        if existed and not overwrite:
            return WriteOutcome(path=target, existed=True, written=False)

        backup_path: Path | None = None
        if existed and backup:
            backup_path = target.with_name(
                f"{target.name}.backup-{int(time.time() * 1000)}"
            )
            await anyio.to_thread.run_sync(shutil.copy2, target, backup_path)
            logger.info("Backed up %s to %s", target, backup_path)

        await async_target.parent.mkdir(parents=True, exist_ok=True)
        await async_target.write_text(content, encoding="utf-8")
        return WriteOutcome(
            path=target,
            existed=existed,
            written=True,
            characters=len(content),
            backup_path=backup_path,
        )
