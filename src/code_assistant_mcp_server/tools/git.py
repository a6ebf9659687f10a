"""Git inspection and commit tools.

Every tool first checks that the sandbox root is a work tree and answers with
a plain "Not a git repository." message otherwise.
"""

from __future__ import annotations

import logging
from typing import NoReturn

from pydantic import Field

from code_assistant_mcp.errors import raise_mcp_error
from code_assistant_mcp.process import ProcessResult
from code_assistant_mcp.tools import ToolDefinition, ToolParameters
from code_assistant_mcp_server.context import ToolContext
from code_assistant_mcp_server.tools.common import (
    NOT_A_GIT_REPOSITORY,
    is_git_repository,
    json_text,
    list_lines,
)

logger = logging.getLogger(__name__)

MIN_DIFF_BYTES = 16 * 1024
TRUNCATION_MARKER = "\n\n…[truncated]"
LOG_FORMAT = "%H%x09%h%x09%ad%x09%an%x09%s"


class ChangedFilesParams(ToolParameters):
    """Parameters for git_list_changed_files."""

    include_untracked: bool = True


class DiffParams(ToolParameters):
    """Parameters for git_diff_unstaged."""

    max_bytes: int | None = Field(default=None, ge=1)
    path: str | None = None


class LogParams(ToolParameters):
    """Parameters for git_log."""

    limit: int = Field(default=10, ge=1)
    path: str | None = None
    since: str | None = None


class CommitParams(ToolParameters):
    """Parameters for git_commit."""

    message: str = Field(min_length=1)
    add_all: bool = False
    paths: list[str] = Field(default_factory=list)
    allow_empty: bool = False


def _git_failed(action: str, result: ProcessResult) -> NoReturn:
    raise_mcp_error(
        "GitError", f"{action} failed: {result.failure_message()}", result.code
    )


def parse_porcelain(output: str) -> list[dict[str, str]]:
    """Rows of ``git status --porcelain`` as ``{status, file}`` records."""
    rows = []
    for line in output.splitlines():
        line = line.rstrip()
        if not line:
            continue
        rows.append({"status": line[:2].strip(), "file": line[3:]})
    return rows


def parse_log(output: str) -> list[dict[str, str]]:
    """Commits printed with :data:`LOG_FORMAT`."""
    commits = []
    for line in list_lines(output):
        parts = line.split("\t", 4)
        if len(parts) < 5:
            continue
        commit_hash, short_hash, date, author, subject = parts
        commits.append(
            {
                "hash": commit_hash,
                "shortHash": short_hash,
                "date": date,
                "author": author,
                "subject": subject,
            }
        )
    return commits


def git_list_changed_files_tool(context: ToolContext) -> ToolDefinition:
    """Create the git_list_changed_files tool definition."""

    async def handler(params: ChangedFilesParams) -> str:
        if not await is_git_repository(context):
            return NOT_A_GIT_REPOSITORY
        args = ["status", "--porcelain"]
        if not params.include_untracked:
            args.append("--untracked-files=no")
        result = await context.runner.run("git", args, timeout_ms=20_000)
        if not result.ok:
            _git_failed("git status", result)
        return json_text(parse_porcelain(result.stdout))

    return ToolDefinition(
        name="git_list_changed_files",
        title="List changed files",
        description=(
            "Shows modified/added/deleted/untracked files "
            "(git status --porcelain=v1)."
        ),
        parameters_model=ChangedFilesParams,
        handler=handler,
    )


def git_diff_unstaged_tool(context: ToolContext) -> ToolDefinition:
    """Create the git_diff_unstaged tool definition."""
    limit = context.config.max_read_bytes

    async def handler(params: DiffParams) -> str:
        if not await is_git_repository(context):
            return NOT_A_GIT_REPOSITORY
        requested = limit if params.max_bytes is None else params.max_bytes
        cap = min(limit, max(MIN_DIFF_BYTES, requested))
        args = ["diff", "--unified=3"]
        if params.path:
            target = context.sandbox.require(params.path)
            args.extend(["--", context.sandbox.relative(target)])
        result = await context.runner.run("git", args, timeout_ms=30_000)
        # exit status 1 only signals that differences exist
        if result.code > 1 or result.code < 0:
            _git_failed("git diff", result)
        if len(result.stdout) > cap:
            return result.stdout[:cap] + TRUNCATION_MARKER
        return result.stdout

    return ToolDefinition(
        name="git_diff_unstaged",
        title="Unified diff of unstaged changes",
        description=(
            "Shows working directory changes (git diff --unified=3). "
            "Truncated for safety."
        ),
        parameters_model=DiffParams,
        handler=handler,
    )


def git_log_tool(context: ToolContext) -> ToolDefinition:
    """Create the git_log tool definition."""

    async def handler(params: LogParams) -> str:
        if not await is_git_repository(context):
            return NOT_A_GIT_REPOSITORY
        args = [
            "log",
            "-n",
            str(params.limit),
            f"--pretty=format:{LOG_FORMAT}",
            "--date=iso",
        ]
        if params.since:
            args.append(f"--since={params.since}")
        if params.path:
            target = context.sandbox.require(params.path)
            args.extend(["--", context.sandbox.relative(target)])
        result = await context.runner.run("git", args, timeout_ms=20_000)
        if not result.ok:
            _git_failed("git log", result)
        return json_text(parse_log(result.stdout))

    return ToolDefinition(
        name="git_log",
        title="List recent commits",
        description=(
            "Shows recent commits with hash, shortHash, author, date, and subject."
        ),
        parameters_model=LogParams,
        handler=handler,
    )


def git_commit_tool(context: ToolContext) -> ToolDefinition:
    """Create the git_commit tool definition."""

    async def handler(params: CommitParams) -> str:
        if not await is_git_repository(context):
            return NOT_A_GIT_REPOSITORY
        run = context.runner.run
        if params.add_all:
            staged = await run("git", ["add", "-A"], timeout_ms=15_000)
            if not staged.ok:
                _git_failed("git add -A", staged)
        elif params.paths:
            paths = [
                context.sandbox.relative(context.sandbox.require(path))
                for path in params.paths
            ]
            staged = await run("git", ["add", "--", *paths], timeout_ms=15_000)
            if not staged.ok:
                _git_failed("git add", staged)

        args = ["commit", "-m", params.message]
        if params.allow_empty:
            args.append("--allow-empty")
        result = await run("git", args, timeout_ms=20_000)
        if not result.ok:
            output = f"{result.stdout}\n{result.stderr}".lower()
            if "nothing to commit" in output:
                return "Nothing to commit (working tree clean)."
            _git_failed("git commit", result)

        head = await run("git", ["rev-parse", "HEAD"], timeout_ms=10_000)
        logger.info("Created commit %s", head.stdout.strip())
        return json_text(
            {
                "committed": True,
                "hash": head.stdout.strip(),
                "output": result.stdout.strip(),
            }
        )

    return ToolDefinition(
        name="git_commit",
        title="Create a git commit",
        description=(
            "Stages changes (optionally) and creates a commit with the given message."
        ),
        parameters_model=CommitParams,
        handler=handler,
    )
