"""Shared helpers for MCP tools."""

from __future__ import annotations

import json
from typing import Any

from code_assistant_mcp.errors import raise_mcp_error
from code_assistant_mcp.process import ProcessResult
from code_assistant_mcp.sandbox import PathSandbox
from code_assistant_mcp_server.context import ToolContext

NOT_A_GIT_REPOSITORY = "Not a git repository."
SNIPPET_LENGTH = 200

# Directories no search or listing should descend into.
IGNORED_DIRECTORIES = (
    ".git",
    "node_modules",
    "dist",
    "build",
    ".venv",
    "venv",
    "__pycache__",
)


def json_text(payload: Any) -> str:
    """Pretty-printed JSON used as the text body of tool results."""
    return json.dumps(payload, indent=2, ensure_ascii=False)


def exclude_globs() -> list[str]:
    """Ripgrep ``--glob`` arguments skipping :data:`IGNORED_DIRECTORIES`."""
    globs: list[str] = []
    for directory in IGNORED_DIRECTORIES:
        globs.extend(["--glob", f"!{directory}"])
    return globs


async def is_git_repository(context: ToolContext) -> bool:
    """Whether the sandbox root is inside a git work tree."""
    check = await context.runner.run(
        "git", ["rev-parse", "--is-inside-work-tree"], timeout_ms=10_000
    )
    return check.ok and "true" in check.stdout.lower()


def ensure_search_succeeded(result: ProcessResult) -> None:
    """Raise an MCP error unless ripgrep ran (exit 0 = matches, 1 = none)."""
    if result.failed_to_start:
        raise_mcp_error(
            "SearchUnavailable",
            "ripgrep (rg) not found. Install it or set RG_CMD to its full path.",
            result.failure_message(),
        )
    if result.code > 1 or result.code < 0:
        raise_mcp_error(
            "SearchError", f"ripgrep failed: {result.failure_message()}", result.code
        )


def parse_vimgrep(
    output: str, sandbox: PathSandbox, max_results: int
) -> list[dict[str, Any]]:
    """Turn ``rg --vimgrep`` lines into match records."""
    matches: list[dict[str, Any]] = []
    for line in output.splitlines():
        if len(matches) >= max_results:
            break
        parts = line.split(":", 3)
        if len(parts) < 4 or not parts[1].isdigit() or not parts[2].isdigit():
            continue
        file_name, line_no, column, text = parts
        matches.append(
            {
                "file": sandbox.relative(file_name),
                "line": int(line_no),
                "col": int(column),
                "text": text[:SNIPPET_LENGTH],
            }
        )
    return matches


def list_lines(output: str) -> list[str]:
    """Non-empty lines of a command's output."""
    return [line for line in output.splitlines() if line.strip()]
