"""Repository reading, searching, writing and overview tools."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath
from typing import Any

import anyio
import anyio.to_thread
from pydantic import Field

from code_assistant_mcp.errors import MCPError
from code_assistant_mcp.tools import ToolDefinition, ToolParameters
from code_assistant_mcp_server.context import ToolContext
from code_assistant_mcp_server.tools.common import (
    IGNORED_DIRECTORIES,
    ensure_search_succeeded,
    exclude_globs,
    is_git_repository,
    json_text,
    list_lines,
    parse_vimgrep,
)

logger = logging.getLogger(__name__)

SEARCH_TIMEOUT_MS = 60_000
SOURCE_EXTENSIONS = {".js", ".ts", ".py", ".java", ".go", ".rs"}
IMPORTANT_NAME_PARTS = ("readme", "package.json", "config", "dockerfile")
MAIN_FILE_CANDIDATES = (
    "index.js",
    "index.ts",
    "main.js",
    "main.ts",
    "app.js",
    "app.ts",
    "main.py",
    "__main__.py",
    "app.py",
    "Main.java",
    "Application.java",
    "main.go",
    "cmd/main.go",
    "README.md",
    "README.rst",
    "README.txt",
    "package.json",
    "pyproject.toml",
    "pom.xml",
    "go.mod",
)
# Later markers win.
PROJECT_MARKERS = (
    ("package.json", "nodejs"),
    ("requirements.txt", "python"),
    ("pyproject.toml", "python"),
    ("build.gradle", "java-gradle"),
    ("pom.xml", "java-maven"),
    ("go.mod", "go"),
)
STATS_FILE_LIMIT = 20_000


class RepoFileParams(ToolParameters):
    """Parameters for repo_file."""

    path: str
    start: int = Field(default=0, ge=0)
    end: int | None = Field(default=None, ge=0)


class RepoSearchParams(ToolParameters):
    """Parameters for repo_search."""

    query: str = Field(min_length=1)
    max_results: int = Field(default=50, ge=1)


class RepoWriteFileParams(ToolParameters):
    """Parameters for repo_write_file."""

    path: str
    content: str
    backup: bool = True
    overwrite: bool = False


class SmartContextParams(ToolParameters):
    """Parameters for repo_smart_context."""

    query: str = Field(min_length=1)
    max_files: int = Field(default=5, ge=1)
    include_content: bool = True
    file_types: list[str] = Field(default_factory=list)


class AnalyzeProjectParams(ToolParameters):
    """Parameters for repo_analyze_project."""

    depth: int = Field(default=2, ge=1)
    include_stats: bool = True


@dataclass
class ScoredFile:
    """A candidate file for the smart context selection."""

    path: str
    score: int = 10
    reasons: list[str] = field(default_factory=lambda: ["Contains search term"])


def score_files(
    candidates: list[str], recent: set[str], file_types: list[str]
) -> list[ScoredFile]:
    """Rank files that matched a query; highest score first, ties keep order."""
    wanted = {file_type.lstrip(".") for file_type in file_types}
    scored = []
    for path in candidates:
        entry = ScoredFile(path=path)
        if path in recent:
            entry.score += 5
            entry.reasons.append("Recently modified")
        suffix = PurePosixPath(path).suffix
        if suffix in SOURCE_EXTENSIONS:
            entry.score += 3
            entry.reasons.append("Source code file")
        name = PurePosixPath(path).name.lower()
        if any(part in name for part in IMPORTANT_NAME_PARTS):
            entry.score += 4
            entry.reasons.append("Configuration/documentation file")
        if wanted:
            if suffix.lstrip(".") in wanted:
                entry.score += 2
                entry.reasons.append("Matches requested file type")
            else:
                entry.score -= 5
        scored.append(entry)
    return sorted(scored, key=lambda entry: entry.score, reverse=True)


def _walk(root: Path, max_depth: int | None) -> list[tuple[str, int]]:
    """Files below ``root`` as ``(relative posix path, size)`` pairs."""
    found: list[tuple[str, int]] = []
    for current, directories, files in os.walk(root):
        relative_dir = Path(current).relative_to(root)
        depth = len(relative_dir.parts)
        directories[:] = sorted(d for d in directories if d not in IGNORED_DIRECTORIES)
        if max_depth is not None and depth + 1 >= max_depth:
            directories[:] = []
        for name in sorted(files):
            file_path = Path(current) / name
            try:
                size = file_path.stat().st_size
            except OSError:
                continue
            found.append(((relative_dir / name).as_posix(), size))
            if len(found) >= STATS_FILE_LIMIT:
                return found
    return found


def repo_file_tool(context: ToolContext) -> ToolDefinition:
    """Create the repo_file tool definition."""

    async def handler(params: RepoFileParams) -> str:
        return await context.sandbox.read_text(params.path, params.start, params.end)

    return ToolDefinition(
        name="repo_file",
        title="Read a file from the repo",
        description=(
            "Safely read a file with size caps "
            f"({context.config.max_read_bytes // 1024}KB default window)."
        ),
        parameters_model=RepoFileParams,
        handler=handler,
    )


def repo_search_tool(context: ToolContext) -> ToolDefinition:
    """Create the repo_search tool definition."""

    async def handler(params: RepoSearchParams) -> str:
        args = [
            "--vimgrep",
            "-n",
            "-H",
            "--max-filesize",
            "1M",
            *exclude_globs(),
            "--glob",
            "!**/*.min.*",
            "-e",
            params.query,
            context.config.search_root,
        ]
        result = await context.runner.run(
            context.config.search_command, args, timeout_ms=SEARCH_TIMEOUT_MS
        )
        ensure_search_succeeded(result)
        return json_text(
            parse_vimgrep(result.stdout, context.sandbox, params.max_results)
        )

    return ToolDefinition(
        name="repo_search",
        title="Search the repo with ripgrep",
        description="Returns file, line, column, and a short match snippet.",
        parameters_model=RepoSearchParams,
        handler=handler,
    )


def repo_write_file_tool(context: ToolContext) -> ToolDefinition:
    """Create the repo_write_file tool definition."""

    async def handler(params: RepoWriteFileParams) -> str:
        outcome = await context.sandbox.write_text(
            params.path,
            params.content,
            overwrite=params.overwrite,
            backup=params.backup,
        )
        if not outcome.written:
            return (
                f"File {params.path} already exists. "
                "Use overwrite: true to replace it."
            )
        message = (
            f"Successfully wrote {outcome.characters} characters to {params.path}"
        )
        if outcome.backup_path is not None:
            backup = context.sandbox.relative(outcome.backup_path)
            message += f" (backup created: {backup})"
        return message

    return ToolDefinition(
        name="repo_write_file",
        title="Write file to repository",
        description="Create or update files in the repo with backup option",
        parameters_model=RepoWriteFileParams,
        handler=handler,
    )


def repo_smart_context_tool(context: ToolContext) -> ToolDefinition:
    """Create the repo_smart_context tool definition."""

    async def matching_files(query: str, limit: int) -> list[str]:
        args = [
            "--files-with-matches",
            "--max-filesize",
            "1M",
            *exclude_globs(),
            "-e",
            query,
            ".",
        ]
        result = await context.runner.run(
            context.config.search_command, args, timeout_ms=30_000
        )
        if result.code not in (0, 1):
            logger.info("Smart context search failed: %s", result.failure_message())
            return []
        return [context.sandbox.relative(f) for f in list_lines(result.stdout)[:limit]]

    async def recent_files() -> set[str]:
        result = await context.runner.run(
            "git", ["diff", "--name-only", "HEAD~10..HEAD"], timeout_ms=10_000
        )
        return set(list_lines(result.stdout)) if result.ok else set()

    async def handler(params: SmartContextParams) -> str:
        candidates = await matching_files(params.query, params.max_files * 3)
        ranked = score_files(candidates, await recent_files(), params.file_types)
        files: list[dict[str, Any]] = []
        for entry in ranked[: params.max_files]:
            info: dict[str, Any] = {
                "path": entry.path,
                "score": entry.score,
                "reasons": entry.reasons,
                "size": 0,
            }
            if params.include_content:
                try:
                    content = await context.sandbox.read_text(entry.path)
                except MCPError as error:
                    info["error"] = error.message
                else:
                    info["content"] = content
                    info["size"] = len(content)
            files.append(info)
        return json_text(
            {"query": params.query, "totalFiles": len(files), "files": files}
        )

    return ToolDefinition(
        name="repo_smart_context",
        title="Get relevant files for query",
        description=(
            "Intelligently select files based on query relevance, recency, "
            "and importance"
        ),
        parameters_model=SmartContextParams,
        handler=handler,
    )


def repo_analyze_project_tool(context: ToolContext) -> ToolDefinition:
    """Create the repo_analyze_project tool definition."""
    root = context.sandbox.root

    async def exists(relative: str) -> bool:
        return await anyio.Path(root / relative).is_file()

    async def read_package_json() -> dict[str, Any] | None:
        if not await exists("package.json"):
            return None
        try:
            return json.loads(await context.sandbox.read_text("package.json"))
        except (MCPError, json.JSONDecodeError) as exc:
            logger.info("Ignoring unreadable package.json: %s", exc)
            return None

    async def metadata(package: dict[str, Any] | None) -> dict[str, Any]:
        info: dict[str, Any] = {
            "name": None,
            "type": "unknown",
            "description": None,
            "version": None,
            "author": None,
            "license": None,
        }
        if package is not None:
            info.update(
                {key: package.get(key) for key in ("name", "description", "version")}
            )
            info["author"] = package.get("author")
            info["license"] = package.get("license")
        for marker, project_type in PROJECT_MARKERS:
            if await exists(marker):
                info["type"] = project_type
        return info

    def dependencies(package: dict[str, Any] | None) -> dict[str, Any]:
        production = sorted((package or {}).get("dependencies") or {})
        development = sorted((package or {}).get("devDependencies") or {})
        return {
            "production": production,
            "development": development,
            "total": len(production) + len(development),
        }

    async def git_info() -> dict[str, Any]:
        info: dict[str, Any] = {
            "isGitRepo": False,
            "branch": None,
            "commitCount": 0,
            "lastCommit": None,
            "remoteUrl": None,
        }
        if not await is_git_repository(context):
            return info
        info["isGitRepo"] = True
        run = context.runner.run
        branch = await run("git", ["branch", "--show-current"], timeout_ms=5_000)
        if branch.ok:
            info["branch"] = branch.stdout.strip()
        count = await run("git", ["rev-list", "--count", "HEAD"], timeout_ms=5_000)
        if count.ok and count.stdout.strip().isdigit():
            info["commitCount"] = int(count.stdout.strip())
        last = await run(
            "git",
            ["log", "-1", "--pretty=format:%H%x09%ad%x09%s", "--date=iso"],
            timeout_ms=5_000,
        )
        if last.ok and last.stdout:
            commit_hash, date, subject = (last.stdout.split("\t", 2) + ["", ""])[:3]
            info["lastCommit"] = {"hash": commit_hash, "date": date, "subject": subject}
        remote = await run("git", ["remote", "get-url", "origin"], timeout_ms=5_000)
        if remote.ok:
            info["remoteUrl"] = remote.stdout.strip()
        return info

    async def handler(params: AnalyzeProjectParams) -> str:
        package = await read_package_json()
        listing = await anyio.to_thread.run_sync(_walk, root, params.depth)
        main_files = [name for name in MAIN_FILE_CANDIDATES if await exists(name)]
        stats = None
        if params.include_stats:
            every_file = await anyio.to_thread.run_sync(_walk, root, None)
            file_types: dict[str, int] = {}
            for name, _ in every_file:
                suffix = PurePosixPath(name).suffix or "<none>"
                file_types[suffix] = file_types.get(suffix, 0) + 1
            largest = sorted(every_file, key=lambda item: item[1], reverse=True)[:5]
            stats = {
                "totalFiles": len(every_file),
                "totalBytes": sum(size for _, size in every_file),
                "fileTypes": dict(sorted(file_types.items())),
                "largestFiles": [{"path": p, "bytes": s} for p, s in largest],
            }
        analysis = {
            "metadata": await metadata(package),
            "structure": {
                "directories": sorted(
                    {str(PurePosixPath(p).parent) for p, _ in listing} - {"."}
                ),
                "files": [p for p, _ in listing],
                "totalFiles": len(listing),
            },
            "mainFiles": main_files,
            "dependencies": dependencies(package),
            "gitInfo": await git_info(),
            "stats": stats,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        return json_text(analysis)

    return ToolDefinition(
        name="repo_analyze_project",
        title="Analyze project structure and metadata",
        description=(
            "Get comprehensive project overview including dependencies, "
            "structure, main files, and purpose"
        ),
        parameters_model=AnalyzeProjectParams,
        handler=handler,
    )
