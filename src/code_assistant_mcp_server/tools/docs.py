"""Documentation reading, searching and listing tools."""

from __future__ import annotations

from pydantic import Field

from code_assistant_mcp.errors import raise_mcp_error
from code_assistant_mcp.tools import ToolDefinition, ToolParameters
from code_assistant_mcp_server.context import ToolContext
from code_assistant_mcp_server.tools.common import (
    ensure_search_succeeded,
    json_text,
    list_lines,
    parse_vimgrep,
)

SEARCH_GLOBS = (
    "docs/**",
    "doc/**",
    ".github/**",
    "*README*",
    "**/*.md",
    "**/*.adoc",
    "**/*.txt",
)
LISTING_GLOBS = (
    "docs/**/*.md",
    "docs/**/*.adoc",
    "doc/**/*.md",
    "doc/**/*.adoc",
    ".github/**/*.md",
    "*README*",
    "**/*.txt",
    "!node_modules/**",
    "!.git/**",
)


def _globs(patterns: tuple[str, ...]) -> list[str]:
    args: list[str] = []
    for pattern in patterns:
        args.extend(["-g", pattern])
    return args


class DocsReadParams(ToolParameters):
    """Parameters for docs.read."""

    path: str
    start: int = Field(default=0, ge=0)
    end: int | None = Field(default=None, ge=0)


class DocsSearchParams(ToolParameters):
    """Parameters for docs.search."""

    query: str = Field(min_length=1)
    max_results: int = Field(default=50, ge=1)


class DocsListParams(ToolParameters):
    """Parameters for docs.list_common."""

    limit: int = Field(default=200, ge=1)


def docs_read_tool(context: ToolContext) -> ToolDefinition:
    """Create the docs.read tool definition."""

    async def handler(params: DocsReadParams) -> str:
        return await context.sandbox.read_text(params.path, params.start, params.end)

    return ToolDefinition(
        name="docs.read",
        title="Read a documentation file",
        description="Reads README/ADR/markdown/plaintext docs safely.",
        parameters_model=DocsReadParams,
        handler=handler,
    )


def docs_search_tool(context: ToolContext) -> ToolDefinition:
    """Create the docs.search tool definition."""

    async def handler(params: DocsSearchParams) -> str:
        args = [
            "--vimgrep",
            "-n",
            "-H",
            "--max-filesize",
            "1M",
            "--glob",
            "!.git",
            "--glob",
            "!node_modules",
            *_globs(SEARCH_GLOBS),
            "-e",
            params.query,
            ".",
        ]
        result = await context.runner.run(
            context.config.search_command, args, timeout_ms=60_000
        )
        ensure_search_succeeded(result)
        return json_text(
            parse_vimgrep(result.stdout, context.sandbox, params.max_results)
        )

    return ToolDefinition(
        name="docs.search",
        title="Search docs/README/ADRs",
        description=(
            "Ripgrep search limited to docs: docs/, doc/, .github/, "
            "and README/adoc/txt."
        ),
        parameters_model=DocsSearchParams,
        handler=handler,
    )


def docs_list_common_tool(context: ToolContext) -> ToolDefinition:
    """Create the docs.list_common tool definition."""

    async def handler(params: DocsListParams) -> str:
        args = ["--files", *_globs(LISTING_GLOBS), "."]
        result = await context.runner.run(
            context.config.search_command, args, timeout_ms=20_000
        )
        if result.code < 0:
            raise_mcp_error(
                "SearchUnavailable",
                f"ripgrep failed: {result.failure_message()}",
                result.code,
            )
        files = [
            context.sandbox.relative(name)
            for name in list_lines(result.stdout)[: params.limit]
        ]
        return json_text(files)

    return ToolDefinition(
        name="docs.list_common",
        title="List common documentation files",
        description=(
            "Lists README and markdown files under docs/, doc/, and .github/ "
            "(uses ripgrep --files)."
        ),
        parameters_model=DocsListParams,
        handler=handler,
    )
