"""GitHub issue and pull request listing through the ``gh`` CLI."""

from __future__ import annotations

import json
import logging
from typing import Literal

from pydantic import Field

from code_assistant_mcp.errors import raise_mcp_error
from code_assistant_mcp.tools import ToolDefinition, ToolParameters
from code_assistant_mcp_server.context import ToolContext
from code_assistant_mcp_server.tools.common import json_text

logger = logging.getLogger(__name__)

GH_MISSING = (
    "GitHub CLI (gh) is not installed or not on PATH. "
    "Install from https://cli.github.com/ and run `gh auth login`."
)
ISSUE_FIELDS = "number,title,state,labels,assignees,author,createdAt,updatedAt,url"
PR_FIELDS = "number,title,state,author,updatedAt,headRefName,url"


class IssuesParams(ToolParameters):
    """Parameters for issues.list."""

    state: Literal["OPEN", "CLOSED", "ALL"] = "OPEN"
    limit: int = Field(default=20, ge=1)
    search: str | None = None


class PullRequestsParams(ToolParameters):
    """Parameters for prs.list."""

    state: Literal["OPEN", "CLOSED", "MERGED", "ALL"] = "OPEN"
    limit: int = Field(default=20, ge=1)
    search: str | None = None


async def has_gh(context: ToolContext) -> bool:
    """Whether the ``gh`` executable can be run."""
    result = await context.runner.run("gh", ["--version"], timeout_ms=5_000)
    return result.ok


async def _gh_list(
    context: ToolContext,
    kind: str,
    fields: str,
    params: IssuesParams | PullRequestsParams,
) -> str:
    if not await has_gh(context):
        return GH_MISSING
    args = [kind, "list", "--limit", str(params.limit), "--json", fields]
    args.extend(["--state", params.state.lower()])
    if params.search:
        args.extend(["--search", params.search])
    result = await context.runner.run("gh", args, timeout_ms=30_000)
    if not result.ok:
        raise_mcp_error(
            "CommandFailed",
            f"gh {kind} list failed: {result.failure_message()}",
            result.code,
        )
    try:
        items = json.loads(result.stdout)
    except json.JSONDecodeError:
        logger.warning("gh %s list returned invalid JSON", kind)
        items = []
    return json_text(items)


def issues_list_tool(context: ToolContext) -> ToolDefinition:
    """Create the issues.list tool definition."""

    async def handler(params: IssuesParams) -> str:
        return await _gh_list(context, "issue", ISSUE_FIELDS, params)

    return ToolDefinition(
        name="issues.list",
        title="List GitHub issues (requires gh CLI)",
        description=(
            "Lists issues via GitHub CLI for the current repo. If gh is not "
            "installed or authenticated, returns a helpful message."
        ),
        parameters_model=IssuesParams,
        handler=handler,
    )


def prs_list_tool(context: ToolContext) -> ToolDefinition:
    """Create the prs.list tool definition."""

    async def handler(params: PullRequestsParams) -> str:
        return await _gh_list(context, "pr", PR_FIELDS, params)

    return ToolDefinition(
        name="prs.list",
        title="List GitHub pull requests (requires gh CLI)",
        description=(
            "Lists PRs via GitHub CLI for the current repo. If gh is not "
            "installed or authenticated, returns a helpful message."
        ),
        parameters_model=PullRequestsParams,
        handler=handler,
    )
