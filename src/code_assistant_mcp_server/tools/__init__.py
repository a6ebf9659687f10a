"""Tool registration helpers for the code assistant MCP server."""

from __future__ import annotations

from code_assistant_mcp.tools import ToolDefinition
from code_assistant_mcp_server.context import ToolContext
from code_assistant_mcp_server.tools.docs import (
    docs_list_common_tool,
    docs_read_tool,
    docs_search_tool,
)
from code_assistant_mcp_server.tools.git import (
    git_commit_tool,
    git_diff_unstaged_tool,
    git_list_changed_files_tool,
    git_log_tool,
)
from code_assistant_mcp_server.tools.issues import issues_list_tool, prs_list_tool
from code_assistant_mcp_server.tools.ping import ping_tool
from code_assistant_mcp_server.tools.repo import (
    repo_analyze_project_tool,
    repo_file_tool,
    repo_search_tool,
    repo_smart_context_tool,
    repo_write_file_tool,
)
from code_assistant_mcp_server.tools.runtime import (
    runtime_logs_tool,
    runtime_port_check_tool,
    runtime_processes_tool,
)


def build_tools(context: ToolContext) -> list[ToolDefinition]:
    """Instantiate all tool definitions with the provided context."""
    return [
        ping_tool(context),
        repo_file_tool(context),
        repo_search_tool(context),
        repo_write_file_tool(context),
        repo_smart_context_tool(context),
        repo_analyze_project_tool(context),
        git_list_changed_files_tool(context),
        git_diff_unstaged_tool(context),
        git_log_tool(context),
        git_commit_tool(context),
        docs_read_tool(context),
        docs_search_tool(context),
        docs_list_common_tool(context),
        runtime_processes_tool(context),
        runtime_logs_tool(context),
        runtime_port_check_tool(context),
        issues_list_tool(context),
        prs_list_tool(context),
    ]
