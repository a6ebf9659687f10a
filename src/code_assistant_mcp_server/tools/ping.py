"""Health check tool."""

from __future__ import annotations

from code_assistant_mcp.tools import ToolDefinition, ToolParameters
from code_assistant_mcp_server.context import ToolContext


class PingParams(ToolParameters):
    """Parameters for the ping tool."""

    msg: str | None = None


def ping_tool(context: ToolContext) -> ToolDefinition:
    """Create the ping tool definition."""

    async def handler(params: PingParams) -> str:
        return "pong" if params.msg is None else params.msg

    return ToolDefinition(
        name="ping",
        title="Ping",
        description="Health check",
        parameters_model=PingParams,
        handler=handler,
    )
