"""Resources published by the code assistant server."""

from __future__ import annotations

from code_assistant_mcp.resources import ResourceDefinition
from code_assistant_mcp_server.context import ToolContext

GREETING = "Hello from the code assistant MCP server."


def hello_resource() -> ResourceDefinition:
    """Static greeting, useful as a health check."""

    async def resolve(uri: str) -> str:
        return GREETING

    return ResourceDefinition(
        uri="hello://world",
        name="hello",
        title="Hello resource",
        description="Static greeting used to check the server is reachable.",
        resolver=resolve,
    )


def repo_file_resource(context: ToolContext) -> ResourceDefinition:
    """Any file inside the sandbox root, read with the usual size cap."""

    async def resolve(uri: str, path: str) -> str:
        return await context.sandbox.read_text(path)

    return ResourceDefinition(
        uri="repo://file/{+path}",
        name="repo-file",
        title="Repository file",
        description="Contents of a file inside the repository root.",
        resolver=resolve,
    )


def build_resources(context: ToolContext) -> list[ResourceDefinition]:
    """Instantiate every resource for ``context``."""
    return [hello_resource(), repo_file_resource(context)]
