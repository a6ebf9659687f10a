"""Adapters for exposing code assistant tools via FastMCP."""

from __future__ import annotations

from typing import Any

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError
from fastmcp.tools import Tool
from fastmcp.tools.tool import ToolResult

from code_assistant_mcp.resources import ResourceDefinition, ResourceRegistry
from code_assistant_mcp.tools import ToolRegistry
from code_assistant_mcp_server.context import ToolContext
from code_assistant_mcp_server.resources import build_resources
from code_assistant_mcp_server.tools import build_tools

INSTRUCTIONS = (
    "Developer-assistant utilities (repository, git, docs, runtime and GitHub) "
    "exposed over the Model Context Protocol."
)


class ToolDefinitionAdapter(Tool):
    """Expose a registered tool as a FastMCP tool."""

    def __init__(self, registry: ToolRegistry, name: str) -> None:
        """Create a FastMCP tool wrapper dispatching through ``registry``."""
        definition = registry.get(name)
        super().__init__(
            name=definition.name,
            title=definition.title,
            description=definition.description,
            parameters=definition.input_schema(),
            tags=set(),
        )
        self._registry = registry

    async def run(self, arguments: dict[str, Any]) -> ToolResult:
        """Validate arguments and delegate to the registry."""
        result = await self._registry.invoke(self.name, arguments)
        if result.is_error:
            raise ToolError(result.text)
        return ToolResult(content=result.content)


def to_fastmcp_tools(registry: ToolRegistry) -> list[Tool]:
    """Convert every registered tool into a FastMCP-compatible tool."""
    return [
        ToolDefinitionAdapter(registry, name) for name in registry.available_tools()
    ]


def _add_resource(
    app: FastMCP, registry: ResourceRegistry, resource: ResourceDefinition
) -> None:
    async def read() -> str:
        contents = await registry.read(resource.uri)
        return contents.text

    app.resource(
        resource.uri,
        name=resource.name,
        description=resource.description,
        mime_type=resource.mime_type,
    )(read)


def build_fastmcp_app(context: ToolContext) -> tuple[FastMCP, ToolRegistry]:
    """Create a FastMCP server instance with all tools registered."""
    app = FastMCP(name="code-assistant-mcp", instructions=INSTRUCTIONS)
    registry = ToolRegistry()
    registry.register_tools(*build_tools(context))
    for tool in to_fastmcp_tools(registry):
        app.add_tool(tool)

    resources = ResourceRegistry()
    resources.register_resources(*build_resources(context))
    # FastMCP templates use a different placeholder syntax; only static
    # resources are published over HTTP.
    for resource in resources.static_resources():
        _add_resource(app, resources, resource)
    return app, registry
