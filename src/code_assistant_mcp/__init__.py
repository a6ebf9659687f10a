"""Tool dispatch and sandboxed execution core for the code assistant MCP server."""

from code_assistant_mcp._version import __version__
from code_assistant_mcp.errors import MCPError
from code_assistant_mcp.process import ProcessResult, ProcessRunner
from code_assistant_mcp.resources import ResourceDefinition, ResourceRegistry
from code_assistant_mcp.sandbox import PathSandbox
from code_assistant_mcp.server import ProtocolServer, ServerState
from code_assistant_mcp.tools import (
    InvocationResult,
    ToolDefinition,
    ToolParameters,
    ToolRegistry,
)

__all__ = [
    "InvocationResult",
    "MCPError",
    "PathSandbox",
    "ProcessResult",
    "ProcessRunner",
    "ProtocolServer",
    "ResourceDefinition",
    "ResourceRegistry",
    "ServerState",
    "ToolDefinition",
    "ToolParameters",
    "ToolRegistry",
    "__version__",
]
