"""Model Context Protocol server exposing developer-assistant tools."""

from code_assistant_mcp_server.context import ToolContext
from code_assistant_mcp_server.resources import build_resources
from code_assistant_mcp_server.tools import build_tools

__all__ = ["ToolContext", "build_resources", "build_tools"]
