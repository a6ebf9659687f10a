"""Entry point for the code assistant MCP server."""

from __future__ import annotations

import argparse
import json
import logging
import sys

import anyio

from code_assistant_mcp._version import __version__
from code_assistant_mcp.config import ServerConfig
from code_assistant_mcp.errors import ConfigurationError
from code_assistant_mcp.logs import configure_logging
from code_assistant_mcp.resources import ResourceRegistry
from code_assistant_mcp.server import ProtocolServer
from code_assistant_mcp.stdio import run_stdio
from code_assistant_mcp.tools import ToolRegistry
from code_assistant_mcp_server.context import ToolContext
from code_assistant_mcp_server.fastmcp_adapter import INSTRUCTIONS, build_fastmcp_app
from code_assistant_mcp_server.resources import build_resources
from code_assistant_mcp_server.tools import build_tools

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the server."""
    parser = argparse.ArgumentParser(description="Code assistant MCP server")
    parser.add_argument(
        "--root", help="Repository root (default: $MCP_REPO_ROOT or cwd)"
    )
    parser.add_argument(
        "--max-read-bytes", type=int, help="Upper bound on bytes returned per read"
    )
    parser.add_argument("--log-level", help="Diagnostic log level (default: INFO)")
    parser.add_argument("--catalog", action="store_true", help="Print the tool catalog")
    parser.add_argument(
        "--transport",
        choices=["stdio", "http"],
        default="stdio",
        help="Transport to use when running the MCP server.",
    )
    parser.add_argument("--host", default="127.0.0.1", help="Host for HTTP transports")
    parser.add_argument(
        "--port", type=int, default=8000, help="Port for HTTP transports"
    )
    parser.add_argument(
        "--path", default="/mcp", help="Endpoint path for HTTP transports"
    )
    return parser


def build_tool_registry(context: ToolContext) -> ToolRegistry:
    """Registry holding every built-in tool."""
    registry = ToolRegistry()
    registry.register_tools(*build_tools(context))
    return registry


def build_server(context: ToolContext) -> ProtocolServer:
    """Protocol server with every built-in tool and resource registered."""
    resources = ResourceRegistry()
    resources.register_resources(*build_resources(context))
    return ProtocolServer(
        build_tool_registry(context),
        resources,
        version=__version__,
        instructions=INSTRUCTIONS,
        drain_timeout=context.config.drain_timeout,
    )


def main(argv: list[str] | None = None) -> int:
    """Resolve configuration, then serve over the selected transport."""
    args = build_parser().parse_args(argv)
    try:
        config = ServerConfig.resolve(
            root=args.root,
            max_read_bytes=args.max_read_bytes,
            log_level=args.log_level,
        )
    except ConfigurationError as error:
        print(f"Configuration error: {error.message}", file=sys.stderr)
        return 2

    configure_logging(config.log_level)
    context = ToolContext.from_config(config)
    try:
        if args.catalog:
            print(json.dumps(build_tool_registry(context).to_catalog(), indent=2))
            return 0
        if args.transport == "http":
            app, _ = build_fastmcp_app(context)
            app.run(transport="http", host=args.host, port=args.port, path=args.path)
            return 0
        logger.info("Serving %s over stdio", config.root)
        anyio.run(run_stdio, build_server(context))
    except Exception:
        logger.exception("Server terminated with an unexpected error")
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
