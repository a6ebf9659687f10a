"""Standard input/output transport for :class:`ProtocolServer`."""

from __future__ import annotations

from mcp.server.stdio import stdio_server

from code_assistant_mcp.server import ProtocolServer


async def run_stdio(server: ProtocolServer) -> None:
    """Serve ``server`` over this process's stdin and stdout.

    Framing comes from the MCP SDK: one line of UTF-8 JSON per message.
    Nothing else may be written to stdout while the server runs; diagnostics
    belong on stderr.
    """
    async with stdio_server() as (read_stream, write_stream):
        async with write_stream:
            await server.serve(read_stream, write_stream)
