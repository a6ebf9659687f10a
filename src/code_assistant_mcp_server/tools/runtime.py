"""Local runtime inspection tools: processes, log tails and ports."""

from __future__ import annotations

import sys
from typing import NoReturn

from pydantic import Field

from code_assistant_mcp.errors import raise_mcp_error
from code_assistant_mcp.process import ProcessResult
from code_assistant_mcp.tools import ToolDefinition, ToolParameters
from code_assistant_mcp_server.context import ToolContext
from code_assistant_mcp_server.tools.common import list_lines

WINDOWS = sys.platform == "win32"


class ProcessesParams(ToolParameters):
    """Parameters for runtime_processes."""

    limit: int = Field(default=30, ge=1)


class LogsParams(ToolParameters):
    """Parameters for runtime_logs."""

    path: str
    lines: int = Field(default=50, ge=1)


class PortCheckParams(ToolParameters):
    """Parameters for runtime_port_check."""

    port: int = Field(ge=1, le=65535)


def _command_failed(result: ProcessResult) -> NoReturn:
    raise_mcp_error(
        "CommandFailed", f"Failed: {result.failure_message()}", result.code
    )


def runtime_processes_tool(context: ToolContext) -> ToolDefinition:
    """Create the runtime_processes tool definition."""

    async def handler(params: ProcessesParams) -> str:
        if WINDOWS:
            command, args = "tasklist", ["/FO", "CSV", "/NH"]
        else:
            command, args = "ps", ["-eo", "pid,comm,%cpu,%mem", "--sort=-%cpu"]
        result = await context.runner.run(command, args, timeout_ms=10_000)
        if not result.ok:
            _command_failed(result)
        return "\n".join(list_lines(result.stdout)[: params.limit])

    return ToolDefinition(
        name="runtime_processes",
        title="List running processes",
        description=(
            "Lists running processes using `ps` (Unix) or `tasklist` (Windows)."
        ),
        parameters_model=ProcessesParams,
        handler=handler,
    )


def runtime_logs_tool(context: ToolContext) -> ToolDefinition:
    """Create the runtime_logs tool definition."""

    async def handler(params: LogsParams) -> str:
        target = context.sandbox.require(params.path)
        if WINDOWS:
            command = "powershell"
            args = ["-Command", f"Get-Content -Path '{target}' -Tail {params.lines}"]
        else:
            command, args = "tail", ["-n", str(params.lines), str(target)]
        result = await context.runner.run(command, args, timeout_ms=10_000)
        if not result.ok:
            _command_failed(result)
        return result.stdout

    return ToolDefinition(
        name="runtime_logs",
        title="Tail a log file",
        description="Reads the last N lines from a log file.",
        parameters_model=LogsParams,
        handler=handler,
    )


def runtime_port_check_tool(context: ToolContext) -> ToolDefinition:
    """Create the runtime_port_check tool definition."""

    async def handler(params: PortCheckParams) -> str:
        if WINDOWS:
            command, args = "netstat", ["-ano"]
        else:
            # -P keeps port numbers numeric, -n skips host lookups
            command, args = "lsof", ["-P", "-n", "-i", f":{params.port}"]
        result = await context.runner.run(command, args, timeout_ms=10_000)
        # lsof exits with 1 when nothing uses the port
        if result.code == 1 and not WINDOWS:
            return f"Port {params.port} is closed"
        if not result.ok:
            _command_failed(result)
        if WINDOWS:
            is_open = f":{params.port}" in result.stdout
        else:
            is_open = bool(list_lines(result.stdout))
        return f"Port {params.port} is {'open' if is_open else 'closed'}"

    return ToolDefinition(
        name="runtime_port_check",
        title="Check if a port is listening",
        description="Checks if a TCP port is open on localhost.",
        parameters_model=PortCheckParams,
        handler=handler,
    )
