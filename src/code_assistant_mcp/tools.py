"""Tool definitions and the registry that validates and dispatches them."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Union

from mcp.types import CallToolResult, TextContent, Tool
from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from code_assistant_mcp.errors import MCPError, UnknownToolError

logger = logging.getLogger(__name__)

ToolOutput = Union[str, Sequence[TextContent]]
ToolHandler = Callable[[Any], Awaitable[ToolOutput]]


class ToolParameters(BaseModel):
    """Base parameters schema for MCP tools.

    Field names are exposed in camelCase on the wire. Unknown fields are
    rejected and values are not coerced between types.
    """

    model_config = ConfigDict(extra="forbid", strict=True, alias_generator=to_camel)


class ArgumentValidationError(MCPError):
    """Raised when tool arguments do not match the declared schema."""

    def __init__(self, tool: str, error: ValidationError) -> None:
        problems = [
            {
                "field": ".".join(str(part) for part in item["loc"]) or "<root>",
                "message": item["msg"],
                "type": item["type"],
            }
            for item in error.errors()
        ]
        summary = "; ".join(f"{p['field']}: {p['message']}" for p in problems)
        super().__init__(
            "InvalidArguments",
            f"Invalid arguments for tool '{tool}': {summary}",
            problems,
        )
        self.fields = [problem["field"] for problem in problems]


@dataclass
class ToolDefinition:
    """Description of a tool that can be registered with the server.

    Attributes:
        name: Unique name of the tool.
        description: Human-readable description of the tool purpose.
        parameters_model: Pydantic model used to validate input parameters.
        handler: Coroutine function receiving the validated parameters model.
        title: Short display name.
    """

    name: str
    description: str
    parameters_model: type[ToolParameters]
    handler: ToolHandler
    title: str | None = None

    def validate(self, arguments: Mapping[str, Any]) -> ToolParameters:
        """Validate incoming arguments and apply declared defaults.

        Raises:
            ArgumentValidationError: If any field is missing, mistyped or unknown.
        """
        try:
            return self.parameters_model.model_validate(dict(arguments))
        except ValidationError as error:
            raise ArgumentValidationError(self.name, error) from error

    async def invoke(self, arguments: Mapping[str, Any]) -> list[TextContent]:
        """Validate ``arguments``, run the handler and normalise its output."""
        params = self.validate(arguments)
        output = await self.handler(params)
        return _as_content(output)

    def input_schema(self) -> dict[str, Any]:
        """JSON schema advertised for the tool's arguments."""
        return self.parameters_model.model_json_schema()

    def metadata(self) -> dict[str, Any]:
        """Return a discovery-friendly description of the tool."""
        return {
            "name": self.name,
            "title": self.title,
            "description": self.description,
            "schema": self.input_schema(),
        }

    def to_mcp_tool(self) -> Tool:
        """Wire representation used in ``tools/list`` responses."""
        return Tool(
            name=self.name,
            title=self.title,
            description=self.description,
            inputSchema=self.input_schema(),
        )


def _as_content(output: ToolOutput) -> list[TextContent]:
    if isinstance(output, str):
        return [TextContent(type="text", text=output)]
    blocks = list(output)
    for block in blocks:
        if not isinstance(block, TextContent):
            raise TypeError(f"Unsupported content block: {type(block).__name__}")
    return blocks


@dataclass(frozen=True)
class ToolFailure:
    """Why an invocation did not produce content."""

    message: str
    kind: str
    tool: str
    details: object | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": {
                "type": self.kind,
                "message": self.message,
                "tool": self.tool,
                "details": self.details,
            }
        }


@dataclass(frozen=True)
class InvocationResult:
    """Outcome of one tool invocation: content or a failure, never both."""

    tool: str
    content: list[TextContent] = field(default_factory=list)
    failure: ToolFailure | None = None

    @classmethod
    def success(cls, tool: str, content: list[TextContent]) -> InvocationResult:
        return cls(tool=tool, content=content)

    @classmethod
    def from_error(cls, tool: str, error: MCPError) -> InvocationResult:
        return cls(
            tool=tool,
            failure=ToolFailure(
                message=error.message,
                kind=error.error_type,
                tool=tool,
                details=error.details,
            ),
        )

    @property
    def is_error(self) -> bool:
        return self.failure is not None

    @property
    def text(self) -> str:
        """All text blocks joined, or the failure message."""
        if self.failure is not None:
            return self.failure.message
        return "\n".join(block.text for block in self.content)

    def to_call_tool_result(self) -> CallToolResult:
        """Render the result as an MCP ``tools/call`` payload."""
        if self.failure is None:
            return CallToolResult(content=list(self.content), isError=False)
        return CallToolResult(
            content=[TextContent(type="text", text=self.failure.message)],
            structuredContent=self.failure.to_dict(),
            isError=True,
        )


class ToolRegistry:
    """In-memory registry and dispatcher for MCP tools.

    Registration happens once at startup. A name can only be registered once:
    a second registration raises instead of replacing the first.
    """

    def __init__(self) -> None:
        """Initialize an empty registry."""
        self._tools: dict[str, ToolDefinition] = {}

    def register(self, tool: ToolDefinition) -> None:
        """Register a tool.

        Raises:
            ValueError: If the name is empty or already registered.

        """
        if not tool.name:
            raise ValueError("Tool name must not be empty")
        if tool.name in self._tools:
            raise ValueError(f"Tool '{tool.name}' is already registered")
        self._tools[tool.name] = tool
        logger.debug("Registered tool %s", tool.name)

    def register_tools(self, *tools: ToolDefinition) -> None:
        """Register multiple tools at once."""
        for tool in tools:
            self.register(tool)

    def available_tools(self) -> list[str]:
        """Sorted names of registered tools."""
        return sorted(self._tools)

    def get(self, name: str) -> ToolDefinition:
        """Look up a tool or raise :class:`UnknownToolError`."""
        try:
            return self._tools[name]
        except KeyError:
            raise UnknownToolError(name) from None

    def list_tools(self) -> list[Tool]:
        """Wire descriptions of every tool, in registration order."""
        return [tool.to_mcp_tool() for tool in self._tools.values()]

    def to_catalog(self) -> dict[str, dict[str, Any]]:
        """Mapping of tool names to their metadata."""
        return {name: tool.metadata() for name, tool in self._tools.items()}

    async def invoke(
        self, name: str, arguments: Mapping[str, Any] | None = None
    ) -> InvocationResult:
        """Validate arguments and run the named tool.

        Handler failures of any kind are converted into a failed
        :class:`InvocationResult`; they never propagate.

        Raises:
            UnknownToolError: If ``name`` is not registered.

        """
        tool = self.get(name)
        try:
            content = await tool.invoke(arguments or {})
        except MCPError as error:
            logger.info("Tool %s failed: %s", name, error.message)
            return InvocationResult.from_error(name, error)
        except Exception as exc:
            logger.exception("Tool %s crashed", name)
            return InvocationResult.from_error(
                name,
                MCPError(
                    "ExecutionError",
                    f"Tool '{name}' failed: {exc}",
                    type(exc).__name__,
                ),
            )
        return InvocationResult.success(name, content)
