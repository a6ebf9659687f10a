"""Structured errors raised by tools, the sandbox and configuration.

Every error carries a ``kind`` (``AccessDenied``, ``GitError`` ...) that
clients can switch on, a human readable message and optional details. The
built-in kinds are fixed on their subclasses; tools raise ad-hoc kinds
through :func:`raise_mcp_error`.
"""

from __future__ import annotations

from typing import ClassVar, NoReturn, TypedDict


class ErrorBody(TypedDict):
    """The ``error`` object sent to clients."""

    type: str
    message: str
    details: object | None


class MCPErrorPayload(TypedDict):
    """Structured JSON payload for MCP errors."""

    error: ErrorBody


class MCPError(Exception):
    """An error with a machine-readable kind."""

    kind: ClassVar[str] = "Error"

    def __init__(
        self, error_type: str | None, message: str, details: object | None = None
    ) -> None:
        super().__init__(message)
        self.error_type = error_type or self.kind
        self.message = message
        self.details = details

    def __str__(self) -> str:
        return f"{self.error_type}: {self.message}"

    def to_dict(self) -> MCPErrorPayload:
        """Return ``{"error": {"type", "message", "details"}}``."""
        return {
            "error": {
                "type": self.error_type,
                "message": self.message,
                "details": self.details,
            }
        }


class AccessDeniedError(MCPError):
    """Raised when a path resolves outside the sandbox root."""

    kind = "AccessDenied"

    def __init__(self, path: str) -> None:
        super().__init__(None, "Access denied: path outside repo", path)


class UnknownToolError(MCPError, LookupError):
    """Raised when an invocation names a tool that is not registered."""

    kind = "UnknownTool"

    def __init__(self, name: str) -> None:
        super().__init__(None, f"Tool '{name}' is not registered", name)


class ResourceNotFoundError(MCPError, LookupError):
    """Raised when no registered resource matches a URI."""

    kind = "ResourceNotFound"

    def __init__(self, uri: str) -> None:
        super().__init__(None, f"Unknown resource: {uri}", uri)


class ConfigurationError(MCPError):
    """Invalid startup configuration; the server must not start."""

    kind = "ConfigurationError"

    def __init__(self, message: str, details: object | None = None) -> None:
        super().__init__(None, message, details)


def raise_mcp_error(
    error_type: str, message: str, details: object | None = None
) -> NoReturn:
    """Raise an :class:`MCPError` of kind ``error_type``."""
    raise MCPError(error_type=error_type, message=message, details=details)
