"""JSON-RPC protocol server for the Model Context Protocol.

The server reads :class:`SessionMessage` items from an MCP transport stream,
dispatches ``tools/*`` and ``resources/*`` requests to the registries, and writes one
response frame per request. Requests run concurrently on a task group, so
responses may leave in a different order than requests arrived; each one
carries the id of the request it answers.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any, Union

import anyio
from anyio.abc import TaskGroup
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream
from mcp.shared.message import SessionMessage
from mcp.shared.version import SUPPORTED_PROTOCOL_VERSIONS
from mcp.types import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    LATEST_PROTOCOL_VERSION,
    METHOD_NOT_FOUND,
    PARSE_ERROR,
    ErrorData,
    Implementation,
    InitializeResult,
    JSONRPCError,
    JSONRPCMessage,
    JSONRPCNotification,
    JSONRPCRequest,
    JSONRPCResponse,
    ListResourcesResult,
    ListResourceTemplatesResult,
    ListToolsResult,
    ResourcesCapability,
    ServerCapabilities,
    ToolsCapability,
)
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from code_assistant_mcp._version import __version__
from code_assistant_mcp.config import DEFAULT_DRAIN_TIMEOUT
from code_assistant_mcp.errors import (
    MCPError,
    ResourceNotFoundError,
    UnknownToolError,
)
from code_assistant_mcp.resources import ResourceRegistry
from code_assistant_mcp.tools import ToolRegistry

logger = logging.getLogger(__name__)

RESOURCE_NOT_FOUND = -32002

RequestId = Union[str, int]
MethodHandler = Callable[[dict[str, Any]], Awaitable[dict[str, Any]]]

_PRE_INITIALIZE_METHODS = frozenset({"initialize", "ping"})


class ServerState(str, Enum):
    """Lifecycle of a :class:`ProtocolServer`."""

    UNINITIALIZED = "uninitialized"
    CONNECTED = "connected"
    SERVING = "serving"
    CLOSED = "closed"


class ProtocolError(Exception):
    """A request that must be answered with a JSON-RPC error object."""

    def __init__(
        self,
        code: int,
        message: str,
        data: object | None = None,
        request_id: RequestId | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data
        self.request_id = request_id


class _Params(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)


class InitializeParams(_Params):
    protocol_version: str | None = Field(default=None, alias="protocolVersion")


class CallToolParams(_Params):
    name: str
    arguments: dict[str, Any] | None = None


class ReadResourceParams(_Params):
    uri: str


def _dump(model: BaseModel) -> dict[str, Any]:
    return model.model_dump(by_alias=True, exclude_none=True, mode="json")


def _parse_params(model: type[_Params], params: dict[str, Any]) -> Any:
    try:
        return model.model_validate(params)
    except ValidationError as error:
        raise ProtocolError(
            INVALID_PARAMS, "Invalid params", json.loads(error.json(include_url=False))
        ) from error


def _error_message(
    request_id: RequestId | None, code: int, message: str, data: object | None = None
) -> JSONRPCMessage:
    error = ErrorData(code=code, message=message, data=data)
    if request_id is None:
        # JSONRPCError requires an id; an id-less frame skips validation.
        return JSONRPCMessage.model_construct(
            JSONRPCError.model_construct(jsonrpc="2.0", id=None, error=error)
        )
    return JSONRPCMessage(JSONRPCError(jsonrpc="2.0", id=request_id, error=error))


def _recover_id(payload: object) -> RequestId | None:
    if isinstance(payload, dict):
        candidate = payload.get("id")
        if isinstance(candidate, (str, int)) and not isinstance(candidate, bool):
            return candidate
    return None


def reject_frame(exc: Exception) -> ProtocolError:
    """Map a frame the transport could not parse to a JSON-RPC error.

    Invalid JSON becomes ``PARSE_ERROR``. JSON that is not a single JSON-RPC
    message becomes ``INVALID_REQUEST``, keeping the request id when the
    frame carried one.
    """
    if not isinstance(exc, ValidationError):
        return ProtocolError(INVALID_REQUEST, f"Invalid request: {exc}")
    errors = exc.errors(include_url=False)
    if any(err["type"] == "json_invalid" for err in errors):
        return ProtocolError(PARSE_ERROR, f"Parse error: {errors[0]['msg']}")
    for err in errors:
        payload = err.get("input")
        if isinstance(payload, list):
            return ProtocolError(INVALID_REQUEST, "Batch requests are not supported")
        if isinstance(payload, dict) and "jsonrpc" in payload:
            return ProtocolError(
                INVALID_REQUEST, "Invalid request", request_id=_recover_id(payload)
            )
    return ProtocolError(INVALID_REQUEST, "Invalid request")


class ProtocolServer:
    """Serve a tool registry and a resource registry over one transport.

    Args:
        tools: Registry answering ``tools/list`` and ``tools/call``.
        resources: Registry answering ``resources/*`` requests.
        name: Server name reported during the handshake.
        version: Server version reported during the handshake.
        instructions: Optional usage hint for the client.
        drain_timeout: Seconds in-flight requests may keep running once the
            transport reaches end of input.

    """

    def __init__(
        self,
        tools: ToolRegistry,
        resources: ResourceRegistry | None = None,
        *,
        name: str = "code-assistant-mcp",
        version: str = __version__,
        instructions: str | None = None,
        drain_timeout: float = DEFAULT_DRAIN_TIMEOUT,
    ) -> None:
        self.tools = tools
        self.resources = resources or ResourceRegistry()
        self.name = name
        self.version = version
        self.instructions = instructions
        self.drain_timeout = drain_timeout
        self.state = ServerState.UNINITIALIZED
        self._write_stream: MemoryObjectSendStream[SessionMessage] | None = None
        self._write_lock: anyio.Lock | None = None
        self._idle: anyio.Event | None = None
        self._in_flight: set[RequestId] = set()
        self._methods: dict[str, MethodHandler] = {
            "initialize": self._initialize,
            "ping": self._ping,
            "tools/list": self._list_tools,
            "tools/call": self._call_tool,
            "resources/list": self._list_resources,
            "resources/templates/list": self._list_resource_templates,
            "resources/read": self._read_resource,
        }

    def _set_state(self, state: ServerState) -> None:
        logger.info("Server state %s -> %s", self.state.value, state.value)
        self.state = state

    async def serve(
        self,
        read_stream: MemoryObjectReceiveStream[SessionMessage | Exception],
        write_stream: MemoryObjectSendStream[SessionMessage],
    ) -> None:
        """Attach a transport and process messages until its read side closes.

        Args:
            read_stream: Parsed messages, or the exception raised while
                parsing a frame, as produced by ``mcp.server.stdio.stdio_server``.
            write_stream: Stream receiving one message per response.

        """
        if self.state is not ServerState.UNINITIALIZED:
            raise RuntimeError(
                f"Cannot attach a transport in state {self.state.value}"
            )
        self._write_stream = write_stream
        self._write_lock = anyio.Lock()
        self._idle = anyio.Event()
        self._set_state(ServerState.CONNECTED)

        async with anyio.create_task_group() as task_group:
            try:
                async with read_stream:
                    async for item in read_stream:
                        await self._receive(item, task_group)
            except (OSError, anyio.BrokenResourceError) as exc:
                logger.warning("Transport failed: %s", exc)
            finally:
                self._set_state(ServerState.CLOSED)
            await self._drain(task_group)

    async def _receive(
        self, item: SessionMessage | Exception, task_group: TaskGroup
    ) -> None:
        if isinstance(item, Exception):
            error = reject_frame(item)
            logger.warning("Rejected frame: %s", error.message)
            await self._write(
                _error_message(error.request_id, error.code, error.message)
            )
            return

        message = item.message.root
        if isinstance(message, JSONRPCNotification):
            self._notification(message)
            return
        if not isinstance(message, JSONRPCRequest):
            logger.debug("Ignoring unsolicited response %s", message.id)
            return

        if message.id in self._in_flight:
            await self._write(
                _error_message(
                    message.id,
                    INVALID_REQUEST,
                    f"Request id {message.id!r} is already in flight",
                )
            )
            return
        self._in_flight.add(message.id)
        if message.method == "initialize":
            # Handled inline so later frames see the negotiated state.
            await self._handle_request(message)
        else:
            task_group.start_soon(self._handle_request, message)

    def _notification(self, message: JSONRPCNotification) -> None:
        if message.method == "notifications/cancelled":
            logger.info("Ignoring cancellation notice: %s", message.params)
        else:
            logger.debug("Notification %s", message.method)

    async def _handle_request(self, request: JSONRPCRequest) -> None:
        try:
            result = await self._dispatch(request.method, request.params or {})
        except ProtocolError as error:
            await self._write(
                _error_message(request.id, error.code, error.message, error.data)
            )
        except Exception:
            logger.exception("Request %s (%s) failed", request.id, request.method)
            await self._write(
                _error_message(request.id, INTERNAL_ERROR, "Internal error")
            )
        else:
            await self._write(
                JSONRPCMessage(
                    JSONRPCResponse(jsonrpc="2.0", id=request.id, result=result)
                )
            )
        finally:
            self._in_flight.discard(request.id)
            if not self._in_flight and self._idle is not None:
                self._idle.set()

    async def _dispatch(self, method: str, params: dict[str, Any]) -> dict[str, Any]:
        handler = self._methods.get(method)
        if handler is None:
            raise ProtocolError(METHOD_NOT_FOUND, f"Method not found: {method}")
        if (
            self.state is ServerState.CONNECTED
            and method not in _PRE_INITIALIZE_METHODS
        ):
            raise ProtocolError(INVALID_REQUEST, "Server not initialized")
        return await handler(params)

    async def _write(self, message: JSONRPCMessage) -> None:
        if self._write_stream is None or self._write_lock is None:
            raise RuntimeError("No transport attached")
        async with self._write_lock:
            try:
                await self._write_stream.send(SessionMessage(message))
            except (anyio.BrokenResourceError, anyio.ClosedResourceError) as exc:
                logger.warning(
                    "Could not deliver response %s: %s",
                    getattr(message.root, "id", None),
                    exc,
                )

    async def _drain(self, task_group: TaskGroup) -> None:
        if self._in_flight:
            logger.info(
                "Waiting up to %.1fs for %d in-flight request(s)",
                self.drain_timeout,
                len(self._in_flight),
            )
            with anyio.move_on_after(self.drain_timeout):
                while self._in_flight:
                    self._idle = anyio.Event()
                    await self._idle.wait()
            if self._in_flight:
                logger.warning(
                    "Abandoning %d in-flight request(s): %s",
                    len(self._in_flight),
                    sorted(map(str, self._in_flight)),
                )
        task_group.cancel_scope.cancel()

    async def _initialize(self, params: dict[str, Any]) -> dict[str, Any]:
        if self.state is not ServerState.CONNECTED:
            raise ProtocolError(INVALID_REQUEST, "Server already initialized")
        parsed: InitializeParams = _parse_params(InitializeParams, params)
        requested = parsed.protocol_version
        version = (
            requested
            if requested in SUPPORTED_PROTOCOL_VERSIONS
            else LATEST_PROTOCOL_VERSION
        )
        result = InitializeResult(
            protocolVersion=version,
            capabilities=ServerCapabilities(
                tools=ToolsCapability(listChanged=False),
                resources=ResourcesCapability(subscribe=False, listChanged=False),
            ),
            serverInfo=Implementation(name=self.name, version=self.version),
            instructions=self.instructions,
        )
        logger.info("Client negotiated protocol %s", version)
        self._set_state(ServerState.SERVING)
        return _dump(result)

    async def _ping(self, params: dict[str, Any]) -> dict[str, Any]:
        return {}

    async def _list_tools(self, params: dict[str, Any]) -> dict[str, Any]:
        return _dump(ListToolsResult(tools=self.tools.list_tools()))

    async def _call_tool(self, params: dict[str, Any]) -> dict[str, Any]:
        parsed: CallToolParams = _parse_params(CallToolParams, params)
        try:
            result = await self.tools.invoke(parsed.name, parsed.arguments or {})
        except UnknownToolError as error:
            raise ProtocolError(
                INVALID_PARAMS,
                error.message,
                {"kind": error.error_type, "tool": parsed.name},
            ) from error
        return _dump(result.to_call_tool_result())

    async def _list_resources(self, params: dict[str, Any]) -> dict[str, Any]:
        return _dump(ListResourcesResult(resources=self.resources.list_resources()))

    async def _list_resource_templates(self, params: dict[str, Any]) -> dict[str, Any]:
        return _dump(
            ListResourceTemplatesResult(
                resourceTemplates=self.resources.list_templates()
            )
        )

    async def _read_resource(self, params: dict[str, Any]) -> dict[str, Any]:
        parsed: ReadResourceParams = _parse_params(ReadResourceParams, params)
        try:
            contents = await self.resources.read(parsed.uri)
        except ResourceNotFoundError as error:
            raise ProtocolError(
                RESOURCE_NOT_FOUND,
                error.message,
                {"kind": error.error_type, "uri": parsed.uri},
            ) from error
        except MCPError as error:
            raise ProtocolError(
                INTERNAL_ERROR, error.message, error.to_dict()["error"]
            ) from error
        return {"contents": [contents.to_dict()]}
