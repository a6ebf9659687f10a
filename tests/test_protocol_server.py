"""Tests for the JSON-RPC protocol server."""

from __future__ import annotations

import json
import time
from typing import Any

import anyio
import pytest
from mcp.shared.message import SessionMessage
from mcp.types import LATEST_PROTOCOL_VERSION, JSONRPCMessage

from code_assistant_mcp.resources import ResourceDefinition, ResourceRegistry
from code_assistant_mcp.server import (
    RESOURCE_NOT_FOUND,
    ProtocolServer,
    ServerState,
)
from code_assistant_mcp.tools import ToolDefinition, ToolParameters, ToolRegistry


class NapParams(ToolParameters):
    """Parameters for the nap tool."""

    label: str
    delay: float = 0.0


def _registry() -> ToolRegistry:
    async def nap(params: NapParams) -> str:
        await anyio.sleep(params.delay)
        return params.label

    async def explode(params: ToolParameters) -> str:
        raise RuntimeError("kaboom")

    registry = ToolRegistry()
    registry.register_tools(
        ToolDefinition(
            name="nap",
            description="Sleep, then answer with the label",
            parameters_model=NapParams,
            handler=nap,
        ),
        ToolDefinition(
            name="explode",
            description="Always crashes",
            parameters_model=ToolParameters,
            handler=explode,
        ),
    )
    return registry


def _resources() -> ResourceRegistry:
    async def hello(uri: str) -> str:
        return "hi there"

    registry = ResourceRegistry()
    registry.register(
        ResourceDefinition(
            uri="hello://world", name="hello", description="Greeting", resolver=hello
        )
    )
    return registry


def _server(drain_timeout: float = 5.0) -> ProtocolServer:
    return ProtocolServer(
        _registry(), _resources(), name="test-server", drain_timeout=drain_timeout
    )


def _request(request_id: int | str, method: str, params: Any = None) -> str:
    frame: dict[str, Any] = {"jsonrpc": "2.0", "id": request_id, "method": method}
    if params is not None:
        frame["params"] = params
    return json.dumps(frame)


INITIALIZE = _request(
    0,
    "initialize",
    {
        "protocolVersion": LATEST_PROTOCOL_VERSION,
        "capabilities": {},
        "clientInfo": {"name": "pytest", "version": "1"},
    },
)


def _transport_item(line: str) -> SessionMessage | Exception:
    """Parse one line the way the stdio transport does."""
    try:
        return SessionMessage(JSONRPCMessage.model_validate_json(line))
    except Exception as exc:
        return exc


def _wire(message: SessionMessage) -> dict[str, Any]:
    return json.loads(message.message.model_dump_json(by_alias=True, exclude_none=True))


async def _session(
    server: ProtocolServer, frames: list[str | Exception]
) -> list[dict[str, Any]]:
    """Feed ``frames`` to ``server`` and collect the responses in send order."""
    client_send, server_receive = anyio.create_memory_object_stream[
        SessionMessage | Exception
    ](100)
    server_send, client_receive = anyio.create_memory_object_stream[SessionMessage](
        100
    )
    async with client_send:
        for frame in frames:
            item = _transport_item(frame) if isinstance(frame, str) else frame
            await client_send.send(item)

    async with client_receive:
        async with server_send:
            await server.serve(server_receive, server_send)
        return [_wire(message) async for message in client_receive]


def _by_id(responses: list[dict[str, Any]]) -> dict[Any, dict[str, Any]]:
    return {response.get("id"): response for response in responses}


class TestHandshake:
    """Initialization and lifecycle."""

    @pytest.mark.anyio()
    async def test_initialize_reports_capabilities(self) -> None:
        """The handshake reports the server identity and both capabilities."""
        # Arrange
        server = _server()

        # Act
        (response,) = await _session(server, [INITIALIZE])

        # Assert
        result = response["result"]
        assert response["id"] == 0
        assert result["protocolVersion"] == LATEST_PROTOCOL_VERSION
        assert result["serverInfo"]["name"] == "test-server"
        assert "tools" in result["capabilities"]
        assert "resources" in result["capabilities"]
        assert server.state is ServerState.CLOSED

    @pytest.mark.anyio()
    async def test_unsupported_version_falls_back_to_latest(self) -> None:
        """An unknown protocol version is answered with the latest one."""
        # Arrange
        frame = _request(1, "initialize", {"protocolVersion": "1999-01-01"})

        # Act
        (response,) = await _session(_server(), [frame])

        # Assert
        assert response["result"]["protocolVersion"] == LATEST_PROTOCOL_VERSION

    @pytest.mark.anyio()
    async def test_second_initialize_is_rejected(self) -> None:
        """Only the first initialize request is accepted."""
        # Act
        responses = await _session(
            _server(), [INITIALIZE, _request(1, "initialize", {})]
        )

        # Assert
        assert _by_id(responses)[1]["error"]["code"] == -32600

    @pytest.mark.anyio()
    async def test_requests_before_initialize_are_rejected(self) -> None:
        """Only ping is answered before the handshake completes."""
        # Act
        responses = await _session(
            _server(), [_request(1, "tools/list"), _request(2, "ping")]
        )

        # Assert
        by_id = _by_id(responses)
        assert by_id[1]["error"]["code"] == -32600
        assert by_id[1]["error"]["message"] == "Server not initialized"
        assert by_id[2]["result"] == {}

    @pytest.mark.anyio()
    async def test_server_cannot_be_attached_twice(self) -> None:
        """A closed server refuses a second transport."""
        # Arrange
        server = _server()
        await _session(server, [])

        # Act / Assert
        with pytest.raises(RuntimeError):
            await _session(server, [])


class TestFraming:
    """Malformed input and notifications."""

    @pytest.mark.anyio()
    async def test_parse_error(self) -> None:
        """Invalid JSON is answered with an id-less parse error."""
        # Act
        (response,) = await _session(_server(), ["{not json"])

        # Assert
        assert "id" not in response
        assert response["error"]["code"] == -32700
        assert response["error"]["message"].startswith("Parse error")

    @pytest.mark.anyio()
    async def test_batches_are_rejected(self) -> None:
        """A JSON array is an invalid request."""
        # Act
        (response,) = await _session(_server(), [f"[{INITIALIZE}]"])

        # Assert
        assert response["error"]["code"] == -32600
        assert response["error"]["message"] == "Batch requests are not supported"

    @pytest.mark.anyio()
    async def test_invalid_request_keeps_id(self) -> None:
        """A malformed request still echoes the id it carried."""
        # Arrange
        frame = json.dumps({"jsonrpc": "2.0", "id": 9, "method": 42})

        # Act
        (response,) = await _session(_server(), [frame])

        # Assert
        assert response["id"] == 9
        assert response["error"]["code"] == -32600

    @pytest.mark.anyio()
    async def test_transport_failure_is_invalid_request(self) -> None:
        """A non-validation error from the transport is an invalid request."""
        # Act
        (response,) = await _session(_server(), [ValueError("bad frame")])

        # Assert
        assert "id" not in response
        assert response["error"]["code"] == -32600
        assert "bad frame" in response["error"]["message"]

    @pytest.mark.anyio()
    async def test_notifications_get_no_response(self) -> None:
        """Notifications, including cancellation notices, are never answered."""
        # Arrange
        notification = json.dumps(
            {"jsonrpc": "2.0", "method": "notifications/initialized"}
        )
        cancelled = json.dumps(
            {
                "jsonrpc": "2.0",
                "method": "notifications/cancelled",
                "params": {"requestId": 3},
            }
        )

        # Act
        responses = await _session(_server(), [INITIALIZE, notification, cancelled])

        # Assert
        assert [response["id"] for response in responses] == [0]

    @pytest.mark.anyio()
    async def test_responses_are_session_messages(self) -> None:
        """Each response leaves as a JSON-RPC message on the write stream."""
        # Arrange
        client_send, server_receive = anyio.create_memory_object_stream[
            SessionMessage | Exception
        ](1)
        server_send, client_receive = anyio.create_memory_object_stream[
            SessionMessage
        ](1)
        async with client_send:
            await client_send.send(_transport_item(INITIALIZE))

        # Act
        async with client_receive:
            async with server_send:
                await _server().serve(server_receive, server_send)
            message = await client_receive.receive()

        # Assert
        assert isinstance(message, SessionMessage)
        assert message.message.root.id == 0


class TestDispatch:
    """Method routing once the server is serving."""

    @pytest.mark.anyio()
    async def test_unknown_method(self) -> None:
        """Unregistered methods are answered with method-not-found."""
        # Act
        responses = await _session(_server(), [INITIALIZE, _request(1, "bogus/call")])

        # Assert
        assert _by_id(responses)[1]["error"]["code"] == -32601

    @pytest.mark.anyio()
    async def test_tools_list(self) -> None:
        """tools/list returns the catalog in registration order."""
        # Act
        responses = await _session(_server(), [INITIALIZE, _request(1, "tools/list")])

        # Assert
        tools = _by_id(responses)[1]["result"]["tools"]
        assert [tool["name"] for tool in tools] == ["nap", "explode"]
        assert tools[0]["inputSchema"]["required"] == ["label"]

    @pytest.mark.anyio()
    async def test_tools_call(self) -> None:
        """A successful call returns the handler's text."""
        # Arrange
        call = _request(1, "tools/call", {"name": "nap", "arguments": {"label": "hi"}})

        # Act
        responses = await _session(_server(), [INITIALIZE, call])

        # Assert
        result = _by_id(responses)[1]["result"]
        assert result["isError"] is False
        assert result["content"] == [{"type": "text", "text": "hi"}]

    @pytest.mark.anyio()
    async def test_unknown_tool_is_protocol_error(self) -> None:
        """Calling an unregistered tool is an invalid-params error."""
        # Arrange
        call = _request(1, "tools/call", {"name": "missing", "arguments": {}})

        # Act
        responses = await _session(_server(), [INITIALIZE, call])

        # Assert
        error = _by_id(responses)[1]["error"]
        assert error["code"] == -32602
        assert error["data"]["kind"] == "UnknownTool"

    @pytest.mark.anyio()
    async def test_tools_call_without_name_is_invalid_params(self) -> None:
        """tools/call params must name a tool."""
        # Arrange
        call = _request(1, "tools/call", {"arguments": {}})

        # Act
        responses = await _session(_server(), [INITIALIZE, call])

        # Assert
        assert _by_id(responses)[1]["error"]["code"] == -32602

    @pytest.mark.anyio()
    async def test_invalid_arguments_are_tool_errors(self) -> None:
        """Bad arguments produce a failed tool result naming the field."""
        # Arrange
        call = _request(1, "tools/call", {"name": "nap", "arguments": {"lbl": "x"}})

        # Act
        responses = await _session(_server(), [INITIALIZE, call])

        # Assert
        result = _by_id(responses)[1]["result"]
        assert result["isError"] is True
        assert "lbl" in result["content"][0]["text"]
        assert result["structuredContent"]["error"]["type"] == "InvalidArguments"

    @pytest.mark.anyio()
    async def test_handler_crash_is_tool_error(self) -> None:
        """A crashing handler becomes a failed tool result."""
        # Arrange
        call = _request(1, "tools/call", {"name": "explode"})

        # Act
        responses = await _session(_server(), [INITIALIZE, call])

        # Assert
        result = _by_id(responses)[1]["result"]
        assert result["isError"] is True
        assert result["content"][0]["text"] == "Tool 'explode' failed: kaboom"

    @pytest.mark.anyio()
    async def test_resources(self) -> None:
        """Resources can be listed and read; unknown URIs are not found."""
        # Arrange
        frames = [
            INITIALIZE,
            _request(1, "resources/list"),
            _request(2, "resources/read", {"uri": "hello://world"}),
            _request(3, "resources/read", {"uri": "nothing://here"}),
            _request(4, "resources/templates/list"),
        ]

        # Act
        by_id = _by_id(await _session(_server(), frames))

        # Assert
        assert [r["name"] for r in by_id[1]["result"]["resources"]] == ["hello"]
        assert by_id[2]["result"]["contents"] == [
            {"uri": "hello://world", "text": "hi there", "mimeType": "text/plain"}
        ]
        assert by_id[3]["error"]["code"] == RESOURCE_NOT_FOUND
        assert by_id[4]["result"]["resourceTemplates"] == []


class TestConcurrency:
    """Out-of-order completion, duplicate ids and draining."""

    @pytest.mark.anyio()
    async def test_fast_request_overtakes_slow_one(self) -> None:
        """Responses leave in completion order and keep their ids."""
        # Arrange
        slow = _request(
            "slow",
            "tools/call",
            {"name": "nap", "arguments": {"label": "s", "delay": 0.5}},
        )
        fast = _request(
            "fast", "tools/call", {"name": "nap", "arguments": {"label": "f"}}
        )

        # Act
        responses = await _session(_server(), [INITIALIZE, slow, fast])

        # Assert
        assert [response["id"] for response in responses] == [0, "fast", "slow"]
        by_id = _by_id(responses)
        assert by_id["slow"]["result"]["content"][0]["text"] == "s"
        assert by_id["fast"]["result"]["content"][0]["text"] == "f"

    @pytest.mark.anyio()
    async def test_duplicate_in_flight_id_is_rejected(self) -> None:
        """A second request reusing a running id is refused."""
        # Arrange
        call = _request(
            7, "tools/call", {"name": "nap", "arguments": {"label": "a", "delay": 0.3}}
        )

        # Act
        responses = await _session(_server(), [INITIALIZE, call, call])

        # Assert
        sevens = [response for response in responses if response["id"] == 7]
        assert len(sevens) == 2
        assert sevens[0]["error"]["code"] == -32600
        assert sevens[1]["result"]["content"][0]["text"] == "a"

    @pytest.mark.anyio()
    async def test_end_of_input_waits_for_in_flight_requests(self) -> None:
        """Closing the input does not drop a request that is still running."""
        # Arrange
        call = _request(
            1,
            "tools/call",
            {"name": "nap", "arguments": {"label": "done", "delay": 0.2}},
        )

        # Act
        responses = await _session(_server(drain_timeout=5.0), [INITIALIZE, call])

        # Assert
        assert _by_id(responses)[1]["result"]["content"][0]["text"] == "done"

    @pytest.mark.anyio()
    async def test_drain_timeout_abandons_stuck_requests(self) -> None:
        """Requests still running after the drain timeout are cancelled."""
        # Arrange
        server = _server(drain_timeout=0.2)
        call = _request(
            1,
            "tools/call",
            {"name": "nap", "arguments": {"label": "late", "delay": 30.0}},
        )

        # Act
        started = time.monotonic()
        responses = await _session(server, [INITIALIZE, call])
        elapsed = time.monotonic() - started

        # Assert
        assert [response["id"] for response in responses] == [0]
        assert server.state is ServerState.CLOSED
        assert elapsed < 5
