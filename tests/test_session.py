"""Tests for the MCP streaming session and tool invoker."""

import asyncio

import pytest

from cryptoterminal.exceptions import (
    ProviderError,
    RequestTimeoutError,
    SessionConnectionError,
    SessionNotReadyError,
)
from cryptoterminal.mcp.tools import ToolInvoker, result_text
from tests.conftest import (
    MESSAGE_ENDPOINT,
    SESSION_ID,
    FakeMCPServer,
    make_session,
    text_result,
)


# =============================================================================
# Connection Tests
# =============================================================================

class TestConnect:

    @pytest.mark.asyncio
    async def test_connect_waits_for_endpoint(self, mcp_server):
        client = make_session(mcp_server)
        session = await client.connect()
        try:
            assert session.message_endpoint == MESSAGE_ENDPOINT
            assert session.session_id == SESSION_ID
            assert client.is_connected is True
            assert mcp_server.stream_params["key"] == "lc-test-key"
        finally:
            await client.disconnect()

    @pytest.mark.asyncio
    async def test_connect_is_reused(self, mcp_server):
        client = make_session(mcp_server)
        first = await client.connect()
        try:
            assert await client.connect() is first
            assert mcp_server.streams_opened == 1
        finally:
            await client.disconnect()

    @pytest.mark.asyncio
    async def test_endpoint_detected_from_message_path(self):
        server = FakeMCPServer(announce_endpoint=False)
        await server.push_raw("data: /sse/message?sessionId=marker\n\n")

        async with make_session(server) as client:
            assert client.session.message_endpoint == "/sse/message?sessionId=marker"

    @pytest.mark.asyncio
    async def test_bad_status_raises(self):
        server = FakeMCPServer(sse_status=401)
        client = make_session(server)

        with pytest.raises(SessionConnectionError, match="status 401"):
            await client.connect()
        assert client.is_connected is False

    @pytest.mark.asyncio
    async def test_missing_endpoint_times_out(self):
        server = FakeMCPServer(announce_endpoint=False)
        client = make_session(server, connect_timeout=0.2)

        with pytest.raises(RequestTimeoutError, match="Connection timeout"):
            await client.connect()
        assert client.is_connected is False

    @pytest.mark.asyncio
    async def test_stream_ending_before_endpoint_raises(self):
        server = FakeMCPServer(announce_endpoint=False)
        await server.close_stream()
        client = make_session(server)

        with pytest.raises(SessionConnectionError, match="ended before endpoint"):
            await client.connect()

    @pytest.mark.asyncio
    async def test_request_before_connect_raises(self, mcp_server):
        client = make_session(mcp_server)

        with pytest.raises(SessionNotReadyError):
            await client.request("tools/list")
        assert mcp_server.requests == []


# =============================================================================
# Request Tests
# =============================================================================

class TestRequests:

    @pytest.mark.asyncio
    async def test_request_roundtrip(self, mcp_server):
        async with make_session(mcp_server) as client:
            result = await client.request("tools/list")

        assert [tool["name"] for tool in result["tools"]] == [
            "Topic",
            "Topic_Time_Series",
            "Cryptocurrencies",
        ]
        assert client.stats["frames_dispatched"] == 1

    @pytest.mark.asyncio
    async def test_malformed_frame_is_dropped(self, mcp_server):
        async with make_session(mcp_server) as client:
            await mcp_server.push_raw('data: {"jsonrpc": "2.0", "id": \n\n')
            result = await client.request("ping")

            assert result == {}
            assert client.stats["frames_dropped"] == 1

    @pytest.mark.asyncio
    async def test_late_frame_after_timeout_is_ignored(self, mcp_server):
        mcp_server.silent.add("tools/list")

        async with make_session(mcp_server, request_timeout=0.2) as client:
            with pytest.raises(RequestTimeoutError):
                await client.request("tools/list")
            assert client.pending_count == 0

            late_id = mcp_server.requests[-1]["id"]
            await mcp_server.push_frame({"jsonrpc": "2.0", "id": late_id, "result": {}})
            # Frames are read in order, so the late one is handled before this reply
            assert await client.request("ping") == {}

            assert client.stats["frames_dropped"] == 1
            assert client.pending_count == 0

    @pytest.mark.asyncio
    async def test_stream_close_fails_pending_requests(self, mcp_server):
        mcp_server.silent.add("tools/list")

        async with make_session(mcp_server) as client:
            task = asyncio.create_task(client.request("tools/list"))
            while not mcp_server.requests:
                await asyncio.sleep(0)
            await mcp_server.close_stream()

            with pytest.raises(SessionConnectionError, match="stream closed"):
                await task


# =============================================================================
# Teardown Tests
# =============================================================================

class TestDisconnect:

    @pytest.mark.asyncio
    async def test_disconnect_is_idempotent(self, mcp_server):
        client = make_session(mcp_server)
        await client.connect()

        await client.disconnect()
        await client.disconnect()

        assert client.is_connected is False
        with pytest.raises(SessionNotReadyError):
            await client.request("tools/list")

    @pytest.mark.asyncio
    async def test_disconnect_without_connect(self, mcp_server):
        client = make_session(mcp_server)
        await client.disconnect()
        assert client.is_connected is False

    @pytest.mark.asyncio
    async def test_disconnect_rejects_pending(self, mcp_server):
        mcp_server.silent.add("tools/list")
        client = make_session(mcp_server)
        await client.connect()

        task = asyncio.create_task(client.request("tools/list"))
        while not mcp_server.requests:
            await asyncio.sleep(0)
        await client.disconnect()

        with pytest.raises(SessionConnectionError):
            await task
        assert client.pending_count == 0

    @pytest.mark.asyncio
    async def test_context_manager_closes_session(self, mcp_server):
        async with make_session(mcp_server) as client:
            assert client.is_connected is True
        assert client.is_connected is False


# =============================================================================
# Tool Invoker Tests
# =============================================================================

class TestToolInvoker:

    @pytest.mark.asyncio
    async def test_list_tools(self, mcp_server):
        async with make_session(mcp_server) as client:
            tools = await ToolInvoker(client).list_tools()

        assert [t.name for t in tools] == ["Topic", "Topic_Time_Series", "Cryptocurrencies"]
        assert tools[0].input_schema["properties"]["topic"]["type"] == "string"

    @pytest.mark.asyncio
    async def test_list_tools_skips_nameless_entries(self):
        server = FakeMCPServer(tools=[{"description": "no name"}, {"name": "Topic"}])
        async with make_session(server) as client:
            tools = await ToolInvoker(client).list_tools()
        assert [t.name for t in tools] == ["Topic"]

    @pytest.mark.asyncio
    async def test_list_tools_skips_invalid_descriptors(self):
        server = FakeMCPServer(tools=[
            {"name": "Broken", "inputSchema": None},
            {"name": "Topic", "inputSchema": {"type": "object"}},
        ])
        async with make_session(server) as client:
            tools = await ToolInvoker(client).list_tools()
        assert [t.name for t in tools] == ["Topic"]

    @pytest.mark.asyncio
    async def test_call_tool_passes_arguments(self, mcp_server):
        mcp_server.tool_results["Topic"] = text_result("Galaxy Score: 71")

        async with make_session(mcp_server) as client:
            result = await ToolInvoker(client).call_tool("Topic", {"topic": "btc"})

        assert result_text(result) == "Galaxy Score: 71"
        params = mcp_server.calls_for("tools/call")[0]["params"]
        assert params == {"name": "Topic", "arguments": {"topic": "btc"}}

    @pytest.mark.asyncio
    async def test_call_tool_error_propagates(self, mcp_server):
        mcp_server.tool_errors["Topic"] = {"code": -32000, "message": "rate limited"}

        async with make_session(mcp_server) as client:
            with pytest.raises(ProviderError, match="rate limited"):
                await ToolInvoker(client).call_tool("Topic", {"topic": "btc"})


class TestResultText:

    def test_joins_text_parts(self):
        result = {"content": [{"type": "text", "text": "a"}, {"type": "image"}, {"text": "b"}]}
        assert result_text(result) == "a\nb"

    def test_plain_values(self):
        assert result_text("raw") == "raw"
        assert result_text(None) == ""
        assert result_text({"price": 1}) == "{'price': 1}"
