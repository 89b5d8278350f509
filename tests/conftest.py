"""
Shared fixtures: an in-process fake of the LunarCrush MCP server and a fake
Gemini endpoint, both served through httpx.MockTransport.
"""

import asyncio
import json
from typing import Any

import httpx
import pytest

from cryptoterminal.llm.gemini import ModelGateway
from cryptoterminal.mcp.session import StreamingSessionClient

MCP_BASE_URL = "https://lunarcrush.test"
SESSION_ID = "sess-0123456789abcdef"
MESSAGE_ENDPOINT = f"/sse/message?sessionId={SESSION_ID}"

DEFAULT_TOOLS = [
    {
        "name": "Topic",
        "description": "Social and market data for a topic",
        "inputSchema": {"type": "object", "properties": {"topic": {"type": "string"}}},
    },
    {
        "name": "Topic_Time_Series",
        "description": "Historical metrics for a topic",
        "inputSchema": {"type": "object", "properties": {"topic": {"type": "string"}}},
    },
    {
        "name": "Cryptocurrencies",
        "description": "List of tracked cryptocurrencies",
        "inputSchema": {"type": "object", "properties": {}},
    },
]


def text_result(text: str) -> dict[str, Any]:
    return {"content": [{"type": "text", "text": text}]}


class FakeMCPServer:
    """
    Scriptable MCP server.

    GET opens an event stream that announces the message endpoint; every
    POSTed JSON-RPC request is answered on that stream unless its method or
    tool name is listed in ``silent``.
    """

    def __init__(
        self,
        tools: list[dict[str, Any]] | None = None,
        announce_endpoint: bool = True,
        sse_status: int = 200,
        post_status: int = 202,
    ):
        self.tools = DEFAULT_TOOLS if tools is None else tools
        self.announce_endpoint = announce_endpoint
        self.sse_status = sse_status
        self.post_status = post_status
        self.tool_results: dict[str, Any] = {}
        self.tool_errors: dict[str, dict[str, Any]] = {}
        self.silent: set[str] = set()
        self.requests: list[dict[str, Any]] = []
        self.stream_params: dict[str, str] = {}
        self.streams_opened = 0
        self._queue: asyncio.Queue = asyncio.Queue()

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    async def handle(self, request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            return self._open_stream(request)

        body = json.loads(request.content)
        self.requests.append(body)
        if self.post_status not in (200, 202):
            return httpx.Response(self.post_status, text="rejected")

        frame = self._reply_for(body)
        if frame is not None:
            await self.push_frame(frame)
        return httpx.Response(self.post_status, text="Accepted")

    def _open_stream(self, request: httpx.Request) -> httpx.Response:
        self.streams_opened += 1
        self.stream_params = dict(request.url.params)
        if self.sse_status != 200:
            return httpx.Response(self.sse_status, text="Unauthorized")
        return httpx.Response(
            200,
            headers={"content-type": "text/event-stream", "mcp-session-id": SESSION_ID},
            content=self._events(),
        )

    async def _events(self):
        yield b": keep-alive\n\n"
        if self.announce_endpoint:
            yield f"event: endpoint\ndata: {MESSAGE_ENDPOINT}\n\n".encode()
        while True:
            chunk = await self._queue.get()
            if chunk is None:
                return
            yield chunk

    def _reply_for(self, body: dict[str, Any]) -> dict[str, Any] | None:
        method = body.get("method")
        request_id = body.get("id")
        if method in self.silent:
            return None

        if method == "tools/list":
            return {"jsonrpc": "2.0", "id": request_id, "result": {"tools": self.tools}}

        if method == "tools/call":
            name = body["params"]["name"]
            if name in self.silent:
                return None
            if name in self.tool_errors:
                return {"jsonrpc": "2.0", "id": request_id, "error": self.tool_errors[name]}
            result = self.tool_results.get(name, text_result(f"{name} data"))
            return {"jsonrpc": "2.0", "id": request_id, "result": result}

        return {"jsonrpc": "2.0", "id": request_id, "result": {}}

    async def push_frame(self, frame: dict[str, Any]) -> None:
        await self.push_raw(f"event: message\ndata: {json.dumps(frame)}\n\n")

    async def push_raw(self, text: str) -> None:
        await self._queue.put(text.encode())

    async def close_stream(self) -> None:
        await self._queue.put(None)

    def calls_for(self, method: str) -> list[dict[str, Any]]:
        return [r for r in self.requests if r.get("method") == method]


class FakeGemini:
    """
    Fake ``generateContent`` endpoint answering from a script.

    Each reply is either the text of the first candidate or an int status
    code returned as an error.
    """

    def __init__(self, replies: list[str | int]):
        self.replies = list(replies)
        self.prompts: list[str] = []
        self.requests: list[httpx.Request] = []

    async def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        body = json.loads(request.content)
        self.prompts.append(body["contents"][0]["parts"][0]["text"])

        reply = self.replies.pop(0)
        if isinstance(reply, int):
            return httpx.Response(reply, json={"error": {"message": "upstream failure"}})
        return httpx.Response(
            200,
            json={"candidates": [{"content": {"parts": [{"text": reply}]}}]},
        )

    def gateway(self) -> ModelGateway:
        return ModelGateway(
            api_key="gemini-test-key",
            base_url="https://gemini.test/v1beta",
            transport=httpx.MockTransport(self.handle),
        )


def make_session(server: FakeMCPServer, **kwargs: Any) -> StreamingSessionClient:
    options = {
        "api_key": "lc-test-key",
        "base_url": MCP_BASE_URL,
        "connect_timeout": 1.0,
        "request_timeout": 1.0,
    }
    options.update(kwargs)
    return StreamingSessionClient(transport=server.transport, **options)


@pytest.fixture
def mcp_server():
    return FakeMCPServer()
