"""
CryptoTerminal - LunarCrush MCP Streaming Session

Manages the Server-Sent-Events connection to the LunarCrush MCP server.
The stream first announces the endpoint that accepts JSON-RPC submissions,
then carries the response frames for every request sent to it.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import httpx

from cryptoterminal.config import settings
from cryptoterminal.exceptions import (
    RequestTimeoutError,
    SessionConnectionError,
    SessionNotReadyError,
)
from cryptoterminal.logging import get_mcp_logger
from cryptoterminal.mcp.correlator import RequestCorrelator

logger = get_mcp_logger()


@dataclass
class Session:
    """An open MCP session."""

    session_id: str | None
    message_endpoint: str
    opened_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class StreamingSessionClient:
    """
    SSE client for one MCP session.

    Features:
    - Endpoint discovery from the first stream frames
    - Background demultiplexing of JSON-RPC response frames
    - Idempotent teardown, also usable as an async context manager

    A client instance serves exactly one analysis request and is never
    shared between concurrent analyses.
    """

    ENDPOINT_EVENT = "endpoint"
    MESSAGE_PATH_MARKER = "/message"

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        sse_path: str | None = None,
        connect_timeout: float | None = None,
        request_timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize the session client.

        Args:
            api_key: LunarCrush API key (defaults to settings)
            base_url: MCP host (defaults to settings)
            sse_path: Path of the event stream
            connect_timeout: Bound in seconds for receiving the message endpoint
            request_timeout: Bound in seconds for each JSON-RPC round trip
            transport: Optional httpx transport, used by tests
        """
        config = settings.lunarcrush
        self.api_key = api_key if api_key is not None else config.api_key
        self.base_url = base_url or config.base_url
        self.sse_path = sse_path or config.sse_path
        self.connect_timeout = connect_timeout or config.connect_timeout_seconds
        self.request_timeout = request_timeout or config.request_timeout_seconds
        self._transport = transport

        self._client: httpx.AsyncClient | None = None
        self._response: httpx.Response | None = None
        self._reader: asyncio.Task | None = None
        self._endpoint_ready: asyncio.Future | None = None
        self._correlator: RequestCorrelator | None = None
        self._session: Session | None = None
        self._session_id: str | None = None
        self._stats = {
            "lines_received": 0,
            "frames_dispatched": 0,
            "frames_dropped": 0,
        }

    @property
    def session(self) -> Session | None:
        return self._session

    @property
    def is_connected(self) -> bool:
        return self._session is not None

    @property
    def pending_count(self) -> int:
        return self._correlator.pending_count if self._correlator else 0

    @property
    def stats(self) -> dict[str, Any]:
        """Get current statistics."""
        return {**self._stats, "is_connected": self.is_connected}

    async def __aenter__(self) -> StreamingSessionClient:
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.disconnect()

    async def connect(self) -> Session:
        """
        Open the event stream and wait for the message endpoint.

        Raises:
            SessionConnectionError: Bad status, network failure, or the stream
                ended before announcing the endpoint
            RequestTimeoutError: No endpoint within ``connect_timeout``
        """
        if self._session is not None:
            return self._session

        logger.info("connecting_to_mcp", host=self.base_url)
        try:
            await asyncio.wait_for(self._open(), timeout=self.connect_timeout)
        except asyncio.TimeoutError:
            await self.disconnect()
            raise RequestTimeoutError("Connection timeout") from None
        except BaseException:
            await self.disconnect()
            raise

        logger.info(
            "connected_to_mcp",
            session=(self._session.session_id or "")[:10],
        )
        return self._session

    async def _open(self) -> None:
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(self.request_timeout, connect=self.connect_timeout),
            transport=self._transport,
        )
        # The stream stays open for the whole session; no read timeout on it
        request = self._client.build_request(
            "GET",
            self.sse_path,
            params={"key": self.api_key},
            headers={"Accept": "text/event-stream", "Cache-Control": "no-cache"},
            timeout=httpx.Timeout(self.connect_timeout, read=None),
        )

        try:
            response = await self._client.send(request, stream=True)
        except httpx.HTTPError as e:
            raise SessionConnectionError(
                f"SSE connection failed: {type(e).__name__}"
            ) from e

        if response.status_code != 200:
            await response.aclose()
            raise SessionConnectionError(
                f"SSE failed with status {response.status_code}"
            )

        self._response = response
        self._session_id = response.headers.get("mcp-session-id")
        self._correlator = RequestCorrelator(self._client, timeout=self.request_timeout)
        self._endpoint_ready = asyncio.get_running_loop().create_future()
        self._reader = asyncio.create_task(self._read_stream(response))

        endpoint = await self._endpoint_ready
        self._session = Session(session_id=self._session_id, message_endpoint=endpoint)
        logger.info("message_endpoint_ready")

    async def _read_stream(self, response: httpx.Response) -> None:
        """Consume the stream until it ends, is cancelled, or fails."""
        event_name = ""
        try:
            async for line in response.aiter_lines():
                self._stats["lines_received"] += 1
                event_name = self._handle_line(line, event_name)
            logger.info("mcp_stream_ended")
            self._fail_endpoint(SessionConnectionError("SSE stream ended before endpoint"))
        except asyncio.CancelledError:
            raise
        except httpx.HTTPError as e:
            logger.warning("mcp_stream_error", error=str(e), error_type=type(e).__name__)
            self._fail_endpoint(SessionConnectionError(f"SSE stream failed: {e}"))
        finally:
            if self._correlator is not None:
                self._correlator.reject_all(SessionConnectionError("MCP stream closed"))

    def _handle_line(self, line: str, event_name: str) -> str:
        """Process one complete line and return the current event name."""
        if not line:
            return ""
        if line.startswith(":"):
            return event_name
        if line.startswith("event:"):
            return line[len("event:"):].strip()
        if not line.startswith("data:"):
            return event_name

        data = line[len("data:"):].strip()
        if data.startswith("{"):
            if '"jsonrpc"' in data:
                self._dispatch_frame(data)
        elif event_name == self.ENDPOINT_EVENT or self.MESSAGE_PATH_MARKER in data:
            self._announce_endpoint(data)
        return event_name

    def _announce_endpoint(self, endpoint: str) -> None:
        # First announcement wins
        if self._endpoint_ready is not None and not self._endpoint_ready.done():
            self._endpoint_ready.set_result(endpoint)

    def _fail_endpoint(self, exc: Exception) -> None:
        if self._endpoint_ready is not None and not self._endpoint_ready.done():
            self._endpoint_ready.set_exception(exc)

    def _dispatch_frame(self, data: str) -> None:
        try:
            frame = json.loads(data)
        except json.JSONDecodeError as e:
            logger.warning("frame_dropped", reason="invalid_json", error=str(e))
            self._stats["frames_dropped"] += 1
            return

        if not isinstance(frame, dict) or self._correlator is None:
            self._stats["frames_dropped"] += 1
            return

        if self._correlator.resolve(frame):
            self._stats["frames_dispatched"] += 1
        else:
            self._stats["frames_dropped"] += 1

    async def request(self, method: str, params: dict[str, Any] | None = None) -> Any:
        """
        Send a JSON-RPC request over this session.

        Raises:
            SessionNotReadyError: The message endpoint is not known yet
        """
        if self._session is None or self._correlator is None:
            raise SessionNotReadyError(
                "MCP not initialized. Call connect() first."
            )
        return await self._correlator.send(self._session.message_endpoint, method, params)

    async def disconnect(self) -> None:
        """Tear down the stream and clear pending requests. Idempotent."""
        was_connected = self._session is not None
        self._session = None
        self._session_id = None

        if self._correlator is not None:
            self._correlator.reject_all(SessionConnectionError("MCP session closed"))
            self._correlator = None

        if self._endpoint_ready is not None and not self._endpoint_ready.done():
            self._endpoint_ready.cancel()
        self._endpoint_ready = None

        reader, self._reader = self._reader, None
        if reader is not None and not reader.done():
            reader.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await reader

        response, self._response = self._response, None
        if response is not None:
            await response.aclose()

        client, self._client = self._client, None
        if client is not None:
            await client.aclose()

        if was_connected:
            logger.info("disconnected_from_mcp")
