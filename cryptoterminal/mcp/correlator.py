"""
CryptoTerminal - JSON-RPC Request Correlator

Submissions are POSTed to the session's message endpoint, but their results
arrive later on the SSE stream. The correlator ties each response frame back
to the request that produced it.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import httpx

from cryptoterminal.exceptions import (
    ProviderError,
    RequestTimeoutError,
    SessionConnectionError,
)
from cryptoterminal.logging import get_logger

logger = get_logger(__name__, component="mcp_correlator")

ACCEPTED_STATUS_CODES = frozenset({200, 202})


@dataclass
class PendingRequest:
    """An in-flight request waiting for its response frame."""

    id: str
    method: str
    future: asyncio.Future
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class RequestCorrelator:
    """
    Tracks in-flight JSON-RPC requests for one MCP session.

    Each pending entry is removed exactly once: by its response frame, by
    the timeout, by a transport failure, or by ``reject_all`` on teardown.
    """

    def __init__(self, http_client: httpx.AsyncClient, timeout: float = 15.0):
        self._client = http_client
        self.timeout = timeout
        self._pending: dict[str, PendingRequest] = {}

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def is_pending(self, request_id: str) -> bool:
        return request_id in self._pending

    @staticmethod
    def new_request_id() -> str:
        """Timestamp plus random suffix; unique, not cryptographic."""
        return f"req-{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}"

    async def send(
        self,
        endpoint: str,
        method: str,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """
        Submit a request and wait for its correlated response.

        Args:
            endpoint: Message endpoint announced by the stream
            method: JSON-RPC method (e.g. "tools/call")
            params: Optional method parameters

        Returns:
            The ``result`` member of the response frame

        Raises:
            ProviderError: The server answered with an error envelope
            RequestTimeoutError: No response within the timeout
            SessionConnectionError: The POST failed or was not accepted
        """
        request_id = self.new_request_id()
        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = PendingRequest(
            id=request_id, method=method, future=future
        )

        payload: dict[str, Any] = {"jsonrpc": "2.0", "id": request_id, "method": method}
        if params is not None:
            payload["params"] = params

        try:
            return await asyncio.wait_for(
                self._submit_and_wait(endpoint, payload, future),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("request_timeout", method=method, request_id=request_id)
            raise RequestTimeoutError(f"Request timeout: {method}") from None
        finally:
            self._pending.pop(request_id, None)

    async def _submit_and_wait(
        self,
        endpoint: str,
        payload: dict[str, Any],
        future: asyncio.Future,
    ) -> Any:
        try:
            response = await self._client.post(endpoint, json=payload)
        except httpx.HTTPError as e:
            raise SessionConnectionError(
                f"Request failed: {type(e).__name__}: {e}"
            ) from e

        if response.status_code not in ACCEPTED_STATUS_CODES:
            raise SessionConnectionError(
                f"Request failed: {response.status_code} - {response.text}"
            )

        logger.debug("request_submitted", method=payload["method"], request_id=payload["id"])
        return await future

    def resolve(self, frame: dict[str, Any]) -> bool:
        """
        Complete the pending request matching a response frame.

        Frames for unknown or already expired ids are ignored.

        Returns:
            True if a pending request was completed
        """
        request_id = frame.get("id")
        if not isinstance(request_id, (str, int)):
            return False

        pending = self._pending.pop(str(request_id), None)
        if pending is None or pending.future.done():
            logger.debug("unmatched_frame_ignored", request_id=request_id)
            return False

        if frame.get("error") is not None:
            pending.future.set_exception(ProviderError(frame["error"]))
        else:
            pending.future.set_result(frame.get("result"))
        return True

    def reject_all(self, exc: Exception) -> None:
        """Fail every in-flight request and clear the pending set."""
        pending, self._pending = self._pending, {}
        for entry in pending.values():
            if not entry.future.done():
                entry.future.set_exception(exc)
        if pending:
            logger.info("pending_requests_rejected", count=len(pending))
