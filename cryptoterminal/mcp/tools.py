"""
CryptoTerminal - MCP Tool Invoker

Thin wrappers over the ``tools/list`` and ``tools/call`` JSON-RPC methods.
"""

from __future__ import annotations

import time
from typing import Any

from pydantic import ValidationError

from cryptoterminal.logging import get_logger
from cryptoterminal.mcp.session import StreamingSessionClient
from cryptoterminal.models import ToolDescriptor

logger = get_logger(__name__, component="mcp_tools")

LIST_TOOLS_METHOD = "tools/list"
CALL_TOOL_METHOD = "tools/call"


class ToolInvoker:
    """Lists and calls the tools of a connected MCP session. No retries."""

    def __init__(self, session: StreamingSessionClient):
        self.session = session

    async def list_tools(self) -> list[ToolDescriptor]:
        """Fetch the tool catalog of the server."""
        result = await self.session.request(LIST_TOOLS_METHOD)
        raw_tools = result.get("tools", []) if isinstance(result, dict) else []

        tools = []
        for raw in raw_tools:
            if not isinstance(raw, dict) or not raw.get("name"):
                continue
            try:
                tools.append(ToolDescriptor.model_validate(raw))
            except ValidationError as e:
                logger.warning(
                    "tool_descriptor_skipped",
                    tool=raw.get("name"),
                    errors=e.error_count(),
                )

        logger.info("tools_discovered", count=len(tools), names=[t.name for t in tools])
        return tools

    async def call_tool(self, name: str, arguments: dict[str, Any] | None = None) -> Any:
        """
        Call a tool by name. Arguments are passed through as given.

        Errors propagate to the caller, which decides whether they are fatal.
        """
        start = time.time()
        logger.info("tool_call_started", tool=name, arguments=arguments or {})
        try:
            result = await self.session.request(
                CALL_TOOL_METHOD,
                {"name": name, "arguments": arguments or {}},
            )
        except Exception as e:
            logger.warning(
                "tool_call_failed",
                tool=name,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise

        logger.info(
            "tool_call_complete",
            tool=name,
            latency_ms=round((time.time() - start) * 1000, 1),
        )
        return result


def result_text(result: Any) -> str:
    """
    Join the text parts of an MCP tool result.

    Tool results look like ``{"content": [{"type": "text", "text": "..."}]}``;
    anything else is returned as its string form.
    """
    if isinstance(result, dict) and isinstance(result.get("content"), list):
        parts = [
            part.get("text", "")
            for part in result["content"]
            if isinstance(part, dict) and part.get("type", "text") == "text"
        ]
        return "\n".join(p for p in parts if p)
    if isinstance(result, str):
        return result
    return "" if result is None else str(result)
