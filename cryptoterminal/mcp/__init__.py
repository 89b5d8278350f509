"""
CryptoTerminal - MCP Module

Client side of the LunarCrush Model Context Protocol server over SSE.
"""

from cryptoterminal.mcp.correlator import PendingRequest, RequestCorrelator
from cryptoterminal.mcp.session import Session, StreamingSessionClient
from cryptoterminal.mcp.tools import ToolInvoker, result_text

__all__ = [
    "PendingRequest",
    "RequestCorrelator",
    "Session",
    "StreamingSessionClient",
    "ToolInvoker",
    "result_text",
]
