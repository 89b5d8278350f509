"""
CryptoTerminal - Exceptions

Fatal errors (configuration, session, model gateway) propagate to the API
boundary. Per-tool errors are recorded in the gathered data instead.
"""

from __future__ import annotations

import json
from typing import Any


class TerminalError(Exception):
    """Base exception for all CryptoTerminal errors."""

    pass


class ConfigurationError(TerminalError):
    """Raised when a required API key is not configured."""

    pass


class SessionConnectionError(TerminalError, ConnectionError):
    """Raised when the MCP stream or a message POST fails at the transport level."""

    pass


class SessionNotReadyError(SessionConnectionError):
    """Raised when a request is issued before the message endpoint is known."""

    pass


class RequestTimeoutError(TerminalError, TimeoutError):
    """Raised when opening the session or a single request exceeds its bound."""

    pass


class ProviderError(TerminalError):
    """Raised when the MCP server answers with a JSON-RPC error envelope."""

    def __init__(self, error: Any):
        if isinstance(error, dict):
            self.code = error.get("code")
            self.data = error.get("data")
            detail = error.get("message") or json.dumps(error)
        else:
            self.code = None
            self.data = None
            detail = str(error)
        super().__init__(f"MCP Error: {detail}")
        self.error = error


# Name used by the MCP protocol documentation
MCPError = ProviderError


class ModelGatewayError(TerminalError):
    """Raised when the generative AI endpoint returns a non-success status."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ParseError(TerminalError):
    """Raised internally when model output holds no recoverable JSON."""

    pass
