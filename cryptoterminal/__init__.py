"""
CryptoTerminal - Core Package

AI-orchestrated cryptocurrency trading terminal backed by the
LunarCrush MCP server and Google Gemini.
"""

__version__ = "0.1.0"
__author__ = "CryptoTerminal Team"

from cryptoterminal.config import settings, get_settings

__all__ = ["settings", "get_settings", "__version__"]
