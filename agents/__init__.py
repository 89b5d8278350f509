"""
CryptoTerminal - Orchestration Package

LangGraph-powered two-phase orchestration: Gemini picks LunarCrush MCP
tools, the tools run concurrently, and Gemini turns the gathered data
into a trading analysis.

Usage:
    from agents.graph import create_orchestration_graph
    from agents.orchestrator import AnalysisOrchestrator
"""

from agents.state import OrchestrationState
from agents.orchestrator import AnalysisOrchestrator

__all__ = [
    "OrchestrationState",
    "AnalysisOrchestrator",
]
