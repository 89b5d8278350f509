"""
CryptoTerminal - Orchestration State Schema

Typed state for the LangGraph orchestration graph. A fresh state is
created for every analysis request.
"""

from __future__ import annotations

from typing import TypedDict

from cryptoterminal.models import GatheredData, ToolCall, ToolDescriptor, TradingAnalysis


class OrchestrationState(TypedDict, total=False):
    """
    State passed through the orchestration StateGraph.

    Fields:
        symbol:           Ticker being analyzed (upper case)
        tools:            Tool catalog from the MCP server
        plan:             Validated tool calls to execute
        plan_source:      "model" or "fallback"
        gathered_data:    Tool results, successes and failures
        analysis_text:    Raw text of the analysis model answer
        analysis:         Final TradingAnalysis
        degraded:         True when the analysis is the neutral fallback
        agent_trace:      Execution trace for debugging
    """

    symbol: str
    tools: list[ToolDescriptor]
    plan: list[ToolCall]
    plan_source: str
    gathered_data: GatheredData
    analysis_text: str
    analysis: TradingAnalysis
    degraded: bool
    agent_trace: list[str]


def initial_state(symbol: str) -> OrchestrationState:
    return OrchestrationState(
        symbol=symbol.upper(),
        tools=[],
        plan=[],
        plan_source="",
        analysis_text="",
        degraded=False,
        agent_trace=[],
    )


def append_trace(state: OrchestrationState, entry: str) -> list[str]:
    trace: list[str] = list(state.get("agent_trace", []))
    trace.append(entry)
    return trace
