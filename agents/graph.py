"""
CryptoTerminal - LangGraph Orchestration Graph

Two-phase model conversation around the MCP tools:

    START → tool_discovery → tool_selection → tool_execution
          → final_analysis → response_parsing → END

Discovery failures and model gateway errors abort the run. Individual
tool failures are recorded and the analysis continues with what remains.
"""

from __future__ import annotations

import asyncio
from typing import Any

from langgraph.graph import END, StateGraph

from agents.parsing import parse_analysis, parse_tool_plan
from agents.prompts import analysis_prompt, tool_selection_prompt
from agents.state import OrchestrationState, append_trace
from cryptoterminal.config import settings
from cryptoterminal.exceptions import (
    ProviderError,
    RequestTimeoutError,
    SessionConnectionError,
)
from cryptoterminal.llm.gemini import ModelGateway, response_text
from cryptoterminal.logging import get_orchestrator_logger
from cryptoterminal.mcp.tools import ToolInvoker
from cryptoterminal.models import GatheredData, ToolCall, ToolDescriptor, ToolResult

logger = get_orchestrator_logger()

# Generic tools used when the model does not produce a usable plan
FALLBACK_TOOL_CALLS = (
    ("cryptocurrencies", False, "Get list of cryptocurrencies"),
    ("topic", True, "Get topic data"),
)


def fallback_tool_plan(symbol: str, catalog: list[ToolDescriptor]) -> list[ToolCall]:
    """Plan the generic tools, using the catalog's spelling when it has them."""
    known = {tool.name.lower(): tool.name for tool in catalog}
    plan = []
    for name, takes_topic, reason in FALLBACK_TOOL_CALLS:
        args = {"topic": symbol.lower()} if takes_topic else {}
        plan.append(ToolCall(tool=known.get(name, name), args=args, reason=reason))
    return plan


async def execute_tool_call(tools: ToolInvoker, call: ToolCall) -> ToolResult:
    """Run one planned call, recording a failure instead of raising it."""
    try:
        result = await tools.call_tool(call.tool, call.args)
    except (ProviderError, RequestTimeoutError, SessionConnectionError) as e:
        return ToolResult(tool=call.tool, args=call.args, reason=call.reason, error=str(e))
    return ToolResult(tool=call.tool, args=call.args, reason=call.reason, result=result)


def create_orchestration_graph(
    tools: ToolInvoker,
    model: ModelGateway,
    max_tool_calls: int | None = None,
    chart_max_points: int | None = None,
) -> Any:
    """
    Build and compile the orchestration StateGraph for one session.

    Args:
        tools: Tool invoker bound to the request's MCP session
        model: Gateway used for both model calls
        max_tool_calls: Cap on the executed plan
        chart_max_points: Target size of the chart series

    Returns:
        Compiled LangGraph runnable
    """
    max_tool_calls = max_tool_calls or settings.orchestration.max_tool_calls
    chart_max_points = chart_max_points or settings.orchestration.chart_max_points

    async def tool_discovery_node(state: OrchestrationState) -> dict[str, Any]:
        catalog = await tools.list_tools()
        return {
            "tools": catalog,
            "agent_trace": append_trace(state, f"ToolDiscovery: {len(catalog)} tools available"),
        }

    async def tool_selection_node(state: OrchestrationState) -> dict[str, Any]:
        symbol = state["symbol"]
        catalog = state.get("tools", [])

        response = await model.generate(tool_selection_prompt(symbol, catalog, max_tool_calls))
        plan = parse_tool_plan(response_text(response), catalog, max_tool_calls)
        source = "model"
        if plan is None:
            logger.warning("tool_plan_fallback", symbol=symbol)
            plan = fallback_tool_plan(symbol, catalog)
            source = "fallback"

        logger.info(
            "tool_plan_ready",
            symbol=symbol,
            source=source,
            tools=[call.tool for call in plan],
        )
        return {
            "plan": plan,
            "plan_source": source,
            "agent_trace": append_trace(
                state, f"ToolSelection: {len(plan)} calls planned ({source})"
            ),
        }

    async def tool_execution_node(state: OrchestrationState) -> dict[str, Any]:
        plan = state.get("plan", [])
        results = await asyncio.gather(*(execute_tool_call(tools, call) for call in plan))

        gathered = GatheredData(
            symbol=state["symbol"],
            tool_results=list(results),
            plan_source=state.get("plan_source") or "model",
        )
        failed = len(gathered.failed_results)
        if failed:
            logger.warning("tool_calls_partially_failed", failed=failed, total=len(results))

        return {
            "gathered_data": gathered,
            "agent_trace": append_trace(
                state,
                f"ToolExecution: {len(results) - failed}/{len(results)} calls succeeded",
            ),
        }

    async def analysis_node(state: OrchestrationState) -> dict[str, Any]:
        response = await model.generate(analysis_prompt(state["symbol"], state["gathered_data"]))
        text = response_text(response)
        return {
            "analysis_text": text,
            "agent_trace": append_trace(state, f"Analysis: {len(text)} chars received"),
        }

    async def response_parsing_node(state: OrchestrationState) -> dict[str, Any]:
        outcome = parse_analysis(
            state.get("analysis_text", ""),
            state["symbol"],
            state.get("gathered_data"),
            chart_max_points,
        )
        return {
            "analysis": outcome.analysis,
            "degraded": outcome.degraded,
            "agent_trace": append_trace(state, f"ResponseParsing: {outcome.kind}"),
        }

    graph = StateGraph(OrchestrationState)

    graph.add_node("tool_discovery", tool_discovery_node)
    graph.add_node("tool_selection", tool_selection_node)
    graph.add_node("tool_execution", tool_execution_node)
    graph.add_node("final_analysis", analysis_node)
    graph.add_node("response_parsing", response_parsing_node)

    graph.set_entry_point("tool_discovery")
    graph.add_edge("tool_discovery", "tool_selection")
    graph.add_edge("tool_selection", "tool_execution")
    graph.add_edge("tool_execution", "final_analysis")
    graph.add_edge("final_analysis", "response_parsing")
    graph.add_edge("response_parsing", END)

    return graph.compile()
