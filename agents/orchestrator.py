"""
CryptoTerminal - Analysis Orchestrator

High-level orchestrator that owns one MCP session per analysis request,
runs the LangGraph orchestration graph inside it, and always releases the
session afterwards.
"""

from __future__ import annotations

import time
from typing import Callable

from agents.graph import create_orchestration_graph
from agents.state import initial_state
from cryptoterminal.config import settings
from cryptoterminal.exceptions import ConfigurationError
from cryptoterminal.llm.gemini import ModelGateway
from cryptoterminal.logging import get_orchestrator_logger
from cryptoterminal.mcp.session import StreamingSessionClient
from cryptoterminal.mcp.tools import ToolInvoker
from cryptoterminal.models import TradingAnalysis

logger = get_orchestrator_logger()


class AnalysisOrchestrator:
    """
    Entry point used by the API layer.

    Provides:
        - A fresh MCP session per request, never shared
        - Guaranteed session teardown on success and failure
        - Fail-fast on missing API keys
    """

    def __init__(
        self,
        lunarcrush_api_key: str | None = None,
        gemini_api_key: str | None = None,
        session_factory: Callable[[], StreamingSessionClient] | None = None,
        model: ModelGateway | None = None,
    ) -> None:
        self.lunarcrush_api_key = (
            lunarcrush_api_key
            if lunarcrush_api_key is not None
            else settings.lunarcrush.api_key
        )
        self.gemini_api_key = (
            gemini_api_key if gemini_api_key is not None else settings.gemini.api_key
        )
        self._session_factory = session_factory or self._default_session
        self._model = model or ModelGateway(api_key=self.gemini_api_key)

    @property
    def is_ready(self) -> bool:
        return bool(self.lunarcrush_api_key and self.gemini_api_key)

    def _default_session(self) -> StreamingSessionClient:
        return StreamingSessionClient(api_key=self.lunarcrush_api_key)

    async def analyze(self, symbol: str) -> TradingAnalysis:
        """
        Run the full orchestration pipeline for one symbol.

        Args:
            symbol: Ticker to analyze, e.g. "BTC"

        Returns:
            TradingAnalysis, possibly degraded when model output was unusable

        Raises:
            ConfigurationError: API keys are missing
            TerminalError: Session, discovery, or model gateway failures
        """
        if not self.is_ready:
            raise ConfigurationError("API keys not configured")

        symbol = symbol.strip().upper()
        start = time.time()
        logger.info("analysis_started", symbol=symbol)

        async with self._session_factory() as session:
            graph = create_orchestration_graph(ToolInvoker(session), self._model)
            final_state = await graph.ainvoke(initial_state(symbol))

        elapsed_ms = round((time.time() - start) * 1000, 1)
        analysis = final_state["analysis"].model_copy(
            update={"processing_time_ms": elapsed_ms}
        )

        logger.info(
            "analysis_complete",
            symbol=symbol,
            recommendation=analysis.recommendation.value,
            confidence=analysis.confidence,
            degraded=analysis.degraded,
            plan_source=final_state.get("plan_source"),
            trace=final_state.get("agent_trace", []),
            latency_ms=elapsed_ms,
        )
        return analysis
