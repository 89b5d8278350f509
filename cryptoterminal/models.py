"""
CryptoTerminal - Data Models

Pydantic models for all data entities in the system. Every entity lives
for the duration of a single analysis request.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class Recommendation(str, Enum):
    """Trading action recommended by the analysis."""

    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"


class SocialSentiment(str, Enum):
    """Overall social sentiment classification."""

    BULLISH = "bullish"
    BEARISH = "bearish"
    NEUTRAL = "neutral"


# =============================================================================
# MCP Models
# =============================================================================

class ToolDescriptor(BaseModel):
    """
    A tool exposed by the MCP server, as returned by ``tools/list``.

    Only the name and input schema are relied upon; any other fields the
    server sends (title, annotations, ...) are kept for the prompt.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow", frozen=True)

    name: str = Field(description="Tool name used in tools/call")
    description: str | None = Field(default=None)
    input_schema: dict[str, Any] = Field(
        default_factory=dict,
        alias="inputSchema",
        description="JSON schema of accepted arguments",
    )


class ToolCall(BaseModel):
    """One planned tool invocation chosen by the model."""

    tool: str = Field(min_length=1)
    args: dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("args", "arguments"),
    )
    reason: str = Field(default="")


class ToolResult(BaseModel):
    """Outcome of one executed tool call: a result or an error message."""

    tool: str
    args: dict[str, Any] = Field(default_factory=dict)
    reason: str = ""
    result: Any = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class GatheredData(BaseModel):
    """Everything collected from the MCP server for one symbol."""

    model_config = ConfigDict(populate_by_name=True)

    symbol: str
    tool_results: list[ToolResult] = Field(default_factory=list, alias="toolResults")
    plan_source: str = Field(
        default="model",
        description="'model' when the plan came from the model, 'fallback' otherwise",
    )

    @property
    def successful_results(self) -> list[ToolResult]:
        return [r for r in self.tool_results if r.ok]

    @property
    def failed_results(self) -> list[ToolResult]:
        return [r for r in self.tool_results if not r.ok]

    def to_prompt_payload(self) -> dict[str, Any]:
        """Wire shape embedded verbatim in the analysis prompt."""
        return {
            "symbol": self.symbol,
            "toolResults": [
                r.model_dump(exclude_none=True) for r in self.tool_results
            ],
        }


# =============================================================================
# Analysis Models
# =============================================================================

class AIAnalysis(BaseModel):
    """Narrative part of the analysis."""

    summary: str = ""
    pros: list[str] = Field(default_factory=list)
    cons: list[str] = Field(default_factory=list)
    key_factors: list[str] = Field(default_factory=list)


class ChartPoint(BaseModel):
    """Single point of the price chart."""

    date: str
    price: float = Field(gt=0)


class TradingAnalysis(BaseModel):
    """
    Final output of an analysis request.

    ``success`` is False only for fatal upstream failures. ``degraded`` marks
    a neutral fallback built because the model output could not be parsed.
    """

    model_config = ConfigDict(frozen=True)

    symbol: str
    recommendation: Recommendation = Recommendation.HOLD
    confidence: int = Field(default=50, ge=0, le=100)
    reasoning: str = ""
    social_sentiment: SocialSentiment = SocialSentiment.NEUTRAL
    key_metrics: dict[str, float | int | str | None] = Field(default_factory=dict)
    ai_analysis: AIAnalysis = Field(default_factory=AIAnalysis)
    chart_data: list[ChartPoint] = Field(default_factory=list)
    timestamp: str = Field(default_factory=utc_now_iso)
    success: bool = True
    degraded: bool = False
    error: str | None = None
    processing_time_ms: float | None = None


# =============================================================================
# API Response Models
# =============================================================================

class AnalyzeResponse(BaseModel):
    """API response for the analyze endpoint."""

    success: bool
    analysis: TradingAnalysis | None = None
    error: str | None = None
    timestamp: str = Field(default_factory=utc_now_iso)


class HealthStatus(BaseModel):
    """API health check response."""

    status: str = "healthy"
    version: str
    timestamp: str = Field(default_factory=utc_now_iso)
    services: dict[str, bool] = Field(default_factory=dict)
