"""
CryptoTerminal - Orchestration Prompts

Prompt templates for the two model calls: choosing which MCP tools to
run, then turning the gathered data into a trading analysis.
"""

from __future__ import annotations

import json
from typing import Any

from cryptoterminal.models import GatheredData, ToolDescriptor


TOOL_SELECTION_PROMPT = """You are a cryptocurrency analyst. I need you to analyze {symbol} using the available LunarCrush MCP tools. Use a MAX of {max_tools} tools.

AVAILABLE MCP TOOLS:
{tools}

TASK: Create a plan to gather comprehensive data for {symbol} trading analysis.

Based on the available tools, decide which tools to call and with what parameters to get:
1. Current price and market data
2. Social sentiment metrics
3. Historical performance data
4. Ranking and positioning data
5. One week of price time series data for charting purposes. Look only for the price metrics.

Prioritize getting data for the one week price chart. If a tool needs a coin identifier, prefer the name of the coin first, then the symbol.

Respond with a JSON array of tool calls in this exact format:
[
  {{
    "tool": "tool_name",
    "args": {{"param": "value"}},
    "reason": "Short reason why this tool call is needed"
  }}
]

Be specific with parameters. For example, if you need to find {symbol} in a list first, plan that step.
"""


ANALYSIS_PROMPT = """You are an expert cryptocurrency analyst. Analyze the following data for {symbol} gathered from LunarCrush MCP tools and provide a trading recommendation. Keep it short for faster response times.

GATHERED DATA FROM MCP TOOLS:
{gathered}

ANALYSIS REQUIREMENTS:
Based on the above data from the MCP tools, look for:

1. CURRENT MARKET DATA:
 - Real current price (not demo data)
 - Market cap and volume
 - Recent performance metrics

2. SOCIAL SENTIMENT:
 - Social mentions and engagement
 - Galaxy Score and health indicators
 - Community sentiment trends

3. POSITIONING DATA:
 - AltRank and market positioning
 - Relative performance vs other cryptocurrencies

4. CHART DATA:
 - Price trend over the last week (may be reported as "close" instead of "price")
 - If you find price time series data, include ONLY the 12AM and 12PM data points
 - Format as: [{{"time": "2025-06-10 00:00", "close": 2675.51}}, ...]
 - Keep chart_data small to prevent response truncation

Respond with a single JSON object in this exact format:
{{
  "recommendation": "BUY|SELL|HOLD",
  "confidence": 0-100,
  "reasoning": "Brief explanation of the recommendation",
  "social_sentiment": "bullish|bearish|neutral",
  "key_metrics": {{
    "price": "actual price from MCP data",
    "galaxy_score": "score from data",
    "alt_rank": "rank from data",
    "social_dominance": "dominance from data",
    "market_cap": "cap from data",
    "volume_24h": "volume from data",
    "mentions": "mentions from data",
    "engagements": "engagements/interactions from data",
    "creators": "creators from data"
  }},
  "ai_analysis": {{
    "summary": "1-2 sentence overview of the analysis",
    "pros": ["Positive factor 1", "Positive factor 2"],
    "cons": ["Risk factor 1", "Risk factor 2"],
    "key_factors": ["Important factor to monitor 1", "Important factor 2"]
  }},
  "chart_data": [{{"time": "2025-06-10 00:00", "close": 2675.51}}]
}}

IMPORTANT:
- Use ONLY actual data from the MCP tools, never placeholder values
- If a metric is not present in the data, use null
- Make the analysis beginner-friendly, concise, and educational
- Focus on explaining WHY the recommendation is made
- Do not break the JSON response format instructed above
"""


def _dump(payload: Any) -> str:
    return json.dumps(payload, indent=2, default=str)


def tool_selection_prompt(
    symbol: str,
    tools: list[ToolDescriptor],
    max_tools: int = 4,
) -> str:
    """Render the prompt that asks the model to plan tool calls."""
    catalog = [
        tool.model_dump(by_alias=True, exclude_none=True) for tool in tools
    ]
    return TOOL_SELECTION_PROMPT.format(
        symbol=symbol.upper(),
        max_tools=max_tools,
        tools=_dump(catalog),
    )


def analysis_prompt(symbol: str, gathered: GatheredData) -> str:
    """Render the prompt that embeds the gathered data verbatim."""
    return ANALYSIS_PROMPT.format(
        symbol=symbol.upper(),
        gathered=_dump(gathered.to_prompt_payload()),
    )
