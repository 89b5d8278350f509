"""
CryptoTerminal - Model Response Parser

Turns free-form model text into a validated tool plan or TradingAnalysis.
Model output is often wrapped in prose or code fences and is sometimes cut
off mid-generation, so extraction uses a bracket-balancing scanner and a
repair step before falling back to a neutral, degraded analysis.
"""

from __future__ import annotations

import json
import math
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterator

from pydantic import ValidationError

from cryptoterminal.exceptions import ParseError
from cryptoterminal.logging import get_logger
from cryptoterminal.mcp.tools import result_text
from cryptoterminal.models import (
    AIAnalysis,
    ChartPoint,
    GatheredData,
    Recommendation,
    SocialSentiment,
    ToolCall,
    ToolDescriptor,
    TradingAnalysis,
)

logger = get_logger(__name__, component="parser")

CLOSERS = {"{": "}", "[": "]"}

DEFAULT_CONFIDENCE = 50
DEFAULT_CHART_POINTS = 20

METRIC_KEYS = (
    "price",
    "galaxy_score",
    "alt_rank",
    "social_dominance",
    "market_cap",
    "volume_24h",
    "mentions",
    "engagements",
    "creators",
)

# Provider field names that map onto the standard metric keys
METRIC_SYNONYMS: dict[str, tuple[str, ...]] = {
    "price": ("price", "price_usd", "close", "current_price"),
    "galaxy_score": ("galaxy_score", "galaxyscore"),
    "alt_rank": ("alt_rank", "altrank"),
    "social_dominance": ("social_dominance",),
    "market_cap": ("market_cap", "marketcap"),
    "volume_24h": ("volume_24h", "volume", "24h_volume"),
    "mentions": ("mentions", "num_posts", "social_mentions", "posts_active"),
    "engagements": (
        "engagements",
        "interactions",
        "interactions_24h",
        "social_engagements",
    ),
    "creators": ("creators", "num_contributors", "contributors", "creators_active"),
}

PLACEHOLDER_VALUES = {"", "n/a", "na", "null", "none", "unknown", "-", "--"}

# Template text echoed back by the model, e.g. "score from data"
TEMPLATE_ECHO_PATTERN = re.compile(r"\bfrom (?:mcp )?data\b", re.IGNORECASE)

NUMBER_SUFFIXES = {"K": 1e3, "M": 1e6, "B": 1e9, "T": 1e12}

NUMBER_PATTERN = re.compile(r"^([-+]?\d+(?:\.\d+)?)\s*([KMBT])?$", re.IGNORECASE)

METRIC_LINE_PATTERN = re.compile(
    r"^[\s\-*|#]*\**([A-Za-z][A-Za-z0-9 _/()]*?)\**\s*[:=|]\s*\**\s*"
    r"([-+$]?\s*[\d,]+(?:\.\d+)?\s*[%KMBTkmbt]?)\b"
)


@dataclass(frozen=True)
class ParseOutcome:
    """
    Result of parsing the analysis response.

    ``degraded`` is True when the model output was unusable and the analysis
    is the neutral fallback.
    """

    analysis: TradingAnalysis
    degraded: bool = False
    reason: str | None = None

    @property
    def kind(self) -> str:
        return "fallback" if self.degraded else "ok"


# =============================================================================
# JSON Extraction
# =============================================================================

def find_json_span(text: str, opener: str = "{", start: int = 0) -> tuple[str, bool] | None:
    """
    Find the first balanced JSON span starting with ``opener``.

    Tracks nesting across ``{}`` and ``[]`` and ignores brackets inside
    string literals.

    Returns:
        (span, closed) where ``closed`` is False when the text ends before
        the span is balanced, or None when ``opener`` does not occur
    """
    begin = text.find(opener, start)
    if begin == -1:
        return None

    stack: list[str] = []
    in_string = False
    escaped = False

    for index in range(begin, len(text)):
        ch = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue

        if ch == '"':
            in_string = True
        elif ch in CLOSERS:
            stack.append(CLOSERS[ch])
        elif stack and ch == stack[-1]:
            stack.pop()
            if not stack:
                return text[begin:index + 1], True

    return text[begin:].rstrip(), False


def iter_json_spans(text: str, opener: str) -> Iterator[tuple[str, bool]]:
    """Yield the span for every occurrence of ``opener``, left to right."""
    position = 0
    while True:
        found = find_json_span(text, opener, position)
        if found is None:
            return
        yield found
        position = text.find(opener, position) + 1


def repair_truncated(candidate: str) -> str | None:
    """
    Cut a truncated object back to its last complete ``"}`` boundary and
    close it. Returns None when no such boundary exists.
    """
    boundary = candidate.rfind('"}')
    if boundary <= 0:
        return None
    return candidate[:boundary + 2] + "}"


def load_json_object(text: str) -> dict[str, Any]:
    """
    Extract and decode the first JSON object in ``text``.

    Raises:
        ParseError: No object found, or it cannot be decoded even after repair
    """
    found = find_json_span(text or "", "{")
    if found is None:
        raise ParseError("No JSON found in model response")

    span, closed = found
    if not closed:
        repaired = repair_truncated(span)
        if repaired is None:
            raise ParseError("Truncated JSON could not be repaired")
        logger.info("truncated_json_repaired", original_chars=len(span), kept_chars=len(repaired))
        span = repaired

    # ValueError also covers integer literals past the int conversion limit
    try:
        payload = json.loads(span)
    except ValueError as e:
        raise ParseError(f"Invalid JSON in model response: {e}") from e

    if not isinstance(payload, dict):
        raise ParseError("Model response JSON is not an object")
    return payload


# =============================================================================
# Tool Plan
# =============================================================================

def parse_tool_plan(
    text: str,
    catalog: list[ToolDescriptor] | None = None,
    max_calls: int | None = None,
) -> list[ToolCall] | None:
    """
    Parse the model's tool-selection answer into a validated plan.

    Entries that are not objects, lack a tool name, carry non-object
    arguments, or name a tool missing from a non-empty catalog are dropped.

    Returns:
        The plan, or None when no usable array was found
    """
    known = {tool.name.lower(): tool.name for tool in catalog or []}

    for span, closed in iter_json_spans(text or "", "["):
        if not closed:
            continue
        try:
            items = json.loads(span)
        except ValueError:
            continue
        if not isinstance(items, list):
            continue

        plan = _validate_plan(items, known)
        if plan:
            return plan[:max_calls] if max_calls else plan

    return None


def _validate_plan(items: list[Any], known: dict[str, str]) -> list[ToolCall]:
    plan: list[ToolCall] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        try:
            call = ToolCall.model_validate(item)
        except ValidationError:
            logger.debug("tool_call_rejected", item=item)
            continue

        if known:
            name = known.get(call.tool.lower())
            if name is None:
                logger.warning("unknown_tool_dropped", tool=call.tool)
                continue
            call = call.model_copy(update={"tool": name})
        plan.append(call)
    return plan


# =============================================================================
# Value Coercion
# =============================================================================

def _finite(value: int | float) -> int | float | None:
    """The value itself when it fits in a finite float, else None."""
    try:
        return value if math.isfinite(float(value)) else None
    except OverflowError:
        return None


def to_number(value: Any) -> int | float | None:
    """
    Coerce numbers and numeric strings such as ``"$1,234.5"``, ``"3.2%"``
    or ``"1.5B"`` to a number. Returns None for anything else, including
    values too large for a float.
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return _finite(value)
    if not isinstance(value, str):
        return None

    cleaned = value.strip().replace(",", "").replace("$", "").replace("%", "").replace(" ", "")
    match = NUMBER_PATTERN.match(cleaned)
    if not match:
        return None

    number = float(match.group(1))
    if match.group(2):
        number *= NUMBER_SUFFIXES[match.group(2).upper()]
    if not math.isfinite(number):
        return None
    return int(number) if number.is_integer() else number


def coerce_confidence(value: Any) -> int:
    """Round to an integer and clamp into [0, 100]; default 50."""
    number = to_number(value)
    if number is None:
        return DEFAULT_CONFIDENCE
    return max(0, min(100, int(round(number))))


def coerce_recommendation(value: Any) -> Recommendation:
    if isinstance(value, str):
        try:
            return Recommendation(value.strip().upper())
        except ValueError:
            pass
    return Recommendation.HOLD


def coerce_sentiment(value: Any) -> SocialSentiment:
    if isinstance(value, str):
        try:
            return SocialSentiment(value.strip().lower())
        except ValueError:
            pass
    return SocialSentiment.NEUTRAL


def normalize_metric(value: Any) -> int | float | str | None:
    """Missing or placeholder values become None, never zero."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return _finite(value)
    if isinstance(value, str):
        if value.strip().lower() in PLACEHOLDER_VALUES or TEMPLATE_ECHO_PATTERN.search(value):
            return None
        number = to_number(value)
        return number if number is not None else value.strip()
    return None


def normalize_metrics(raw: Any) -> dict[str, int | float | str | None]:
    metrics: dict[str, int | float | str | None] = {key: None for key in METRIC_KEYS}
    if isinstance(raw, dict):
        for key, value in raw.items():
            metrics[str(key)] = normalize_metric(value)
    return metrics


def _string_list(value: Any) -> list[str]:
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, list):
        return [str(item) for item in value if item is not None and str(item).strip()]
    return []


def coerce_ai_analysis(value: Any, reasoning: str) -> AIAnalysis:
    if isinstance(value, str):
        return AIAnalysis(summary=value)
    if not isinstance(value, dict):
        return AIAnalysis(summary=reasoning)
    summary = value.get("summary")
    return AIAnalysis(
        summary=summary if isinstance(summary, str) and summary else reasoning,
        pros=_string_list(value.get("pros")),
        cons=_string_list(value.get("cons")),
        key_factors=_string_list(value.get("key_factors")),
    )


# =============================================================================
# Chart Data
# =============================================================================

def _parse_timestamp(value: Any) -> tuple[datetime, str] | None:
    """Parse an ISO token or unix epoch into (sort key, display token)."""
    if isinstance(value, bool) or value is None:
        return None

    if isinstance(value, str):
        token = value.strip()
        if not token:
            return None
        if not token.isdigit():
            try:
                parsed = datetime.fromisoformat(token.replace("Z", "+00:00"))
            except ValueError:
                return None
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=timezone.utc)
            return parsed, token
        try:
            value = int(token)
        except ValueError:
            return None

    if isinstance(value, (int, float)) and value > 0:
        try:
            # Epoch in milliseconds when too large for seconds
            seconds = value / 1000 if value > 1e11 else value
            parsed = datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
        return parsed, parsed.strftime("%Y-%m-%d %H:%M")

    return None


def _point_price(item: dict[str, Any]) -> float | None:
    for key in ("close", "price"):
        number = to_number(item.get(key))
        if number is not None and number > 0:
            return float(number)
    return None


def normalize_chart_data(points: Any, max_points: int = DEFAULT_CHART_POINTS) -> list[ChartPoint]:
    """
    Normalize model chart data to ascending ``{date, price}`` points.

    Points need a parseable date (``time`` or ``date``) and a strictly
    positive price (``close`` or ``price``); others are dropped. When more
    than ``max_points`` remain, every ceil(n / max_points)-th point is kept,
    starting with the first.
    """
    if not isinstance(points, list) or not points:
        return []

    valid: list[tuple[datetime, str, float]] = []
    for item in points:
        if not isinstance(item, dict):
            continue
        stamp = _parse_timestamp(item.get("time") or item.get("date"))
        price = _point_price(item)
        if stamp is None or price is None:
            continue
        valid.append((stamp[0], stamp[1], price))

    valid.sort(key=lambda point: point[0])

    if len(valid) > max_points:
        step = math.ceil(len(valid) / max_points)
        valid = [point for index, point in enumerate(valid) if index % step == 0]

    return [ChartPoint(date=token, price=price) for _, token, price in valid]


# =============================================================================
# Metrics From Gathered Data
# =============================================================================

def _canonical_metric(name: str) -> str | None:
    key = re.sub(r"[^a-z0-9]+", "_", name.strip().lower()).strip("_")
    compact = key.replace("_", "")
    for metric, synonyms in METRIC_SYNONYMS.items():
        if key in synonyms or compact in synonyms:
            return metric
    return None


def _collect_from_json(payload: Any, found: dict[str, Any]) -> None:
    if isinstance(payload, dict):
        for key, value in payload.items():
            metric = _canonical_metric(str(key))
            if metric and metric not in found:
                normalized = normalize_metric(value)
                if isinstance(normalized, (int, float)):
                    found[metric] = normalized
        for value in payload.values():
            if isinstance(value, (dict, list)):
                _collect_from_json(value, found)
    elif isinstance(payload, list):
        for value in payload:
            _collect_from_json(value, found)


def _collect_from_text(text: str, found: dict[str, Any]) -> None:
    for line in text.splitlines():
        match = METRIC_LINE_PATTERN.match(line)
        if not match:
            continue
        metric = _canonical_metric(match.group(1))
        if metric and metric not in found:
            number = to_number(match.group(2))
            if number is not None:
                found[metric] = number


def extract_metrics(gathered: GatheredData | None) -> dict[str, int | float | str | None]:
    """
    Pull key metrics directly out of successful tool results.

    Used when the model answer is unusable. Handles JSON tool output and
    ``Label: value`` text lines; the first value found for a metric wins.
    """
    found: dict[str, Any] = {}
    if gathered is not None:
        for tool_result in gathered.successful_results:
            text = result_text(tool_result.result)
            try:
                _collect_from_json(json.loads(text), found)
            except (ValueError, TypeError):
                _collect_from_text(text, found)
            if isinstance(tool_result.result, dict) and "content" not in tool_result.result:
                _collect_from_json(tool_result.result, found)

    return {key: found.get(key) for key in METRIC_KEYS}


# =============================================================================
# Analysis
# =============================================================================

def build_analysis(
    payload: dict[str, Any],
    symbol: str,
    chart_max_points: int = DEFAULT_CHART_POINTS,
) -> TradingAnalysis:
    """Map a decoded model payload onto the fixed TradingAnalysis schema."""
    reasoning = payload.get("reasoning")
    if not isinstance(reasoning, str) or not reasoning:
        reasoning = "Analysis completed"

    return TradingAnalysis(
        symbol=symbol.upper(),
        recommendation=coerce_recommendation(payload.get("recommendation")),
        confidence=coerce_confidence(payload.get("confidence")),
        reasoning=reasoning,
        social_sentiment=coerce_sentiment(payload.get("social_sentiment")),
        key_metrics=normalize_metrics(payload.get("key_metrics")),
        ai_analysis=coerce_ai_analysis(payload.get("ai_analysis"), reasoning),
        chart_data=normalize_chart_data(payload.get("chart_data"), chart_max_points),
        success=True,
        degraded=False,
    )


def fallback_analysis(
    symbol: str,
    gathered: GatheredData | None = None,
) -> TradingAnalysis:
    """Neutral HOLD analysis used when the model output is unusable."""
    return TradingAnalysis(
        symbol=symbol.upper(),
        recommendation=Recommendation.HOLD,
        confidence=DEFAULT_CONFIDENCE,
        reasoning="Analysis completed with limited data",
        social_sentiment=SocialSentiment.NEUTRAL,
        key_metrics=extract_metrics(gathered),
        ai_analysis=AIAnalysis(
            summary="Unable to complete full AI analysis. Please try again.",
            cons=["Analysis parsing failed"],
        ),
        chart_data=[],
        success=True,
        degraded=True,
    )


def parse_analysis(
    text: str,
    symbol: str,
    gathered: GatheredData | None = None,
    chart_max_points: int = DEFAULT_CHART_POINTS,
) -> ParseOutcome:
    """
    Parse the analysis answer. Never raises: unusable output yields the
    degraded fallback analysis.
    """
    try:
        payload = load_json_object(text)
        analysis = build_analysis(payload, symbol, chart_max_points)
    except (ParseError, ValidationError, ValueError, OverflowError) as e:
        reason = str(e)
        logger.warning("analysis_parse_failed", symbol=symbol, reason=reason)
        return ParseOutcome(
            analysis=fallback_analysis(symbol, gathered),
            degraded=True,
            reason=reason,
        )

    return ParseOutcome(analysis=analysis)
