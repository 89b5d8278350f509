"""
Tests for orchestration building blocks: state, prompts and the Gemini
gateway.
"""

import json

import httpx
import pytest

from cryptoterminal.exceptions import ModelGatewayError
from cryptoterminal.models import GatheredData, ToolDescriptor, ToolResult
from tests.conftest import FakeGemini


# =============================================================================
# State Tests
# =============================================================================

class TestOrchestrationState:

    def test_initial_state(self):
        from agents.state import initial_state

        state = initial_state("btc")
        assert state["symbol"] == "BTC"
        assert state["agent_trace"] == []
        assert state["degraded"] is False

    def test_append_trace_copies(self):
        from agents.state import append_trace, initial_state

        state = initial_state("ETH")
        trace = append_trace(state, "ToolDiscovery: 3 tools available")

        assert trace == ["ToolDiscovery: 3 tools available"]
        assert state["agent_trace"] == []


# =============================================================================
# Prompt Tests
# =============================================================================

class TestPrompts:

    def test_tool_selection_prompt(self):
        from agents.prompts import tool_selection_prompt

        tools = [
            ToolDescriptor.model_validate({
                "name": "Topic",
                "description": "Topic data",
                "inputSchema": {"type": "object"},
            }),
        ]
        prompt = tool_selection_prompt("sol", tools, max_tools=3)

        assert "analyze SOL" in prompt
        assert "MAX of 3 tools" in prompt
        assert '"inputSchema"' in prompt
        assert '"tool": "tool_name"' in prompt

    def test_analysis_prompt_embeds_gathered_data(self):
        from agents.prompts import analysis_prompt

        gathered = GatheredData(
            symbol="SOL",
            tool_results=[ToolResult(tool="Topic", args={"topic": "sol"}, result="Price: 150")],
        )
        prompt = analysis_prompt("SOL", gathered)

        embedded = json.dumps(gathered.to_prompt_payload(), indent=2)
        assert embedded in prompt
        assert '"recommendation": "BUY|SELL|HOLD"' in prompt
        assert "use null" in prompt


# =============================================================================
# Gateway Tests
# =============================================================================

class TestModelGateway:

    @pytest.mark.asyncio
    async def test_generate_request_shape(self):
        from cryptoterminal.llm.gemini import response_text

        gemini = FakeGemini(["hello"])
        gateway = gemini.gateway()

        response = await gateway.generate("Say hello")

        assert response_text(response) == "hello"
        request = gemini.requests[0]
        assert request.url.path == f"/v1beta/models/{gateway.model}:generateContent"
        assert request.url.params["key"] == "gemini-test-key"

        body = json.loads(request.content)
        assert body["contents"] == [{"parts": [{"text": "Say hello"}]}]
        assert body["generationConfig"] == {
            "temperature": 0.7,
            "topK": 40,
            "topP": 0.95,
            "maxOutputTokens": 2048,
        }

    @pytest.mark.asyncio
    async def test_error_status(self):
        gateway = FakeGemini([429]).gateway()

        with pytest.raises(ModelGatewayError, match="Gemini API error: 429") as exc_info:
            await gateway.generate("prompt")
        assert exc_info.value.status_code == 429

    @pytest.mark.asyncio
    async def test_transport_failure(self):
        from cryptoterminal.llm.gemini import ModelGateway

        def refuse(request):
            raise httpx.ConnectError("refused", request=request)

        gateway = ModelGateway(api_key="k", transport=httpx.MockTransport(refuse))

        with pytest.raises(ModelGatewayError):
            await gateway.generate("prompt")

    def test_response_text_missing_parts(self):
        from cryptoterminal.llm.gemini import response_text

        assert response_text({}) == ""
        assert response_text({"candidates": []}) == ""
        assert response_text({"candidates": [{"content": {"parts": [{"text": None}]}}]}) == ""
        assert response_text(None) == ""
