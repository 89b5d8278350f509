"""
CryptoTerminal - Google Gemini Gateway

Sends prompts to the Gemini ``generateContent`` REST endpoint and returns
the raw response body.
"""

from __future__ import annotations

import time
from typing import Any

import httpx

from cryptoterminal.config import settings
from cryptoterminal.exceptions import ModelGatewayError
from cryptoterminal.logging import get_llm_logger

logger = get_llm_logger()


class ModelGateway:
    """Stateless client for one Gemini model."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        base_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        config = settings.gemini
        self.api_key = api_key if api_key is not None else config.api_key
        self.model = model or config.model
        self.base_url = (base_url or config.base_url).rstrip("/")
        self.generation_config = {
            "temperature": config.temperature,
            "topK": config.top_k,
            "topP": config.top_p,
            "maxOutputTokens": config.max_output_tokens,
        }
        self.timeout = config.timeout_seconds
        self._transport = transport

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/models/{self.model}:generateContent"

    async def generate(self, prompt: str) -> dict[str, Any]:
        """
        Send a prompt to the model.

        Returns:
            Response body shaped ``{"candidates": [{"content": {"parts": [{"text": ...}]}}]}``

        Raises:
            ModelGatewayError: Non-2xx status or transport failure
        """
        body = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": self.generation_config,
        }

        start = time.time()
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.post(
                    self.endpoint,
                    params={"key": self.api_key},
                    json=body,
                )
        except httpx.HTTPError as e:
            logger.error("gemini_request_failed", error_type=type(e).__name__)
            raise ModelGatewayError(f"Gemini API error: {type(e).__name__}") from e

        if not response.is_success:
            logger.error("gemini_bad_status", status=response.status_code)
            raise ModelGatewayError(
                f"Gemini API error: {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise ModelGatewayError("Gemini API returned a non-JSON body") from e

        logger.info(
            "gemini_response_received",
            model=self.model,
            prompt_chars=len(prompt),
            latency_ms=round((time.time() - start) * 1000, 1),
        )
        return data


def response_text(response: dict[str, Any] | None) -> str:
    """Extract ``candidates[0].content.parts[0].text``, or "" when absent."""
    try:
        text = response["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError):
        return ""
    return text if isinstance(text, str) else ""
