"""Generation via a dedicated HTTP text-generation endpoint."""

from __future__ import annotations

import logging

import httpx

from signalroute.errors import IntegrationError
from signalroute.generate import register_provider
from signalroute.generate.base import BaseLLMProvider, GenerationRequest, LLMResponse
from signalroute.retry import retry_async

logger = logging.getLogger(__name__)


@register_provider("endpoint")
class EndpointProvider(BaseLLMProvider):
    """POSTs ``{prompt, max_length, temperature, brand_context}`` to ``base_url``.

    The endpoint answers with ``generated_text`` (or ``response``). Non-2xx
    statuses raise ``httpx.HTTPStatusError``; a body without usable text
    raises ``IntegrationError``.
    """

    required_settings = ("base_url",)

    @property
    def provider_name(self) -> str:
        return "endpoint"

    async def generate(self, request: GenerationRequest) -> LLMResponse:
        return await retry_async(
            self._do_generate, request,
            max_retries=self.max_retries,
        )

    async def _do_generate(self, request: GenerationRequest) -> LLMResponse:
        payload = {
            "prompt": request.prompt,
            "max_length": request.max_length,
            "temperature": request.temperature,
            "brand_context": {
                "tone": request.tone,
                "do_use": list(request.do_use),
                "dont_use": list(request.dont_use),
            },
        }
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            resp = await client.post(self.base_url, json=payload, headers=headers)
            resp.raise_for_status()
            try:
                data = resp.json()
            except ValueError:
                raise IntegrationError("ai_generation", "response is not JSON") from None

        text = None
        if isinstance(data, dict):
            text = data.get("generated_text") or data.get("response")
        if not isinstance(text, str) or not text.strip():
            raise IntegrationError("ai_generation", "response has no generated_text")

        model = data.get("model", self.default_model) if isinstance(data, dict) else ""
        return LLMResponse(text=text.strip(), model=model or "")
