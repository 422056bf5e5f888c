"""OpenAI-compatible chat provider (OpenAI, DeepSeek, Ollama, vLLM, etc.)."""

from __future__ import annotations

import logging

import httpx

from signalroute.errors import IntegrationError
from signalroute.generate import register_provider
from signalroute.generate.base import BaseLLMProvider, GenerationRequest, LLMResponse
from signalroute.generate.prompts import brand_rules
from signalroute.retry import retry_async

logger = logging.getLogger(__name__)


@register_provider("openai_compatible")
class OpenAICompatibleProvider(BaseLLMProvider):
    """Provider for any OpenAI-compatible chat completions API."""

    required_settings = ("base_url", "default_model")

    @property
    def provider_name(self) -> str:
        return "openai_compatible"

    async def generate(self, request: GenerationRequest) -> LLMResponse:
        return await retry_async(
            self._do_generate, request,
            max_retries=self.max_retries,
        )

    async def _do_generate(self, request: GenerationRequest) -> LLMResponse:
        url = f"{self.base_url.rstrip('/')}/chat/completions"

        system = "\n".join(
            part for part in (request.system, brand_rules(request.do_use, request.dont_use)) if part
        )
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": request.prompt})

        payload = {
            "model": self.default_model,
            "messages": messages,
            "temperature": request.temperature,
            # rough token budget for a reply of max_length characters
            "max_tokens": max(64, request.max_length // 2),
        }

        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            resp = await client.post(url, json=payload, headers=headers)
            resp.raise_for_status()
            data = resp.json()

        try:
            text = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            raise IntegrationError("ai_generation", "unexpected chat completion payload") from None
        usage = data.get("usage", {})

        return LLMResponse(
            text=(text or "").strip(),
            input_tokens=usage.get("prompt_tokens", 0),
            output_tokens=usage.get("completion_tokens", 0),
            model=self.default_model,
        )
