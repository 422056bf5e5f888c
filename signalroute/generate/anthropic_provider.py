"""Anthropic Claude generation provider."""

from __future__ import annotations

import logging

import anthropic

from signalroute.generate import register_provider
from signalroute.generate.base import BaseLLMProvider, GenerationRequest, LLMResponse
from signalroute.generate.prompts import brand_rules
from signalroute.retry import retry_async

logger = logging.getLogger(__name__)


@register_provider("anthropic")
class AnthropicProvider(BaseLLMProvider):
    """Provider for Anthropic Claude models."""

    required_settings = ("api_key", "default_model")

    @property
    def provider_name(self) -> str:
        return "anthropic"

    async def generate(self, request: GenerationRequest) -> LLMResponse:
        return await retry_async(
            self._do_generate, request,
            max_retries=self.max_retries,
        )

    async def _do_generate(self, request: GenerationRequest) -> LLMResponse:
        client = anthropic.AsyncAnthropic(api_key=self.api_key, timeout=self.timeout)

        kwargs = {
            "model": self.default_model,
            "max_tokens": max(64, request.max_length // 2),
            "temperature": request.temperature,
            "messages": [{"role": "user", "content": request.prompt}],
        }
        system = "\n".join(
            part for part in (request.system, brand_rules(request.do_use, request.dont_use)) if part
        )
        if system:
            kwargs["system"] = system

        response = await client.messages.create(**kwargs)

        text = response.content[0].text if response.content else ""
        return LLMResponse(
            text=text.strip(),
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            model=self.default_model,
        )
