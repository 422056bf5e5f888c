"""Reply generation: AI provider first, template engine as fallback."""

from __future__ import annotations

import asyncio
import logging

from signalroute.config import get_execution_config
from signalroute.generate import build_provider
from signalroute.generate.base import BaseLLMProvider, GenerationRequest
from signalroute.generate.prompts import REPLY_PROMPT, SYSTEM_COMMUNITY_MANAGER
from signalroute.generate.templates import PLATFORM_CONTEXT, TemplateEngine, truncate
from signalroute.models import (
    BrandContext,
    GeneratedResponse,
    IntentResult,
    RespondParams,
    SentimentResult,
    SocialEvent,
)

logger = logging.getLogger(__name__)


def template_variables(
    event: SocialEvent,
    sentiment: SentimentResult,
    intent: IntentResult,
    brand: BrandContext,
    personalization: dict[str, str],
) -> dict[str, str]:
    """Substitution variables for templates; action personalization wins."""
    variables = {
        "username": event.author.username,
        "display_name": event.author.display_name or event.author.username,
        "platform": event.platform.value,
        "brand_name": brand.playbook.brand_name,
        "tone": brand.playbook.voice.primary_tone,
        "intent": intent.primary.category.value.replace("_", " "),
        "sentiment": sentiment.overall.label.value,
        "greeting": f"Hi @{event.author.username}",
        "platform_context": PLATFORM_CONTEXT.get(event.platform, ""),
    }
    variables.update(personalization)
    return variables


class ResponseGenerator:
    """Produce reply text for a RESPOND action.

    With ``ai_enabled`` the configured provider is tried first under the
    ``response_generation`` timeout. Any provider failure falls back to the
    template engine when ``fallback_to_template`` is set, otherwise it is
    raised to the caller.
    """

    def __init__(
        self,
        config: dict,
        provider: BaseLLMProvider | None = None,
        templates: TemplateEngine | None = None,
    ):
        exec_cfg = get_execution_config(config)
        cfg = exec_cfg["response_generation"]
        self.ai_enabled = bool(cfg["ai_enabled"])
        self.fallback_to_template = bool(cfg["fallback_to_template"])
        self.max_length = int(cfg["max_length"])
        self.temperature = float(cfg["temperature"])
        self.timeout = float(exec_cfg["timeouts"]["response_generation"])
        self.templates = templates or TemplateEngine(cfg.get("templates"))

        if self.ai_enabled and provider is None:
            provider = build_provider(config, cfg["llm_provider"])
        self.provider = provider

    def _request(self, event: SocialEvent, sentiment: SentimentResult, intent: IntentResult,
                 brand: BrandContext, params: RespondParams, max_length: int) -> GenerationRequest:
        voice = brand.playbook.voice
        extra = ""
        if params.personalization:
            extra = "MENTION: " + ", ".join(f"{k}={v}" for k, v in params.personalization.items()) + "\n"
        prompt = REPLY_PROMPT.format(
            platform=event.platform.value,
            event_type=event.event_type.value,
            username=event.author.username,
            text=event.content.text,
            intent=intent.primary.category.value,
            sentiment=sentiment.overall.label.value,
            brand_name=brand.playbook.brand_name,
            do_use=", ".join(voice.do_use) or "-",
            dont_use=", ".join(voice.dont_use) or "-",
            extra=extra,
            max_length=max_length,
        )
        return GenerationRequest(
            prompt=prompt,
            system=SYSTEM_COMMUNITY_MANAGER.format(
                brand_name=brand.playbook.brand_name, tone=voice.primary_tone,
            ),
            max_length=max_length,
            temperature=self.temperature,
            tone=voice.primary_tone,
            do_use=voice.do_use,
            dont_use=voice.dont_use,
            metadata={"event_id": event.id},
        )

    async def generate(
        self,
        event: SocialEvent,
        sentiment: SentimentResult,
        intent: IntentResult,
        brand: BrandContext,
        params: RespondParams,
    ) -> GeneratedResponse:
        max_length = params.max_length or self.max_length
        personalized = bool(params.personalization)

        if self.ai_enabled and self.provider is not None:
            request = self._request(event, sentiment, intent, brand, params, max_length)
            try:
                response = await asyncio.wait_for(
                    self.provider.generate(request), timeout=self.timeout,
                )
                return GeneratedResponse(
                    text=truncate(response.text, max_length),
                    method="ai",
                    personalized=personalized,
                )
            except Exception as exc:
                if not self.fallback_to_template:
                    raise
                logger.warning(
                    "AI generation failed for event %s (%s: %s); using template",
                    event.id, type(exc).__name__, exc,
                )

        template = self.templates.select(params.template, intent.primary.category, event.platform)
        variables = template_variables(event, sentiment, intent, brand, params.personalization)
        return GeneratedResponse(
            text=self.templates.render(template, variables, max_length),
            method="template",
            template_id=template.id,
            personalized=personalized,
        )
