"""Template-based replies with ``{{variable}}`` substitution."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from signalroute.models import IntentCategory, Platform

logger = logging.getLogger(__name__)

_VAR_RE = re.compile(r"\{\{\s*(\w+)\s*\}\}")


@dataclass(frozen=True)
class ResponseTemplate:
    id: str
    text: str
    platforms: tuple[str, ...] = ()  # empty means every platform
    max_length: int | None = None

    def supports(self, platform: str) -> bool:
        return not self.platforms or platform in self.platforms


DEFAULT_TEMPLATES = {
    "thank_you": (
        "{{greeting}}, thank you so much for the kind words! "
        "Everyone at {{brand_name}} appreciates it.{{platform_context}}"
    ),
    "complaint_response": (
        "{{greeting}}, we're sorry to hear about your experience. Please send us a "
        "direct message so the {{brand_name}} team can make this right."
    ),
    "support_response": (
        "{{greeting}}, thanks for reaching out. We're here to help! "
        "Could you send us a DM with a few more details?"
    ),
    "purchase_assistance": (
        "{{greeting}}, thanks for your interest in {{brand_name}}! We'd love to help "
        "you find the right product.{{platform_context}}"
    ),
    "information_response": (
        "{{greeting}}, great question! You'll find everything about {{brand_name}} "
        "on our website, and we're happy to answer anything else.{{platform_context}}"
    ),
    "feature_request_response": (
        "{{greeting}}, thanks for the suggestion! We've passed it on to the "
        "{{brand_name}} product team."
    ),
    "comparison_response": (
        "{{greeting}}, happy to help you compare! Send us a DM and we'll walk you "
        "through what makes {{brand_name}} different."
    ),
    "generic_response": "{{greeting}}, thanks for engaging with {{brand_name}}!",
}

DEFAULT_TEMPLATE_BY_INTENT = {
    IntentCategory.PRAISE: "thank_you",
    IntentCategory.COMPLAINT: "complaint_response",
    IntentCategory.SUPPORT_REQUEST: "support_response",
    IntentCategory.PURCHASE_INQUIRY: "purchase_assistance",
    IntentCategory.INFORMATION_SEEKING: "information_response",
    IntentCategory.FEATURE_REQUEST: "feature_request_response",
    IntentCategory.COMPARISON_SHOPPING: "comparison_response",
}

PLATFORM_CONTEXT = {
    Platform.INSTAGRAM: " Check the link in our bio for more.",
    Platform.TIKTOK: " Follow us for more!",
    Platform.FACEBOOK: " Visit our page for the latest updates.",
    Platform.YOUTUBE: " Subscribe for more videos!",
}

FALLBACK_TEMPLATE = "generic_response"


def truncate(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return text[: max(0, max_length - 3)].rstrip() + "..."


class TemplateEngine:
    """Holds reply templates; configured ones extend or replace the defaults.

    Config shape::

        templates:
          thank_you: {text: "...", platforms: [instagram], max_length: 150}
    """

    def __init__(self, configured: dict | None = None):
        self.templates: dict[str, ResponseTemplate] = {
            tid: ResponseTemplate(tid, text) for tid, text in DEFAULT_TEMPLATES.items()
        }
        for tid, entry in (configured or {}).items():
            if isinstance(entry, str):
                entry = {"text": entry}
            self.templates[tid] = ResponseTemplate(
                id=tid,
                text=entry["text"],
                platforms=tuple(entry.get("platforms") or ()),
                max_length=entry.get("max_length"),
            )

    def select(self, template_id: str | None, intent: IntentCategory, platform: Platform) -> ResponseTemplate:
        """The requested template, else the intent default, else the generic reply."""
        candidates = [template_id, DEFAULT_TEMPLATE_BY_INTENT.get(intent), FALLBACK_TEMPLATE]
        for tid in candidates:
            template = self.templates.get(tid) if tid else None
            if template and template.supports(platform.value):
                return template
            if template:
                logger.debug("Template '%s' not available on %s", tid, platform.value)
        return ResponseTemplate(FALLBACK_TEMPLATE, DEFAULT_TEMPLATES[FALLBACK_TEMPLATE])

    @staticmethod
    def render(template: ResponseTemplate, variables: dict[str, str], max_length: int) -> str:
        text = _VAR_RE.sub(lambda m: str(variables.get(m.group(1), "")), template.text)
        text = " ".join(text.split())
        limit = min(max_length, template.max_length or max_length)
        return truncate(text, limit)
