"""CREATE: record a sales lead and, when it scores well, an opportunity."""

from __future__ import annotations

import asyncio
import logging

import httpx

from signalroute.actions import register_handler
from signalroute.actions.base import ActionContext, BaseActionHandler, HandlerOutcome
from signalroute.errors import IntegrationError
from signalroute.models import (
    ActionType,
    CRMOutcome,
    ExecutionStatus,
    IntentCategory,
    IntentResult,
    SentimentLabel,
    SentimentResult,
    SocialEvent,
)

logger = logging.getLogger(__name__)

INTENT_POINTS = {
    IntentCategory.PURCHASE_INQUIRY: 30,
    IntentCategory.COMPARISON_SHOPPING: 20,
}
SENTIMENT_POINTS = {
    SentimentLabel.POSITIVE: 10,
    SentimentLabel.NEGATIVE: -10,
}


def lead_score(event: SocialEvent, sentiment: SentimentResult, intent: IntentResult) -> int:
    """Lead quality 0-100 from intent, sentiment and the author's reach."""
    score = 50
    score += INTENT_POINTS.get(intent.primary.category, 0)
    score += SENTIMENT_POINTS.get(sentiment.overall.label, 0)
    if (event.engagement.engagement_rate or 0.0) > 0.05:
        score += 15
    if event.author.verified:
        score += 10
    if event.author.follower_count > 10_000:
        score += 5
    return max(0, min(100, score))


@register_handler(ActionType.CREATE)
class CreateHandler(BaseActionHandler):
    async def handle(self, ctx: ActionContext) -> HandlerOutcome:
        event = ctx.event
        params = ctx.action.params
        settings = self.services.crm_settings
        timeout = self.services.timeout("crm_update")
        score = lead_score(event, ctx.sentiment, ctx.intent)

        lead = {
            "record_type": params.record_type,
            "source": params.source,
            "score": score,
            "platform": event.platform.value,
            "username": event.author.username,
            "display_name": event.author.display_name,
            "follower_count": event.author.follower_count,
            "intent": ctx.intent.primary.category.value,
            "message": event.content.text,
            "event_id": event.id,
            "decision_id": ctx.decision.decision_id,
        }
        lead_id = await asyncio.wait_for(self.services.crm.create_lead(lead), timeout=timeout)

        wants_opportunity = (
            params.create_opportunity
            and settings.get("create_opportunities", True)
            and score >= int(settings.get("opportunity_min_score", 70))
        )
        opportunity_id = None
        error = None
        if wants_opportunity:
            try:
                opportunity_id = await asyncio.wait_for(
                    self.services.crm.create_opportunity(
                        lead_id,
                        {"stage": "qualification", "score": score, "brand": ctx.brand.playbook.brand_name},
                    ),
                    timeout=timeout,
                )
            except (IntegrationError, httpx.HTTPError, asyncio.TimeoutError) as exc:
                error = f"opportunity not created: {exc or type(exc).__name__}"
                logger.warning("Lead %s created but %s", lead_id, error)

        if self.metrics is not None:
            self.metrics.record_lead(score, opportunity_id is not None)
        logger.info("Lead %s (score %d) for event %s", lead_id, score, event.id)

        outcome = CRMOutcome(lead_id=lead_id, lead_score=score, opportunity_id=opportunity_id)
        status = ExecutionStatus.PARTIAL if error else ExecutionStatus.SUCCESS
        return HandlerOutcome(status, outcome, error=error)
