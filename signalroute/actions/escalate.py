"""ESCALATE: open a support ticket for human follow-up."""

from __future__ import annotations

import asyncio
import logging

from signalroute.actions import register_handler
from signalroute.actions.base import ActionContext, BaseActionHandler, HandlerOutcome
from signalroute.models import (
    ActionType,
    ExecutionStatus,
    IntentCategory,
    IntentResult,
    SentimentLabel,
    SentimentResult,
    TicketOutcome,
    UrgencyLevel,
)

logger = logging.getLogger(__name__)


def ticket_priority(sentiment: SentimentResult, intent: IntentResult) -> str:
    if intent.urgency.level == UrgencyLevel.CRITICAL:
        return "high"
    overall = sentiment.overall
    if overall.label == SentimentLabel.NEGATIVE and overall.confidence > 0.8:
        return "high"
    if intent.primary.category == IntentCategory.COMPLAINT:
        return "medium"
    return "low"


def ticket_payload(ctx: ActionContext, priority: str) -> dict:
    event = ctx.event
    params = ctx.action.params
    snippet = event.content.text[:80]
    return {
        "subject": f"[{event.platform.value}] @{event.author.username}: {snippet}",
        "description": event.content.text,
        "priority": priority,
        "level": params.level,
        "reason": params.reason,
        "event_id": event.id,
        "decision_id": ctx.decision.decision_id,
        "platform": event.platform.value,
        "platform_id": event.platform_id,
        "author": {
            "id": event.author.id,
            "username": event.author.username,
            "follower_count": event.author.follower_count,
            "verified": event.author.verified,
        },
        "intent": ctx.intent.primary.category.value,
        "sentiment": ctx.sentiment.overall.label.value,
        "review_context": params.review_context,
        "recommendations": list(params.recommendations),
    }


@register_handler(ActionType.ESCALATE)
class EscalateHandler(BaseActionHandler):
    async def handle(self, ctx: ActionContext) -> HandlerOutcome:
        priority = ticket_priority(ctx.sentiment, ctx.intent)
        ticket_id = await asyncio.wait_for(
            self.services.tickets.create_ticket(ticket_payload(ctx, priority)),
            timeout=self.services.timeout("support_ticket"),
        )
        if self.metrics is not None:
            self.metrics.record_ticket(priority)
        logger.info("Escalated event %s as ticket %s (%s)", ctx.event.id, ticket_id, priority)
        return HandlerOutcome(
            ExecutionStatus.SUCCESS, TicketOutcome(ticket_id=ticket_id, priority=priority),
        )
