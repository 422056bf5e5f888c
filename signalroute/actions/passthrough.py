"""MONITOR, ENGAGE and SUPPRESS: record the intent and succeed."""

from __future__ import annotations

import logging

from signalroute.actions import register_handler
from signalroute.actions.base import ActionContext, BaseActionHandler, HandlerOutcome
from signalroute.models import ActionType, ExecutionStatus

logger = logging.getLogger(__name__)


@register_handler(ActionType.MONITOR)
class MonitorHandler(BaseActionHandler):
    async def handle(self, ctx: ActionContext) -> HandlerOutcome:
        params = ctx.action.params
        logger.info(
            "Monitoring event %s for %dh (keywords: %s)",
            ctx.event.id, params.duration_hours, ", ".join(params.keywords) or "-",
        )
        return HandlerOutcome(ExecutionStatus.SUCCESS)


@register_handler(ActionType.ENGAGE)
class EngageHandler(BaseActionHandler):
    async def handle(self, ctx: ActionContext) -> HandlerOutcome:
        logger.info("Engagement '%s' on %s", ctx.action.params.engagement, ctx.event.platform_id)
        return HandlerOutcome(ExecutionStatus.SUCCESS)


@register_handler(ActionType.SUPPRESS)
class SuppressHandler(BaseActionHandler):
    async def handle(self, ctx: ActionContext) -> HandlerOutcome:
        logger.info("Suppressed event %s: %s", ctx.event.id, ctx.action.params.reason or "no reason given")
        return HandlerOutcome(ExecutionStatus.SUCCESS)
