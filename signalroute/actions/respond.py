"""RESPOND: generate a reply and post it to the platform."""

from __future__ import annotations

import asyncio
import logging

from signalroute.actions import register_handler
from signalroute.actions.base import ActionContext, BaseActionHandler, HandlerOutcome
from signalroute.integrations.platform import PostResult
from signalroute.models import ActionType, ExecutionStatus, ResponseOutcome

logger = logging.getLogger(__name__)


@register_handler(ActionType.RESPOND)
class RespondHandler(BaseActionHandler):
    async def handle(self, ctx: ActionContext) -> HandlerOutcome:
        event = ctx.event
        generated = await self.services.generator.generate(
            event, ctx.sentiment, ctx.intent, ctx.brand, ctx.action.params,
        )
        if self.metrics is not None:
            self.metrics.record_response(generated.method, generated.personalized, len(generated.text))

        timeout = self.services.timeout("platform_post")
        try:
            post = await asyncio.wait_for(
                self.services.poster.post(event.platform.value, event.platform_id, generated.text),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            post = PostResult(success=False, error=f"platform post timed out after {timeout:.0f}s")
        if self.metrics is not None:
            self.metrics.record_post(post.success)

        outcome = ResponseOutcome(
            content=generated.text,
            method=generated.method,
            template_id=generated.template_id,
            posted=post.success,
            post_id=post.post_id,
            post_error=post.error,
        )
        if not post.success:
            logger.warning("Reply for event %s generated but not posted: %s", event.id, post.error)
            return HandlerOutcome(ExecutionStatus.PARTIAL, outcome, error=f"post failed: {post.error}")

        logger.info("Replied to %s on %s (%s)", event.platform_id, event.platform.value, generated.method)
        return HandlerOutcome(ExecutionStatus.SUCCESS, outcome)
