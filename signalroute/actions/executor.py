"""Execute the actions attached to a routing decision."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import asdict
from datetime import datetime

from signalroute.actions import HANDLERS
from signalroute.actions.base import (
    ActionContext,
    BaseActionHandler,
    ExecutionServices,
    HandlerOutcome,
)
from signalroute.actions.ratelimit import RateLimiter
from signalroute.config import get_execution_config
from signalroute.errors import ConfigError
from signalroute.metrics import ExecutionMetrics
from signalroute.models import (
    ActionExecutionResult,
    ActionType,
    BrandContext,
    ExecutionStatus,
    IntentResult,
    ResultMetadata,
    RoutingDecision,
    SentimentResult,
    SocialEvent,
    WebhookDelivery,
    utcnow,
)

logger = logging.getLogger(__name__)

CANCELLED = "cancelled"


class _Cancelled(Exception):
    pass


class ActionExecutor:
    """Run a decision's actions in order, one at a time.

    A failing or timed-out action becomes a ``failed`` result and the loop
    moves on. Actions awaiting approval come back ``pending`` without
    touching the rate limits. Rate-limited actions are skipped without a
    result. Setting the ``cancel`` event aborts the in-flight action or its
    webhook dispatch and returns what has been produced so far.
    """

    def __init__(
        self,
        config: dict,
        services: ExecutionServices | None = None,
        metrics: ExecutionMetrics | None = None,
        rate_limiter: RateLimiter | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        exec_cfg = get_execution_config(config)
        missing = [t.value for t in ActionType if t not in HANDLERS]
        if missing:
            raise ConfigError(f"No handler registered for action type(s): {', '.join(missing)}")

        self.metrics = metrics
        self.services = services or ExecutionServices.from_config(config, metrics)
        if self.services.metrics is None:
            self.services.metrics = metrics
        self.handlers: dict[ActionType, BaseActionHandler] = {
            t: HANDLERS[t](self.services) for t in ActionType
        }
        self.rate_limiter = rate_limiter or RateLimiter(exec_cfg["limits"])
        self.action_timeout = float(exec_cfg["timeouts"]["action"])
        self._clock = clock

    async def _race(self, coro, timeout: float, cancel: asyncio.Event | None):
        call = asyncio.wait_for(coro, timeout=timeout)
        if cancel is None:
            return await call

        task = asyncio.ensure_future(call)
        waiter = asyncio.ensure_future(cancel.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            if not task.done():
                task.cancel()
                await asyncio.wait({task})
        if task.cancelled():
            raise _Cancelled()
        return task.result()

    async def _notify(
        self,
        ctx: ActionContext,
        outcome: HandlerOutcome,
        timeout: float,
        cancel: asyncio.Event | None,
    ) -> list[WebhookDelivery]:
        """Dispatch webhooks within what is left of the action deadline.

        The action has already taken effect, so a cancelled, timed-out or
        failing dispatch only loses the delivery records.
        """
        action = ctx.action
        payload = {
            "action_id": action.id,
            "action_type": action.type.value,
            "status": outcome.status.value,
            "event_id": ctx.event.id,
            "decision_id": ctx.decision.decision_id,
            "route": ctx.decision.route.value,
            "result": asdict(outcome.payload) if outcome.payload is not None else None,
        }
        try:
            return await self._race(
                self.services.webhooks.dispatch(action.type.value, payload), timeout, cancel,
            )
        except _Cancelled:
            logger.info("Webhooks for action %s cancelled", action.id)
        except asyncio.TimeoutError:
            logger.warning("Webhooks for action %s did not finish within the action timeout", action.id)
        except Exception as exc:
            logger.warning("Webhooks for action %s failed: %s: %s", action.id, type(exc).__name__, exc)
        return []

    async def _execute_one(self, ctx: ActionContext, cancel: asyncio.Event | None) -> ActionExecutionResult:
        action = ctx.action
        started = self._clock()
        t0 = time.monotonic()

        if action.requires_approval and not action.params.approved:
            outcome = HandlerOutcome(ExecutionStatus.PENDING)
            logger.info("Action %s (%s) awaiting approval", action.id, action.type.value)
        else:
            try:
                handler = self.handlers[action.type]
                outcome = await self._race(handler.handle(ctx), self.action_timeout, cancel)
            except _Cancelled:
                outcome = HandlerOutcome(ExecutionStatus.FAILED, error=CANCELLED)
                logger.info("Action %s (%s) cancelled", action.id, action.type.value)
            except asyncio.TimeoutError:
                outcome = HandlerOutcome(
                    ExecutionStatus.FAILED, error=f"timed out after {self.action_timeout:.0f}s",
                )
                logger.warning("Action %s (%s) timed out", action.id, action.type.value)
            except Exception as exc:
                outcome = HandlerOutcome(ExecutionStatus.FAILED, error=f"{type(exc).__name__}: {exc}")
                logger.warning("Action %s (%s) failed: %s", action.id, action.type.value, outcome.error)

        webhooks = []
        if outcome.status in (ExecutionStatus.SUCCESS, ExecutionStatus.PARTIAL) and self.services.webhooks:
            remaining = max(self.action_timeout - (time.monotonic() - t0), 0.0)
            webhooks = await self._notify(ctx, outcome, remaining, cancel)

        duration_ms = (time.monotonic() - t0) * 1000
        if self.metrics is not None:
            self.metrics.record_result(action.type.value, outcome.status.value, duration_ms)

        return ActionExecutionResult(
            action_id=action.id,
            type=action.type,
            status=outcome.status,
            started_at=started,
            finished_at=self._clock(),
            duration_ms=duration_ms,
            metadata=ResultMetadata(
                event_id=ctx.event.id,
                decision_id=ctx.decision.decision_id,
                original_parameters=asdict(action.params),
            ),
            payload=outcome.payload,
            webhooks=webhooks,
            error=outcome.error,
        )

    async def execute(
        self,
        decision: RoutingDecision,
        event: SocialEvent,
        sentiment: SentimentResult,
        intent: IntentResult,
        brand: BrandContext,
        cancel: asyncio.Event | None = None,
    ) -> list[ActionExecutionResult]:
        results: list[ActionExecutionResult] = []
        for action in decision.actions:
            if cancel is not None and cancel.is_set():
                logger.info("Execution for event %s cancelled before action %s", event.id, action.id)
                break
            awaiting_approval = action.requires_approval and not action.params.approved
            if not awaiting_approval and not self.rate_limiter.try_acquire(action.type.value):
                logger.warning("Rate limit reached for %s; skipping action %s", action.type.value, action.id)
                if self.metrics is not None:
                    self.metrics.record_rate_limit(action.type.value)
                continue

            ctx = ActionContext(
                action=action, decision=decision, event=event,
                sentiment=sentiment, intent=intent, brand=brand,
            )
            result = await self._execute_one(ctx, cancel)
            results.append(result)
            if result.error == CANCELLED:
                break
        return results
