"""Tests for action execution."""

from __future__ import annotations

import asyncio
import copy
import time
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from signalroute.actions import HANDLERS
from signalroute.actions.base import ExecutionServices
from signalroute.actions.create import lead_score
from signalroute.actions.escalate import ticket_priority
from signalroute.actions.executor import ActionExecutor
from signalroute.actions.ratelimit import RateLimiter
from signalroute.errors import ConfigError, IntegrationError
from signalroute.generate.responder import ResponseGenerator
from signalroute.integrations.crm import LocalCRMClient
from signalroute.integrations.platform import BasePlatformPoster, PostResult
from signalroute.integrations.tickets import LocalTicketClient
from signalroute.metrics import ExecutionMetrics
from signalroute.models import (
    Action,
    ActionType,
    CRMOutcome,
    EngageParams,
    ExecutionStatus,
    ResponseOutcome,
    SuppressParams,
    TicketOutcome,
    WebhookDelivery,
)
from signalroute.routing import DecisionRouter
from signalroute.scoring import PriorityScorer
from signalroute.validation import parse_record

LEAD_REPLY = (
    "Hi @jamie, thanks for your interest in Acme! We'd love to help you find the "
    "right product. Check the link in our bio for more."
)


class SlowPoster(BasePlatformPoster):
    def __init__(self):
        super().__init__({})
        self.cancelled = False

    @property
    def name(self) -> str:
        return "slow"

    async def post(self, platform: str, target_id: str, content: str) -> PostResult:
        try:
            await asyncio.sleep(5)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        return PostResult(success=True, post_id="late")


def _decide(inp, config=None):
    config = config or {}
    priority = PriorityScorer(config).score(inp.event, inp.sentiment, inp.intent, inp.brand)
    return DecisionRouter(config).route(inp.event, inp.sentiment, inp.intent, priority, inp.brand)


def _services(config, poster, metrics=None):
    metrics = metrics or ExecutionMetrics()
    return ExecutionServices.from_config(
        config, metrics,
        generator=ResponseGenerator(config),
        poster=poster,
        tickets=LocalTicketClient(),
        crm=LocalCRMClient(),
    )


async def _execute(executor, inp, decision=None, cancel=None):
    decision = decision or _decide(inp)
    return await executor.execute(
        decision, inp.event, inp.sentiment, inp.intent, inp.brand, cancel=cancel,
    )


@pytest.fixture
def executor(sample_config, services):
    return ActionExecutor(sample_config, services=services, metrics=services.metrics)


@pytest.mark.asyncio
async def test_hot_lead_actions(executor, services, fake_poster, lead_input):
    """Reply is posted, a lead and opportunity are created, monitoring starts."""
    decision = _decide(lead_input)
    results = await _execute(executor, lead_input, decision)

    assert [r.type for r in results] == [ActionType.RESPOND, ActionType.CREATE, ActionType.MONITOR]
    assert all(r.status == ExecutionStatus.SUCCESS for r in results)

    respond, create, monitor = results
    assert respond.payload == ResponseOutcome(
        content=LEAD_REPLY, method="template", template_id="purchase_assistance",
        posted=True, post_id="post-1",
    )
    assert fake_poster.posts == [("instagram", "pid-evt-1", LEAD_REPLY)]
    assert create.payload == CRMOutcome(lead_id="local-lead-1", lead_score=100, opportunity_id="local-opp-2")
    assert services.crm.leads["local-lead-1"]["decision_id"] == decision.decision_id
    assert monitor.payload is None

    assert respond.action_id == decision.actions[0].id
    assert respond.metadata.event_id == "evt-1"
    assert respond.metadata.decision_id == decision.decision_id
    assert respond.metadata.original_parameters["template"] == "purchase_assistance"
    assert respond.finished_at >= respond.started_at

    snap = services.metrics.snapshot()
    assert snap["success_rate"] == 1.0
    assert snap["responses"]["posted"] == 1
    assert snap["crm"]["opportunities"] == 1


@pytest.mark.asyncio
async def test_post_failure_is_partial(executor, fake_poster, lead_input):
    """A generated reply that cannot be posted is a partial success."""
    fake_poster.succeed = False

    results = await _execute(executor, lead_input)

    respond = results[0]
    assert respond.status == ExecutionStatus.PARTIAL
    assert respond.error == "post failed: platform rejected the reply"
    assert respond.payload.content == LEAD_REPLY
    assert not respond.payload.posted
    assert results[1].status == ExecutionStatus.SUCCESS


@pytest.mark.asyncio
async def test_opportunity_failure_is_partial(executor, services, lead_input):
    """A lead without its opportunity is a partial success."""
    services.crm.create_opportunity = AsyncMock(side_effect=IntegrationError("crm", "quota exceeded", 429))
    results = await _execute(executor, lead_input)

    create = results[1]
    assert create.status == ExecutionStatus.PARTIAL
    assert create.payload.lead_id == "local-lead-1"
    assert create.payload.opportunity_id is None
    assert "opportunity not created" in create.error


@pytest.mark.asyncio
async def test_complaint_opens_ticket(executor, services, complaint_input):
    """Human review hands the event to the support desk."""
    results = await _execute(executor, complaint_input)

    assert len(results) == 1
    ticket = results[0]
    assert ticket.status == ExecutionStatus.SUCCESS
    assert ticket.payload == TicketOutcome(ticket_id="local-ticket-1", priority="high")
    stored = services.tickets.tickets["local-ticket-1"]
    assert stored["subject"].startswith("[instagram] @jamie: Third broken lid")
    assert stored["intent"] == "complaint"
    assert stored["recommendations"]


@pytest.mark.asyncio
async def test_suggestions_stay_pending(executor, services, fake_poster, make_record):
    """Actions that need approval are not carried out."""
    inp = parse_record(make_record(text="Is it legal to ship this blender to Canada? I want two"))
    results = await _execute(executor, inp)

    assert [r.status for r in results] == [ExecutionStatus.PENDING, ExecutionStatus.PENDING]
    assert fake_poster.posts == []
    assert services.crm.leads == {}
    assert services.metrics.snapshot()["pending"] == 2


@pytest.mark.asyncio
async def test_approved_suggestion_runs(executor, fake_poster, make_record):
    """Approved actions execute like automatic ones."""
    inp = parse_record(make_record(text="Is it legal to ship this blender to Canada? I want two"))
    decision = _decide(inp)
    for action in decision.actions:
        action.params.approved = True

    results = await _execute(executor, inp, decision)

    assert [r.status for r in results] == [ExecutionStatus.SUCCESS, ExecutionStatus.SUCCESS]
    assert len(fake_poster.posts) == 1


@pytest.mark.asyncio
async def test_rate_limited_action_is_skipped(sample_config, services, lead_input):
    """A rate-limited action produces no result and is counted."""
    executor = ActionExecutor(
        sample_config, services=services, metrics=services.metrics,
        rate_limiter=RateLimiter({"respond": {"max_per_hour": 0}}),
    )
    results = await _execute(executor, lead_input)

    assert [r.type for r in results] == [ActionType.CREATE, ActionType.MONITOR]
    assert services.metrics.snapshot()["rate_limit_hits"] == {"respond": 1}


@pytest.mark.asyncio
async def test_handler_error_does_not_stop_the_rest(executor, services, lead_input):
    """An exploding handler fails its own action only."""
    services.crm.create_lead = AsyncMock(side_effect=RuntimeError("crm down"))
    results = await _execute(executor, lead_input)

    assert len(results) == 3
    assert [r.status for r in results] == [
        ExecutionStatus.SUCCESS, ExecutionStatus.FAILED, ExecutionStatus.SUCCESS,
    ]
    assert results[1].error == "RuntimeError: crm down"
    assert results[1].payload is None


@pytest.mark.asyncio
async def test_action_timeout(sample_config, lead_input):
    """Actions running past the action timeout fail."""
    config = copy.deepcopy(sample_config)
    config["execution"]["timeouts"] = {"action": 0.05}
    services = _services(config, SlowPoster())
    executor = ActionExecutor(config, services=services, metrics=services.metrics)

    results = await _execute(executor, lead_input)

    assert results[0].status == ExecutionStatus.FAILED
    assert results[0].error.startswith("timed out after")
    assert results[1].status == ExecutionStatus.SUCCESS


@pytest.mark.asyncio
async def test_cancel_aborts_in_flight_action(sample_config, lead_input):
    """Cancellation stops the running action and returns partial results."""
    poster = SlowPoster()
    services = _services(sample_config, poster)
    executor = ActionExecutor(sample_config, services=services, metrics=services.metrics)
    cancel = asyncio.Event()
    asyncio.get_running_loop().call_later(0.05, cancel.set)

    results = await _execute(executor, lead_input, cancel=cancel)

    assert len(results) == 1
    assert results[0].status == ExecutionStatus.FAILED
    assert results[0].error == "cancelled"
    assert poster.cancelled
    assert services.crm.leads == {}


@pytest.mark.asyncio
async def test_cancel_before_start(executor, lead_input):
    """A pre-set cancel event runs nothing."""
    cancel = asyncio.Event()
    cancel.set()
    assert await _execute(executor, lead_input, cancel=cancel) == []


@pytest.mark.asyncio
async def test_webhooks_attached_to_successful_actions(executor, services, lead_input):
    """Successful actions notify webhooks and carry the deliveries."""
    delivery = WebhookDelivery(endpoint="ops", success=True, attempts=1, status_code=200)
    services.webhooks = MagicMock()
    services.webhooks.dispatch = AsyncMock(return_value=[delivery])
    services.crm.create_lead = AsyncMock(side_effect=RuntimeError("crm down"))

    results = await _execute(executor, lead_input)

    assert results[0].webhooks == [delivery]
    assert results[1].webhooks == []
    assert services.webhooks.dispatch.await_count == 2
    event_name, payload = services.webhooks.dispatch.call_args_list[0].args
    assert event_name == "respond"
    assert payload["status"] == "success"
    assert payload["route"] == "auto-response"
    assert payload["result"]["content"] == LEAD_REPLY


def test_missing_handler_is_config_error(sample_config, services):
    """Every action type needs a registered handler."""
    with patch.dict(HANDLERS):
        del HANDLERS[ActionType.SUPPRESS]
        with pytest.raises(ConfigError, match="suppress"):
            ActionExecutor(sample_config, services=services)


def test_lead_score(lead_input, complaint_input):
    """Lead score adds intent, sentiment and reach points, clamped to 100."""
    assert lead_score(lead_input.event, lead_input.sentiment, lead_input.intent) == 100
    assert lead_score(complaint_input.event, complaint_input.sentiment, complaint_input.intent) == 40


def test_ticket_priority(lead_input, complaint_input, make_record):
    """Critical urgency or confident negativity make a ticket high priority."""
    assert ticket_priority(complaint_input.sentiment, complaint_input.intent) == "high"
    assert ticket_priority(lead_input.sentiment, lead_input.intent) == "low"
    mild = parse_record(make_record(intent="complaint", sentiment="negative", sentiment_confidence=0.6))
    assert ticket_priority(mild.sentiment, mild.intent) == "medium"
    critical = parse_record(make_record(urgency="critical"))
    assert ticket_priority(critical.sentiment, critical.intent) == "high"


@pytest.mark.asyncio
async def test_engage_and_suppress_pass_through(executor, lead_input):
    """Engage and suppress actions succeed without side effects."""
    decision = _decide(lead_input)
    decision.actions = [
        Action(type=ActionType.ENGAGE, params=EngageParams(engagement="like"), id="d-1"),
        Action(type=ActionType.SUPPRESS, params=SuppressParams(reason="spam"), id="d-2"),
    ]
    results = await _execute(executor, lead_input, decision)

    assert [r.status for r in results] == [ExecutionStatus.SUCCESS, ExecutionStatus.SUCCESS]
    assert results[1].metadata.original_parameters == {"approved": False, "reason": "spam"}


async def _slow_dispatch(event_name, payload):
    await asyncio.sleep(2)
    return []


@pytest.mark.asyncio
async def test_cancel_during_webhook_dispatch(executor, services, lead_input):
    """Cancelling while webhooks are in flight returns promptly and starts nothing else."""
    services.webhooks = MagicMock()
    services.webhooks.dispatch = AsyncMock(side_effect=_slow_dispatch)
    cancel = asyncio.Event()
    asyncio.get_running_loop().call_later(0.05, cancel.set)

    t0 = time.monotonic()
    results = await _execute(executor, lead_input, cancel=cancel)

    assert time.monotonic() - t0 < 0.5
    assert len(results) == 1
    assert results[0].type == ActionType.RESPOND
    assert results[0].status == ExecutionStatus.SUCCESS
    assert results[0].webhooks == []
    assert services.crm.leads == {}


@pytest.mark.asyncio
async def test_webhook_dispatch_bounded_by_action_timeout(sample_config, fake_poster, lead_input):
    """Slow webhooks are cut off at the action deadline without failing the action."""
    config = copy.deepcopy(sample_config)
    config["execution"]["timeouts"] = {"action": 0.1}
    services = _services(config, fake_poster)
    services.webhooks = MagicMock()
    services.webhooks.dispatch = AsyncMock(side_effect=_slow_dispatch)
    executor = ActionExecutor(config, services=services, metrics=services.metrics)

    t0 = time.monotonic()
    results = await _execute(executor, lead_input)

    assert time.monotonic() - t0 < 1.5
    assert [r.status for r in results] == [ExecutionStatus.SUCCESS] * 3
    assert all(r.webhooks == [] for r in results)


@pytest.mark.asyncio
async def test_webhook_error_does_not_lose_results(executor, services, lead_input):
    """A dispatcher that raises leaves every action result in place."""
    services.webhooks = MagicMock()
    services.webhooks.dispatch = AsyncMock(side_effect=RuntimeError("bad endpoint"))

    results = await _execute(executor, lead_input)

    assert [r.type for r in results] == [ActionType.RESPOND, ActionType.CREATE, ActionType.MONITOR]
    assert all(r.status == ExecutionStatus.SUCCESS for r in results)
    assert all(r.webhooks == [] for r in results)


@pytest.mark.asyncio
async def test_pending_actions_leave_rate_limits_alone(sample_config, services, make_record):
    """Actions awaiting approval are returned pending and use no quota."""
    limiter = RateLimiter({"respond": {"max_per_hour": 1}, "create": {"max_per_hour": 0}})
    executor = ActionExecutor(
        sample_config, services=services, metrics=services.metrics, rate_limiter=limiter,
    )
    inp = parse_record(make_record(text="Is it legal to ship this blender to Canada? I want two"))

    results = await _execute(executor, inp)

    assert [r.status for r in results] == [ExecutionStatus.PENDING, ExecutionStatus.PENDING]
    assert services.metrics.snapshot()["rate_limit_hits"] == {}
    assert limiter.usage("respond") == {"hour": 0, "day": 0}
