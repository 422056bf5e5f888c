"""Tests for decision routing."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from signalroute.errors import ConfigError
from signalroute.metrics import RoutingMetrics
from signalroute.models import ActionType, Route
from signalroute.routing import DecisionRouter, queue_priority
from signalroute.scoring import PriorityScorer
from signalroute.validation import parse_record

ROUTED_AT = datetime(2026, 3, 2, 12, 5, tzinfo=timezone.utc)


@pytest.fixture
def router():
    return DecisionRouter({}, clock=lambda: ROUTED_AT)


def _route(router, inp, scorer=None):
    scorer = scorer or PriorityScorer({})
    priority = scorer.score(inp.event, inp.sentiment, inp.intent, inp.brand)
    return router.route(inp.event, inp.sentiment, inp.intent, priority, inp.brand), priority


def test_hot_lead_auto_response(router, lead_input):
    """A verified high-reach purchase inquiry is answered automatically."""
    decision, priority = _route(router, lead_input)

    assert decision.route == Route.AUTO_RESPONSE
    assert decision.base_confidence == pytest.approx(0.9275)
    assert decision.confidence == pytest.approx(0.95)
    assert decision.overrides_applied == ["confidence_override:high-profile-verified"]
    assert decision.decision_id.startswith("auto_")
    assert not decision.requires_approval
    assert [a.type for a in decision.actions] == [
        ActionType.RESPOND, ActionType.CREATE, ActionType.MONITOR,
    ]
    respond, create, monitor = decision.actions
    assert respond.params.template == "purchase_assistance"
    assert all(a.automated for a in decision.actions)
    assert monitor.params.keywords == ["Acme"]
    assert respond.priority == 8
    assert monitor.priority == 6
    assert "conversion" in decision.monitoring.kpis
    assert decision.routed_at == ROUTED_AT


def test_action_ids_derive_from_decision(router, lead_input):
    """Action ids are the decision id plus a 1-based index."""
    decision, _ = _route(router, lead_input)
    assert [a.id for a in decision.actions] == [
        f"{decision.decision_id}-{i}" for i in (1, 2, 3)
    ]


def test_complaint_goes_to_human_review(router, complaint_input):
    """Complaint intent always needs a human, with one manual escalation."""
    decision, _ = _route(router, complaint_input)

    assert decision.route == Route.HUMAN_REVIEW
    assert decision.decision_id.startswith("review_")
    assert "always_human_review" in decision.overrides_applied
    assert len(decision.actions) == 1
    action = decision.actions[0]
    assert action.type == ActionType.ESCALATE
    assert not action.automated
    assert action.params.review_context["intent"] == "complaint"
    assert "Respond with empathy and offer a concrete resolution" in action.params.recommendations
    assert decision.queue.name == "human-review"
    assert decision.escalation.level == "standard"
    assert decision.queue.estimated_wait_seconds > 0


def test_sensitive_keyword_blocks_auto_response(router, make_record):
    """High confidence with a blocked keyword becomes a suggestion needing approval."""
    inp = parse_record(make_record(text="Is it legal to ship this blender to Canada? I want two"))
    decision, _ = _route(router, inp)

    assert decision.route == Route.SUGGESTION
    assert decision.requires_approval
    assert "never_auto_respond" in decision.overrides_applied
    assert decision.queue.name == "approval"
    respond = decision.actions[0]
    assert respond.requires_approval
    assert respond.params.suggestions == ["purchase_assistance", "generic_response"]
    assert [a.type for a in decision.actions] == [ActionType.RESPOND, ActionType.CREATE]


def test_mid_confidence_is_a_suggestion_without_block_marker(make_record):
    """Confidence between the thresholds gives a suggestion without recording the block."""
    router = DecisionRouter({"routing": {"confidence_overrides": []}})
    inp = parse_record(make_record(
        verified=False, sentiment_confidence=0.75, intent_confidence=0.8,
    ))
    decision, _ = _route(router, inp)
    assert decision.route == Route.SUGGESTION
    assert "never_auto_respond" not in decision.overrides_applied


def test_low_confidence_goes_to_human_review(router, make_record):
    """Confidence under the suggestion threshold needs a human."""
    inp = parse_record(make_record(
        verified=False, sentiment_confidence=0.3, intent_confidence=0.4,
    ))
    decision, _ = _route(router, inp)
    assert decision.route == Route.HUMAN_REVIEW
    assert decision.confidence < 0.7
    assert any("below suggestion threshold" in r for r in decision.reasoning)


def test_override_never_lowers_confidence(lead_input):
    """A matching override below the current confidence is ignored."""
    router = DecisionRouter({"routing": {"confidence_overrides": [
        {"name": "dampen", "when": [{"field": "platform", "op": "==", "value": "instagram"}],
         "confidence": 0.5},
    ]}})
    decision, _ = _route(router, lead_input)
    assert decision.confidence == pytest.approx(decision.base_confidence)
    assert decision.overrides_applied == []


def test_failing_rule_is_isolated(lead_input):
    """An override that raises is recorded and the event is still routed."""
    router = DecisionRouter({"routing": {"confidence_overrides": [
        {"name": "broken", "when": [{"field": "follower_count", "op": ">", "value": "many"}],
         "confidence": 0.99},
        {"name": "platform", "when": [{"field": "platform", "op": "in", "value": ["instagram"]}],
         "confidence": 0.96},
    ]}})
    decision, _ = _route(router, lead_input)

    assert len(decision.override_errors) == 1
    assert decision.override_errors[0].startswith("broken: TypeError")
    assert decision.overrides_applied == ["confidence_override:platform"]
    assert decision.route == Route.AUTO_RESPONSE


def test_auto_escalation_adds_escalate_action(make_record):
    """An auto-escalating score adds an escalation to the automatic actions."""
    router = DecisionRouter({"routing": {
        "always_human_review": {"intents": [], "urgency_levels": [], "priority_threshold": None},
    }})
    scorer = PriorityScorer({"priority": {"auto_escalation_threshold": 60}})
    inp = parse_record(make_record())
    decision, priority = _route(router, inp, scorer)

    assert priority.auto_escalation
    assert [a.type for a in decision.actions] == [
        ActionType.RESPOND, ActionType.CREATE, ActionType.ESCALATE, ActionType.MONITOR,
    ]


def test_routing_is_deterministic(router, lead_input):
    """Same inputs give the same route, confidence, reasoning and actions."""
    a, _ = _route(router, lead_input)
    b, _ = _route(router, lead_input)
    assert a.route == b.route
    assert a.confidence == b.confidence
    assert a.reasoning == b.reasoning
    assert [(x.type, x.params) for x in a.actions] == [(y.type, y.params) for y in b.actions]
    assert a.decision_id != b.decision_id


def test_metrics_recorded(lead_input):
    """Routes and overrides reach the aggregator."""
    metrics = RoutingMetrics()
    router = DecisionRouter({}, metrics)
    _route(router, lead_input)
    snap = metrics.snapshot()
    assert snap["routes"] == {"auto-response": 1}
    assert snap["overrides"] == {"confidence_override:high-profile-verified": 1}


def test_queue_priority_floor(lead_input, complaint_input):
    """Queue priority is the score decile, raised to the urgency floor."""
    scorer = PriorityScorer({})
    lead = scorer.score(lead_input.event, lead_input.sentiment, lead_input.intent, lead_input.brand)
    assert queue_priority(lead, lead_input.intent) == 8
    complaint = scorer.score(
        complaint_input.event, complaint_input.sentiment, complaint_input.intent, complaint_input.brand,
    )
    assert queue_priority(complaint, complaint_input.intent) == 7


@pytest.mark.parametrize("override", [
    {"when": [{"field": "mood", "op": "==", "value": 1}], "confidence": 0.9},
    {"when": [{"field": "platform", "op": "~", "value": "x"}], "confidence": 0.9},
    {"when": [], "confidence": 0.9},
    {"when": [{"field": "platform", "op": "==", "value": "x"}], "confidence": 1.5},
])
def test_bad_override_config(override):
    """Malformed overrides fail at construction."""
    with pytest.raises(ConfigError, match="confidence_overrides"):
        DecisionRouter({"routing": {"confidence_overrides": [override]}})


def test_bad_thresholds():
    """Suggestion threshold may not exceed the auto-response one."""
    with pytest.raises(ConfigError, match="thresholds"):
        DecisionRouter({"routing": {"thresholds": {"auto_response": 0.6, "suggestion": 0.8}}})
