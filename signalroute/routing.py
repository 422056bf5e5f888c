"""Decision routing: map confidence, overrides and priority onto a route and actions."""

from __future__ import annotations

import logging
import math
import operator
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from signalroute.config import get_routing_config
from signalroute.errors import ConfigError
from signalroute.generate.templates import DEFAULT_TEMPLATE_BY_INTENT, FALLBACK_TEMPLATE
from signalroute.metrics import RoutingMetrics
from signalroute.models import (
    Action,
    ActionType,
    BrandContext,
    CreateParams,
    EscalateParams,
    EscalationInfo,
    IntentCategory,
    IntentResult,
    MonitoringPlan,
    MonitorParams,
    PriorityScore,
    QueueInfo,
    RespondParams,
    Route,
    RoutingDecision,
    SentimentLabel,
    SentimentResult,
    SocialEvent,
    UrgencyLevel,
    utcnow,
)

logger = logging.getLogger(__name__)

SALES_INTENTS = (IntentCategory.PURCHASE_INQUIRY, IntentCategory.COMPARISON_SHOPPING)
URGENCY_QUEUE_FLOOR = {
    UrgencyLevel.CRITICAL: 9,
    UrgencyLevel.HIGH: 7,
    UrgencyLevel.MEDIUM: 5,
}
ROUTE_PREFIX = {
    Route.AUTO_RESPONSE: "auto",
    Route.SUGGESTION: "sugg",
    Route.HUMAN_REVIEW: "review",
}

OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "==": operator.eq,
    "!=": operator.ne,
    ">": operator.gt,
    ">=": operator.ge,
    "<": operator.lt,
    "<=": operator.le,
    "in": lambda a, b: a in b,
    "not_in": lambda a, b: a not in b,
    "contains": lambda a, b: str(b).lower() in str(a).lower(),
}
FIELDS = (
    "platform", "event_type", "intent", "urgency", "sentiment", "priority",
    "follower_count", "verified", "engagement_rate", "text",
)


@dataclass(frozen=True)
class Condition:
    field: str
    op: str
    value: Any

    def holds(self, facts: dict[str, Any]) -> bool:
        return bool(OPERATORS[self.op](facts[self.field], self.value))


@dataclass(frozen=True)
class ConfidenceOverride:
    """Raise confidence to ``confidence`` when every condition holds."""

    name: str
    conditions: tuple[Condition, ...]
    confidence: float
    reason: str

    @classmethod
    def from_config(cls, item: dict, position: int) -> ConfidenceOverride:
        name = item.get("name") or f"override-{position}"
        where = f"routing.confidence_overrides[{position}]"
        conditions = []
        for cond in item.get("when") or []:
            field, op = cond.get("field"), cond.get("op", "==")
            if field not in FIELDS:
                raise ConfigError(f"{where}: unknown field {field!r}")
            if op not in OPERATORS:
                raise ConfigError(f"{where}: unknown operator {op!r}")
            conditions.append(Condition(field, op, cond.get("value")))
        if not conditions:
            raise ConfigError(f"{where}: at least one condition is required")
        confidence = item.get("confidence")
        if not isinstance(confidence, (int, float)) or not 0 <= confidence <= 1:
            raise ConfigError(f"{where}: confidence must be a number in [0, 1]")
        return cls(name, tuple(conditions), float(confidence), item.get("reason") or name)

    def matches(self, facts: dict[str, Any]) -> bool:
        return all(c.holds(facts) for c in self.conditions)


def queue_priority(priority: PriorityScore, intent: IntentResult) -> int:
    """1-10 queue priority from the score, raised to the urgency floor."""
    value = math.ceil(priority.overall / 10)
    value = max(value, URGENCY_QUEUE_FLOOR.get(intent.urgency.level, 1))
    return max(1, min(10, value))


class DecisionRouter:
    """Route scored events to auto-response, suggestion or human review.

    Override rules run before the threshold mapping, in this order:
    confidence overrides (may only raise confidence), always-human-review,
    never-auto-respond. A rule that raises is logged, recorded in
    ``override_errors`` and skipped; the remaining rules still apply.
    """

    def __init__(self, config: dict, metrics: RoutingMetrics | None = None,
                 clock: Callable[[], datetime] = utcnow):
        cfg = get_routing_config(config)
        thresholds = cfg["thresholds"]
        self.auto_threshold = float(thresholds["auto_response"])
        self.suggestion_threshold = float(thresholds["suggestion"])
        if not 0 <= self.suggestion_threshold <= self.auto_threshold <= 1:
            raise ConfigError(
                "routing.thresholds must satisfy 0 <= suggestion <= auto_response <= 1"
            )

        weights = cfg["confidence_weights"]
        self.confidence_weights = (
            float(weights["sentiment"]), float(weights["intent"]), float(weights["priority"]),
        )
        if min(self.confidence_weights) < 0 or sum(self.confidence_weights) <= 0:
            raise ConfigError("routing.confidence_weights must be non-negative with a positive sum")

        self.always_human = cfg["always_human_review"]
        self.never_auto = cfg["never_auto_respond"]
        self.overrides = [
            ConfidenceOverride.from_config(item, i)
            for i, item in enumerate(cfg["confidence_overrides"] or [])
        ]
        self.review_cfg = cfg["human_review"]
        self.metrics = metrics
        self._clock = clock

    def base_confidence(
        self, sentiment: SentimentResult, intent: IntentResult, priority: PriorityScore,
    ) -> float:
        ws, wi, wp = self.confidence_weights
        value = (
            ws * sentiment.overall.confidence
            + wi * intent.primary.confidence
            + wp * priority.confidence
        ) / (ws + wi + wp)
        return max(0.0, min(1.0, value))

    @staticmethod
    def _facts(event: SocialEvent, sentiment: SentimentResult,
               intent: IntentResult, priority: PriorityScore) -> dict[str, Any]:
        return {
            "platform": event.platform.value,
            "event_type": event.event_type.value,
            "intent": intent.primary.category.value,
            "urgency": intent.urgency.level.value,
            "sentiment": sentiment.overall.label.value,
            "priority": priority.overall,
            "follower_count": event.author.follower_count,
            "verified": event.author.verified,
            "engagement_rate": event.engagement.engagement_rate,
            "text": event.content.text,
        }

    def _human_review_reasons(self, intent: IntentResult, priority: PriorityScore) -> list[str]:
        rules = self.always_human
        reasons = []
        if intent.primary.category.value in rules.get("intents", []):
            reasons.append(f"Intent '{intent.primary.category.value}' always requires human review")
        if intent.urgency.level.value in rules.get("urgency_levels", []):
            reasons.append(f"Urgency '{intent.urgency.level.value}' always requires human review")
        threshold = rules.get("priority_threshold")
        if threshold is not None and priority.overall >= threshold:
            reasons.append(f"Priority {priority.overall:.1f} >= {threshold} requires human review")
        return reasons

    def _auto_block_reasons(self, event: SocialEvent, intent: IntentResult) -> list[str]:
        rules = self.never_auto
        reasons = []
        if intent.primary.category.value in rules.get("intents", []):
            reasons.append(f"Auto-response disabled for intent '{intent.primary.category.value}'")
        if event.platform.value in rules.get("platforms", []):
            reasons.append(f"Auto-response disabled on {event.platform.value}")
        text = event.content.text.lower()
        hits = [k for k in rules.get("keywords", []) if k.lower() in text]
        if hits:
            reasons.append(f"Sensitive keywords present: {', '.join(hits)}")
        return reasons

    def _apply_rule(self, name: str, fn: Callable[[], Any], errors: list[str]) -> Any:
        try:
            return fn()
        except Exception as exc:
            logger.warning("Routing rule '%s' failed: %s", name, exc)
            errors.append(f"{name}: {type(exc).__name__}: {exc}")
            return None

    def route(
        self,
        event: SocialEvent,
        sentiment: SentimentResult,
        intent: IntentResult,
        priority: PriorityScore,
        brand: BrandContext,
    ) -> RoutingDecision:
        base = self.base_confidence(sentiment, intent, priority)
        confidence = base
        reasoning = [f"Base confidence {base:.3f} from sentiment, intent and priority confidence"]
        applied: list[str] = []
        errors: list[str] = []

        facts = self._facts(event, sentiment, intent, priority)
        for rule in self.overrides:
            matched = self._apply_rule(rule.name, lambda r=rule: r.matches(facts), errors)
            if matched and rule.confidence > confidence:
                confidence = rule.confidence
                applied.append(f"confidence_override:{rule.name}")
                reasoning.append(f"{rule.reason}: confidence raised to {confidence:.2f}")

        forced = self._apply_rule(
            "always_human_review", lambda: self._human_review_reasons(intent, priority), errors,
        ) or []
        blocked = self._apply_rule(
            "never_auto_respond", lambda: self._auto_block_reasons(event, intent), errors,
        ) or []

        if forced:
            route = Route.HUMAN_REVIEW
            applied.append("always_human_review")
            reasoning.extend(forced)
        elif confidence >= self.auto_threshold and not blocked:
            route = Route.AUTO_RESPONSE
            reasoning.append(f"Confidence {confidence:.3f} >= auto-response threshold")
        elif confidence >= self.suggestion_threshold:
            route = Route.SUGGESTION
            if blocked and confidence >= self.auto_threshold:
                applied.append("never_auto_respond")
                reasoning.extend(blocked)
            reasoning.append(f"Confidence {confidence:.3f} >= suggestion threshold; approval required")
        else:
            route = Route.HUMAN_REVIEW
            reasoning.append(f"Confidence {confidence:.3f} below suggestion threshold")

        decision_id = f"{ROUTE_PREFIX[route]}_{uuid.uuid4().hex[:12]}"
        q_priority = queue_priority(priority, intent)

        if route == Route.AUTO_RESPONSE:
            actions = self._auto_actions(intent, priority, brand, confidence, q_priority)
            monitoring = MonitoringPlan(
                follow_up_hours=24 if intent.primary.category == IntentCategory.COMPLAINT else 48,
                kpis=self._kpis(intent),
            )
            queue = escalation = None
        elif route == Route.SUGGESTION:
            actions = self._suggestion_actions(intent, confidence, q_priority)
            monitoring = MonitoringPlan(follow_up_hours=4, kpis=self._kpis(intent))
            queue = QueueInfo("approval", q_priority, 0)
            escalation = None
        else:
            escalation = self._escalation(intent, priority, q_priority)
            wait = int(self.review_cfg["base_wait_seconds"] * (11 - q_priority) / 10)
            queue = QueueInfo(self.review_cfg["queue"], q_priority, wait)
            actions = [self._review_action(
                event, sentiment, intent, priority, confidence, q_priority, escalation, reasoning,
            )]
            monitoring = MonitoringPlan(follow_up_hours=8, kpis=self._kpis(intent))

        for i, action in enumerate(actions):
            action.id = f"{decision_id}-{i + 1}"

        decision = RoutingDecision(
            decision_id=decision_id,
            event_id=event.id,
            route=route,
            confidence=confidence,
            reasoning=reasoning,
            actions=actions,
            base_confidence=base,
            requires_approval=route == Route.SUGGESTION,
            queue=queue,
            escalation=escalation,
            monitoring=monitoring,
            overrides_applied=applied,
            override_errors=errors,
            routed_at=self._clock(),
        )
        logger.debug(
            "Event %s routed to %s (confidence %.3f, %d actions)",
            event.id, route.value, confidence, len(actions),
        )
        if self.metrics is not None:
            self.metrics.record(event.platform.value, route.value, confidence, applied, len(errors))
        return decision

    @staticmethod
    def _kpis(intent: IntentResult) -> tuple[str, ...]:
        kpis = ("response_time", "sentiment_change", "engagement")
        if intent.primary.category in SALES_INTENTS:
            kpis += ("conversion",)
        return kpis

    def _auto_actions(self, intent: IntentResult, priority: PriorityScore,
                      brand: BrandContext, confidence: float, q_priority: int) -> list[Action]:
        category = intent.primary.category
        actions = [Action(
            type=ActionType.RESPOND,
            params=RespondParams(template=DEFAULT_TEMPLATE_BY_INTENT[category]),
            priority=q_priority, confidence=confidence, automated=True,
        )]
        if category in SALES_INTENTS:
            actions.append(Action(
                type=ActionType.CREATE, params=CreateParams(),
                priority=q_priority, confidence=confidence, automated=True,
            ))
        if priority.auto_escalation:
            actions.append(Action(
                type=ActionType.ESCALATE,
                params=EscalateParams(
                    reason=f"Priority score {priority.overall:.1f} triggered auto-escalation",
                ),
                priority=q_priority, confidence=confidence, automated=True,
            ))
        actions.append(Action(
            type=ActionType.MONITOR,
            params=MonitorParams(duration_hours=24, keywords=[brand.playbook.brand_name]),
            priority=max(1, q_priority - 2), confidence=confidence, automated=True,
        ))
        return actions

    def _suggestion_actions(self, intent: IntentResult, confidence: float,
                            q_priority: int) -> list[Action]:
        category = intent.primary.category
        primary = DEFAULT_TEMPLATE_BY_INTENT[category]
        actions = [Action(
            type=ActionType.RESPOND,
            params=RespondParams(template=primary, suggestions=[primary, FALLBACK_TEMPLATE]),
            priority=q_priority, confidence=confidence, requires_approval=True,
        )]
        if category in SALES_INTENTS:
            actions.append(Action(
                type=ActionType.CREATE, params=CreateParams(),
                priority=q_priority, confidence=confidence, requires_approval=True,
            ))
        return actions

    def _escalation(self, intent: IntentResult, priority: PriorityScore,
                    q_priority: int) -> EscalationInfo:
        critical = intent.urgency.level == UrgencyLevel.CRITICAL
        conditions = []
        if critical:
            conditions.append("critical-urgency")
        threshold = self.always_human.get("priority_threshold")
        if threshold is not None and priority.overall >= threshold:
            conditions.append("high-priority-score")
        if priority.auto_escalation:
            conditions.append("auto-escalation-triggered")
        return EscalationInfo(
            required=q_priority >= 8 or critical,
            level="critical" if q_priority >= 8 else "standard",
            timeout_seconds=int(self.review_cfg["timeout_seconds"]),
            conditions=tuple(conditions),
        )

    def _review_action(self, event: SocialEvent, sentiment: SentimentResult,
                       intent: IntentResult, priority: PriorityScore, confidence: float,
                       q_priority: int, escalation: EscalationInfo,
                       reasoning: list[str]) -> Action:
        return Action(
            type=ActionType.ESCALATE,
            params=EscalateParams(
                reason="; ".join(reasoning[1:]) or "Manual review required",
                level=escalation.level,
                review_context={
                    "priority_score": priority.overall,
                    "components": priority.components.as_dict(),
                    "sentiment": sentiment.overall.label.value,
                    "intent": intent.primary.category.value,
                    "urgency": intent.urgency.level.value,
                    "confidence": confidence,
                },
                recommendations=self._recommendations(event, sentiment, intent, priority),
            ),
            priority=q_priority, confidence=confidence,
        )

    @staticmethod
    def _recommendations(event: SocialEvent, sentiment: SentimentResult,
                         intent: IntentResult, priority: PriorityScore) -> list[str]:
        recs = []
        if intent.primary.category == IntentCategory.COMPLAINT:
            recs.append("Respond with empathy and offer a concrete resolution")
        if intent.urgency.level == UrgencyLevel.CRITICAL:
            recs.append("Respond within 1 hour")
        if sentiment.overall.label == SentimentLabel.NEGATIVE:
            recs.append("Acknowledge the concern before offering solutions")
        if event.author.verified or event.author.follower_count > 100000:
            recs.append("High-visibility author: coordinate with the communications team")
        if priority.components.brand_risk > 0.5:
            recs.append("Check brand and legal risk before any public reply")
        if intent.primary.category in SALES_INTENTS:
            recs.append("Route to sales once the question is answered")
        recs.append("Follow the brand voice guidelines")
        return recs
