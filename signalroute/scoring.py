"""Priority scoring: a deterministic 0-100 score from five weighted components."""

from __future__ import annotations

import logging
import math
from datetime import datetime

import numpy as np

from signalroute.config import get_priority_config
from signalroute.errors import ConfigError
from signalroute.metrics import ScoringMetrics
from signalroute.models import (
    BrandContext,
    IntentCategory,
    IntentResult,
    PriorityScore,
    ScoreComponents,
    ScoreFactor,
    SentimentLabel,
    SentimentResult,
    SocialEvent,
    UrgencyLevel,
)

logger = logging.getLogger(__name__)

COMPONENTS = ("urgency", "impact", "sentiment", "reach", "brand_risk")


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


class PriorityScorer:
    """Score events for urgency and business impact.

    ``score`` is a pure function of its arguments and the static config;
    the optional metrics aggregator only observes results. Time decay is
    only applied when the caller passes ``now``.
    """

    def __init__(self, config: dict, metrics: ScoringMetrics | None = None):
        self.metrics = metrics
        cfg = get_priority_config(config)
        weights = cfg["weights"]
        missing = [name for name in COMPONENTS if name not in weights]
        if missing:
            raise ConfigError(f"priority.weights missing: {', '.join(missing)}")
        self.weights = np.array([float(weights[name]) for name in COMPONENTS])
        if (self.weights < 0).any() or self.weights.sum() <= 0:
            raise ConfigError("priority.weights must be non-negative with a positive sum")

        self.threshold = float(cfg["auto_escalation_threshold"])
        self.urgency_table = cfg["urgency"]
        self.impact_cfg = cfg["impact"]
        self.sentiment_cfg = cfg["sentiment"]
        self.reach_cfg = cfg["reach"]
        self.risk_cfg = cfg["brand_risk"]
        self.decay_cfg = cfg["time_decay"]

    # --- components ---

    def urgency_component(self, intent: IntentResult) -> tuple[float, str]:
        level = intent.urgency.level
        value = _clamp(float(self.urgency_table.get(level.value, 0.5)))
        drivers = [f.factor for f in intent.urgency.factors if f.impact > 0.1]
        reasoning = f"{level.value.capitalize()} urgency"
        if drivers:
            reasoning += f" ({', '.join(drivers)})"
        return value, reasoning

    def entity_impact(self, intent: IntentResult) -> float:
        impact = 0.0
        for entity in intent.entities:
            if entity.type == "PRICE" and intent.primary.category == IntentCategory.PURCHASE_INQUIRY:
                impact += 0.2
            elif entity.type == "TIME":
                impact += 0.1
            elif entity.type == "EMAIL":
                impact += 0.15
        return min(impact, 0.5)

    def impact_component(self, event: SocialEvent, intent: IntentResult) -> tuple[float, str, list[str]]:
        cfg = self.impact_cfg
        category = intent.primary.category.value
        intent_mult = float(cfg["intent_multipliers"].get(category, 0.5))
        platform_mult = float(cfg["platform_multipliers"].get(event.platform.value, 1.0))

        value = intent.primary.confidence * intent_mult * platform_mult
        modifiers = []
        if event.author.verified:
            value *= 1 + cfg["verified_bonus"]
            modifiers.append("verified-author")
        if event.engagement.engagement_rate > cfg["high_engagement_threshold"]:
            value *= 1 + cfg["high_engagement_bonus"]
            modifiers.append("high-engagement")
        value += self.entity_impact(intent) * cfg["entity_weight"]

        reasoning = (
            f"{category} intent x{intent_mult:.2f} on {event.platform.value} x{platform_mult:.2f}"
        )
        return _clamp(value), reasoning, modifiers

    def sentiment_component(self, sentiment: SentimentResult) -> tuple[float, str]:
        cfg = self.sentiment_cfg
        base = cfg["neutral_base"]
        overall = sentiment.overall

        if overall.confidence < cfg["confidence_threshold"]:
            value = base
            reasoning = f"Low-confidence {overall.label.value} sentiment treated as neutral"
        elif overall.label == SentimentLabel.NEGATIVE:
            value = base * (1 + (cfg["negative_multiplier"] - 1) * overall.confidence)
            reasoning = f"Negative sentiment ({overall.confidence:.2f} confidence)"
        elif overall.label == SentimentLabel.POSITIVE:
            value = base + cfg["positive_bonus"] * overall.confidence
            reasoning = f"Positive sentiment ({overall.confidence:.2f} confidence)"
        else:
            value = base
            reasoning = "Neutral sentiment"

        adjustment = 0.0
        for aspect in sentiment.aspects:
            if aspect.confidence < cfg["confidence_threshold"]:
                continue
            if aspect.label == SentimentLabel.NEGATIVE:
                adjustment += 0.1 * aspect.confidence
            elif aspect.label == SentimentLabel.POSITIVE:
                adjustment += 0.05 * aspect.confidence
        if adjustment:
            adjustment = min(adjustment, 0.2)
            value += adjustment
            reasoning += f", aspects +{adjustment:.2f}"
        return _clamp(value), reasoning

    def reach_component(self, event: SocialEvent) -> tuple[float, str, bool]:
        cfg = self.reach_cfg
        followers = event.author.follower_count
        follower_score = min(1.0, math.log10(followers + 1) / 7)
        blended = (
            follower_score * cfg["follower_weight"]
            + event.engagement.engagement_rate * cfg["engagement_weight"]
        )
        modifier = float(cfg["platform_modifiers"].get(event.platform.value, 1.0))
        value = blended * modifier

        viral = followers > 0 and event.engagement.interactions / followers >= cfg["virality_threshold"]
        if viral:
            value += cfg["virality_bonus"]
        reasoning = f"{followers} followers, {event.engagement.engagement_rate:.1%} engagement"
        if viral:
            reasoning += ", viral"
        return _clamp(value), reasoning, viral

    def brand_risk_component(
        self,
        event: SocialEvent,
        sentiment: SentimentResult,
        intent: IntentResult,
        brand: BrandContext,
    ) -> tuple[float, str, list[str]]:
        cfg = self.risk_cfg
        text = event.content.text.lower()
        value = 0.0
        signals: list[str] = []

        keywords = list(cfg["crisis_keywords"]) + list(brand.playbook.compliance.restricted_keywords)
        crisis = sorted({k for k in keywords if k and k.lower() in text})
        if crisis:
            value += cfg["crisis_weight"]
            signals.append(f"crisis keywords: {', '.join(crisis)}")

        claims = [c for c in brand.playbook.compliance.forbidden_claims if c and c.lower() in text]
        if claims:
            value += cfg["compliance_weight"] * cfg["compliance_violation_multiplier"]
            signals.append("compliance violation")

        if any(c and c.lower() in text for c in brand.competitors):
            value += cfg["competitor_weight"]
            signals.append("competitor mention")

        negative = sentiment.overall.label == SentimentLabel.NEGATIVE
        if negative and event.engagement.engagement_rate >= cfg["negative_virality_threshold"]:
            value += cfg["negative_virality_weight"]
            signals.append("negative virality")

        if (
            intent.primary.category == IntentCategory.COMPLAINT
            and intent.urgency.level == UrgencyLevel.CRITICAL
        ):
            value += cfg["critical_complaint_weight"]
            signals.append("critical complaint")

        reasoning = "; ".join(signals) if signals else "No brand risk signals"
        return _clamp(value), reasoning, ["crisis-keywords"] if crisis else []

    def time_decay(self, event: SocialEvent, now: datetime | None) -> tuple[float, float | None]:
        if now is None:
            return 1.0, None
        age_hours = max(0.0, (now - event.timestamp).total_seconds() / 3600)
        if not self.decay_cfg.get("enabled", True):
            return 1.0, age_hours
        decay = self.decay_cfg["factor"] ** (age_hours / self.decay_cfg["period_hours"])
        return decay, age_hours

    def confidence(self, event: SocialEvent, sentiment: SentimentResult, intent: IntentResult) -> float:
        value = 1.0
        if len(event.content.text) < 10:
            value -= 0.2
        if event.author.follower_count == 0:
            value -= 0.1
        value *= sentiment.overall.confidence * 0.5 + intent.primary.confidence * 0.5
        return _clamp(value, 0.1, 1.0)

    # --- overall ---

    def score(
        self,
        event: SocialEvent,
        sentiment: SentimentResult,
        intent: IntentResult,
        brand: BrandContext,
        now: datetime | None = None,
    ) -> PriorityScore:
        urgency, urgency_why = self.urgency_component(intent)
        impact, impact_why, modifiers = self.impact_component(event, intent)
        sent, sent_why = self.sentiment_component(sentiment)
        reach, reach_why, viral = self.reach_component(event)
        risk, risk_why, risk_mods = self.brand_risk_component(event, sentiment, intent, brand)

        values = np.array([urgency, impact, sent, reach, risk])
        total_weight = self.weights.sum()
        contributions = 100 * self.weights * values / total_weight

        decay, age_hours = self.time_decay(event, now)
        overall = round(_clamp(float(contributions.sum()) * decay, 0.0, 100.0), 2)

        if viral:
            modifiers.append("viral")
        modifiers.extend(risk_mods)
        if age_hours is not None:
            if age_hours > 24:
                modifiers.append("aged-content")
            elif age_hours < 1:
                modifiers.append("fresh-content")

        reasons = (urgency_why, impact_why, sent_why, reach_why, risk_why)
        factors = tuple(
            ScoreFactor(
                factor=name,
                value=float(values[i]),
                weight=float(self.weights[i] / total_weight),
                contribution=float(contributions[i]),
                reasoning=reasons[i],
            )
            for i, name in enumerate(COMPONENTS)
        )

        result = PriorityScore(
            overall=overall,
            components=ScoreComponents(
                urgency=urgency, impact=impact, sentiment=sent, reach=reach, brand_risk=risk,
            ),
            factors=factors,
            auto_escalation=overall >= self.threshold,
            confidence=self.confidence(event, sentiment, intent),
            applied_modifiers=tuple(modifiers),
            time_decay=decay,
            event_age_hours=age_hours,
        )
        if self.metrics is not None:
            self.metrics.record(
                event.platform.value, overall, result.components.as_dict(), result.auto_escalation,
            )
        return result
