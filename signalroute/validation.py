"""Parse and validate input records into pipeline models.

Every rejection raises ``ValidationError`` naming the dotted path of the
offending field, e.g. ``event.author.follower_count``.
"""

from __future__ import annotations

import enum
from datetime import datetime, timezone
from typing import Any, TypeVar

from signalroute.errors import ValidationError
from signalroute.models import (
    AspectSentiment,
    Author,
    BrandAsset,
    BrandContext,
    BrandPlaybook,
    ComplianceRules,
    DecisionInput,
    Engagement,
    Entity,
    EventContent,
    EventType,
    IntentCategory,
    IntentPrediction,
    IntentResult,
    Persona,
    Platform,
    SentimentLabel,
    SentimentResult,
    SentimentScore,
    SocialEvent,
    ThreadContext,
    Urgency,
    UrgencyFactor,
    UrgencyLevel,
    VoiceAndTone,
)

E = TypeVar("E", bound=enum.Enum)

_MISSING = object()


def _section(data: Any, path: str) -> dict:
    if not isinstance(data, dict):
        raise ValidationError(path, "expected an object")
    return data


def _get(data: dict, key: str, path: str, default: Any = _MISSING) -> Any:
    value = data.get(key, _MISSING)
    if value is _MISSING or value is None:
        if default is _MISSING:
            raise ValidationError(f"{path}.{key}", "is required")
        return default
    return value


def _str(data: dict, key: str, path: str, default: Any = _MISSING) -> str:
    value = _get(data, key, path, default)
    if value is default and default is not _MISSING:
        return value
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{path}.{key}", "must be a non-empty string")
    return value


def _float(
    data: dict, key: str, path: str,
    low: float | None = None, high: float | None = None,
    default: Any = _MISSING,
) -> float:
    value = _get(data, key, path, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{path}.{key}", "must be a number")
    value = float(value)
    if low is not None and value < low:
        raise ValidationError(f"{path}.{key}", f"must be >= {low}")
    if high is not None and value > high:
        raise ValidationError(f"{path}.{key}", f"must be <= {high}")
    return value


def _count(data: dict, key: str, path: str) -> int:
    value = _get(data, key, path, 0)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{path}.{key}", "must be an integer")
    if value < 0:
        raise ValidationError(f"{path}.{key}", "must not be negative")
    return value


def _enum(enum_cls: type[E], data: dict, key: str, path: str) -> E:
    value = _get(data, key, path)
    try:
        return enum_cls(str(value).lower())
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(
            f"{path}.{key}", f"unknown value {value!r} (expected one of: {allowed})"
        ) from None


def _str_tuple(data: dict, key: str, path: str) -> tuple[str, ...]:
    value = data.get(key) or []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValidationError(f"{path}.{key}", "must be a list of strings")
    return tuple(value)


def _list(data: dict, key: str, path: str) -> list:
    value = data.get(key) or []
    if not isinstance(value, list):
        raise ValidationError(f"{path}.{key}", "must be a list")
    return value


def parse_timestamp(value: Any, path: str) -> datetime:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        try:
            dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            raise ValidationError(path, f"invalid ISO-8601 timestamp {value!r}") from None
    else:
        raise ValidationError(path, "must be an ISO-8601 timestamp")
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def parse_event(data: Any, path: str = "event") -> SocialEvent:
    data = _section(data, path)

    content = _section(_get(data, "content", path), f"{path}.content")
    text = content.get("text", "")
    if not isinstance(text, str):
        raise ValidationError(f"{path}.content.text", "must be a string")

    author = _section(_get(data, "author", path), f"{path}.author")
    author_path = f"{path}.author"

    engagement = _section(data.get("engagement") or {}, f"{path}.engagement")
    eng_path = f"{path}.engagement"
    rate = None
    if engagement.get("engagement_rate") is not None:
        rate = _float(engagement, "engagement_rate", eng_path, low=0.0)

    context = None
    if data.get("context"):
        ctx = _section(data["context"], f"{path}.context")
        context = ThreadContext(
            parent_post_id=ctx.get("parent_post_id"),
            thread_id=ctx.get("thread_id"),
            conversation_id=ctx.get("conversation_id"),
            is_reply=bool(ctx.get("is_reply", False)),
            reply_to_user_id=ctx.get("reply_to_user_id"),
        )

    raw = data.get("raw") or {}
    if not isinstance(raw, dict):
        raise ValidationError(f"{path}.raw", "must be an object")

    return SocialEvent(
        id=_str(data, "id", path),
        platform=_enum(Platform, data, "platform", path),
        platform_id=_str(data, "platform_id", path),
        timestamp=parse_timestamp(_get(data, "timestamp", path), f"{path}.timestamp"),
        event_type=_enum(EventType, {"type": data.get("type", "post")}, "type", path),
        content=EventContent(
            text=text,
            media_urls=_str_tuple(content, "media_urls", f"{path}.content"),
            hashtags=_str_tuple(content, "hashtags", f"{path}.content"),
            mentions=_str_tuple(content, "mentions", f"{path}.content"),
            language=content.get("language"),
        ),
        author=Author(
            id=_str(author, "id", author_path),
            username=_str(author, "username", author_path),
            display_name=author.get("display_name") or "",
            follower_count=_count(author, "follower_count", author_path),
            verified=bool(author.get("verified", False)),
        ),
        engagement=Engagement(
            likes=_count(engagement, "likes", eng_path),
            shares=_count(engagement, "shares", eng_path),
            comments=_count(engagement, "comments", eng_path),
            views=_count(engagement, "views", eng_path),
            engagement_rate=rate,
        ),
        context=context,
        raw=raw,
    )


def parse_sentiment(data: Any, path: str = "sentiment") -> SentimentResult:
    data = _section(data, path)
    overall = _section(_get(data, "overall", path), f"{path}.overall")
    o_path = f"{path}.overall"

    aspects = []
    for i, item in enumerate(_list(data, "aspects", path)):
        a_path = f"{path}.aspects[{i}]"
        item = _section(item, a_path)
        aspects.append(AspectSentiment(
            aspect=_str(item, "aspect", a_path),
            label=_enum(SentimentLabel, item, "label", a_path),
            score=_float(item, "score", a_path, -1.0, 1.0),
            confidence=_float(item, "confidence", a_path, 0.0, 1.0),
        ))

    return SentimentResult(
        overall=SentimentScore(
            label=_enum(SentimentLabel, overall, "label", o_path),
            score=_float(overall, "score", o_path, -1.0, 1.0),
            confidence=_float(overall, "confidence", o_path, 0.0, 1.0),
        ),
        aspects=tuple(aspects),
    )


def _prediction(data: Any, path: str) -> IntentPrediction:
    data = _section(data, path)
    return IntentPrediction(
        category=_enum(IntentCategory, data, "category", path),
        confidence=_float(data, "confidence", path, 0.0, 1.0),
    )


def parse_intent(data: Any, path: str = "intent") -> IntentResult:
    data = _section(data, path)
    urgency = _section(_get(data, "urgency", path), f"{path}.urgency")
    u_path = f"{path}.urgency"

    factors = []
    for i, item in enumerate(_list(urgency, "factors", u_path)):
        f_path = f"{u_path}.factors[{i}]"
        item = _section(item, f_path)
        factors.append(UrgencyFactor(
            factor=_str(item, "factor", f_path),
            impact=_float(item, "impact", f_path, 0.0, 1.0),
        ))

    entities = []
    for i, item in enumerate(_list(data, "entities", path)):
        e_path = f"{path}.entities[{i}]"
        item = _section(item, e_path)
        entities.append(Entity(
            type=_str(item, "type", e_path).upper(),
            value=str(_get(item, "value", e_path)),
            confidence=_float(item, "confidence", e_path, 0.0, 1.0, default=1.0),
        ))

    secondary = None
    if data.get("secondary"):
        secondary = _prediction(data["secondary"], f"{path}.secondary")

    return IntentResult(
        primary=_prediction(_get(data, "primary", path), f"{path}.primary"),
        urgency=Urgency(
            level=_enum(UrgencyLevel, urgency, "level", u_path),
            score=_float(urgency, "score", u_path, 0.0, 1.0, default=0.5),
            factors=tuple(factors),
        ),
        secondary=secondary,
        entities=tuple(entities),
        topics=_str_tuple(data, "topics", path),
    )


def parse_brand_context(data: Any, path: str = "brand") -> BrandContext:
    data = _section(data, path)
    playbook = _section(_get(data, "playbook", path), f"{path}.playbook")
    p_path = f"{path}.playbook"
    voice = _section(playbook.get("voice") or {}, f"{p_path}.voice")
    compliance = _section(playbook.get("compliance") or {}, f"{p_path}.compliance")

    personas = []
    for i, item in enumerate(_list(data, "personas", path)):
        item = _section(item, f"{path}.personas[{i}]")
        personas.append(Persona(
            id=_str(item, "id", f"{path}.personas[{i}]"),
            name=_str(item, "name", f"{path}.personas[{i}]"),
            description=item.get("description") or "",
        ))

    assets = []
    for i, item in enumerate(_list(data, "assets", path)):
        a_path = f"{path}.assets[{i}]"
        item = _section(item, a_path)
        assets.append(BrandAsset(
            id=_str(item, "id", a_path),
            type=_str(item, "type", a_path),
            url=_str(item, "url", a_path),
        ))

    return BrandContext(
        brand_id=_str(data, "brand_id", path),
        playbook=BrandPlaybook(
            id=_str(playbook, "id", p_path),
            version=str(_get(playbook, "version", p_path, "1")),
            brand_name=_str(playbook, "brand_name", p_path),
            voice=VoiceAndTone(
                primary_tone=voice.get("primary_tone") or "friendly",
                do_use=_str_tuple(voice, "do_use", f"{p_path}.voice"),
                dont_use=_str_tuple(voice, "dont_use", f"{p_path}.voice"),
            ),
            compliance=ComplianceRules(
                forbidden_claims=_str_tuple(compliance, "forbidden_claims", f"{p_path}.compliance"),
                required_disclosures=_str_tuple(
                    compliance, "required_disclosures", f"{p_path}.compliance",
                ),
                restricted_keywords=_str_tuple(
                    compliance, "restricted_keywords", f"{p_path}.compliance",
                ),
            ),
        ),
        personas=tuple(personas),
        assets=tuple(assets),
        competitors=_str_tuple(data, "competitors", path),
    )


def parse_record(record: Any) -> DecisionInput:
    """Parse one ``{event, sentiment, intent, brand}`` record."""
    record = _section(record, "record")
    return DecisionInput(
        event=parse_event(_get(record, "event", "record"), "event"),
        sentiment=parse_sentiment(_get(record, "sentiment", "record"), "sentiment"),
        intent=parse_intent(_get(record, "intent", "record"), "intent"),
        brand=parse_brand_context(_get(record, "brand", "record"), "brand"),
    )
