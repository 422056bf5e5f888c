"""Core data models for the decision pipeline."""

from __future__ import annotations

import enum
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Platform(str, enum.Enum):
    TIKTOK = "tiktok"
    INSTAGRAM = "instagram"
    FACEBOOK = "facebook"
    YOUTUBE = "youtube"
    REDDIT = "reddit"
    RSS = "rss"
    TWITTER = "twitter"
    LINKEDIN = "linkedin"


class EventType(str, enum.Enum):
    POST = "post"
    COMMENT = "comment"
    MENTION = "mention"
    MESSAGE = "message"
    SHARE = "share"
    REACTION = "reaction"


class SentimentLabel(str, enum.Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"


class IntentCategory(str, enum.Enum):
    PURCHASE_INQUIRY = "purchase_inquiry"
    SUPPORT_REQUEST = "support_request"
    COMPLAINT = "complaint"
    INFORMATION_SEEKING = "information_seeking"
    PRAISE = "praise"
    FEATURE_REQUEST = "feature_request"
    COMPARISON_SHOPPING = "comparison_shopping"


class UrgencyLevel(str, enum.Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    MINIMAL = "minimal"


class ActionType(str, enum.Enum):
    RESPOND = "respond"
    ENGAGE = "engage"
    CREATE = "create"
    ESCALATE = "escalate"
    MONITOR = "monitor"
    SUPPRESS = "suppress"


class Route(str, enum.Enum):
    AUTO_RESPONSE = "auto-response"
    SUGGESTION = "suggestion"
    HUMAN_REVIEW = "human-review"


class ExecutionStatus(str, enum.Enum):
    SUCCESS = "success"
    FAILED = "failed"
    PARTIAL = "partial"
    PENDING = "pending"


# --- Social event ---


@dataclass(frozen=True)
class Author:
    id: str
    username: str
    display_name: str = ""
    follower_count: int = 0
    verified: bool = False


@dataclass(frozen=True)
class EventContent:
    text: str = ""
    media_urls: tuple[str, ...] = ()
    hashtags: tuple[str, ...] = ()
    mentions: tuple[str, ...] = ()
    language: str | None = None


@dataclass(frozen=True)
class Engagement:
    """Raw engagement counters. ``engagement_rate`` is derived when not supplied."""

    likes: int = 0
    shares: int = 0
    comments: int = 0
    views: int = 0
    engagement_rate: float | None = None

    def __post_init__(self):
        if self.engagement_rate is None:
            interactions = self.likes + self.shares + self.comments
            rate = interactions / self.views if self.views else 0.0
            object.__setattr__(self, "engagement_rate", rate)

    @property
    def interactions(self) -> int:
        return self.likes + self.shares + self.comments


@dataclass(frozen=True)
class ThreadContext:
    parent_post_id: str | None = None
    thread_id: str | None = None
    conversation_id: str | None = None
    is_reply: bool = False
    reply_to_user_id: str | None = None


@dataclass(frozen=True)
class SocialEvent:
    """A single platform activity. Never mutated after ingestion."""

    id: str
    platform: Platform
    platform_id: str
    timestamp: datetime
    event_type: EventType
    content: EventContent
    author: Author
    engagement: Engagement = field(default_factory=Engagement)
    context: ThreadContext | None = None
    raw: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)


# --- Analysis inputs ---


@dataclass(frozen=True)
class SentimentScore:
    label: SentimentLabel
    score: float  # -1..1
    confidence: float


@dataclass(frozen=True)
class AspectSentiment:
    aspect: str
    label: SentimentLabel
    score: float
    confidence: float


@dataclass(frozen=True)
class SentimentResult:
    overall: SentimentScore
    aspects: tuple[AspectSentiment, ...] = ()


@dataclass(frozen=True)
class IntentPrediction:
    category: IntentCategory
    confidence: float


@dataclass(frozen=True)
class Entity:
    type: str  # PRICE, TIME, EMAIL, PRODUCT, ...
    value: str
    confidence: float = 1.0


@dataclass(frozen=True)
class UrgencyFactor:
    factor: str
    impact: float


@dataclass(frozen=True)
class Urgency:
    level: UrgencyLevel
    score: float
    factors: tuple[UrgencyFactor, ...] = ()


@dataclass(frozen=True)
class IntentResult:
    primary: IntentPrediction
    urgency: Urgency
    secondary: IntentPrediction | None = None
    entities: tuple[Entity, ...] = ()
    topics: tuple[str, ...] = ()


@dataclass(frozen=True)
class VoiceAndTone:
    primary_tone: str = "friendly"
    do_use: tuple[str, ...] = ()
    dont_use: tuple[str, ...] = ()


@dataclass(frozen=True)
class ComplianceRules:
    forbidden_claims: tuple[str, ...] = ()
    required_disclosures: tuple[str, ...] = ()
    restricted_keywords: tuple[str, ...] = ()


@dataclass(frozen=True)
class BrandPlaybook:
    id: str
    version: str
    brand_name: str
    voice: VoiceAndTone = field(default_factory=VoiceAndTone)
    compliance: ComplianceRules = field(default_factory=ComplianceRules)


@dataclass(frozen=True)
class Persona:
    id: str
    name: str
    description: str = ""


@dataclass(frozen=True)
class BrandAsset:
    id: str
    type: str  # logo, image, video, document
    url: str


@dataclass(frozen=True)
class BrandContext:
    brand_id: str
    playbook: BrandPlaybook
    personas: tuple[Persona, ...] = ()
    assets: tuple[BrandAsset, ...] = ()
    competitors: tuple[str, ...] = ()


@dataclass(frozen=True)
class DecisionInput:
    """One validated input record for the pipeline."""

    event: SocialEvent
    sentiment: SentimentResult
    intent: IntentResult
    brand: BrandContext


# --- Deduplication ---


@dataclass
class RawEvent:
    """Platform payload as seen by the deduplication engine."""

    platform: str
    platform_id: str
    timestamp: datetime
    data: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_social_event(cls, event: SocialEvent) -> RawEvent:
        data: dict[str, Any] = {
            "text": event.content.text,
            "media_urls": list(event.content.media_urls),
            "hashtags": list(event.content.hashtags),
            "author_id": event.author.id,
        }
        data.update(event.raw)
        return cls(
            platform=event.platform.value,
            platform_id=event.platform_id,
            timestamp=event.timestamp,
            data=data,
        )


@dataclass(frozen=True)
class FingerprintMeta:
    author_id: str | None
    text_length: int
    media_count: int
    hashtag_count: int
    canonical_url: str | None = None


@dataclass(frozen=True)
class EventFingerprint:
    id: str
    platform: str
    platform_id: str
    content_hash: str
    timestamp: datetime
    created_at: datetime
    metadata: FingerprintMeta


@dataclass
class DedupResult:
    unique_id: str
    is_duplicate: bool
    confidence: float
    duplicate_of: str | None = None
    method: str | None = None  # exact_match, content_hash, timestamp_window, platform_specific
    processing_ms: float = 0.0


# --- Priority scoring ---


@dataclass(frozen=True)
class ScoreComponents:
    urgency: float
    impact: float
    sentiment: float
    reach: float
    brand_risk: float

    def as_dict(self) -> dict[str, float]:
        return asdict(self)


@dataclass(frozen=True)
class ScoreFactor:
    factor: str
    value: float
    weight: float
    contribution: float
    reasoning: str


@dataclass(frozen=True)
class PriorityScore:
    overall: float  # 0..100
    components: ScoreComponents
    factors: tuple[ScoreFactor, ...]
    auto_escalation: bool
    confidence: float  # 0.1..1.0
    applied_modifiers: tuple[str, ...] = ()
    time_decay: float = 1.0
    event_age_hours: float | None = None


# --- Actions ---


@dataclass
class ActionParams:
    approved: bool = False


@dataclass
class RespondParams(ActionParams):
    template: str | None = None
    personalization: dict[str, str] = field(default_factory=dict)
    suggestions: list[str] = field(default_factory=list)
    max_length: int | None = None


@dataclass
class EscalateParams(ActionParams):
    reason: str = ""
    level: str = "standard"  # standard, critical
    review_context: dict[str, Any] = field(default_factory=dict)
    recommendations: list[str] = field(default_factory=list)


@dataclass
class CreateParams(ActionParams):
    record_type: str = "lead"
    source: str = "social_media"
    create_opportunity: bool = True


@dataclass
class MonitorParams(ActionParams):
    duration_hours: int = 24
    keywords: list[str] = field(default_factory=list)
    track_engagement: bool = True


@dataclass
class EngageParams(ActionParams):
    engagement: str = "like"


@dataclass
class SuppressParams(ActionParams):
    reason: str = ""


PARAMS_BY_TYPE: dict[ActionType, type[ActionParams]] = {
    ActionType.RESPOND: RespondParams,
    ActionType.ESCALATE: EscalateParams,
    ActionType.CREATE: CreateParams,
    ActionType.MONITOR: MonitorParams,
    ActionType.ENGAGE: EngageParams,
    ActionType.SUPPRESS: SuppressParams,
}


@dataclass
class Action:
    """A unit of work attached to a routing decision."""

    type: ActionType
    params: ActionParams
    priority: int = 5
    confidence: float = 0.0
    automated: bool = False
    requires_approval: bool = False
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])

    def __post_init__(self):
        expected = PARAMS_BY_TYPE[self.type]
        if type(self.params) is not expected:
            raise TypeError(
                f"{self.type.value} action needs {expected.__name__}, "
                f"got {type(self.params).__name__}"
            )


@dataclass(frozen=True)
class QueueInfo:
    name: str
    priority: int  # 1..10
    estimated_wait_seconds: int


@dataclass(frozen=True)
class EscalationInfo:
    required: bool
    level: str  # standard, critical
    timeout_seconds: int
    conditions: tuple[str, ...] = ()


@dataclass(frozen=True)
class MonitoringPlan:
    follow_up_hours: int
    kpis: tuple[str, ...] = ()


@dataclass
class RoutingDecision:
    decision_id: str
    event_id: str
    route: Route
    confidence: float
    reasoning: list[str]
    actions: list[Action]
    base_confidence: float = 0.0
    requires_approval: bool = False
    queue: QueueInfo | None = None
    escalation: EscalationInfo | None = None
    monitoring: MonitoringPlan | None = None
    overrides_applied: list[str] = field(default_factory=list)
    override_errors: list[str] = field(default_factory=list)
    routed_at: datetime = field(default_factory=utcnow)


# --- Execution results ---


@dataclass(frozen=True)
class GeneratedResponse:
    text: str
    method: str  # ai, template
    template_id: str | None = None
    personalized: bool = False


@dataclass(frozen=True)
class ResponseOutcome:
    content: str
    method: str
    template_id: str | None = None
    posted: bool = False
    post_id: str | None = None
    post_error: str | None = None


@dataclass(frozen=True)
class TicketOutcome:
    ticket_id: str
    priority: str  # high, medium, low
    status: str = "open"


@dataclass(frozen=True)
class CRMOutcome:
    lead_id: str
    lead_score: int
    opportunity_id: str | None = None


@dataclass(frozen=True)
class WebhookDelivery:
    endpoint: str
    success: bool
    attempts: int
    status_code: int | None = None
    error: str | None = None


@dataclass(frozen=True)
class ResultMetadata:
    event_id: str
    decision_id: str
    original_parameters: dict[str, Any]


@dataclass
class ActionExecutionResult:
    action_id: str
    type: ActionType
    status: ExecutionStatus
    started_at: datetime
    finished_at: datetime
    duration_ms: float
    metadata: ResultMetadata
    payload: ResponseOutcome | TicketOutcome | CRMOutcome | None = None
    webhooks: list[WebhookDelivery] = field(default_factory=list)
    error: str | None = None


@dataclass
class PipelineRun:
    """Tracks a single pipeline execution."""

    started_at: datetime = field(default_factory=utcnow)
    finished_at: datetime | None = None
    status: str = "running"  # running, completed, failed
    events_received: int = 0
    duplicates: int = 0
    rejected: int = 0
    decisions: int = 0
    actions_executed: int = 0
    actions_failed: int = 0
    id: int | None = None


@dataclass
class EventOutcome:
    """Everything the pipeline produced for one input record."""

    event_id: str
    dedup: DedupResult | None = None
    priority: PriorityScore | None = None
    decision: RoutingDecision | None = None
    results: list[ActionExecutionResult] = field(default_factory=list)
    rejected: str | None = None  # validation message when the record was rejected
    error: str | None = None  # unexpected failure while processing

    @property
    def is_duplicate(self) -> bool:
        return bool(self.dedup and self.dedup.is_duplicate)


@dataclass
class AuditEntry:
    """One append-only audit record."""

    kind: str  # rejected, duplicate, decision, execution
    event_id: str
    decision_id: str | None = None
    route: str | None = None
    confidence: float | None = None
    priority_score: float | None = None
    payload: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)
