"""Shared test fixtures."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from signalroute.actions.base import ExecutionServices
from signalroute.config import load_config
from signalroute.db import get_connection, init_db
from signalroute.generate.responder import ResponseGenerator
from signalroute.integrations.crm import LocalCRMClient
from signalroute.integrations.platform import BasePlatformPoster, PostResult
from signalroute.integrations.tickets import LocalTicketClient
from signalroute.integrations.webhooks import WebhookDispatcher
from signalroute.metrics import ExecutionMetrics
from signalroute.validation import parse_record

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def sample_config(tmp_path):
    """Minimal config for testing (no real endpoints)."""
    config_text = """
database:
  path: "DB_PATH_PLACEHOLDER"

audit:
  sink: sqlite

pipeline:
  max_concurrency: 4

dedup:
  time_window_seconds: 3600
  max_cache_size: 100
  sweep_interval_seconds: 60

execution:
  response_generation:
    ai_enabled: false
    fallback_to_template: true
  platform:
    type: dry_run
  llm:
    providers:
      generation:
        type: endpoint
        base_url: "http://localhost:9999/generate"
        api_key: "test-key"
"""
    db_path = str(tmp_path / "test.db")
    cfg_path = tmp_path / "config.yaml"
    cfg_path.write_text(config_text.replace("DB_PATH_PLACEHOLDER", db_path))
    return load_config(str(cfg_path))


@pytest.fixture
def db_conn(sample_config):
    """Initialized test database connection."""
    db_path = sample_config["database"]["path"]
    init_db(db_path)
    conn = get_connection(db_path)
    yield conn
    conn.close()


def build_record(
    event_id: str = "evt-1",
    platform: str = "instagram",
    platform_id: str | None = None,
    text: str = "How much is the new blender? I want to order two!",
    author_id: str | None = None,
    verified: bool = True,
    followers: int = 150_000,
    engagement_rate: float | None = 0.2,
    intent: str = "purchase_inquiry",
    intent_confidence: float = 0.95,
    urgency: str = "high",
    sentiment: str = "positive",
    sentiment_score: float = 0.8,
    sentiment_confidence: float = 0.9,
    timestamp: datetime = NOW,
    media_urls: list[str] | None = None,
    competitors: list[str] | None = None,
) -> dict:
    """A ``{event, sentiment, intent, brand}`` record; defaults describe a hot sales lead."""
    engagement = {"likes": 1200, "shares": 150, "comments": 150, "views": 7500}
    if engagement_rate is not None:
        engagement["engagement_rate"] = engagement_rate
    return {
        "event": {
            "id": event_id,
            "platform": platform,
            "platform_id": platform_id or f"pid-{event_id}",
            "timestamp": timestamp.isoformat(),
            "type": "comment",
            "content": {"text": text, "media_urls": media_urls or [], "hashtags": []},
            "author": {
                "id": author_id or f"author-{event_id}",
                "username": "jamie",
                "display_name": "Jamie",
                "follower_count": followers,
                "verified": verified,
            },
            "engagement": engagement,
        },
        "sentiment": {
            "overall": {
                "label": sentiment,
                "score": sentiment_score,
                "confidence": sentiment_confidence,
            },
        },
        "intent": {
            "primary": {"category": intent, "confidence": intent_confidence},
            "urgency": {"level": urgency, "score": 0.7},
        },
        "brand": {
            "brand_id": "brand-acme",
            "playbook": {
                "id": "pb-1",
                "version": "3",
                "brand_name": "Acme",
                "voice": {"primary_tone": "friendly", "do_use": ["thanks"], "dont_use": ["cheap"]},
                "compliance": {
                    "forbidden_claims": ["guaranteed weight loss"],
                    "restricted_keywords": ["cure"],
                },
            },
            "competitors": competitors or ["Blendco"],
        },
    }


@pytest.fixture
def make_record():
    return build_record


@pytest.fixture
def lead_input():
    """Parsed default record: verified instagram author asking to buy."""
    return parse_record(build_record())


@pytest.fixture
def complaint_input():
    return parse_record(build_record(
        event_id="evt-complaint",
        text="Third broken lid this month. Really disappointed with this product.",
        verified=False,
        followers=800,
        engagement_rate=0.01,
        intent="complaint",
        intent_confidence=0.9,
        urgency="medium",
        sentiment="negative",
        sentiment_score=-0.7,
        sentiment_confidence=0.85,
    ))


class FakePoster(BasePlatformPoster):
    """Poster whose outcome the test controls."""

    def __init__(self, succeed: bool = True):
        super().__init__({})
        self.succeed = succeed
        self.posts: list[tuple[str, str, str]] = []

    @property
    def name(self) -> str:
        return "fake"

    async def post(self, platform: str, target_id: str, content: str) -> PostResult:
        self.posts.append((platform, target_id, content))
        if self.succeed:
            return PostResult(success=True, post_id=f"post-{len(self.posts)}")
        return PostResult(success=False, error="platform rejected the reply")


@pytest.fixture
def fake_poster():
    return FakePoster()


@pytest.fixture
def services(sample_config, fake_poster):
    """Execution services with in-memory ticketing/CRM and a controllable poster."""
    metrics = ExecutionMetrics()
    return ExecutionServices.from_config(
        sample_config,
        metrics,
        generator=ResponseGenerator(sample_config),
        poster=fake_poster,
        tickets=LocalTicketClient(),
        crm=LocalCRMClient(),
        webhooks=WebhookDispatcher(sample_config, metrics),
    )
