"""Platform-specific duplicate rules for Reddit cross-posts and syndicated RSS items."""

from __future__ import annotations

import logging
from typing import Any

from signalroute.dedup import register_platform_rule
from signalroute.dedup.base import BasePlatformRule
from signalroute.dedup.index import FingerprintIndex
from signalroute.models import EventFingerprint

logger = logging.getLogger(__name__)


@register_platform_rule("reddit")
class RedditCrosspostRule(BasePlatformRule):
    """Explicit cross-posts, and the same link submitted to several subreddits."""

    @property
    def name(self) -> str:
        return "reddit_crosspost"

    def find_match(
        self,
        fingerprint: EventFingerprint,
        data: dict[str, Any],
        index: FingerprintIndex,
    ) -> tuple[str, float] | None:
        confidence = self.config.get("confidence", 0.9)

        parent = data.get("crosspost_parent")
        if isinstance(parent, str) and parent:
            # fullnames look like t3_abc123; platform ids may be stored either way
            for candidate in (parent, parent.split("_", 1)[-1]):
                original = index.find_exact(fingerprint.platform, candidate)
                if original:
                    return original, confidence

        url = fingerprint.metadata.canonical_url
        if url:
            ids = index.with_url(fingerprint.platform, url)
            if ids:
                return ids[0], confidence
        return None


@register_platform_rule("rss")
class RssArticleRule(BasePlatformRule):
    """The same article syndicated through different feeds."""

    @property
    def name(self) -> str:
        return "rss_article"

    def find_match(
        self,
        fingerprint: EventFingerprint,
        data: dict[str, Any],
        index: FingerprintIndex,
    ) -> tuple[str, float] | None:
        url = fingerprint.metadata.canonical_url
        if not url:
            return None
        ids = index.with_url(fingerprint.platform, url)
        if not ids:
            return None
        logger.debug("RSS item %s matches article %s", fingerprint.platform_id, url)
        return ids[0], self.config.get("confidence", 0.9)
