"""Deduplication engine: unique ids and multi-strategy duplicate detection."""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import threading
import time
from collections.abc import Callable
from datetime import datetime, timedelta

import numpy as np

from signalroute.config import get_dedup_config
from signalroute.dedup import PLATFORM_RULES
from signalroute.dedup.base import BasePlatformRule
from signalroute.dedup.extract import ExtractedContent, extract_content
from signalroute.dedup.index import FingerprintIndex
from signalroute.metrics import DedupMetrics
from signalroute.models import (
    DedupResult,
    EventFingerprint,
    FingerprintMeta,
    RawEvent,
    utcnow,
)

logger = logging.getLogger(__name__)

EXACT_MATCH = "exact_match"
CONTENT_HASH = "content_hash"
TIMESTAMP_WINDOW = "timestamp_window"
PLATFORM_SPECIFIC = "platform_specific"


def _short_hash(value: str, length: int = 8) -> str:
    return hashlib.sha256(value.encode()).hexdigest()[:length]


def normalize_text(text: str) -> str:
    return " ".join(text.lower().split())


def content_hash(text: str, media_urls: list[str], hashtags: list[str]) -> str:
    """Hash over normalized text, sorted media URLs and sorted hashtags."""
    payload = json.dumps(
        {
            "text": normalize_text(text),
            "media_urls": sorted(media_urls),
            "hashtags": sorted(hashtags),
        },
        sort_keys=True,
    )
    return _short_hash(payload, 16)


def _closeness(a: int, b: int) -> float:
    largest = max(a, b)
    return 1.0 - abs(a - b) / largest if largest else 1.0


class DeduplicationEngine:
    """Classify raw events as new or duplicate against a bounded in-memory cache.

    Detection runs in a fixed order and stops at the first hit:
    exact platform id, content hash, timestamp window plus similarity,
    then the platform's registered rule. Unique events are stored; duplicates
    are not.
    """

    def __init__(
        self,
        config: dict,
        metrics: DedupMetrics | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        cfg = get_dedup_config(config)
        self.window = timedelta(seconds=cfg["time_window_seconds"])
        self.max_cache_size = int(cfg["max_cache_size"])
        self.sweep_interval = float(cfg["sweep_interval_seconds"])
        self.similarity_threshold = float(cfg["similarity_threshold"])
        self.similarity_weights = dict(cfg["similarity_weights"])
        self.metrics = metrics or DedupMetrics()
        self._clock = clock

        self.rules: dict[str, BasePlatformRule] = {}
        for platform, rule_cfg in cfg["platform_rules"].items():
            if not rule_cfg.get("enabled", False):
                continue
            if platform not in PLATFORM_RULES:
                logger.warning("Dedup rule for '%s' enabled but not registered", platform)
                continue
            self.rules[platform] = PLATFORM_RULES[platform](rule_cfg)

        self._index = FingerprintIndex()
        self._lock = threading.Lock()
        self._last_id_ns = 0

    def _next_timestamp_ns(self) -> int:
        # strictly increasing even if the wall clock stalls or steps back
        self._last_id_ns = max(time.time_ns(), self._last_id_ns + 1)
        return self._last_id_ns

    def _unique_id(self, raw: RawEvent) -> str:
        prefix = (raw.platform[:3] or "unk").upper()
        payload = json.dumps(raw.data, sort_keys=True, default=str)
        return (
            f"{prefix}_{self._next_timestamp_ns()}_"
            f"{_short_hash(raw.platform_id)}_{_short_hash(payload)}"
        )

    def _fingerprint(self, unique_id: str, raw: RawEvent, content: ExtractedContent) -> EventFingerprint:
        return EventFingerprint(
            id=unique_id,
            platform=raw.platform,
            platform_id=raw.platform_id,
            content_hash=content_hash(content.text, content.media_urls, content.hashtags),
            timestamp=raw.timestamp,
            created_at=self._clock(),
            metadata=FingerprintMeta(
                author_id=content.author_id,
                text_length=len(content.text),
                media_count=len(content.media_urls),
                hashtag_count=len(content.hashtags),
                canonical_url=content.canonical_url,
            ),
        )

    def similarity(self, a: EventFingerprint, b: EventFingerprint) -> float:
        """Weighted mean of hash equality, length and media closeness, and author equality."""
        w = self.similarity_weights
        values = [
            1.0 if a.content_hash == b.content_hash else 0.0,
            _closeness(a.metadata.text_length, b.metadata.text_length),
            _closeness(a.metadata.media_count, b.metadata.media_count),
        ]
        weights = [w["content_hash"], w["text_length"], w["media_count"]]
        if a.metadata.author_id and b.metadata.author_id:
            values.append(1.0 if a.metadata.author_id == b.metadata.author_id else 0.0)
            weights.append(w["author"])
        if not sum(weights):
            return 0.0
        return float(np.average(values, weights=weights))

    def _find_duplicate(self, fp: EventFingerprint, data: dict) -> tuple[str, float, str] | None:
        original = self._index.find_exact(fp.platform, fp.platform_id)
        if original:
            return original, 1.0, EXACT_MATCH

        original = self._index.oldest_with_hash(fp.content_hash)
        if original:
            return original, 0.95, CONTENT_HASH

        for cached in self._index.in_window(fp.platform, fp.timestamp - self.window,
                                            fp.timestamp + self.window):
            score = self.similarity(fp, cached)
            if score > self.similarity_threshold:
                return cached.id, score, TIMESTAMP_WINDOW

        rule = self.rules.get(fp.platform)
        if rule is not None:
            match = rule.find_match(fp, data, self._index)
            if match:
                return match[0], match[1], PLATFORM_SPECIFIC
        return None

    def process(self, raw: RawEvent) -> DedupResult:
        """Assign a unique id to ``raw`` and decide whether it was already seen."""
        started = time.perf_counter()
        content = extract_content(raw.platform, raw.data)

        with self._lock:
            unique_id = self._unique_id(raw)
            fp = self._fingerprint(unique_id, raw, content)
            match = self._find_duplicate(fp, raw.data)
            if match is None:
                try:
                    self._store(fp)
                except Exception:
                    logger.exception("Failed to store fingerprint %s", unique_id)
                    self.metrics.record_storage_error()

        elapsed_ms = (time.perf_counter() - started) * 1000
        if match is None:
            result = DedupResult(
                unique_id=unique_id, is_duplicate=False, confidence=1.0,
                processing_ms=elapsed_ms,
            )
        else:
            original, confidence, method = match
            result = DedupResult(
                unique_id=unique_id, is_duplicate=True, confidence=confidence,
                duplicate_of=original, method=method, processing_ms=elapsed_ms,
            )
            logger.debug(
                "Duplicate %s/%s via %s (of %s, %.2f)",
                raw.platform, raw.platform_id, method, original, confidence,
            )

        self.metrics.record(raw.platform, result.is_duplicate, result.method, elapsed_ms)
        return result

    def _store(self, fp: EventFingerprint) -> None:
        self._index.add(fp)
        if len(self._index) > self.max_cache_size:
            removed = self._expire(fp.created_at)
            overflow = len(self._index) - self.max_cache_size
            if overflow > 0:
                for fid in self._index.oldest(overflow):
                    self._index.remove(fid)
                removed += overflow
            self.metrics.record_evictions(removed)

    def _expire(self, now: datetime) -> int:
        expired = self._index.created_before(now - self.window)
        for fid in expired:
            self._index.remove(fid)
        return len(expired)

    def sweep(self, now: datetime | None = None) -> int:
        """Evict fingerprints older than the time window. Returns how many were removed."""
        now = now or self._clock()
        with self._lock:
            removed = self._expire(now)
        if removed:
            self.metrics.record_evictions(removed)
            logger.debug("Dedup sweep evicted %d fingerprints", removed)
        return removed

    async def sweep_periodically(self, stop: asyncio.Event) -> None:
        """Run ``sweep`` every ``sweep_interval`` seconds until ``stop`` is set."""
        while not stop.is_set():
            try:
                await asyncio.wait_for(stop.wait(), timeout=self.sweep_interval)
            except asyncio.TimeoutError:
                try:
                    self.sweep()
                except Exception:
                    logger.exception("Dedup sweep failed")

    def cache_stats(self) -> dict:
        with self._lock:
            stats = self._index.stats()
        stats["max_cache_size"] = self.max_cache_size
        return stats

    def __len__(self) -> int:
        return len(self._index)
