"""Tests for the fingerprint index."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from signalroute.dedup.index import FingerprintIndex
from signalroute.models import EventFingerprint, FingerprintMeta

T0 = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


def _fp(fid, platform="reddit", pid=None, content_hash="h1", ts=T0, url=None) -> EventFingerprint:
    return EventFingerprint(
        id=fid,
        platform=platform,
        platform_id=pid or fid,
        content_hash=content_hash,
        timestamp=ts,
        created_at=ts,
        metadata=FingerprintMeta(
            author_id="a", text_length=10, media_count=0, hashtag_count=0, canonical_url=url,
        ),
    )


def test_add_and_lookup():
    """Every secondary index resolves to the stored fingerprint."""
    index = FingerprintIndex()
    index.add(_fp("f1", url="https://x.com/a"))
    assert "f1" in index
    assert index.find_exact("reddit", "f1") == "f1"
    assert index.oldest_with_hash("h1") == "f1"
    assert index.with_url("reddit", "https://x.com/a") == ["f1"]


def test_remove_leaves_no_dangling_entries():
    """Removing a fingerprint clears it from every index."""
    index = FingerprintIndex()
    index.add(_fp("f1", url="https://x.com/a"))
    index.add(_fp("f2"))
    index.remove("f1")

    assert index.find_exact("reddit", "f1") is None
    assert index.oldest_with_hash("h1") == "f2"
    assert index.with_url("reddit", "https://x.com/a") == []
    assert index.stats() == {
        "fingerprints": 1, "content_hashes": 1, "time_buckets": 1, "canonical_urls": 0,
    }


def test_duplicate_id_rejected():
    """The same fingerprint id cannot be stored twice."""
    index = FingerprintIndex()
    index.add(_fp("f1"))
    with pytest.raises(KeyError):
        index.add(_fp("f1"))
    assert len(index) == 1


def test_in_window_spans_buckets_and_filters_platform():
    """Window queries cross hour buckets and only return the asked platform."""
    index = FingerprintIndex()
    index.add(_fp("early", ts=T0 - timedelta(minutes=50)))
    index.add(_fp("late", ts=T0 + timedelta(minutes=50)))
    index.add(_fp("other", platform="rss", ts=T0))
    index.add(_fp("far", ts=T0 + timedelta(hours=3)))

    found = {fp.id for fp in index.in_window("reddit", T0 - timedelta(hours=1), T0 + timedelta(hours=1))}
    assert found == {"early", "late"}


def test_oldest_and_created_before():
    """Arrival order drives oldest(); created_before filters by age."""
    index = FingerprintIndex()
    for i in range(3):
        index.add(_fp(f"f{i}", content_hash=f"h{i}", ts=T0 + timedelta(minutes=i)))
    assert index.oldest(2) == ["f0", "f1"]
    assert index.created_before(T0 + timedelta(minutes=1)) == ["f0"]
