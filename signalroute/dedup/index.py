"""In-memory fingerprint store with secondary indices.

The primary store maps fingerprint id to fingerprint; every secondary
index only holds ids that are present in the primary store. ``add`` and
``remove`` update all of them together.
"""

from __future__ import annotations

from collections.abc import Iterator
from datetime import datetime

from signalroute.models import EventFingerprint

BUCKET_SECONDS = 3600


def hour_bucket(ts: datetime) -> int:
    return int(ts.timestamp()) // BUCKET_SECONDS


class FingerprintIndex:
    def __init__(self):
        # insertion order is arrival order
        self._by_id: dict[str, EventFingerprint] = {}
        self._by_platform_id: dict[tuple[str, str], str] = {}
        self._by_hash: dict[str, list[str]] = {}
        self._by_bucket: dict[int, list[str]] = {}
        self._by_url: dict[tuple[str, str], list[str]] = {}

    def __len__(self) -> int:
        return len(self._by_id)

    def __contains__(self, fingerprint_id: str) -> bool:
        return fingerprint_id in self._by_id

    def get(self, fingerprint_id: str) -> EventFingerprint | None:
        return self._by_id.get(fingerprint_id)

    def add(self, fp: EventFingerprint) -> None:
        if fp.id in self._by_id:
            raise KeyError(f"Fingerprint {fp.id} already stored")
        self._by_id[fp.id] = fp
        try:
            self._by_platform_id[(fp.platform, fp.platform_id)] = fp.id
            self._by_hash.setdefault(fp.content_hash, []).append(fp.id)
            self._by_bucket.setdefault(hour_bucket(fp.timestamp), []).append(fp.id)
            if fp.metadata.canonical_url:
                key = (fp.platform, fp.metadata.canonical_url)
                self._by_url.setdefault(key, []).append(fp.id)
        except Exception:
            self.remove(fp.id)
            raise

    def remove(self, fingerprint_id: str) -> EventFingerprint | None:
        fp = self._by_id.pop(fingerprint_id, None)
        if fp is None:
            return None
        key = (fp.platform, fp.platform_id)
        if self._by_platform_id.get(key) == fp.id:
            del self._by_platform_id[key]
        _discard(self._by_hash, fp.content_hash, fp.id)
        _discard(self._by_bucket, hour_bucket(fp.timestamp), fp.id)
        if fp.metadata.canonical_url:
            _discard(self._by_url, (fp.platform, fp.metadata.canonical_url), fp.id)
        return fp

    def find_exact(self, platform: str, platform_id: str) -> str | None:
        return self._by_platform_id.get((platform, platform_id))

    def oldest_with_hash(self, content_hash: str) -> str | None:
        ids = self._by_hash.get(content_hash)
        return ids[0] if ids else None

    def with_url(self, platform: str, canonical_url: str) -> list[str]:
        return list(self._by_url.get((platform, canonical_url), ()))

    def in_window(self, platform: str, start: datetime, end: datetime) -> Iterator[EventFingerprint]:
        """Fingerprints on ``platform`` with ``start <= timestamp <= end``."""
        for bucket in range(hour_bucket(start), hour_bucket(end) + 1):
            for fid in self._by_bucket.get(bucket, ()):
                fp = self._by_id[fid]
                if fp.platform == platform and start <= fp.timestamp <= end:
                    yield fp

    def created_before(self, cutoff: datetime) -> list[str]:
        return [fid for fid, fp in self._by_id.items() if fp.created_at < cutoff]

    def oldest(self, count: int) -> list[str]:
        ids = []
        for fid in self._by_id:
            if len(ids) >= count:
                break
            ids.append(fid)
        return ids

    def stats(self) -> dict:
        return {
            "fingerprints": len(self._by_id),
            "content_hashes": len(self._by_hash),
            "time_buckets": len(self._by_bucket),
            "canonical_urls": len(self._by_url),
        }


def _discard(index: dict, key, fid: str) -> None:
    ids = index.get(key)
    if not ids:
        return
    try:
        ids.remove(fid)
    except ValueError:
        return
    if not ids:
        del index[key]
