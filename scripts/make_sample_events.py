#!/usr/bin/env python3
"""Write a JSONL file of sample decision records for local runs.

    python scripts/make_sample_events.py
    python scripts/make_sample_events.py --count 200 --duplicates 0.2 --out data/events.jsonl
"""

from __future__ import annotations

import argparse
import json
import random
from datetime import datetime, timedelta, timezone
from pathlib import Path

PLATFORMS = ["instagram", "tiktok", "facebook", "twitter", "youtube", "reddit"]

SCENARIOS = [
    # (intent, sentiment label, urgency, text)
    ("purchase_inquiry", "positive", "high", "How much is the new blender? Want to buy two!"),
    ("support_request", "neutral", "medium", "My order hasn't arrived yet, can someone help?"),
    ("complaint", "negative", "high", "Third broken lid this month. Really disappointed."),
    ("praise", "positive", "low", "Love this brand, best smoothies ever"),
    ("information_seeking", "neutral", "low", "Is the jar dishwasher safe?"),
    ("feature_request", "positive", "minimal", "Please make a travel size version!"),
    ("comparison_shopping", "neutral", "medium", "How does this compare to the other brands?"),
]

BRAND = {
    "brand_id": "brand-acme",
    "playbook": {
        "id": "pb-1",
        "version": "1",
        "brand_name": "Acme",
        "voice": {"primary_tone": "friendly", "do_use": ["thanks"], "dont_use": ["cheap"]},
        "compliance": {
            "forbidden_claims": ["guaranteed results"],
            "required_disclosures": [],
            "restricted_keywords": ["cure"],
        },
    },
    "competitors": ["Blendtec"],
}


def make_record(i: int, rng: random.Random, now: datetime) -> dict:
    platform = rng.choice(PLATFORMS)
    intent, label, urgency, text = rng.choice(SCENARIOS)
    followers = int(rng.choice([120, 2_500, 15_000, 180_000]))
    ts = now - timedelta(minutes=rng.randint(0, 36 * 60))
    score = {"positive": 0.8, "neutral": 0.0, "negative": -0.7}[label]
    return {
        "event": {
            "id": f"evt-{i:05d}",
            "platform": platform,
            "platform_id": f"{platform[:2]}-{i:05d}",
            "timestamp": ts.isoformat(),
            "type": "comment",
            "content": {"text": text, "hashtags": [], "media_urls": []},
            "author": {
                "id": f"user-{rng.randint(1, 400)}",
                "username": f"user{rng.randint(1, 400)}",
                "follower_count": followers,
                "verified": followers > 100_000 and rng.random() < 0.7,
            },
            "engagement": {
                "likes": rng.randint(0, 500),
                "shares": rng.randint(0, 80),
                "comments": rng.randint(0, 60),
                "views": rng.randint(500, 20_000),
            },
        },
        "sentiment": {"overall": {"label": label, "score": score, "confidence": round(rng.uniform(0.6, 0.98), 2)}},
        "intent": {
            "primary": {"category": intent, "confidence": round(rng.uniform(0.6, 0.98), 2)},
            "urgency": {"level": urgency, "score": round(rng.uniform(0.2, 0.9), 2)},
        },
        "brand": BRAND,
    }


def main() -> None:
    parser = argparse.ArgumentParser(description="Generate sample decision records")
    parser.add_argument("--count", type=int, default=50, help="Number of records (default: 50)")
    parser.add_argument(
        "--duplicates", type=float, default=0.1,
        help="Fraction of records re-emitted as duplicates (default: 0.1)",
    )
    parser.add_argument("--seed", type=int, default=7)
    parser.add_argument("--out", default="data/events.jsonl")
    args = parser.parse_args()

    rng = random.Random(args.seed)
    now = datetime.now(timezone.utc)
    records = [make_record(i, rng, now) for i in range(args.count)]
    repeats = [dict(r) for r in rng.sample(records, int(args.count * args.duplicates))]
    for j, rec in enumerate(repeats):
        rec["event"] = {**rec["event"], "id": f"dup-{j:05d}"}
    records.extend(repeats)

    out = Path(args.out)
    out.parent.mkdir(parents=True, exist_ok=True)
    with open(out, "w") as f:
        for rec in records:
            f.write(json.dumps(rec) + "\n")
    print(f"Wrote {len(records)} records ({len(repeats)} duplicates) to {out}")


if __name__ == "__main__":
    main()
