"""Tests for input record parsing and validation."""

from __future__ import annotations

from datetime import timezone

import pytest

from signalroute.errors import ValidationError
from signalroute.models import IntentCategory, Platform, SentimentLabel, UrgencyLevel
from signalroute.validation import parse_record, parse_timestamp


def test_parse_full_record(make_record):
    """A well-formed record parses into typed inputs."""
    inp = parse_record(make_record())
    assert inp.event.platform == Platform.INSTAGRAM
    assert inp.event.author.follower_count == 150_000
    assert inp.event.engagement.engagement_rate == 0.2
    assert inp.sentiment.overall.label == SentimentLabel.POSITIVE
    assert inp.intent.primary.category == IntentCategory.PURCHASE_INQUIRY
    assert inp.intent.urgency.level == UrgencyLevel.HIGH
    assert inp.brand.playbook.brand_name == "Acme"
    assert inp.brand.competitors == ("Blendco",)


def test_engagement_rate_derived_when_missing(make_record):
    """Without an explicit rate, interactions / views is used."""
    inp = parse_record(make_record(engagement_rate=None))
    assert inp.event.engagement.engagement_rate == pytest.approx(1500 / 7500)


def test_enum_values_are_case_insensitive(make_record):
    """Enum fields accept any casing."""
    record = make_record()
    record["event"]["platform"] = "Instagram"
    record["intent"]["primary"]["category"] = "PURCHASE_INQUIRY"
    inp = parse_record(record)
    assert inp.event.platform == Platform.INSTAGRAM
    assert inp.intent.primary.category == IntentCategory.PURCHASE_INQUIRY


def test_missing_section_names_field(make_record):
    """A missing top-level section is reported by name."""
    record = make_record()
    del record["intent"]
    with pytest.raises(ValidationError) as exc_info:
        parse_record(record)
    assert exc_info.value.field == "record.intent"


def test_unknown_platform_rejected(make_record):
    """Unknown platforms list the accepted values."""
    record = make_record()
    record["event"]["platform"] = "myspace"
    with pytest.raises(ValidationError, match="event.platform") as exc_info:
        parse_record(record)
    assert "instagram" in exc_info.value.message


def test_negative_follower_count_rejected(make_record):
    """Counts must not be negative."""
    record = make_record()
    record["event"]["author"]["follower_count"] = -5
    with pytest.raises(ValidationError) as exc_info:
        parse_record(record)
    assert exc_info.value.field == "event.author.follower_count"


def test_confidence_out_of_range_rejected(make_record):
    """Confidences must lie in [0, 1]."""
    record = make_record()
    record["sentiment"]["overall"]["confidence"] = 1.4
    with pytest.raises(ValidationError) as exc_info:
        parse_record(record)
    assert exc_info.value.field == "sentiment.overall.confidence"


def test_boolean_is_not_a_number(make_record):
    """Booleans are not accepted where numbers are expected."""
    record = make_record()
    record["intent"]["primary"]["confidence"] = True
    with pytest.raises(ValidationError, match="intent.primary.confidence"):
        parse_record(record)


def test_empty_event_id_rejected(make_record):
    """Identifiers must be non-empty strings."""
    record = make_record()
    record["event"]["id"] = "  "
    with pytest.raises(ValidationError, match="event.id"):
        parse_record(record)


def test_non_object_record_rejected():
    """Records must be JSON objects."""
    with pytest.raises(ValidationError, match="record"):
        parse_record(["not", "a", "record"])


def test_entities_are_upper_cased(make_record):
    """Entity types are normalized to upper case."""
    record = make_record()
    record["intent"]["entities"] = [{"type": "price", "value": "$49"}]
    inp = parse_record(record)
    assert inp.intent.entities[0].type == "PRICE"
    assert inp.intent.entities[0].confidence == 1.0


def test_parse_timestamp_variants():
    """Z suffix and naive timestamps are both UTC."""
    assert parse_timestamp("2026-03-02T12:00:00Z", "t").tzinfo == timezone.utc
    naive = parse_timestamp("2026-03-02T12:00:00", "t")
    assert naive.tzinfo == timezone.utc
    with pytest.raises(ValidationError, match="t: invalid ISO-8601"):
        parse_timestamp("yesterday", "t")
