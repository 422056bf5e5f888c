"""Tests for database operations and audit sinks."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

import pytest

from signalroute.audit import LoggingAuditSink, SQLiteAuditSink, build_audit_sink
from signalroute.db import (
    finish_run,
    get_audit_entries,
    get_recent_runs,
    get_route_counts,
    insert_audit_entry,
    insert_run,
)
from signalroute.errors import ConfigError
from signalroute.models import AuditEntry, PipelineRun


def test_pipeline_run_lifecycle(db_conn):
    """Pipeline runs can be created and finished."""
    run = PipelineRun()
    run_id = insert_run(db_conn, run)
    assert run_id > 0

    run.status = "completed"
    run.finished_at = datetime.now(timezone.utc)
    run.events_received = 12
    run.duplicates = 2
    run.rejected = 1
    run.decisions = 9
    run.actions_executed = 20
    run.actions_failed = 3
    finish_run(db_conn, run_id, run)

    runs = get_recent_runs(db_conn)
    assert len(runs) == 1
    assert runs[0]["status"] == "completed"
    assert runs[0]["events_received"] == 12
    assert runs[0]["actions_failed"] == 3


def test_audit_entries_roundtrip_payload(db_conn):
    """Audit payloads are stored as JSON and decoded on read."""
    entry = AuditEntry(
        kind="decision", event_id="evt-1", decision_id="auto_abc", route="auto-response",
        confidence=0.95, priority_score=72.03, payload={"actions": ["respond", "create"]},
    )
    insert_audit_entry(db_conn, entry)

    entries = get_audit_entries(db_conn, event_id="evt-1")
    assert len(entries) == 1
    assert entries[0].payload == {"actions": ["respond", "create"]}
    assert entries[0].created_at == entry.created_at


def test_audit_entries_filter_by_kind(db_conn):
    """Entries can be filtered by kind."""
    insert_audit_entry(db_conn, AuditEntry(kind="rejected", event_id="a"))
    insert_audit_entry(db_conn, AuditEntry(kind="duplicate", event_id="b"))
    insert_audit_entry(db_conn, AuditEntry(kind="rejected", event_id="c"))

    rejected = get_audit_entries(db_conn, kind="rejected")
    assert [e.event_id for e in rejected] == ["a", "c"]


def test_route_counts_only_count_decisions(db_conn):
    """Route counts come from decision entries only."""
    for route in ("auto-response", "auto-response", "human-review"):
        insert_audit_entry(db_conn, AuditEntry(kind="decision", event_id="e", route=route))
    insert_audit_entry(db_conn, AuditEntry(kind="execution", event_id="e", route="auto-response"))

    assert get_route_counts(db_conn) == {"auto-response": 2, "human-review": 1}


@pytest.mark.asyncio
async def test_sqlite_audit_sink_creates_schema(tmp_path):
    """The SQLite sink initializes its database on first write."""
    sink = SQLiteAuditSink(str(tmp_path / "audit" / "audit.db"))
    await sink.record(AuditEntry(kind="rejected", event_id="evt-9", payload={"error": "x"}))
    sink.close()

    from signalroute.db import get_connection

    conn = get_connection(str(tmp_path / "audit" / "audit.db"))
    assert get_audit_entries(conn)[0].event_id == "evt-9"
    conn.close()


@pytest.mark.asyncio
async def test_logging_audit_sink(caplog):
    """The logging sink writes one JSON line per entry."""
    sink = LoggingAuditSink()
    with caplog.at_level(logging.INFO, logger="signalroute.audit"):
        await sink.record(AuditEntry(kind="duplicate", event_id="evt-2"))
    assert '"event_id": "evt-2"' in caplog.text


def test_build_audit_sink(sample_config):
    """Sink type comes from audit.sink."""
    assert isinstance(build_audit_sink(sample_config), SQLiteAuditSink)
    assert isinstance(build_audit_sink({"audit": {"sink": "log"}}), LoggingAuditSink)
    with pytest.raises(ConfigError):
        build_audit_sink({"audit": {"sink": "kafka"}})
