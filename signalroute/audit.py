"""Audit trail sinks and the entries the pipeline writes to them."""

from __future__ import annotations

import json
import logging
import sqlite3
from abc import ABC, abstractmethod
from dataclasses import asdict

from signalroute.config import get_audit_sink, get_db_path
from signalroute.db import get_connection, init_db, insert_audit_entry
from signalroute.errors import ConfigError
from signalroute.models import (
    ActionExecutionResult,
    AuditEntry,
    DedupResult,
    PriorityScore,
    RoutingDecision,
)

logger = logging.getLogger(__name__)


class AuditSink(ABC):
    """Base class for audit destinations."""

    @abstractmethod
    async def record(self, entry: AuditEntry) -> None:
        """Persist one entry. Failures raise; the pipeline decides what to do."""
        ...

    def close(self) -> None:
        pass


class LoggingAuditSink(AuditSink):
    """Write entries as JSON lines to the ``signalroute.audit`` logger."""

    def __init__(self):
        self.log = logging.getLogger("signalroute.audit")

    async def record(self, entry: AuditEntry) -> None:
        self.log.info("%s", json.dumps(asdict(entry), default=str))


class SQLiteAuditSink(AuditSink):
    """Append entries to the ``audit_log`` table."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._conn: sqlite3.Connection | None = None

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            init_db(self.db_path)
            self._conn = get_connection(self.db_path)
        return self._conn

    async def record(self, entry: AuditEntry) -> None:
        insert_audit_entry(self._connection(), entry)

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None


def build_audit_sink(config: dict) -> AuditSink:
    sink = get_audit_sink(config)
    if sink == "sqlite":
        return SQLiteAuditSink(get_db_path(config))
    if sink == "log":
        return LoggingAuditSink()
    raise ConfigError(f"Unknown audit sink: {sink}")


# --- Entry builders ---


def rejected_entry(event_id: str, message: str) -> AuditEntry:
    return AuditEntry(kind="rejected", event_id=event_id, payload={"error": message})


def duplicate_entry(event_id: str, dedup: DedupResult) -> AuditEntry:
    return AuditEntry(
        kind="duplicate",
        event_id=event_id,
        confidence=dedup.confidence,
        payload={
            "unique_id": dedup.unique_id,
            "duplicate_of": dedup.duplicate_of,
            "method": dedup.method,
        },
    )


def decision_entry(decision: RoutingDecision, priority: PriorityScore) -> AuditEntry:
    return AuditEntry(
        kind="decision",
        event_id=decision.event_id,
        decision_id=decision.decision_id,
        route=decision.route.value,
        confidence=decision.confidence,
        priority_score=priority.overall,
        payload={
            "base_confidence": decision.base_confidence,
            "reasoning": decision.reasoning,
            "overrides_applied": decision.overrides_applied,
            "override_errors": decision.override_errors,
            "actions": [
                {"id": a.id, "type": a.type.value, "automated": a.automated,
                 "requires_approval": a.requires_approval}
                for a in decision.actions
            ],
            "components": priority.components.as_dict(),
            "auto_escalation": priority.auto_escalation,
        },
    )


def execution_entry(decision: RoutingDecision, results: list[ActionExecutionResult]) -> AuditEntry:
    return AuditEntry(
        kind="execution",
        event_id=decision.event_id,
        decision_id=decision.decision_id,
        route=decision.route.value,
        confidence=decision.confidence,
        payload={
            "results": [
                {
                    "action_id": r.action_id,
                    "type": r.type.value,
                    "status": r.status.value,
                    "duration_ms": round(r.duration_ms, 2),
                    "error": r.error,
                    "result": asdict(r.payload) if r.payload is not None else None,
                    "webhooks": [asdict(w) for w in r.webhooks],
                }
                for r in results
            ],
        },
    )
