"""SQLite schema and query helpers for pipeline runs and the audit log."""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime
from pathlib import Path

from signalroute.models import AuditEntry, PipelineRun

SCHEMA_VERSION = 1

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS pipeline_runs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    started_at TEXT NOT NULL,
    finished_at TEXT,
    status TEXT NOT NULL DEFAULT 'running',
    events_received INTEGER NOT NULL DEFAULT 0,
    duplicates INTEGER NOT NULL DEFAULT 0,
    rejected INTEGER NOT NULL DEFAULT 0,
    decisions INTEGER NOT NULL DEFAULT 0,
    actions_executed INTEGER NOT NULL DEFAULT 0,
    actions_failed INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS audit_log (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    kind TEXT NOT NULL,
    event_id TEXT NOT NULL,
    decision_id TEXT,
    route TEXT,
    confidence REAL,
    priority_score REAL,
    payload TEXT NOT NULL DEFAULT '{}',
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_audit_event_id ON audit_log(event_id);
CREATE INDEX IF NOT EXISTS idx_audit_kind ON audit_log(kind);
"""


def get_connection(db_path: str) -> sqlite3.Connection:
    """Get a SQLite connection with WAL mode enabled."""
    path = Path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    conn.execute("PRAGMA journal_mode=WAL")
    conn.row_factory = sqlite3.Row
    return conn


def init_db(db_path: str) -> None:
    """Create all tables and set schema version."""
    conn = get_connection(db_path)
    try:
        conn.executescript(SCHEMA_SQL)
        conn.execute(
            "INSERT OR REPLACE INTO schema_version (version) VALUES (?)",
            (SCHEMA_VERSION,),
        )
        conn.commit()
    finally:
        conn.close()


def _dt_str(dt: datetime | None) -> str | None:
    if dt is None:
        return None
    return dt.isoformat()


def _parse_dt(s: str | None) -> datetime | None:
    if s is None:
        return None
    return datetime.fromisoformat(s)


# --- PipelineRun helpers ---


def insert_run(conn: sqlite3.Connection, run: PipelineRun) -> int:
    cur = conn.execute(
        "INSERT INTO pipeline_runs (started_at, status) VALUES (?, ?)",
        (_dt_str(run.started_at), run.status),
    )
    conn.commit()
    return cur.lastrowid


def finish_run(conn: sqlite3.Connection, run_id: int, run: PipelineRun) -> None:
    conn.execute(
        """UPDATE pipeline_runs SET
           finished_at = ?, status = ?, events_received = ?,
           duplicates = ?, rejected = ?, decisions = ?,
           actions_executed = ?, actions_failed = ?
           WHERE id = ?""",
        (
            _dt_str(run.finished_at),
            run.status,
            run.events_received,
            run.duplicates,
            run.rejected,
            run.decisions,
            run.actions_executed,
            run.actions_failed,
            run_id,
        ),
    )
    conn.commit()


def get_recent_runs(conn: sqlite3.Connection, limit: int = 10) -> list[dict]:
    """Fetch recent pipeline runs for stats display."""
    rows = conn.execute(
        "SELECT * FROM pipeline_runs ORDER BY started_at DESC LIMIT ?", (limit,)
    ).fetchall()
    return [dict(row) for row in rows]


# --- Audit helpers ---


def insert_audit_entry(conn: sqlite3.Connection, entry: AuditEntry) -> int:
    cur = conn.execute(
        """INSERT INTO audit_log
           (kind, event_id, decision_id, route, confidence, priority_score, payload, created_at)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
        (
            entry.kind,
            entry.event_id,
            entry.decision_id,
            entry.route,
            entry.confidence,
            entry.priority_score,
            json.dumps(entry.payload, default=str),
            _dt_str(entry.created_at),
        ),
    )
    conn.commit()
    return cur.lastrowid


def _row_to_audit_entry(row: sqlite3.Row) -> AuditEntry:
    return AuditEntry(
        kind=row["kind"],
        event_id=row["event_id"],
        decision_id=row["decision_id"],
        route=row["route"],
        confidence=row["confidence"],
        priority_score=row["priority_score"],
        payload=json.loads(row["payload"]),
        created_at=_parse_dt(row["created_at"]),
    )


def get_audit_entries(
    conn: sqlite3.Connection, event_id: str | None = None, kind: str | None = None,
    limit: int = 100,
) -> list[AuditEntry]:
    """Audit entries, newest last, optionally filtered by event or kind."""
    clauses, params = [], []
    if event_id is not None:
        clauses.append("event_id = ?")
        params.append(event_id)
    if kind is not None:
        clauses.append("kind = ?")
        params.append(kind)
    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    rows = conn.execute(
        f"SELECT * FROM audit_log {where} ORDER BY id LIMIT ?", (*params, limit),
    ).fetchall()
    return [_row_to_audit_entry(r) for r in rows]


def get_route_counts(conn: sqlite3.Connection) -> dict[str, int]:
    """Number of decisions per route across all runs."""
    rows = conn.execute(
        "SELECT route, COUNT(*) AS n FROM audit_log WHERE kind = 'decision' GROUP BY route"
    ).fetchall()
    return {row["route"]: row["n"] for row in rows}
