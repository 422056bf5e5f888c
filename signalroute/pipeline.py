"""Pipeline orchestrator: dedup, score, route, execute, audit."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable, Iterable
from datetime import datetime
from pathlib import Path
from typing import Any

from signalroute.actions.executor import ActionExecutor
from signalroute.audit import (
    AuditSink,
    build_audit_sink,
    decision_entry,
    duplicate_entry,
    execution_entry,
    rejected_entry,
)
from signalroute.config import get_db_path, get_pipeline_config
from signalroute.db import finish_run, get_connection, init_db, insert_run
from signalroute.dedup.engine import DeduplicationEngine
from signalroute.errors import ValidationError
from signalroute.metrics import PipelineMetrics
from signalroute.models import (
    AuditEntry,
    EventOutcome,
    ExecutionStatus,
    PipelineRun,
    RawEvent,
    utcnow,
)
from signalroute.routing import DecisionRouter
from signalroute.scoring import PriorityScorer
from signalroute.validation import parse_record

logger = logging.getLogger(__name__)


def _record_event_id(record: Any) -> str:
    if isinstance(record, dict) and isinstance(record.get("event"), dict):
        event_id = record["event"].get("id")
        if event_id not in (None, ""):
            return str(event_id)
    return "unknown"


class DecisionPipeline:
    """Wire the four stages together for one event or a batch.

    Each event is processed sequentially; a batch runs events concurrently
    up to ``pipeline.max_concurrency``. Audit failures are logged and
    counted but never fail an event.
    """

    def __init__(
        self,
        config: dict,
        dedup: DeduplicationEngine | None = None,
        scorer: PriorityScorer | None = None,
        router: DecisionRouter | None = None,
        executor: ActionExecutor | None = None,
        audit: AuditSink | None = None,
        metrics: PipelineMetrics | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.metrics = metrics or PipelineMetrics()
        self._clock = clock
        self.dedup = dedup or DeduplicationEngine(config, self.metrics.dedup, clock=clock)
        self.scorer = scorer or PriorityScorer(config, self.metrics.scoring)
        self.router = router or DecisionRouter(config, self.metrics.routing, clock=clock)
        self.executor = executor or ActionExecutor(
            config, metrics=self.metrics.execution, clock=clock,
        )
        self.audit = audit or build_audit_sink(config)
        self.max_concurrency = int(get_pipeline_config(config)["max_concurrency"])

    async def _audit(self, entry: AuditEntry) -> None:
        try:
            await self.audit.record(entry)
        except Exception:
            logger.exception("Audit write failed for %s entry of event %s", entry.kind, entry.event_id)
            self.metrics.record_audit_failure()

    async def process(self, record: Any, cancel: asyncio.Event | None = None) -> EventOutcome:
        """Run one ``{event, sentiment, intent, brand}`` record through every stage."""
        try:
            inp = parse_record(record)
        except ValidationError as exc:
            event_id = _record_event_id(record)
            logger.warning("Rejected record %s: %s", event_id, exc)
            self.metrics.record_rejected()
            await self._audit(rejected_entry(event_id, str(exc)))
            return EventOutcome(event_id=event_id, rejected=str(exc))

        event = inp.event
        dedup = self.dedup.process(RawEvent.from_social_event(event))
        if dedup.is_duplicate:
            logger.info("Event %s is a duplicate of %s (%s)", event.id, dedup.duplicate_of, dedup.method)
            await self._audit(duplicate_entry(event.id, dedup))
            return EventOutcome(event_id=event.id, dedup=dedup)

        priority = self.scorer.score(event, inp.sentiment, inp.intent, inp.brand, now=self._clock())
        decision = self.router.route(event, inp.sentiment, inp.intent, priority, inp.brand)
        logger.info(
            "Event %s: priority %.2f, route %s (confidence %.3f, %d actions)",
            event.id, priority.overall, decision.route.value, decision.confidence, len(decision.actions),
        )
        await self._audit(decision_entry(decision, priority))

        results = await self.executor.execute(
            decision, event, inp.sentiment, inp.intent, inp.brand, cancel=cancel,
        )
        await self._audit(execution_entry(decision, results))
        return EventOutcome(
            event_id=event.id, dedup=dedup, priority=priority, decision=decision, results=results,
        )

    async def run(self, records: Iterable[Any], cancel: asyncio.Event | None = None) -> list[EventOutcome]:
        """Process a batch. Records not started before ``cancel`` is set are left out."""
        sem = asyncio.Semaphore(self.max_concurrency)
        stop = asyncio.Event()
        sweeper = asyncio.create_task(self.dedup.sweep_periodically(stop))

        async def _one(record: Any) -> EventOutcome | None:
            async with sem:
                if cancel is not None and cancel.is_set():
                    return None
                try:
                    return await self.process(record, cancel)
                except Exception as exc:
                    event_id = _record_event_id(record)
                    logger.exception("Unexpected failure processing event %s", event_id)
                    return EventOutcome(event_id=event_id, error=f"{type(exc).__name__}: {exc}")

        try:
            outcomes = await asyncio.gather(*(_one(r) for r in records))
        finally:
            stop.set()
            await sweeper
        return [o for o in outcomes if o is not None]

    def close(self) -> None:
        self.audit.close()


def tally(run: PipelineRun, outcomes: list[EventOutcome]) -> PipelineRun:
    """Fold event outcomes into the run counters."""
    for outcome in outcomes:
        run.events_received += 1
        if outcome.rejected:
            run.rejected += 1
        elif outcome.is_duplicate:
            run.duplicates += 1
        if outcome.decision is not None:
            run.decisions += 1
        for result in outcome.results:
            if result.status == ExecutionStatus.PENDING:
                continue
            run.actions_executed += 1
            if result.status == ExecutionStatus.FAILED:
                run.actions_failed += 1
    return run


def load_records(path: str | Path) -> tuple[list[Any], int]:
    """Read records from a JSON array file or a JSONL file.

    Returns the parsed records and the number of lines that were not valid
    JSON (always 0 for a JSON array file).
    """
    path = Path(path)
    text = path.read_text(encoding="utf-8")
    if path.suffix == ".json":
        data = json.loads(text)
        return (data if isinstance(data, list) else [data]), 0

    records, bad_lines = [], 0
    for lineno, line in enumerate(text.splitlines(), 1):
        line = line.strip()
        if not line:
            continue
        try:
            records.append(json.loads(line))
        except json.JSONDecodeError as exc:
            logger.warning("%s:%d is not valid JSON: %s", path, lineno, exc)
            bad_lines += 1
    return records, bad_lines


async def run_pipeline(config: dict, input_path: str | None = None) -> tuple[PipelineRun, dict]:
    """Process an input file end to end and record the run. Returns the run and a metrics snapshot."""
    path = input_path or get_pipeline_config(config)["input_path"]
    records, bad_lines = load_records(path)

    db_path = get_db_path(config)
    init_db(db_path)
    conn = get_connection(db_path)
    run = PipelineRun()
    run_id = insert_run(conn, run)
    run.id = run_id
    logger.info("Pipeline run #%d started: %d records from %s", run_id, len(records), path)

    pipeline = DecisionPipeline(config)
    try:
        outcomes = await pipeline.run(records)
        tally(run, outcomes)
        run.events_received += bad_lines
        run.rejected += bad_lines
        run.status = "completed"
        logger.info(
            "Pipeline run #%d completed: %d events, %d duplicates, %d rejected, "
            "%d decisions, %d actions (%d failed)",
            run_id, run.events_received, run.duplicates, run.rejected,
            run.decisions, run.actions_executed, run.actions_failed,
        )
    except Exception:
        logger.exception("Pipeline run #%d failed", run_id)
        run.status = "failed"
        raise
    finally:
        run.finished_at = utcnow()
        finish_run(conn, run_id, run)
        conn.close()
        pipeline.close()

    return run, pipeline.metrics.snapshot()
