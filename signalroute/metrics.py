"""Metrics aggregators injected into each pipeline stage.

Each aggregator guards its counters with its own lock and exposes
``snapshot()`` (a plain dict copy) and ``reset()``. Locks are only held
for the in-memory update, never across an await.
"""

from __future__ import annotations

import threading
from collections import Counter


class _Aggregator:
    def __init__(self):
        self._lock = threading.Lock()
        self.reset()

    def reset(self) -> None:
        raise NotImplementedError

    def snapshot(self) -> dict:
        raise NotImplementedError


def _running_mean(current: float, count: int, value: float) -> float:
    """Mean after adding ``value`` as the ``count``-th sample."""
    return current + (value - current) / count


class DedupMetrics(_Aggregator):
    def reset(self) -> None:
        with self._lock:
            self.total_processed = 0
            self.duplicates_detected = 0
            self.unique_events = 0
            self.average_processing_ms = 0.0
            self.storage_errors = 0
            self.evictions = 0
            self.platform_breakdown: dict[str, Counter] = {}
            self.method_breakdown: Counter = Counter()

    def record(self, platform: str, is_duplicate: bool, method: str | None, elapsed_ms: float) -> None:
        with self._lock:
            self.total_processed += 1
            counts = self.platform_breakdown.setdefault(platform, Counter())
            counts["processed"] += 1
            if is_duplicate:
                self.duplicates_detected += 1
                counts["duplicates"] += 1
                self.method_breakdown[method or "unknown"] += 1
            else:
                self.unique_events += 1
                counts["unique"] += 1
            self.average_processing_ms = _running_mean(
                self.average_processing_ms, self.total_processed, elapsed_ms,
            )

    def record_storage_error(self) -> None:
        with self._lock:
            self.storage_errors += 1

    def record_evictions(self, count: int) -> None:
        with self._lock:
            self.evictions += count

    def snapshot(self) -> dict:
        with self._lock:
            total = self.total_processed
            return {
                "total_processed": total,
                "duplicates_detected": self.duplicates_detected,
                "unique_events": self.unique_events,
                "deduplication_rate": self.duplicates_detected / total if total else 0.0,
                "average_processing_ms": self.average_processing_ms,
                "storage_errors": self.storage_errors,
                "evictions": self.evictions,
                "platform_breakdown": {p: dict(c) for p, c in self.platform_breakdown.items()},
                "method_breakdown": dict(self.method_breakdown),
            }


SCORE_BUCKETS = ((80, "critical"), (60, "high"), (40, "medium"), (20, "low"), (0, "minimal"))


class ScoringMetrics(_Aggregator):
    def reset(self) -> None:
        with self._lock:
            self.total_scored = 0
            self.average_score = 0.0
            self.auto_escalations = 0
            self.distribution: Counter = Counter()
            self.component_averages: dict[str, float] = {}
            self.platform_breakdown: Counter = Counter()

    def record(self, platform: str, overall: float, components: dict[str, float], escalated: bool) -> None:
        with self._lock:
            self.total_scored += 1
            n = self.total_scored
            self.average_score = _running_mean(self.average_score, n, overall)
            for name, value in components.items():
                self.component_averages[name] = _running_mean(
                    self.component_averages.get(name, 0.0), n, value,
                )
            bucket = next(label for floor, label in SCORE_BUCKETS if overall >= floor)
            self.distribution[bucket] += 1
            self.platform_breakdown[platform] += 1
            if escalated:
                self.auto_escalations += 1

    def snapshot(self) -> dict:
        with self._lock:
            return {
                "total_scored": self.total_scored,
                "average_score": self.average_score,
                "auto_escalations": self.auto_escalations,
                "distribution": dict(self.distribution),
                "component_averages": dict(self.component_averages),
                "platform_breakdown": dict(self.platform_breakdown),
            }


class RoutingMetrics(_Aggregator):
    def reset(self) -> None:
        with self._lock:
            self.total_routed = 0
            self.average_confidence = 0.0
            self.routes: Counter = Counter()
            self.overrides: Counter = Counter()
            self.override_errors = 0
            self.platform_breakdown: dict[str, Counter] = {}

    def record(self, platform: str, route: str, confidence: float,
               overrides: list[str], errors: int) -> None:
        with self._lock:
            self.total_routed += 1
            self.average_confidence = _running_mean(
                self.average_confidence, self.total_routed, confidence,
            )
            self.routes[route] += 1
            self.overrides.update(overrides)
            self.override_errors += errors
            self.platform_breakdown.setdefault(platform, Counter())[route] += 1

    def snapshot(self) -> dict:
        with self._lock:
            return {
                "total_routed": self.total_routed,
                "average_confidence": self.average_confidence,
                "routes": dict(self.routes),
                "overrides": dict(self.overrides),
                "override_errors": self.override_errors,
                "platform_breakdown": {p: dict(c) for p, c in self.platform_breakdown.items()},
            }


class ExecutionMetrics(_Aggregator):
    def reset(self) -> None:
        with self._lock:
            self.total_executed = 0
            self.successful = 0
            self.failed = 0
            self.pending = 0
            self.average_execution_ms = 0.0
            self.by_type: dict[str, Counter] = {}
            self.rate_limit_hits: Counter = Counter()
            self.responses = {
                "template": 0, "ai": 0, "personalized": 0,
                "posted": 0, "post_failures": 0, "average_length": 0.0,
            }
            self.tickets = {"created": 0, "by_priority": Counter()}
            self.crm = {"leads": 0, "opportunities": 0, "average_lead_score": 0.0}
            self.webhooks = {"sent": 0, "succeeded": 0, "failed": 0, "retries": 0}

    def record_result(self, action_type: str, status: str, duration_ms: float) -> None:
        with self._lock:
            self.total_executed += 1
            if status == "failed":
                self.failed += 1
            elif status == "pending":
                self.pending += 1
            else:
                self.successful += 1
            self.average_execution_ms = _running_mean(
                self.average_execution_ms, self.total_executed, duration_ms,
            )
            self.by_type.setdefault(action_type, Counter())[status] += 1

    def record_rate_limit(self, action_type: str) -> None:
        with self._lock:
            self.rate_limit_hits[action_type] += 1

    def record_response(self, method: str, personalized: bool, length: int) -> None:
        with self._lock:
            self.responses[method] += 1
            if personalized:
                self.responses["personalized"] += 1
            generated = self.responses["template"] + self.responses["ai"]
            self.responses["average_length"] = _running_mean(
                self.responses["average_length"], generated, length,
            )

    def record_post(self, posted: bool) -> None:
        with self._lock:
            self.responses["posted" if posted else "post_failures"] += 1

    def record_ticket(self, priority: str) -> None:
        with self._lock:
            self.tickets["created"] += 1
            self.tickets["by_priority"][priority] += 1

    def record_lead(self, score: int, opportunity: bool) -> None:
        with self._lock:
            self.crm["leads"] += 1
            self.crm["average_lead_score"] = _running_mean(
                self.crm["average_lead_score"], self.crm["leads"], score,
            )
            if opportunity:
                self.crm["opportunities"] += 1

    def record_webhook(self, success: bool, retries: int) -> None:
        with self._lock:
            self.webhooks["sent"] += 1
            self.webhooks["succeeded" if success else "failed"] += 1
            self.webhooks["retries"] += retries

    def snapshot(self) -> dict:
        with self._lock:
            total = self.total_executed
            completed = total - self.pending
            return {
                "total_executed": total,
                "successful": self.successful,
                "failed": self.failed,
                "pending": self.pending,
                "success_rate": self.successful / completed if completed else 0.0,
                "average_execution_ms": self.average_execution_ms,
                "by_type": {t: dict(c) for t, c in self.by_type.items()},
                "rate_limit_hits": dict(self.rate_limit_hits),
                "responses": dict(self.responses),
                "tickets": {
                    "created": self.tickets["created"],
                    "by_priority": dict(self.tickets["by_priority"]),
                },
                "crm": dict(self.crm),
                "webhooks": dict(self.webhooks),
            }


class PipelineMetrics:
    """One aggregator per stage plus pipeline-level counters."""

    def __init__(self):
        self.dedup = DedupMetrics()
        self.scoring = ScoringMetrics()
        self.routing = RoutingMetrics()
        self.execution = ExecutionMetrics()
        self._lock = threading.Lock()
        self.rejected = 0
        self.audit_failures = 0

    def record_rejected(self) -> None:
        with self._lock:
            self.rejected += 1

    def record_audit_failure(self) -> None:
        with self._lock:
            self.audit_failures += 1

    def snapshot(self) -> dict:
        with self._lock:
            pipeline = {"rejected": self.rejected, "audit_failures": self.audit_failures}
        return {
            "pipeline": pipeline,
            "dedup": self.dedup.snapshot(),
            "scoring": self.scoring.snapshot(),
            "routing": self.routing.snapshot(),
            "execution": self.execution.snapshot(),
        }

    def reset(self) -> None:
        for agg in (self.dedup, self.scoring, self.routing, self.execution):
            agg.reset()
        with self._lock:
            self.rejected = 0
            self.audit_failures = 0
