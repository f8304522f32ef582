"""
Run ledger: bounded, newest-first history of finalized RunRecords.

This is the audit trail dashboards read: summary cards, approval split and
the policy layer status of the latest run.
"""
import threading
from collections import deque
from typing import List, Optional

from pydantic import BaseModel

from app.agent.entities import RunRecord


class RunSummary(BaseModel):
    total_runs: int = 0
    approved_runs: int = 0
    rejected_runs: int = 0
    success_rate: float = 0.0  # percent, 1 decimal
    avg_latency_ms: int = 0
    avg_suggestion_score: int = 0


class PolicyLayer(BaseModel):
    name: str
    status: str  # PASS | FAIL | PENDING | N/A
    detail: str


class RunHistory:
    def __init__(self, limit: int = 200):
        if limit < 1:
            raise ValueError("RunHistory limit must be >= 1")
        self.limit = limit
        # appendleft + maxlen: newest first, oldest evicted first
        self._records = deque(maxlen=limit)
        self._lock = threading.Lock()

    def append(self, record: RunRecord) -> RunRecord:
        with self._lock:
            self._records.appendleft(record)
        return record

    def records(self, limit: Optional[int] = None) -> List[RunRecord]:
        with self._lock:
            items = list(self._records)
        return items[:limit] if limit else items

    def latest(self) -> Optional[RunRecord]:
        with self._lock:
            return self._records[0] if self._records else None

    def clear(self):
        with self._lock:
            self._records.clear()

    def __len__(self) -> int:
        return len(self._records)

    def summary(self) -> RunSummary:
        items = self.records()
        if not items:
            return RunSummary()
        total = len(items)
        approved = sum(1 for r in items if r.approved)
        return RunSummary(
            total_runs=total,
            approved_runs=approved,
            rejected_runs=total - approved,
            success_rate=round(approved / total * 100, 1),
            avg_latency_ms=round(sum(r.latency_ms for r in items) / total),
            avg_suggestion_score=round(sum(r.suggestion_score for r in items) / total),
        )


def policy_layers(record: Optional[RunRecord]) -> List[PolicyLayer]:
    """Input guard / policy gate / atomic commit status for one run."""
    trace_len = record.trace_count if record else 0
    if record and record.approved:
        commit_status = "PASS" if record.commit_ok else "FAIL"
    else:
        commit_status = "N/A"
    return [
        PolicyLayer(
            name="L1 Input Guard",
            status="PASS" if record and record.user_prompt else "PENDING",
            detail="Prompt normalization and intent extraction executed.",
        ),
        PolicyLayer(
            name="L2 Policy Gate",
            status="PASS" if trace_len >= 2 else "PENDING",
            detail="Safety policy validates stock and prescription constraints.",
        ),
        PolicyLayer(
            name="L3 Atomic Commit",
            status=commit_status,
            detail="Order + stock update commit through atomic transaction.",
        ),
    ]
