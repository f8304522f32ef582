"""
Decision trace and suggestion scoring.

A TraceLog is the replay log of one run: steps start at 1, grow by exactly 1
per appended event, and events are never mutated, removed or reordered.
The finalized RunRecord carries the log's events verbatim.
"""
from typing import Iterator, Optional, Tuple

from app.agent.entities import Product, TraceEvent, TraceStage

# Score used when no catalog product backs the decision (unresolved / not found)
UNRESOLVED_SCORE = 25

BASE_SCORE = 40
APPROVED_BONUS = 30
STOCK_BONUS = 20
OTC_BONUS = 10


class TraceLog:
    """Append-only, strictly ordered sequence of TraceEvents."""

    def __init__(self):
        self._events: list = []

    def append(self, stage: TraceStage, summary: str) -> TraceEvent:
        event = TraceEvent(step=len(self._events) + 1, stage=stage, summary=summary)
        self._events.append(event)
        return event

    @property
    def events(self) -> Tuple[TraceEvent, ...]:
        return tuple(self._events)

    @property
    def last(self) -> Optional[TraceEvent]:
        return self._events[-1] if self._events else None

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self) -> Iterator[TraceEvent]:
        return iter(self.events)


def suggestion_score(product: Optional[Product], quantity: int, approved: bool) -> int:
    """
    Explainability score in [0, 100], computed once per decision and frozen.

    Canonical rule for the stock bonus: stock >= quantity (no 2x margin).
    No product (unresolved or not in the store) scores the fixed floor.
    """
    if product is None:
        return UNRESOLVED_SCORE
    score = BASE_SCORE
    if approved:
        score += APPROVED_BONUS
    if product.stock >= quantity:
        score += STOCK_BONUS
    if not product.requires_prescription:
        score += OTC_BONUS
    return max(0, min(100, score))
