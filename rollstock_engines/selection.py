"""
Module: rollstock_engines.selection
Responsibility:
    Decide which batches an automatic issue draws from and how much from
    each, given the candidate batches of one item and a requested quantity.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The allocation service
    feeds it snapshots taken under the batch locks and applies the plan.

Invariants enforced:
    - FIFO orders candidates by (created_at, sequence) ascending; LIFO by
      the same key descending.  Ties can therefore never reorder between
      runs.
    - No line draws more than its candidate's remaining quantity.
    - ``drawn + shortfall == requested``.

Failure modes:
    - ValidationError for a non-positive requested quantity.
    A shortfall is not an error here; the service decides to reject.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum

from rollstock_engines.tracer import traced_engine
from rollstock_kernel.exceptions import ValidationError
from rollstock_kernel.logging_config import get_logger

logger = get_logger("engines.selection")


class SelectionPolicy(str, Enum):
    """Batch consumption order for automatic issues."""

    FIFO = "fifo"  # Oldest batch first
    LIFO = "lifo"  # Newest batch first


@dataclass(frozen=True)
class DrawCandidate:
    """A batch that may be drawn from, with its ordering keys."""

    batch_id: str
    remaining: Decimal
    created_at: datetime
    sequence: int


@dataclass(frozen=True)
class DrawLine:
    batch_id: str
    quantity: Decimal


@dataclass(frozen=True)
class DrawPlan:
    """
    Result of a draw plan.

    Contract:
        ``lines`` are in draw order and only include batches that give a
        positive quantity.
    Guarantees:
        - ``drawn + shortfall == requested``.
    """

    policy: SelectionPolicy
    requested: Decimal
    lines: tuple[DrawLine, ...]
    available: Decimal

    @property
    def drawn(self) -> Decimal:
        return sum((line.quantity for line in self.lines), Decimal("0"))

    @property
    def shortfall(self) -> Decimal:
        return self.requested - self.drawn

    @property
    def is_complete(self) -> bool:
        return self.shortfall == 0


def order_candidates(
    candidates: Sequence[DrawCandidate],
    policy: SelectionPolicy,
) -> list[DrawCandidate]:
    key = lambda c: (c.created_at, c.sequence)  # noqa: E731
    return sorted(candidates, key=key, reverse=policy == SelectionPolicy.LIFO)


@traced_engine("selection", "1.0", fingerprint_fields=("requested", "policy"))
def plan_draw(
    candidates: Sequence[DrawCandidate],
    requested: Decimal,
    policy: SelectionPolicy = SelectionPolicy.FIFO,
) -> DrawPlan:
    """
    Draw sequentially until the requested quantity is exhausted.

    Each batch gives up to its remaining quantity.  Candidates with nothing
    remaining are skipped.
    """
    if requested <= 0:
        raise ValidationError("quantity", f"must be positive, got {requested}")

    to_draw = requested
    available = Decimal("0")
    lines: list[DrawLine] = []
    for candidate in order_candidates(candidates, policy):
        if candidate.remaining <= 0:
            continue
        available += candidate.remaining
        if to_draw <= 0:
            continue
        take = min(to_draw, candidate.remaining)
        to_draw -= take
        lines.append(DrawLine(batch_id=candidate.batch_id, quantity=take))

    plan = DrawPlan(
        policy=policy,
        requested=requested,
        lines=tuple(lines),
        available=available,
    )
    logger.debug(
        "draw_plan_computed",
        extra={
            "policy": policy.value,
            "requested": str(requested),
            "drawn": str(plan.drawn),
            "available": str(available),
            "batches_drawn": len(lines),
        },
    )
    return plan
