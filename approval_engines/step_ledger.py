"""
approval_engines.step_ledger -- Ordering rules for a linear approval chain.

Responsibility:
    Validate and navigate the ordered steps of one approval.  Works on
    anything exposing an integer ``step_order`` attribute: caller-supplied
    ``StepSpec`` values, persisted ``ApprovalStep`` snapshots, or ORM rows.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - A chain is non-empty.
    - ``step_order`` values are unique and form the dense sequence 1..N.

Failure modes:
    - InvalidChainError from ``validate_ordering`` when any rule fails.
      Raised before anything is written.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from typing import Protocol, TypeVar

from approval_kernel.exceptions import InvalidChainError


class Ordered(Protocol):
    step_order: int


S = TypeVar("S", bound=Ordered)


def validate_ordering(steps: Iterable[S]) -> tuple[S, ...]:
    """Check chain shape and return the steps sorted by ``step_order``.

    Raises:
        InvalidChainError: empty chain, duplicate orders, or a sequence
            that is not exactly 1..N.
    """
    ordered = tuple(sorted(steps, key=lambda s: s.step_order))
    if not ordered:
        raise InvalidChainError("An approval requires at least one step")

    orders = [s.step_order for s in ordered]
    duplicates = sorted(o for o, n in Counter(orders).items() if n > 1)
    if duplicates:
        raise InvalidChainError(
            f"Duplicate step_order values: {duplicates}",
            step_orders=orders,
        )

    expected = list(range(1, len(ordered) + 1))
    if orders != expected:
        raise InvalidChainError(
            f"step_order must be the dense sequence 1..{len(ordered)}, got {orders}",
            step_orders=orders,
        )
    return ordered


def next_step(steps: Iterable[S], current_order: int) -> S | None:
    """Step with the smallest order greater than ``current_order``, or None."""
    later = [s for s in steps if s.step_order > current_order]
    if not later:
        return None
    return min(later, key=lambda s: s.step_order)


def is_final_step(steps: Iterable[S], step: Ordered) -> bool:
    """True when no step is ordered after ``step``."""
    return all(s.step_order <= step.step_order for s in steps)


def first_step(steps: Iterable[S]) -> S | None:
    for s in steps:
        if s.step_order == 1:
            return s
    return None
