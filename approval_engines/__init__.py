"""
Module: approval_engines
Responsibility:
    Re-exports the pure decision functions of the approval engine: chain
    ordering, transition planning, and route expansion.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import approval_kernel.domain and approval_kernel.exceptions.
    MUST NOT import approval_services.

Invariants enforced:
    - Engines never read a clock or a database; callers pass everything in.
    - Identical inputs always produce identical outputs.
"""

from approval_engines.chain_policy import TransitionPlan, plan_transition
from approval_engines.routing import evaluate_guard, expand_route, resolve_field
from approval_engines.step_ledger import (
    first_step,
    is_final_step,
    next_step,
    validate_ordering,
)
from approval_engines.tracer import traced_engine

__all__ = [
    "TransitionPlan",
    "plan_transition",
    "evaluate_guard",
    "expand_route",
    "resolve_field",
    "first_step",
    "is_final_step",
    "next_step",
    "validate_ordering",
    "traced_engine",
]
