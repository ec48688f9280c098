"""
approval_engines.chain_policy -- Decide the effect of one step decision.

Responsibility:
    Given the chain, the step being decided, the decision and the
    approval's policy flag, compute the new step status, the new approval
    status and which step (if any) becomes current.  The state machine
    applies the plan; this module never touches storage.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Policy:
    requires_all_steps = True
        REJECT on a required step      -> step REJECTED, approval REJECTED.
        REJECT on an optional step     -> step SKIPPED, then advance.
        APPROVE (or skip) on the final -> approval APPROVED.
        APPROVE (or skip) otherwise    -> next step becomes current.
    requires_all_steps = False
        The first decision is final: APPROVE -> APPROVED, REJECT -> REJECTED.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

from approval_engines.step_ledger import is_final_step, next_step
from approval_engines.tracer import traced_engine
from approval_kernel.domain.approval import (
    ApprovalStatus,
    StepDecision,
    StepStatus,
)


class PlannableStep(Protocol):
    step_order: int
    is_required: bool


@dataclass(frozen=True)
class TransitionPlan:
    """Outcome of applying one decision to the current step."""

    step_status: StepStatus
    approval_status: ApprovalStatus
    next_step_order: int | None
    terminated: bool


def _terminal(step_status: StepStatus, approval_status: ApprovalStatus) -> TransitionPlan:
    return TransitionPlan(
        step_status=step_status,
        approval_status=approval_status,
        next_step_order=None,
        terminated=True,
    )


@traced_engine(
    "chain_policy", "1.0",
    fingerprint_fields=("decision", "requires_all_steps"),
)
def plan_transition(
    steps: Sequence[PlannableStep],
    step: PlannableStep,
    decision: StepDecision,
    requires_all_steps: bool,
) -> TransitionPlan:
    """Compute the transition for ``decision`` on ``step``.

    Args:
        steps: Every step of the approval (any order).
        step: The current step being decided.
        decision: APPROVE or REJECT.
        requires_all_steps: The approval's policy flag.

    Returns:
        TransitionPlan.  ``next_step_order`` is set only when the approval
        stays PENDING.
    """
    decision = StepDecision(decision)

    if not requires_all_steps:
        if decision is StepDecision.APPROVE:
            return _terminal(StepStatus.APPROVED, ApprovalStatus.APPROVED)
        return _terminal(StepStatus.REJECTED, ApprovalStatus.REJECTED)

    if decision is StepDecision.REJECT and step.is_required:
        return _terminal(StepStatus.REJECTED, ApprovalStatus.REJECTED)

    step_status = (
        StepStatus.APPROVED if decision is StepDecision.APPROVE else StepStatus.SKIPPED
    )

    if is_final_step(steps, step):
        return _terminal(step_status, ApprovalStatus.APPROVED)

    following = next_step(steps, step.step_order)
    return TransitionPlan(
        step_status=step_status,
        approval_status=ApprovalStatus.PENDING,
        next_step_order=following.step_order,
        terminated=False,
    )
