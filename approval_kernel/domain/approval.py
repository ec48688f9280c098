"""
Approval domain types (``approval_kernel.domain.approval``).

Responsibility
--------------
Pure value objects for the sequential approval engine.  Defines the
approval and step lifecycles, the caller-supplied step specification,
frozen snapshots of persisted approvals/steps, and transition results.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``models/``, ``services/``, ``selectors/`` or outer layers.

Invariants enforced
-------------------
* Terminal approval statuses (APPROVED, REJECTED) have no outgoing edges.
* Terminal step statuses (APPROVED, REJECTED, SKIPPED) have no outgoing
  edges.
* ``Approval.current_step`` is None exactly when the approval is terminal.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


# =========================================================================
# Workflow kinds
# =========================================================================


class WorkflowKind(str, Enum):
    """Business processes that can be gated by an approval."""

    CHANGE_REQUEST = "CHANGE_REQUEST"
    CLIENT_ACCEPTANCE = "CLIENT_ACCEPTANCE"
    ACCEPTANCE = "ACCEPTANCE"
    CONTINUANCE = "CONTINUANCE"
    ENGAGEMENT_LETTER = "ENGAGEMENT_LETTER"
    DPA = "DPA"
    REVIEW_NOTE = "REVIEW_NOTE"
    VAULT_DOCUMENT = "VAULT_DOCUMENT"
    INDEPENDENCE_CONFIRMATION = "INDEPENDENCE_CONFIRMATION"


# =========================================================================
# Lifecycles
# =========================================================================


class ApprovalStatus(str, Enum):
    """Approval lifecycle states."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class StepStatus(str, Enum):
    """Approval step lifecycle states."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    SKIPPED = "SKIPPED"


APPROVAL_TRANSITIONS: dict[ApprovalStatus, frozenset[ApprovalStatus]] = {
    ApprovalStatus.PENDING: frozenset({
        ApprovalStatus.APPROVED,
        ApprovalStatus.REJECTED,
    }),
    ApprovalStatus.APPROVED: frozenset(),
    ApprovalStatus.REJECTED: frozenset(),
}

TERMINAL_APPROVAL_STATUSES: frozenset[ApprovalStatus] = frozenset({
    ApprovalStatus.APPROVED,
    ApprovalStatus.REJECTED,
})

TERMINAL_STEP_STATUSES: frozenset[StepStatus] = frozenset({
    StepStatus.APPROVED,
    StepStatus.REJECTED,
    StepStatus.SKIPPED,
})


class StepDecision(str, Enum):
    """Decisions an assignee can make on the current step."""

    APPROVE = "APPROVE"
    REJECT = "REJECT"


class ApprovalPriority(str, Enum):
    """Display/sort priority of an approval."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


PRIORITY_RANK: dict[ApprovalPriority, int] = {
    ApprovalPriority.HIGH: 3,
    ApprovalPriority.MEDIUM: 2,
    ApprovalPriority.LOW: 1,
}


# =========================================================================
# Step specification (input to create)
# =========================================================================


@dataclass(frozen=True)
class StepSpec:
    """One position in a chain, as supplied by the creating collaborator."""

    step_order: int
    assigned_to_user_id: str
    is_required: bool = True


# =========================================================================
# Persisted snapshots
# =========================================================================


@dataclass(frozen=True)
class ApprovalStep:
    """Immutable snapshot of an approval step."""

    id: int
    approval_id: int
    step_order: int
    assigned_to_user_id: str | None
    is_required: bool = True
    status: StepStatus = StepStatus.PENDING
    comment: str | None = None
    reason: str | None = None
    decided_at: datetime | None = None
    decided_by_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STEP_STATUSES


@dataclass(frozen=True)
class Approval:
    """Immutable snapshot of an approval with its ordered steps."""

    id: int
    workflow_kind: WorkflowKind
    workflow_ref_id: int
    status: ApprovalStatus
    requires_all_steps: bool
    current_step_id: int | None
    requested_by_id: str
    title: str | None = None
    description: str | None = None
    priority: ApprovalPriority = ApprovalPriority.MEDIUM
    completed_at: datetime | None = None
    completed_by_id: str | None = None
    resolution_comment: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    steps: tuple[ApprovalStep, ...] = ()

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_APPROVAL_STATUSES

    @property
    def current_step(self) -> ApprovalStep | None:
        if self.current_step_id is None:
            return None
        for step in self.steps:
            if step.id == self.current_step_id:
                return step
        return None

    def step_by_order(self, step_order: int) -> ApprovalStep | None:
        for step in self.steps:
            if step.step_order == step_order:
                return step
        return None

    def assignee_ids(self) -> frozenset[str]:
        return frozenset(
            s.assigned_to_user_id for s in self.steps
            if s.assigned_to_user_id is not None
        )


# =========================================================================
# Transition results
# =========================================================================


@dataclass(frozen=True)
class HookOutcome:
    """Result of invoking a workflow hook after a terminal transition.

    ``succeeded=False`` is a degraded success: the decision is committed,
    only the downstream business action failed.
    """

    hook: str
    succeeded: bool
    error_type: str | None = None
    error_message: str | None = None


@dataclass(frozen=True)
class SideEffectFailure:
    effect: str
    error_type: str
    error_message: str


@dataclass(frozen=True)
class DispatchReport:
    """Which post-commit cache/notification effects ran, and which failed."""

    attempted: tuple[str, ...] = ()
    failures: tuple[SideEffectFailure, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.failures


@dataclass(frozen=True)
class TransitionResult:
    """Post-transition state returned to the caller."""

    approval: Approval
    step: ApprovalStep
    decision: StepDecision
    terminated: bool
    hook_outcome: HookOutcome | None = None
    side_effects: DispatchReport | None = None

    @property
    def next_step(self) -> ApprovalStep | None:
        return self.approval.current_step

    @property
    def side_effect_failed(self) -> bool:
        return self.hook_outcome is not None and not self.hook_outcome.succeeded
