"""
approval_kernel.services.approval_service -- The approval state machine.

Responsibility:
    The only code path that creates approvals or moves step and approval
    status.  Validates chains on create, enforces ordering, assignee
    authorization and terminal-state rules on transition, and applies each
    decision with compare-and-swap UPDATE statements.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/ and the pure
    engines.  Flush-only: the caller owns commit and rollback.

Invariants enforced:
    - Approval and all of its steps are inserted in the caller's
      transaction; a failed create leaves nothing behind once rolled back.
    - ``current_step_id`` is the first step on create and only ever moves
      forward through ``step_order``.
    - A step leaves PENDING at most once: the step UPDATE is conditioned on
      ``status = 'PENDING'`` and the approval UPDATE on
      ``status = 'PENDING' AND current_step_id = :step_id``.  A concurrent
      loser observes rowcount 0 and gets NotCurrentStepError.
    - Unknown workflow kinds are rejected before anything is written.

Failure modes:
    - InvalidChainError on malformed step lists.
    - ApprovalStepNotFoundError / ApprovalNotFoundError on unknown ids.
    - NotCurrentStepError on out-of-order attempts and lost races.
    - ForbiddenApproverError when the actor is not the step assignee.
    - AlreadyTerminalError when the approval is no longer PENDING.
    - UnknownWorkflowKindError when the kind has no registry entry.
"""

from __future__ import annotations

from collections.abc import Sequence

from sqlalchemy import update
from sqlalchemy.orm import Session

from approval_engines.chain_policy import plan_transition
from approval_engines.step_ledger import first_step, validate_ordering
from approval_kernel.domain.approval import (
    APPROVAL_TRANSITIONS,
    Approval,
    ApprovalPriority,
    ApprovalStatus,
    StepDecision,
    StepSpec,
    StepStatus,
    TransitionResult,
    WorkflowKind,
)
from approval_kernel.domain.clock import Clock, SystemClock
from approval_kernel.domain.workflow_registry import WorkflowRegistry
from approval_kernel.exceptions import (
    AlreadyTerminalError,
    ApprovalNotFoundError,
    ApprovalStepNotFoundError,
    ForbiddenApproverError,
    InvalidChainError,
    NotCurrentStepError,
)
from approval_kernel.logging_config import get_logger
from approval_kernel.models.approval import ApprovalModel, ApprovalStepModel

logger = get_logger("services.approval_service")


class ApprovalService:
    """Creates approvals and applies step decisions."""

    def __init__(
        self,
        session: Session,
        registry: WorkflowRegistry,
        clock: Clock | None = None,
    ) -> None:
        self._session = session
        self._registry = registry
        self._clock = clock or SystemClock()

    # =========================================================================
    # Create
    # =========================================================================

    def create(
        self,
        workflow_kind: WorkflowKind | str,
        workflow_ref_id: int,
        requested_by_id: str,
        steps: Sequence[StepSpec],
        requires_all_steps: bool = True,
        *,
        title: str | None = None,
        description: str | None = None,
        priority: ApprovalPriority | str = ApprovalPriority.MEDIUM,
    ) -> Approval:
        """Persist a PENDING approval with its chain and return it.

        The first step becomes current.  Nothing is written when the kind
        is unregistered or the chain is malformed.
        """
        self._registry.resolve(workflow_kind)
        kind = WorkflowKind(workflow_kind)
        ordered = validate_ordering(steps)
        unassigned = [s.step_order for s in ordered if not s.assigned_to_user_id]
        if unassigned:
            raise InvalidChainError(
                f"Steps without an assignee: {unassigned}",
                step_orders=unassigned,
            )

        now = self._clock.now()
        model = ApprovalModel(
            workflow_kind=kind.value,
            workflow_ref_id=workflow_ref_id,
            status=ApprovalStatus.PENDING.value,
            priority=ApprovalPriority(priority).value,
            title=title,
            description=description,
            requested_by_id=requested_by_id,
            requires_all_steps=requires_all_steps,
            created_at=now,
            updated_at=now,
        )
        self._session.add(model)
        self._session.flush()

        step_models = [
            ApprovalStepModel(
                approval=model,
                step_order=spec.step_order,
                is_required=spec.is_required,
                assigned_to_user_id=spec.assigned_to_user_id,
                status=StepStatus.PENDING.value,
                created_at=now,
                updated_at=now,
            )
            for spec in ordered
        ]
        self._session.add_all(step_models)
        self._session.flush()

        model.current_step_id = first_step(step_models).id
        self._session.flush()

        logger.info(
            "approval_created",
            extra={
                "approval_id": model.id,
                "workflow_kind": kind.value,
                "workflow_ref_id": workflow_ref_id,
                "requested_by_id": requested_by_id,
                "step_count": len(step_models),
                "requires_all_steps": requires_all_steps,
                "current_step_id": model.current_step_id,
            },
        )
        return model.to_dto()

    # =========================================================================
    # Transition
    # =========================================================================

    def transition(
        self,
        step_id: int,
        acting_user_id: str,
        decision: StepDecision | str,
        comment: str | None = None,
        reason: str | None = None,
    ) -> TransitionResult:
        """Apply ``decision`` by ``acting_user_id`` to step ``step_id``.

        Checks run in a fixed order: existence, current step, assignee,
        approval still PENDING, registered kind.  Only then are the two
        conditional UPDATEs issued.
        """
        decision = StepDecision(decision)
        step = self._load_step(step_id)
        approval = self._load_approval(step.approval_id)

        if approval.current_step_id != step.id:
            raise NotCurrentStepError(
                step_id=step.id,
                approval_id=approval.id,
                current_step_id=approval.current_step_id,
                step_status=step.status,
            )
        if acting_user_id != step.assigned_to_user_id:
            raise ForbiddenApproverError(
                actor_id=acting_user_id,
                approval_id=approval.id,
                step_id=step.id,
            )
        current_status = ApprovalStatus(approval.status)
        if not APPROVAL_TRANSITIONS[current_status]:
            raise AlreadyTerminalError(approval.id, current_status.value)

        self._registry.resolve(approval.workflow_kind)

        plan = plan_transition(
            approval.steps, step, decision, approval.requires_all_steps,
        )
        next_step_id = None
        if plan.next_step_order is not None:
            next_step_id = next(
                s.id for s in approval.steps if s.step_order == plan.next_step_order
            )

        now = self._clock.now()
        approval_id = approval.id

        step_cas = self._session.execute(
            update(ApprovalStepModel)
            .where(
                ApprovalStepModel.id == step_id,
                ApprovalStepModel.status == StepStatus.PENDING.value,
            )
            .values(
                status=plan.step_status.value,
                comment=comment,
                reason=reason,
                decided_at=now,
                decided_by_id=acting_user_id,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if step_cas.rowcount != 1:
            self._lost_race(step_id, approval_id)

        values = {
            "status": plan.approval_status.value,
            "current_step_id": next_step_id,
            "updated_at": now,
        }
        if plan.terminated:
            values.update(
                completed_at=now,
                completed_by_id=acting_user_id,
                resolution_comment=reason or comment,
            )
        approval_cas = self._session.execute(
            update(ApprovalModel)
            .where(
                ApprovalModel.id == approval_id,
                ApprovalModel.status == ApprovalStatus.PENDING.value,
                ApprovalModel.current_step_id == step_id,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if approval_cas.rowcount != 1:
            self._lost_race(step_id, approval_id)

        self._session.expire_all()
        refreshed = self._load_approval(approval_id)
        approval_dto = refreshed.to_dto()
        step_dto = next(s for s in approval_dto.steps if s.id == step_id)

        logger.info(
            "approval_step_transitioned",
            extra={
                "approval_id": approval_id,
                "step_id": step_id,
                "step_order": step_dto.step_order,
                "actor_id": acting_user_id,
                "decision": decision.value,
                "step_status": step_dto.status.value,
                "current_step_id": approval_dto.current_step_id,
            },
        )
        if plan.terminated:
            logger.info(
                "approval_finalized",
                extra={
                    "approval_id": approval_id,
                    "workflow_kind": approval_dto.workflow_kind.value,
                    "workflow_ref_id": approval_dto.workflow_ref_id,
                    "status": approval_dto.status.value,
                    "completed_by_id": acting_user_id,
                },
            )

        return TransitionResult(
            approval=approval_dto,
            step=step_dto,
            decision=decision,
            terminated=plan.terminated,
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    def _load_step(self, step_id: int) -> ApprovalStepModel:
        step = self._session.get(ApprovalStepModel, step_id)
        if step is None:
            raise ApprovalStepNotFoundError(step_id)
        return step

    def _load_approval(self, approval_id: int) -> ApprovalModel:
        approval = self._session.get(ApprovalModel, approval_id)
        if approval is None:
            raise ApprovalNotFoundError(approval_id)
        return approval

    def _lost_race(self, step_id: int, approval_id: int) -> None:
        logger.warning(
            "approval_transition_conflict",
            extra={"approval_id": approval_id, "step_id": step_id},
        )
        raise NotCurrentStepError(step_id=step_id, approval_id=approval_id)
