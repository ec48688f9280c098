"""
Module: approval_kernel.models.approval
Responsibility: ORM persistence for approvals and their ordered steps.

Architecture position: Kernel > Models.  May import from db/base.py and
    exceptions only.

Invariants enforced:
    - Status values limited by DB check constraints.
    - UNIQUE(approval_id, step_order): one step per position in a chain.
    - Decided steps and approvals are immutable at the ORM level: any
      attribute-level UPDATE of a terminal row, or any DELETE, raises
      ImmutabilityViolationError.  The state machine moves status with
      conditional bulk UPDATE statements, which do not pass through these
      listeners.

Failure modes:
    - IntegrityError on duplicate step_order within an approval.
    - ImmutabilityViolationError on ORM mutation of a terminal row.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    event,
    inspect,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from approval_kernel.db.base import IdentityInt, TrackedBase, UTCDateTime
from approval_kernel.exceptions import ImmutabilityViolationError

if TYPE_CHECKING:
    from approval_kernel.domain.approval import Approval, ApprovalStep


class ApprovalModel(TrackedBase):
    """Persistent approval.

    Contract:
        ``current_step_id`` points at the single step the engine is waiting
        on and is NULL once the approval is terminal.  It is a plain indexed
        column rather than a foreign key because steps reference their
        approval and the two rows are inserted in one transaction.
    """

    __tablename__ = "approvals"

    __table_args__ = (
        CheckConstraint(
            "status IN ('PENDING', 'APPROVED', 'REJECTED')",
            name="ck_approvals_valid_status",
        ),
        CheckConstraint(
            "priority IN ('LOW', 'MEDIUM', 'HIGH')",
            name="ck_approvals_valid_priority",
        ),
        Index("ix_approvals_workflow", "workflow_kind", "workflow_ref_id"),
        Index("ix_approvals_status", "status"),
        Index("ix_approvals_requested_by", "requested_by_id"),
    )

    workflow_kind: Mapped[str] = mapped_column(String(50), nullable=False)
    workflow_ref_id: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="PENDING")
    priority: Mapped[str] = mapped_column(String(20), nullable=False, default="MEDIUM")
    title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    requested_by_id: Mapped[str] = mapped_column(String(255), nullable=False)
    requires_all_steps: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    current_step_id: Mapped[int | None] = mapped_column(
        IdentityInt, nullable=True, index=True,
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(), nullable=True,
    )
    completed_by_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    resolution_comment: Mapped[str | None] = mapped_column(Text, nullable=True)

    steps: Mapped[list["ApprovalStepModel"]] = relationship(
        "ApprovalStepModel",
        back_populates="approval",
        order_by="ApprovalStepModel.step_order",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return (
            f"<Approval {self.id} {self.workflow_kind}/{self.workflow_ref_id} "
            f"status={self.status} current_step={self.current_step_id}>"
        )

    def to_dto(self) -> Approval:
        """Convert ORM model to frozen domain DTO."""
        from approval_kernel.domain.approval import (
            Approval as ApprovalDTO,
            ApprovalPriority,
            ApprovalStatus,
            WorkflowKind,
        )

        return ApprovalDTO(
            id=self.id,
            workflow_kind=WorkflowKind(self.workflow_kind),
            workflow_ref_id=self.workflow_ref_id,
            status=ApprovalStatus(self.status),
            requires_all_steps=self.requires_all_steps,
            current_step_id=self.current_step_id,
            requested_by_id=self.requested_by_id,
            title=self.title,
            description=self.description,
            priority=ApprovalPriority(self.priority),
            completed_at=self.completed_at,
            completed_by_id=self.completed_by_id,
            resolution_comment=self.resolution_comment,
            created_at=self.created_at,
            updated_at=self.updated_at,
            steps=tuple(s.to_dto() for s in self.steps),
        )


class ApprovalStepModel(TrackedBase):
    """Persistent approval step.  Owned exclusively by its approval."""

    __tablename__ = "approval_steps"

    __table_args__ = (
        CheckConstraint(
            "status IN ('PENDING', 'APPROVED', 'REJECTED', 'SKIPPED')",
            name="ck_approval_steps_valid_status",
        ),
        CheckConstraint("step_order >= 1", name="ck_approval_steps_order_positive"),
        UniqueConstraint("approval_id", "step_order", name="uq_approval_steps_order"),
        Index("ix_approval_steps_assignee_status", "assigned_to_user_id", "status"),
    )

    approval_id: Mapped[int] = mapped_column(
        IdentityInt,
        ForeignKey("approvals.id"),
        nullable=False,
    )
    step_order: Mapped[int] = mapped_column(Integer, nullable=False)
    is_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    assigned_to_user_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="PENDING")
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    decided_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(), nullable=True,
    )
    decided_by_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    approval: Mapped["ApprovalModel"] = relationship(
        "ApprovalModel",
        back_populates="steps",
    )

    def __repr__(self) -> str:
        return (
            f"<ApprovalStep {self.id} approval={self.approval_id} "
            f"order={self.step_order} status={self.status}>"
        )

    def to_dto(self) -> ApprovalStep:
        """Convert ORM model to frozen domain DTO."""
        from approval_kernel.domain.approval import (
            ApprovalStep as ApprovalStepDTO,
            StepStatus,
        )

        return ApprovalStepDTO(
            id=self.id,
            approval_id=self.approval_id,
            step_order=self.step_order,
            assigned_to_user_id=self.assigned_to_user_id,
            is_required=self.is_required,
            status=StepStatus(self.status),
            comment=self.comment,
            reason=self.reason,
            decided_at=self.decided_at,
            decided_by_id=self.decided_by_id,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


# =============================================================================
# ORM-Level Immutability for Decided Rows
# =============================================================================


def _loaded_status(target) -> str | None:
    """Return the status as last loaded from the database."""
    history = inspect(target).attrs.status.history
    if history.deleted:
        return history.deleted[0]
    if history.unchanged:
        return history.unchanged[0]
    return None


@event.listens_for(ApprovalStepModel, "before_update")
def prevent_decided_step_update(mapper, connection, target):
    """Prevent edits to a step once it has been decided."""
    previous = _loaded_status(target)
    if previous is not None and previous != "PENDING":
        raise ImmutabilityViolationError(
            entity_type="ApprovalStep",
            entity_id=str(target.id),
            reason=f"Step already {previous} -- cannot modify",
        )


@event.listens_for(ApprovalModel, "before_update")
def prevent_decided_approval_update(mapper, connection, target):
    """Prevent edits to an approval once it has been decided."""
    previous = _loaded_status(target)
    if previous is not None and previous != "PENDING":
        raise ImmutabilityViolationError(
            entity_type="Approval",
            entity_id=str(target.id),
            reason=f"Approval already {previous} -- cannot modify",
        )


@event.listens_for(ApprovalStepModel, "before_delete")
def prevent_step_delete(mapper, connection, target):
    """Steps are never deleted."""
    raise ImmutabilityViolationError(
        entity_type="ApprovalStep",
        entity_id=str(target.id),
        reason="Approval steps cannot be deleted",
    )


@event.listens_for(ApprovalModel, "before_delete")
def prevent_approval_delete(mapper, connection, target):
    """Approvals are never deleted."""
    raise ImmutabilityViolationError(
        entity_type="Approval",
        entity_id=str(target.id),
        reason="Approvals cannot be deleted",
    )
