"""
Module: approval_kernel.selectors.approval_selector
Responsibility: Query surface for approvals -- single approval views with
    user display info, the authorization-gated workflow payload, a user's
    pending queue, and the pending-approval lookup per business entity.
Architecture position: Kernel > Selectors.  Read-only.

Invariants enforced:
    - Workflow payloads are only returned to users assigned to some step of
      the approval, and are always marked non-cacheable.
    - A user's queue contains only PENDING approvals whose *current* step is
      assigned to that user.

Failure modes:
    - ApprovalNotFoundError for unknown approval ids.
    - ForbiddenApproverError when a non-assignee requests a payload.
    - UnknownWorkflowKindError when the approval's kind has no registry entry.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, Protocol

from sqlalchemy import case, select

from approval_kernel.domain.approval import (
    PRIORITY_RANK,
    Approval,
    ApprovalStatus,
    WorkflowKind,
)
from approval_kernel.domain.workflow_registry import WorkflowRegistry
from approval_kernel.exceptions import ApprovalNotFoundError, ForbiddenApproverError
from approval_kernel.models.approval import ApprovalModel, ApprovalStepModel
from approval_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class UserInfo:
    id: str
    name: str | None = None
    email: str | None = None


class UserDirectory(Protocol):
    """External user lookup.  Unknown ids are simply absent from the result."""

    def lookup(self, user_ids: Iterable[str]) -> dict[str, UserInfo]: ...


@dataclass(frozen=True)
class ApprovalView:
    """An approval with its ordered steps and resolved user display info."""

    approval: Approval
    users: dict[str, UserInfo] = field(default_factory=dict)

    def user(self, user_id: str | None) -> UserInfo | None:
        if user_id is None:
            return None
        return self.users.get(user_id)

    @property
    def requested_by(self) -> UserInfo | None:
        return self.user(self.approval.requested_by_id)


@dataclass(frozen=True)
class WorkflowPayloadView:
    approval: Approval
    payload: Any
    title: str
    description: str | None
    cacheable: bool = False


@dataclass(frozen=True)
class UserApprovals:
    """A user's pending approval queue."""

    user_id: str
    approvals: tuple[Approval, ...]
    by_kind: dict[WorkflowKind, tuple[Approval, ...]]

    @property
    def total_count(self) -> int:
        return len(self.approvals)


class ApprovalSelector(BaseSelector[ApprovalModel]):
    """Read-only access to approvals."""

    def __init__(
        self,
        session,
        registry: WorkflowRegistry,
        user_directory: UserDirectory | None = None,
    ):
        super().__init__(session)
        self._registry = registry
        self._users = user_directory

    def get_approval(self, approval_id: int) -> ApprovalView:
        approval = self._get(approval_id)
        ids = set(approval.assignee_ids())
        ids.add(approval.requested_by_id)
        for user_id in (approval.completed_by_id, *(s.decided_by_id for s in approval.steps)):
            if user_id is not None:
                ids.add(user_id)
        return ApprovalView(approval=approval, users=self._lookup(ids))

    def get_workflow_payload(self, approval_id: int, caller_id: str) -> WorkflowPayloadView:
        """Business payload for an approval, visible to its assignees only.

        Raises:
            ApprovalNotFoundError: unknown approval.
            ForbiddenApproverError: caller is not assigned to any step.
        """
        approval = self._get(approval_id)
        if caller_id not in approval.assignee_ids():
            raise ForbiddenApproverError(actor_id=caller_id, approval_id=approval_id)

        entry = self._registry.resolve(approval.workflow_kind)
        payload = entry.fetch_details(approval.workflow_ref_id)
        return WorkflowPayloadView(
            approval=approval,
            payload=payload,
            title=entry.title_for(payload),
            description=entry.description_for(payload),
            cacheable=False,
        )

    def get_user_approvals(self, user_id: str) -> UserApprovals:
        """Pending approvals waiting on ``user_id``.

        Ordered by priority (HIGH first), then newest first.
        """
        priority_rank = case(
            *((ApprovalModel.priority == p.value, rank) for p, rank in PRIORITY_RANK.items()),
            else_=0,
        )
        stmt = (
            select(ApprovalModel)
            .join(ApprovalStepModel, ApprovalStepModel.id == ApprovalModel.current_step_id)
            .where(
                ApprovalModel.status == ApprovalStatus.PENDING.value,
                ApprovalStepModel.assigned_to_user_id == user_id,
            )
            .order_by(
                priority_rank.desc(),
                ApprovalModel.created_at.desc(),
                ApprovalModel.id.desc(),
            )
        )
        approvals = [row.to_dto() for row in self.session.execute(stmt).scalars().all()]

        grouped: dict[WorkflowKind, list[Approval]] = {}
        for approval in approvals:
            grouped.setdefault(approval.workflow_kind, []).append(approval)

        return UserApprovals(
            user_id=user_id,
            approvals=tuple(approvals),
            by_kind={kind: tuple(items) for kind, items in grouped.items()},
        )

    def get_pending_for_workflow(
        self,
        workflow_kind: WorkflowKind | str,
        workflow_ref_id: int,
    ) -> Approval | None:
        """The non-terminal approval for a business entity, if any."""
        stmt = (
            select(ApprovalModel)
            .where(
                ApprovalModel.workflow_kind == WorkflowKind(workflow_kind).value,
                ApprovalModel.workflow_ref_id == workflow_ref_id,
                ApprovalModel.status == ApprovalStatus.PENDING.value,
            )
            .order_by(ApprovalModel.id.desc())
        )
        row = self.session.execute(stmt).scalars().first()
        return row.to_dto() if row is not None else None

    def _get(self, approval_id: int) -> Approval:
        model = self.session.get(ApprovalModel, approval_id)
        if model is None:
            raise ApprovalNotFoundError(approval_id)
        return model.to_dto()

    def _lookup(self, user_ids: set[str]) -> dict[str, UserInfo]:
        if self._users is None or not user_ids:
            return {}
        return dict(self._users.lookup(sorted(user_ids)))
