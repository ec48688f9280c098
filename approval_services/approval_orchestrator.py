"""
approval_services.approval_orchestrator -- Caller-facing approval operations.

Responsibility:
    Entry point for hosts (HTTP handlers, jobs, other services).  Opens a
    session per call, runs the kernel state machine or selector inside
    ``session_scope``, commits, and only then invokes the workflow hook of
    a terminal transition and the side-effect dispatcher.

Architecture position:
    Services layer.  May import from approval_kernel, approval_engines and
    approval_config.  Thin coordinator: no status logic of its own.

Invariants enforced:
    - Workflow hooks run after the decision has committed, at most once per
      call, and only when that call terminated the approval.  Since only
      one transition can terminate an approval, each hook fires exactly
      once per approval lifetime.
    - A hook failure never rolls back the decision.  It is logged as
      ``workflow_hook_failed`` and returned as a failed ``HookOutcome``.

Failure modes:
    - Every kernel error (InvalidChainError, NotCurrentStepError,
      ForbiddenApproverError, ...) propagates after rollback.
    - RouteNotFoundError when no route table is configured or the route
      is missing.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import replace
from typing import Any
from uuid import uuid4

from sqlalchemy.orm import Session, sessionmaker

from approval_config.route_table import RouteTable
from approval_engines.routing import expand_route
from approval_kernel.db.engine import session_scope
from approval_kernel.domain.approval import (
    Approval,
    ApprovalPriority,
    ApprovalStatus,
    HookOutcome,
    StepDecision,
    StepSpec,
    TransitionResult,
    WorkflowKind,
)
from approval_kernel.domain.clock import Clock, SystemClock
from approval_kernel.domain.workflow_registry import WorkflowRegistry
from approval_kernel.exceptions import RouteNotFoundError
from approval_kernel.logging_config import LogContext, get_logger
from approval_kernel.selectors.approval_selector import (
    ApprovalSelector,
    ApprovalView,
    UserApprovals,
    UserDirectory,
    WorkflowPayloadView,
)
from approval_kernel.services.approval_service import ApprovalService
from approval_services.side_effects import SideEffectDispatcher

logger = get_logger("services.approval_orchestrator")


def _correlation_id() -> str:
    """The host's bound correlation id, or a fresh one for this call."""
    return LogContext.get("correlation_id") or str(uuid4())


class ApprovalOrchestrator:
    """Transaction owner and post-commit coordinator for approvals."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        registry: WorkflowRegistry,
        clock: Clock | None = None,
        route_table: RouteTable | None = None,
        dispatcher: SideEffectDispatcher | None = None,
        user_directory: UserDirectory | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._registry = registry
        self._clock = clock or SystemClock()
        self._routes = route_table
        self._dispatcher = dispatcher or SideEffectDispatcher()
        self._users = user_directory

    # =========================================================================
    # Commands
    # =========================================================================

    def create_approval(
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
        kind_name = getattr(workflow_kind, "value", workflow_kind)
        with LogContext.bind(
            correlation_id=_correlation_id(),
            actor_id=requested_by_id,
            workflow_kind=kind_name,
        ):
            with session_scope(self._session_factory) as session:
                approval = ApprovalService(session, self._registry, self._clock).create(
                    workflow_kind,
                    workflow_ref_id,
                    requested_by_id,
                    steps,
                    requires_all_steps,
                    title=title,
                    description=description,
                    priority=priority,
                )
            report = self._dispatcher.after_create(approval)
            if not report.ok:
                logger.warning(
                    "approval_side_effects_degraded",
                    extra={
                        "approval_id": approval.id,
                        "failed_effects": [f.effect for f in report.failures],
                    },
                )
        return approval

    def create_approval_from_route(
        self,
        workflow_kind: WorkflowKind | str,
        workflow_ref_id: int,
        requested_by_id: str,
        context: Mapping[str, Any],
        route_name: str | None = None,
        *,
        title: str | None = None,
        description: str | None = None,
        priority: ApprovalPriority | str = ApprovalPriority.MEDIUM,
    ) -> Approval:
        """Expand a configured route against ``context`` and create from it."""
        self._registry.resolve(workflow_kind)
        kind = WorkflowKind(workflow_kind)
        if self._routes is None:
            raise RouteNotFoundError(kind.value, route_name)
        route = self._routes.get(kind, route_name)
        steps = expand_route(route, context)
        logger.debug(
            "approval_route_expanded",
            extra={
                "workflow_kind": kind.value,
                "route_name": route.route_name,
                "step_count": len(steps),
            },
        )
        return self.create_approval(
            kind,
            workflow_ref_id,
            requested_by_id,
            steps,
            route.requires_all_steps,
            title=title,
            description=description or route.description,
            priority=priority,
        )

    def transition_step(
        self,
        step_id: int,
        acting_user_id: str,
        decision: StepDecision | str,
        comment: str | None = None,
        reason: str | None = None,
    ) -> TransitionResult:
        """Decide a step; on termination run the workflow hook after commit."""
        with LogContext.bind(
            correlation_id=_correlation_id(),
            step_id=step_id,
            actor_id=acting_user_id,
        ):
            with session_scope(self._session_factory) as session:
                result = ApprovalService(session, self._registry, self._clock).transition(
                    step_id, acting_user_id, decision, comment=comment, reason=reason,
                )

            if result.terminated:
                result = replace(result, hook_outcome=self._run_hook(result, acting_user_id))
            result = replace(result, side_effects=self._dispatcher.after_transition(result))
        return result

    def approve_step(
        self,
        step_id: int,
        acting_user_id: str,
        comment: str | None = None,
    ) -> TransitionResult:
        return self.transition_step(step_id, acting_user_id, StepDecision.APPROVE, comment=comment)

    def reject_step(
        self,
        step_id: int,
        acting_user_id: str,
        reason: str | None = None,
        comment: str | None = None,
    ) -> TransitionResult:
        return self.transition_step(
            step_id, acting_user_id, StepDecision.REJECT, comment=comment, reason=reason,
        )

    # =========================================================================
    # Queries
    # =========================================================================

    def get_approval(self, approval_id: int) -> ApprovalView:
        with session_scope(self._session_factory) as session:
            return self._selector(session).get_approval(approval_id)

    def get_workflow_payload(self, approval_id: int, caller_id: str) -> WorkflowPayloadView:
        with session_scope(self._session_factory) as session:
            return self._selector(session).get_workflow_payload(approval_id, caller_id)

    def get_user_approvals(self, user_id: str) -> UserApprovals:
        with session_scope(self._session_factory) as session:
            return self._selector(session).get_user_approvals(user_id)

    def get_pending_for_workflow(
        self,
        workflow_kind: WorkflowKind | str,
        workflow_ref_id: int,
    ) -> Approval | None:
        with session_scope(self._session_factory) as session:
            return self._selector(session).get_pending_for_workflow(workflow_kind, workflow_ref_id)

    # =========================================================================
    # Internals
    # =========================================================================

    def _selector(self, session: Session) -> ApprovalSelector:
        return ApprovalSelector(session, self._registry, self._users)

    def _run_hook(self, result: TransitionResult, acting_user_id: str) -> HookOutcome:
        approval = result.approval
        entry = self._registry.resolve(approval.workflow_kind)

        if approval.status is ApprovalStatus.APPROVED:
            hook = "on_approved"
        else:
            hook = "on_rejected"

        try:
            if hook == "on_approved":
                entry.on_approved(approval.workflow_ref_id, acting_user_id)
            else:
                entry.on_rejected(
                    approval.workflow_ref_id,
                    acting_user_id,
                    result.step.reason or result.step.comment,
                )
        except Exception as exc:
            logger.exception(
                "workflow_hook_failed",
                extra={
                    "hook": hook,
                    "approval_id": approval.id,
                    "workflow_kind": approval.workflow_kind.value,
                    "workflow_ref_id": approval.workflow_ref_id,
                    "approval_status": approval.status.value,
                },
            )
            return HookOutcome(
                hook=hook,
                succeeded=False,
                error_type=type(exc).__name__,
                error_message=str(exc),
            )

        logger.info(
            "workflow_hook_completed",
            extra={
                "hook": hook,
                "approval_id": approval.id,
                "workflow_kind": approval.workflow_kind.value,
                "workflow_ref_id": approval.workflow_ref_id,
            },
        )
        return HookOutcome(hook=hook, succeeded=True)
