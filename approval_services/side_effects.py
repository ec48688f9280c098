"""
approval_services.side_effects -- Post-commit cache and notification dispatch.

Responsibility:
    After an approval is created or a step transitions, invalidate cached
    views of the underlying business entity and notify the people who now
    have something to do (the next assignee) or something to learn (the
    requester, once the approval is decided).

Architecture position:
    Services layer.  Called by ``ApprovalOrchestrator`` after commit; the
    kernel state machine never calls it.

Invariants enforced:
    - Fire-and-forget: a failing collaborator is logged and recorded in the
      returned ``DispatchReport``; it never propagates and never affects
      the other collaborators.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol, runtime_checkable

from approval_kernel.domain.approval import (
    Approval,
    DispatchReport,
    SideEffectFailure,
    TransitionResult,
    WorkflowKind,
)
from approval_kernel.logging_config import get_logger

logger = get_logger("services.side_effects")


@runtime_checkable
class CacheInvalidator(Protocol):
    def invalidate(self, workflow_kind: WorkflowKind, workflow_ref_id: int) -> None: ...


@runtime_checkable
class ApprovalNotifier(Protocol):
    def approval_assigned(self, user_id: str, approval: Approval) -> None: ...

    def approval_resolved(self, user_id: str, approval: Approval) -> None: ...


class SideEffectDispatcher:
    """Invokes the cache and notification collaborators, best effort."""

    def __init__(
        self,
        cache: CacheInvalidator | None = None,
        notifier: ApprovalNotifier | None = None,
    ) -> None:
        self._cache = cache
        self._notifier = notifier

    def after_create(self, approval: Approval) -> DispatchReport:
        """Invalidate the entity's cache and tell the first assignee."""
        effects: list[tuple[str, Callable[[], None]]] = []
        self._add_invalidation(effects, approval)
        current = approval.current_step
        if self._notifier is not None and current is not None and current.assigned_to_user_id:
            effects.append((
                "approval_assigned",
                lambda: self._notifier.approval_assigned(current.assigned_to_user_id, approval),
            ))
        return self._run(effects, approval)

    def after_transition(self, result: TransitionResult) -> DispatchReport:
        """Invalidate, then notify the requester (terminal) or the next assignee."""
        approval = result.approval
        effects: list[tuple[str, Callable[[], None]]] = []
        self._add_invalidation(effects, approval)

        if self._notifier is not None:
            if result.terminated:
                effects.append((
                    "approval_resolved",
                    lambda: self._notifier.approval_resolved(approval.requested_by_id, approval),
                ))
            else:
                upcoming = result.next_step
                if upcoming is not None and upcoming.assigned_to_user_id:
                    effects.append((
                        "approval_assigned",
                        lambda: self._notifier.approval_assigned(
                            upcoming.assigned_to_user_id, approval,
                        ),
                    ))
        return self._run(effects, approval)

    def _add_invalidation(
        self,
        effects: list[tuple[str, Callable[[], None]]],
        approval: Approval,
    ) -> None:
        if self._cache is not None:
            effects.append((
                "cache_invalidate",
                lambda: self._cache.invalidate(approval.workflow_kind, approval.workflow_ref_id),
            ))

    def _run(
        self,
        effects: list[tuple[str, Callable[[], None]]],
        approval: Approval,
    ) -> DispatchReport:
        failures: list[SideEffectFailure] = []
        for name, effect in effects:
            try:
                effect()
            except Exception as exc:
                logger.exception(
                    "side_effect_failed",
                    extra={
                        "effect": name,
                        "approval_id": approval.id,
                        "workflow_kind": approval.workflow_kind.value,
                        "workflow_ref_id": approval.workflow_ref_id,
                        "error_type": type(exc).__name__,
                    },
                )
                failures.append(SideEffectFailure(name, type(exc).__name__, str(exc)))
        return DispatchReport(
            attempted=tuple(name for name, _ in effects),
            failures=tuple(failures),
        )
