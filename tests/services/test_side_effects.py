"""
Tests for SideEffectDispatcher.

Covers:
- after_create(): cache invalidation + first assignee notification
- after_transition(): advance notifies next assignee, terminal notifies
  requester
- Failures are logged, reported and never raised
"""

from datetime import datetime, timezone

from approval_kernel.domain.approval import (
    Approval,
    ApprovalStatus,
    ApprovalStep,
    StepDecision,
    StepStatus,
    TransitionResult,
    WorkflowKind,
)
from approval_services.side_effects import SideEffectDispatcher


def make_approval(status=ApprovalStatus.PENDING, current=1) -> Approval:
    steps = (
        ApprovalStep(id=11, approval_id=1, step_order=1, assigned_to_user_id="alice"),
        ApprovalStep(id=12, approval_id=1, step_order=2, assigned_to_user_id="bob"),
    )
    current_id = None if current is None else steps[current - 1].id
    return Approval(
        id=1,
        workflow_kind=WorkflowKind.CHANGE_REQUEST,
        workflow_ref_id=321,
        status=status,
        requires_all_steps=True,
        current_step_id=current_id,
        requested_by_id="requester",
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
        steps=steps,
    )


def make_result(approval: Approval, terminated: bool) -> TransitionResult:
    step = approval.steps[0]
    return TransitionResult(
        approval=approval,
        step=ApprovalStep(
            id=step.id, approval_id=1, step_order=1,
            assigned_to_user_id="alice", status=StepStatus.APPROVED,
        ),
        decision=StepDecision.APPROVE,
        terminated=terminated,
    )


class TestDispatch:
    def test_after_create(self, cache, notifier):
        report = SideEffectDispatcher(cache, notifier).after_create(make_approval())
        assert report.ok
        assert report.attempted == ("cache_invalidate", "approval_assigned")
        assert cache.invalidated == [(WorkflowKind.CHANGE_REQUEST, 321)]
        assert notifier.assigned == [("alice", 1)]

    def test_advance_notifies_next_assignee(self, cache, notifier):
        result = make_result(make_approval(current=2), terminated=False)
        SideEffectDispatcher(cache, notifier).after_transition(result)
        assert notifier.assigned == [("bob", 1)]
        assert notifier.resolved == []

    def test_terminal_notifies_requester(self, cache, notifier):
        approval = make_approval(status=ApprovalStatus.APPROVED, current=None)
        SideEffectDispatcher(cache, notifier).after_transition(make_result(approval, True))
        assert notifier.resolved == [("requester", 1, "APPROVED")]
        assert notifier.assigned == []

    def test_without_collaborators(self):
        report = SideEffectDispatcher().after_create(make_approval())
        assert report.ok
        assert report.attempted == ()


class TestFailures:
    def test_failures_are_swallowed_and_reported(self, cache, notifier, captured_logs):
        cache.fail_with = ConnectionError("redis unavailable")
        report = SideEffectDispatcher(cache, notifier).after_create(make_approval())

        assert not report.ok
        assert [f.effect for f in report.failures] == ["cache_invalidate"]
        assert report.failures[0].error_type == "ConnectionError"
        # The notifier still ran
        assert notifier.assigned == [("alice", 1)]

        logged = [r for r in captured_logs() if r["message"] == "side_effect_failed"]
        assert len(logged) == 1
        assert logged[0]["effect"] == "cache_invalidate"
        assert logged[0]["workflow_ref_id"] == 321

    def test_every_collaborator_failing(self, cache, notifier):
        cache.fail_with = RuntimeError("cache")
        notifier.fail_with = RuntimeError("mail")
        approval = make_approval(status=ApprovalStatus.REJECTED, current=None)
        report = SideEffectDispatcher(cache, notifier).after_transition(make_result(approval, True))
        assert [f.effect for f in report.failures] == ["cache_invalidate", "approval_resolved"]
