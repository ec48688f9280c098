"""
Concurrency tests for step transitions.

Two (or more) workers decide the same current step at the same moment.
Exactly one wins; every loser gets NotCurrentStepError; the workflow hook
fires once.

Run with: pytest tests/concurrency/test_transition_race.py -v
Skip with: pytest -m "not slow_locks"
"""

from concurrent.futures import ThreadPoolExecutor
from threading import Barrier

import pytest

from approval_kernel.domain.approval import ApprovalStatus, StepDecision, StepStatus
from approval_kernel.exceptions import NotCurrentStepError

pytestmark = pytest.mark.slow_locks


def race(orchestrator, step_id, actor_id, decisions):
    """Run one transition per decision, released together by a barrier."""
    barrier = Barrier(len(decisions))

    def attempt(decision):
        barrier.wait()
        try:
            return orchestrator.transition_step(step_id, actor_id, decision)
        except NotCurrentStepError as exc:
            return exc

    with ThreadPoolExecutor(max_workers=len(decisions)) as pool:
        return list(pool.map(attempt, decisions))


class TestTransitionRace:
    def test_two_approvals_one_winner(self, orchestrator, create_vault_approval, hooks):
        approval = create_vault_approval("alice")
        step_id = approval.steps[0].id

        outcomes = race(orchestrator, step_id, "alice", [StepDecision.APPROVE] * 2)

        winners = [o for o in outcomes if not isinstance(o, Exception)]
        losers = [o for o in outcomes if isinstance(o, NotCurrentStepError)]
        assert len(winners) == 1
        assert len(losers) == 1
        assert "already decided" in str(losers[0])
        assert hooks.approved == [(101, "alice")]

    def test_approve_vs_reject_one_outcome(self, orchestrator, create_vault_approval, hooks):
        approval = create_vault_approval("alice")
        step_id = approval.steps[0].id

        outcomes = race(
            orchestrator, step_id, "alice", [StepDecision.APPROVE, StepDecision.REJECT],
        )
        winners = [o for o in outcomes if not isinstance(o, Exception)]
        assert len(winners) == 1
        assert hooks.call_count == 1

        view = orchestrator.get_approval(approval.id)
        expected = (
            ApprovalStatus.APPROVED
            if winners[0].decision is StepDecision.APPROVE
            else ApprovalStatus.REJECTED
        )
        assert view.approval.status is expected

    def test_many_workers_middle_step(self, orchestrator, create_vault_approval, hooks):
        approval = create_vault_approval("alice", "bob", "carol")
        a, b, c = approval.steps
        orchestrator.approve_step(a.id, "alice")

        outcomes = race(orchestrator, b.id, "bob", [StepDecision.APPROVE] * 6)

        winners = [o for o in outcomes if not isinstance(o, Exception)]
        assert len(winners) == 1
        assert winners[0].approval.current_step_id == c.id
        assert sum(isinstance(o, NotCurrentStepError) for o in outcomes) == 5

        view = orchestrator.get_approval(approval.id)
        assert view.approval.status is ApprovalStatus.PENDING
        assert view.approval.current_step_id == c.id
        assert view.approval.step_by_order(2).status is StepStatus.APPROVED
        assert view.approval.step_by_order(3).status is StepStatus.PENDING
        assert hooks.call_count == 0
