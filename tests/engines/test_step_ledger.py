"""
Tests for the step ledger -- chain ordering rules.

Covers:
- validate_ordering(): empty, duplicates, gaps, non-1 start, sorting
- next_step(), is_final_step(), first_step()
- Property: any permutation of a dense chain validates and sorts
"""

from dataclasses import dataclass

import pytest
from hypothesis import given
from hypothesis import strategies as st

from approval_engines.step_ledger import (
    first_step,
    is_final_step,
    next_step,
    validate_ordering,
)
from approval_kernel.domain.approval import StepSpec
from approval_kernel.exceptions import InvalidChainError


@dataclass(frozen=True)
class _Step:
    step_order: int
    name: str = ""


def steps(*orders: int) -> list[_Step]:
    return [_Step(o, f"s{o}") for o in orders]


class TestValidateOrdering:
    def test_sorted_dense_chain_is_returned_in_order(self):
        result = validate_ordering(steps(3, 1, 2))
        assert [s.step_order for s in result] == [1, 2, 3]

    def test_single_step_chain(self):
        assert len(validate_ordering(steps(1))) == 1

    def test_empty_chain_rejected(self):
        with pytest.raises(InvalidChainError) as exc_info:
            validate_ordering([])
        assert exc_info.value.code == "INVALID_CHAIN"

    def test_duplicate_orders_rejected(self):
        with pytest.raises(InvalidChainError, match="Duplicate") as exc_info:
            validate_ordering(steps(1, 2, 2))
        assert exc_info.value.step_orders == [1, 2, 2]

    def test_gap_rejected(self):
        with pytest.raises(InvalidChainError, match="dense"):
            validate_ordering(steps(1, 3))

    def test_must_start_at_one(self):
        with pytest.raises(InvalidChainError):
            validate_ordering(steps(2, 3))

    def test_zero_order_rejected(self):
        with pytest.raises(InvalidChainError):
            validate_ordering(steps(0, 1))

    def test_accepts_step_specs(self):
        specs = [StepSpec(2, "bob"), StepSpec(1, "alice")]
        result = validate_ordering(specs)
        assert [s.assigned_to_user_id for s in result] == ["alice", "bob"]


class TestNavigation:
    def test_next_step_is_smallest_greater_order(self):
        chain = steps(3, 1, 2)
        assert next_step(chain, 1).step_order == 2
        assert next_step(chain, 2).step_order == 3

    def test_next_step_after_last_is_none(self):
        assert next_step(steps(1, 2), 2) is None

    def test_is_final_step(self):
        chain = steps(1, 2, 3)
        assert is_final_step(chain, chain[2])
        assert not is_final_step(chain, chain[0])

    def test_single_step_is_final(self):
        chain = steps(1)
        assert is_final_step(chain, chain[0])

    def test_first_step(self):
        chain = steps(2, 1)
        assert first_step(chain).name == "s1"

    def test_first_step_missing(self):
        assert first_step(steps(2)) is None


class TestLedgerProperties:
    @given(st.permutations(list(range(1, 9))).flatmap(
        lambda perm: st.integers(min_value=1, max_value=len(perm)).map(lambda n: perm[:n])
    ))
    def test_dense_prefix_permutations(self, orders):
        """A shuffled chain is valid exactly when its orders are 1..N."""
        chain = steps(*orders)
        if sorted(orders) == list(range(1, len(orders) + 1)):
            result = validate_ordering(chain)
            assert [s.step_order for s in result] == sorted(orders)
            assert is_final_step(result, result[-1])
            assert first_step(result).step_order == 1
        else:
            with pytest.raises(InvalidChainError):
                validate_ordering(chain)

    @given(st.integers(min_value=1, max_value=20))
    def test_walking_next_step_visits_every_step_once(self, n):
        chain = validate_ordering(steps(*range(n, 0, -1)))
        visited = [first_step(chain).step_order]
        while (following := next_step(chain, visited[-1])) is not None:
            visited.append(following.step_order)
        assert visited == list(range(1, n + 1))
