"""
Reversion Engine Tests
======================

INVARIANTS TESTED:
==================
1. Transform then revert(1) returns the original symbol
2. Multi-step reversion composes: revert(s, a + b) == revert(revert(s, a), b)
3. Reversion never allocates and never advances the clock
4. A missing ancestor degrades to the furthest resolvable one
5. steps == 0 and root symbols return the input
"""

import pytest
from hypothesis import given, settings, strategies as st

from symbolspace.contracts.base import ErrorCode
from symbolspace.core.transform import Replace
from symbolspace.engine import SymbolRuntime


def build_chain(runtime, length):
    """Root {"count": 0} followed by `length` increments."""
    chain = [runtime.construct({"count": 0})]
    for _ in range(length):
        chain.append(runtime.transform(chain[-1], lambda v: {"count": v["count"] + 1}))
    return chain


@pytest.fixture
def runtime():
    return SymbolRuntime()


class TestRoundTrip:

    def test_revert_one_step_returns_parent(self, runtime):
        root, child = build_chain(runtime, 1)
        reverted = runtime.revert(child)
        assert reverted is root
        assert reverted.value == {"count": 0}

    def test_revert_does_not_allocate(self, runtime):
        chain = build_chain(runtime, 3)
        clock = runtime.logical_clock()
        size = runtime.space.size

        runtime.revert(chain[-1], 2)

        assert runtime.logical_clock() == clock
        assert runtime.space.size == size

    def test_zero_steps_is_identity(self, runtime):
        chain = build_chain(runtime, 2)
        assert runtime.revert(chain[-1], 0) is chain[-1]

    def test_root_reverts_to_itself(self, runtime):
        root = runtime.construct("root")
        outcome = runtime.revert_with_outcome(root, 3)
        assert outcome.symbol is root
        assert outcome.resolved_steps == 0
        assert not outcome.degraded


class TestMultiStep:

    def test_two_steps(self, runtime):
        chain = build_chain(runtime, 3)
        assert runtime.revert(chain[3], 2) is chain[1]

    def test_overshoot_stops_at_root(self, runtime):
        chain = build_chain(runtime, 3)
        outcome = runtime.revert_with_outcome(chain[3], 10)
        assert outcome.symbol is chain[0]
        assert outcome.resolved_steps == 3
        assert not outcome.degraded

    @settings(max_examples=30)
    @given(
        length=st.integers(min_value=0, max_value=8),
        a=st.integers(min_value=0, max_value=8),
        b=st.integers(min_value=0, max_value=8),
    )
    def test_steps_compose(self, length, a, b):
        runtime = SymbolRuntime()
        tip = build_chain(runtime, length)[-1]
        assert runtime.revert(tip, a + b) == runtime.revert(runtime.revert(tip, a), b)

    def test_history_newest_first(self, runtime):
        chain = build_chain(runtime, 3)
        assert runtime.history(chain[3]) == [chain[2], chain[1], chain[0]]


class TestBrokenProvenance:

    def test_missing_parent_degrades(self, runtime):
        chain = build_chain(runtime, 2)
        runtime.space.remove(chain[1].identity)

        outcome = runtime.revert_with_outcome(chain[2], 1)

        assert outcome.symbol is chain[2]
        assert outcome.resolved_steps == 0
        assert outcome.degraded
        assert outcome.missing == chain[1].identity
        assert outcome.error.code == ErrorCode.BROKEN_PROVENANCE

    def test_missing_middle_stops_at_last_resolved(self, runtime):
        chain = build_chain(runtime, 4)
        runtime.space.remove(chain[1].identity)

        outcome = runtime.revert_with_outcome(chain[4], 4)

        assert outcome.symbol is chain[2]
        assert outcome.resolved_steps == 2
        assert outcome.degraded

    def test_structural_revert_recovers_evicted_parent(self, runtime):
        root = runtime.construct({"a": 1})
        child = runtime.transform(root, Replace({"a": 2}))
        runtime.space.remove(root.identity)

        assert runtime.revert(child) is child
        restored = runtime.revert_structurally(child).symbol
        assert restored.value == {"a": 1}
        assert restored.identity == root.identity
