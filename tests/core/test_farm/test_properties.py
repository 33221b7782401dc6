"""Property tests: random deposit/withdraw sequences through the ledger.

Checks that the accumulator never decreases, pending rewards never go negative,
and the rewards credited to stakers never exceed what the schedule emitted
(up to one unit of rounding per settlement).
"""

from __future__ import annotations

import importlib.util

import pytest

if importlib.util.find_spec("hypothesis") is None:  # pragma: no cover
    pytest.skip("hypothesis not installed", allow_module_level=True)

import hypothesis.strategies as st
from hypothesis import given, settings

from src.core.farm.math import emission_multiplier
from src.core.farm.settlement import pending_view
from src.integration.collaborators import InMemoryAwardSink, InMemoryStakeVault, ManualClock
from src.integration.config import LedgerConfig
from src.integration.ledger import LedgerController

ACCOUNTS = ("alice", "bob", "carol")
RATE = 7
END = 2000

_step = st.tuples(
    st.integers(min_value=0, max_value=300),
    st.sampled_from(ACCOUNTS),
    st.sampled_from(("deposit", "withdraw")),
    st.integers(min_value=0, max_value=500),
)


def _ledger():
    clock = ManualClock(0)
    vault = InMemoryStakeVault()
    for account in ACCOUNTS:
        vault.fund(account, "LP", 10**6)
    ctl = LedgerController(
        LedgerConfig(owner="admin", emission_rate=RATE, start_time=0, end_time=END),
        clock=clock,
        vault=vault,
        award_sink=InMemoryAwardSink(),
    )
    ctl.add_pool(3, "LP", caller="admin")
    return ctl, clock, vault


@settings(max_examples=150, deadline=None)
@given(steps=st.lists(_step, max_size=30))
def test_rewards_bounded_by_emission(steps):
    ctl, clock, vault = _ledger()
    last_acc = 0
    for dt, account, op, amount in steps:
        clock.advance(dt)
        if op == "deposit":
            ctl.deposit(0, account, amount)
        else:
            ctl.withdraw(0, account, min(amount, ctl.position(0, account).principal))

        acc = ctl.pool(0).acc_reward_per_unit
        assert acc >= last_acc
        last_acc = acc
        for who in ACCOUNTS:
            assert ctl.pending_reward(0, who) >= 0

    pool = ctl.pool(0)
    principal = sum(ctl.position(0, who).principal for who in ACCOUNTS)
    assert principal == vault.total_staked("LP")

    emitted = RATE * emission_multiplier(0, pool.last_settled_time, 0, END)
    credited = sum(
        ctl.position(0, who).locked_rewards + pending_view(ctl.position(0, who), pool, scale=10**12)
        for who in ACCOUNTS
    )
    assert credited <= emitted + len(steps) + len(ACCOUNTS)


@settings(max_examples=100, deadline=None)
@given(
    deposit=st.integers(min_value=1, max_value=10**6),
    t1=st.integers(min_value=0, max_value=END),
    t2=st.integers(min_value=0, max_value=END),
)
def test_pending_view_matches_settlement(deposit, t1, t2):
    ctl, clock, _ = _ledger()
    clock.set(min(t1, t2))
    ctl.deposit(0, "alice", deposit)
    clock.set(max(t1, t2))
    expected = ctl.pending_reward(0, "alice")
    settlement = ctl.deposit(0, "alice", 0)
    assert settlement.pending == expected
    assert ctl.position(0, "alice").locked_rewards == expected
