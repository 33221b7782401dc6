"""Invariant checkers for the farm ledger.

Each function returns True when the invariant holds. `check_pool_transition()`
and `check_position()` return the list of violated invariant ids (empty = all
pass); the controller refuses to commit a post-state with violations.
"""

from __future__ import annotations

from typing import Callable

from .math import accrued_reward
from .types import Pool, UserPosition


# -- Pool transitions ----------------------------------------------------------

def inv_acc_monotone(pre: Pool, post: Pool, now: int) -> bool:
    return post.acc_reward_per_unit >= pre.acc_reward_per_unit


def inv_settled_time_monotone(pre: Pool, post: Pool, now: int) -> bool:
    return post.last_settled_time >= pre.last_settled_time


def inv_settled_not_from_future(pre: Pool, post: Pool, now: int) -> bool:
    return post.last_settled_time <= now or post.last_settled_time == pre.last_settled_time


def inv_pool_weight_nonneg(pre: Pool, post: Pool, now: int) -> bool:
    return post.weight >= 0


# -- Positions -------------------------------------------------------------------

def inv_principal_nonneg(p: UserPosition, pool: Pool, scale: int) -> bool:
    return p.principal >= 0


def inv_locked_nonneg(p: UserPosition, pool: Pool, scale: int) -> bool:
    return p.locked_rewards >= 0


def inv_stake_time_nonneg(p: UserPosition, pool: Pool, scale: int) -> bool:
    return p.stake_time_integral >= 0 and p.stake_duration >= 0


def inv_baseline_matches_principal(p: UserPosition, pool: Pool, scale: int) -> bool:
    return p.reward_baseline == accrued_reward(p.principal, pool.acc_reward_per_unit, scale)


# ---------------------------------------------------------------------------
# Registries
# ---------------------------------------------------------------------------

POOL_INVARIANTS: dict[str, Callable[[Pool, Pool, int], bool]] = {
    "inv_acc_monotone": inv_acc_monotone,
    "inv_settled_time_monotone": inv_settled_time_monotone,
    "inv_settled_not_from_future": inv_settled_not_from_future,
    "inv_pool_weight_nonneg": inv_pool_weight_nonneg,
}

POSITION_INVARIANTS: dict[str, Callable[[UserPosition, Pool, int], bool]] = {
    "inv_principal_nonneg": inv_principal_nonneg,
    "inv_locked_nonneg": inv_locked_nonneg,
    "inv_stake_time_nonneg": inv_stake_time_nonneg,
    "inv_baseline_matches_principal": inv_baseline_matches_principal,
}


def check_pool_transition(pre: Pool, post: Pool, now: int) -> list[str]:
    """Return violated pool invariant ids for the transition *pre* -> *post*."""
    return [inv_id for inv_id, check_fn in POOL_INVARIANTS.items() if not check_fn(pre, post, now)]


def check_position(position: UserPosition, pool: Pool, scale: int) -> list[str]:
    """Return violated position invariant ids against the pool it was rebaselined on."""
    return [
        inv_id
        for inv_id, check_fn in POSITION_INVARIANTS.items()
        if not check_fn(position, pool, scale)
    ]
