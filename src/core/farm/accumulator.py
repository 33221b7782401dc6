"""Per-pool reward accumulator.

Pools are advanced lazily: a refresh folds every tick since
`last_settled_time` into `acc_reward_per_unit` in one step, so the cost of a
call does not depend on how much time has passed.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Callable, Sequence

from .math import accumulator_increment, emission_multiplier, pool_emission
from .types import AssetId, EmissionSchedule, Pool


def refresh_pool(
    pool: Pool,
    schedule: EmissionSchedule,
    total_weight: int,
    total_staked: int,
    now: int,
) -> Pool:
    """Return *pool* advanced to *now*.

    With nothing staked only the clock moves: the skipped emission is not
    credited to whoever stakes next.
    """
    if now <= pool.last_settled_time:
        return pool
    if total_staked == 0:
        return replace(pool, last_settled_time=now)

    elapsed = emission_multiplier(pool.last_settled_time, now, schedule.start_time, schedule.end_time)
    reward = pool_emission(elapsed, schedule.emission_rate, pool.weight, total_weight)
    return replace(
        pool,
        acc_reward_per_unit=pool.acc_reward_per_unit
        + accumulator_increment(reward, total_staked, schedule.acc_scale),
        last_settled_time=now,
    )


def refresh_pools(
    pools: Sequence[Pool],
    schedule: EmissionSchedule,
    total_weight: int,
    staked_of: Callable[[AssetId], int],
    now: int,
) -> tuple[Pool, ...]:
    """Refresh every pool. O(len(pools)); meant for administrative callers."""
    return tuple(
        refresh_pool(pool, schedule, total_weight, staked_of(pool.asset_id), now)
        for pool in pools
    )
