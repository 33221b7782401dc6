"""Pure arithmetic for the farm reward ledger.

Every function is stateless and operates on plain Python ints. Division is
always `//` (floor), so rounding never pays out more than was emitted.
"""

from __future__ import annotations


# -- Emission ----------------------------------------------------------------

def emission_multiplier(from_time: int, to_time: int, start_time: int, end_time: int) -> int:
    """Elapsed emitting time of ``[from_time, to_time]`` inside ``[start_time, end_time]``.

    For ``from_time >= start_time`` this is: ``to - from`` when ``to <= end``,
    ``0`` when ``from >= end``, else ``end - from``.
    """
    lo = max(from_time, start_time)
    hi = min(to_time, end_time)
    return hi - lo if hi > lo else 0


def pool_emission(elapsed: int, emission_rate: int, weight: int, total_weight: int) -> int:
    """Reward owed to one pool: ``elapsed * rate * weight / total_weight``."""
    if total_weight == 0:
        return 0
    return (elapsed * emission_rate * weight) // total_weight


def accumulator_increment(reward: int, total_staked: int, scale: int) -> int:
    """Reward per staked unit, scaled: ``reward * scale / total_staked``."""
    if total_staked == 0:
        return 0
    return (reward * scale) // total_staked


# -- Positions ---------------------------------------------------------------

def accrued_reward(principal: int, acc_reward_per_unit: int, scale: int) -> int:
    """Reward earned by *principal* since pool inception: ``principal * acc / scale``."""
    return (principal * acc_reward_per_unit) // scale


def stake_time_audit(stake_time_integral: int, principal: int) -> int:
    """Reference stake-time product used to decide a slash.

    This is the cumulative stake-time sum times the *current* principal, not a
    time-weighted average.
    """
    return stake_time_integral * principal


def slash_split(locked: int, stake_time_integral: int, principal: int) -> tuple[int, int]:
    """Split a finalized locked reward into ``(kept, slashed)``.

    When the recorded integral exceeds the audit figure the locked amount is
    scaled by ``audit / integral`` and the remainder is slashed.
    """
    audit = stake_time_audit(stake_time_integral, principal)
    if stake_time_integral > audit:
        kept = (locked * audit) // stake_time_integral
        return kept, locked - kept
    return locked, 0
