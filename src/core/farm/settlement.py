"""Per-user settlement.

`settle_position()` runs before every balance change. It turns the pool's
accumulator delta into a pending reward, extends the stake-time counters and,
once the migration flag is set, finalizes the locked reward (possibly slashed).

The pool passed in must already be refreshed to `now`; the controller does
that first, so both functions here stay pure.
"""

from __future__ import annotations

from dataclasses import replace

from .errors import FarmInvariantError, InsufficientBalance, InvalidAmount, TimeRegression
from .math import accrued_reward, slash_split
from .types import Pool, Settlement, UserPosition


def _pending(position: UserPosition, pool: Pool, scale: int) -> int:
    if position.principal == 0:
        return 0
    pending = accrued_reward(position.principal, pool.acc_reward_per_unit, scale) - position.reward_baseline
    if pending < 0:
        raise FarmInvariantError(["inv_pending_nonneg"])
    return pending


def pending_view(position: UserPosition, pool: Pool, *, scale: int) -> int:
    """Reward that `settle_position` would compute as pending against *pool*."""
    return _pending(position, pool, scale)


def settle_position(
    position: UserPosition,
    pool: Pool,
    now: int,
    *,
    migrated: bool,
    scale: int,
) -> Settlement:
    """Settle *position* at *now*.

    Raises:
        TimeRegression: *now* is before the position's last settlement.
        FarmInvariantError: the baseline exceeds the accrued reward.
    """
    if now < position.last_settlement_time:
        raise TimeRegression(
            f"now {now} < last_settlement_time {position.last_settlement_time}"
        )

    pending = _pending(position, pool, scale)
    stake_time_integral = position.stake_time_integral
    stake_duration = position.stake_duration
    if position.principal > 0:
        dt = now - position.last_settlement_time
        stake_time_integral += position.principal * dt
        stake_duration += dt

    if not migrated:
        settled = replace(
            position,
            locked_rewards=position.locked_rewards + pending,
            stake_time_integral=stake_time_integral,
            stake_duration=stake_duration,
            last_settlement_time=now,
        )
        return Settlement(position=settled, pending=pending)

    locked = position.locked_rewards + pending
    payout, slashed = slash_split(locked, stake_time_integral, position.principal)
    settled = replace(
        position,
        locked_rewards=0,
        stake_time_integral=stake_time_integral,
        stake_duration=stake_duration,
        last_settlement_time=now,
    )
    return Settlement(position=settled, pending=pending, payout=payout, slashed=slashed)


# -- Balance updates (applied to an already-settled position) -----------------

def _rebaseline(position: UserPosition, principal: int, pool: Pool, scale: int) -> UserPosition:
    return replace(
        position,
        principal=principal,
        reward_baseline=accrued_reward(principal, pool.acc_reward_per_unit, scale),
    )


def apply_deposit(position: UserPosition, amount: int, pool: Pool, *, scale: int) -> UserPosition:
    if amount < 0:
        raise InvalidAmount(f"deposit amount must be non-negative: {amount}")
    return _rebaseline(position, position.principal + amount, pool, scale)


def apply_withdraw(position: UserPosition, amount: int, pool: Pool, *, scale: int) -> UserPosition:
    if amount < 0:
        raise InvalidAmount(f"withdraw amount must be non-negative: {amount}")
    if amount > position.principal:
        raise InsufficientBalance(f"withdraw {amount} exceeds principal {position.principal}")
    return _rebaseline(position, position.principal - amount, pool, scale)


def apply_emergency_withdraw(position: UserPosition) -> UserPosition:
    """Zero principal and baseline; locked rewards and stake-time are forfeited in place."""
    return replace(position, principal=0, reward_baseline=0)
