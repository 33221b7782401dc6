"""Data types for the farm reward ledger.

All types are frozen dataclasses (immutable); transitions build new values with
`dataclasses.replace()`.

Units/conventions:
- times are integer clock ticks (e.g. block heights),
- `acc_reward_per_unit` is reward per staked unit scaled by `acc_scale`
  (conventionally 1e12),
- every amount is a non-negative integer in the asset's smallest unit.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, unique
from typing import Any, Mapping

from .errors import InvalidAmount, InvalidRange

ACC_SCALE: int = 1_000_000_000_000  # 1e12

AccountId = str
AssetId = str


def _is_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


@dataclass(frozen=True)
class EmissionSchedule:
    """Global flat emission confined to ``[start_time, end_time]``."""

    emission_rate: int
    start_time: int
    end_time: int
    acc_scale: int = ACC_SCALE

    def __post_init__(self) -> None:
        if not _is_int(self.emission_rate) or self.emission_rate < 0:
            raise InvalidAmount("emission_rate must be a non-negative int")
        if not _is_int(self.start_time) or not _is_int(self.end_time):
            raise InvalidRange("start_time and end_time must be ints")
        if self.start_time >= self.end_time:
            raise InvalidRange(f"start_time {self.start_time} must be < end_time {self.end_time}")
        if not _is_int(self.acc_scale) or self.acc_scale <= 0:
            raise InvalidAmount("acc_scale must be a positive int")


@dataclass(frozen=True)
class Pool:
    """A segregated stake of one asset earning a weighted share of emission."""

    asset_id: AssetId
    weight: int = 0
    last_settled_time: int = 0
    acc_reward_per_unit: int = 0


@dataclass(frozen=True)
class UserPosition:
    """Per (pool, account) settlement state. The zero value is a fresh position."""

    principal: int = 0
    reward_baseline: int = 0
    locked_rewards: int = 0
    stake_duration: int = 0
    last_settlement_time: int = 0
    stake_time_integral: int = 0


@dataclass(frozen=True)
class Settlement:
    """Outcome of settling one position at one point in time.

    `payout` goes to the award sink as credit for the account, `slashed` is
    destroyed. Both are zero until the migration flag is set.
    """

    position: UserPosition
    pending: int = 0
    payout: int = 0
    slashed: int = 0


@unique
class Event(Enum):
    POOL_ADDED = "PoolAdded"
    WEIGHT_SET = "WeightSet"
    MIGRATOR_SET = "MigratorSet"
    POOL_MIGRATED = "PoolMigrated"
    MIGRATION_FINALIZED = "MigrationFinalized"
    OWNERSHIP_TRANSFERRED = "OwnershipTransferred"
    DEPOSIT = "Deposit"
    WITHDRAW = "Withdraw"
    EMERGENCY_WITHDRAW = "EmergencyWithdraw"
    POOL_REFRESHED = "PoolRefreshed"
    REWARD_PAID = "RewardPaid"
    REWARD_SLASHED = "RewardSlashed"


@dataclass(frozen=True)
class LedgerEvent:
    """An observable record of a committed ledger call."""

    event: Event
    time: int
    pool_id: int | None = None
    account: AccountId | None = None
    amount: int = 0
    data: Mapping[str, Any] | None = None
