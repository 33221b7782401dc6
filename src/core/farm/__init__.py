"""`farm`: pure-Python accounting core of the weighted staking reward ledger.

- deterministic, integer-only transitions,
- immutable state (frozen dataclasses),
- fail-closed invariant checks.

Public API:
- `refresh_pool(pool, schedule, total_weight, total_staked, now) -> Pool`
- `settle_position(position, pool, now, *, migrated, scale) -> Settlement`
- `pending_view(position, pool, *, scale) -> int`
- `state_to_dict(state)` / `state_from_dict(d)`
"""

from .accumulator import refresh_pool, refresh_pools
from .errors import (
    CollaboratorError,
    DuplicateAsset,
    FarmError,
    FarmInvariantError,
    InsufficientBalance,
    InvalidAmount,
    InvalidRange,
    MigrationIntegrityFailure,
    MigratorNotConfigured,
    PoolNotFound,
    TimeRegression,
    TransferShortfall,
    Unauthorized,
)
from .settlement import (
    apply_deposit,
    apply_emergency_withdraw,
    apply_withdraw,
    pending_view,
    settle_position,
)
from .state import FarmState, initial_state, state_from_dict, state_to_dict
from .types import (
    ACC_SCALE,
    EmissionSchedule,
    Event,
    LedgerEvent,
    Pool,
    Settlement,
    UserPosition,
)

__all__ = [
    "refresh_pool",
    "refresh_pools",
    "settle_position",
    "pending_view",
    "apply_deposit",
    "apply_withdraw",
    "apply_emergency_withdraw",
    "FarmState",
    "initial_state",
    "state_from_dict",
    "state_to_dict",
    "ACC_SCALE",
    "EmissionSchedule",
    "Event",
    "LedgerEvent",
    "Pool",
    "Settlement",
    "UserPosition",
    "FarmError",
    "Unauthorized",
    "InvalidRange",
    "InvalidAmount",
    "DuplicateAsset",
    "PoolNotFound",
    "MigratorNotConfigured",
    "MigrationIntegrityFailure",
    "InsufficientBalance",
    "TimeRegression",
    "TransferShortfall",
    "CollaboratorError",
    "FarmInvariantError",
]
