"""
Ledger controller (imperative shell around `src/core/farm`).

Every public call:
1. reads `now` once from the clock,
2. computes the next pool/position values with the pure core,
3. checks invariants on the post-state,
4. runs external effects (vault, then award sink), unwinding vault movements
   if a later effect fails,
5. commits state and emits events only after every effect succeeded.

A raised `FarmError` therefore leaves the ledger unchanged.

Serialization: user calls hold the lock of their pool, so calls on different
pools run concurrently. Administrative calls and `refresh_all_pools()` hold the
admin lock plus every pool lock (ascending pool id).
"""

from __future__ import annotations

import logging
import threading
from contextlib import ExitStack, contextmanager
from dataclasses import replace
from functools import partial
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from ..core.farm.accumulator import refresh_pool, refresh_pools
from ..core.farm.errors import (
    CollaboratorError,
    DuplicateAsset,
    FarmError,
    FarmInvariantError,
    InvalidAmount,
    MigrationIntegrityFailure,
    MigratorNotConfigured,
    PoolNotFound,
    TransferShortfall,
    Unauthorized,
)
from ..core.farm.invariants import check_pool_transition, check_position
from ..core.farm.settlement import (
    apply_deposit,
    apply_emergency_withdraw,
    apply_withdraw,
    pending_view,
    settle_position,
)
from ..core.farm.state import FarmState
from ..core.farm.types import AccountId, AssetId, Event, LedgerEvent, Pool, Settlement, UserPosition
from .collaborators import AwardSink, Clock, Migrator, StakeVault
from .config import LedgerConfig


logger = logging.getLogger(__name__)

EventListener = Callable[[LedgerEvent], None]
# (label, do, undo). `undo` reverses `do` if a later effect fails.
_Effect = Tuple[str, Callable[[], Any], Optional[Callable[[], Any]]]


def _require_account(value: Any, *, name: str = "account") -> AccountId:
    if not isinstance(value, str) or not value:
        raise TypeError(f"{name} must be a non-empty string")
    return value


def _require_amount(value: Any, *, name: str = "amount") -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise InvalidAmount(f"{name} must be an int")
    if value < 0:
        raise InvalidAmount(f"{name} must be non-negative: {value}")
    return int(value)


class LedgerController:
    """Weighted multi-pool staking ledger with locked rewards and a one-way migration."""

    def __init__(
        self,
        config: LedgerConfig,
        *,
        clock: Clock,
        vault: StakeVault,
        award_sink: AwardSink,
        migrator: Optional[Migrator] = None,
    ) -> None:
        self._schedule = config.schedule()
        self._scale = self._schedule.acc_scale
        self._owner: AccountId = config.owner
        self._clock = clock
        self._vault = vault
        self._sink = award_sink
        self._migrator = migrator

        self._pools: List[Pool] = []
        self._positions: Dict[Tuple[int, AccountId], UserPosition] = {}
        self._asset_index: Dict[AssetId, int] = {}
        self._total_weight = 0
        self._migrated = False

        self._events: List[LedgerEvent] = []
        self._listeners: List[EventListener] = []
        self._admin_lock = threading.RLock()
        self._pool_locks: List[threading.RLock] = []

    @classmethod
    def from_state(
        cls,
        state: FarmState,
        *,
        clock: Clock,
        vault: StakeVault,
        award_sink: AwardSink,
        migrator: Optional[Migrator] = None,
    ) -> "LedgerController":
        """Rebuild a controller from a persisted `FarmState`."""
        schedule = state.schedule
        config = LedgerConfig(
            owner=state.owner,
            emission_rate=schedule.emission_rate,
            start_time=schedule.start_time,
            end_time=schedule.end_time,
            acc_scale=schedule.acc_scale,
        )
        ctl = cls(config, clock=clock, vault=vault, award_sink=award_sink, migrator=migrator)
        ctl._pools = list(state.pools)
        ctl._positions = dict(state.positions)
        ctl._asset_index = {pool.asset_id: pid for pid, pool in enumerate(state.pools)}
        if len(ctl._asset_index) != len(ctl._pools):
            raise DuplicateAsset("persisted state registers an asset twice")
        ctl._total_weight = state.total_weight
        ctl._migrated = state.migrated
        ctl._pool_locks = [threading.RLock() for _ in state.pools]
        return ctl

    def export_state(self) -> FarmState:
        with self._exclusive():
            return FarmState(
                schedule=self._schedule,
                owner=self._owner,
                pools=tuple(self._pools),
                positions=dict(self._positions),
                total_weight=self._total_weight,
                migrated=self._migrated,
            )

    # -- Read-only views -------------------------------------------------------

    @property
    def owner(self) -> AccountId:
        return self._owner

    @property
    def total_weight(self) -> int:
        return self._total_weight

    @property
    def migrated(self) -> bool:
        return self._migrated

    @property
    def events(self) -> Tuple[LedgerEvent, ...]:
        return tuple(self._events)

    def pool_count(self) -> int:
        return len(self._pools)

    def pool(self, pool_id: int) -> Pool:
        with self._pool_lock(pool_id):
            return self._pools[pool_id]

    def position(self, pool_id: int, account: AccountId) -> UserPosition:
        with self._pool_lock(pool_id):
            return self._positions.get((pool_id, account), UserPosition())

    def pending_reward(self, pool_id: int, account: AccountId) -> int:
        """Reward a settlement right now would add for account (excluding locked rewards)."""
        account = _require_account(account)
        with self._pool_lock(pool_id):
            now = self._now()
            pool = self._pools[pool_id]
            projected = refresh_pool(pool, self._schedule, self._total_weight, self._staked(pool.asset_id), now)
            return pending_view(self._positions.get((pool_id, account), UserPosition()), projected, scale=self._scale)

    def subscribe(self, listener: EventListener) -> None:
        self._listeners.append(listener)

    # -- User calls --------------------------------------------------------------

    def deposit(self, pool_id: int, account: AccountId, amount: int) -> Settlement:
        """Settle, then stake `amount`. Amount 0 settles without moving stake."""
        account = _require_account(account)
        amount = _require_amount(amount)
        with self._pool_lock(pool_id):
            now = self._now()
            pre, pool = self._refreshed(pool_id, now)
            settlement = self._settle(pool_id, account, pool, now)
            position = apply_deposit(settlement.position, amount, pool, scale=self._scale)
            self._check_position(position, pool)

            effects: List[_Effect] = []
            if amount > 0:
                effects.append((
                    "vault.transfer_in",
                    partial(self._pull_stake, account, pool.asset_id, amount),
                    partial(self._vault.transfer_out, account, pool.asset_id, amount),
                ))
            effects.extend(self._settlement_effects(account, settlement))
            self._run_effects(effects)

            self._commit_pool(pool_id, pre, pool, now)
            self._positions[(pool_id, account)] = position
            self._emit_settlement(pool_id, account, settlement, now)
            self._emit(LedgerEvent(Event.DEPOSIT, now, pool_id, account, amount))
            return settlement

    def withdraw(self, pool_id: int, account: AccountId, amount: int) -> Settlement:
        """Settle, then unstake `amount`.

        Raises:
            InsufficientBalance: amount exceeds the recorded principal.
        """
        account = _require_account(account)
        amount = _require_amount(amount)
        with self._pool_lock(pool_id):
            now = self._now()
            pre, pool = self._refreshed(pool_id, now)
            settlement = self._settle(pool_id, account, pool, now)
            position = apply_withdraw(settlement.position, amount, pool, scale=self._scale)
            self._check_position(position, pool)

            effects: List[_Effect] = []
            if amount > 0:
                effects.append((
                    "vault.transfer_out",
                    partial(self._vault.transfer_out, account, pool.asset_id, amount),
                    partial(self._vault.restore, account, pool.asset_id, amount),
                ))
            effects.extend(self._settlement_effects(account, settlement))
            self._run_effects(effects)

            self._commit_pool(pool_id, pre, pool, now)
            self._positions[(pool_id, account)] = position
            self._emit_settlement(pool_id, account, settlement, now)
            self._emit(LedgerEvent(Event.WITHDRAW, now, pool_id, account, amount))
            return settlement

    def emergency_withdraw(self, pool_id: int, account: AccountId) -> int:
        """Return the full principal without settling. Pending and locked rewards are forfeited."""
        account = _require_account(account)
        with self._pool_lock(pool_id):
            now = self._now()
            pool = self._pools[pool_id]
            current = self._positions.get((pool_id, account), UserPosition())
            amount = current.principal
            position = apply_emergency_withdraw(current)

            effects: List[_Effect] = []
            if amount > 0:
                effects.append((
                    "vault.transfer_out",
                    partial(self._vault.transfer_out, account, pool.asset_id, amount),
                    None,
                ))
            self._run_effects(effects)

            self._positions[(pool_id, account)] = position
            self._emit(LedgerEvent(Event.EMERGENCY_WITHDRAW, now, pool_id, account, amount))
            return amount

    def refresh_pool(self, pool_id: int) -> Pool:
        with self._pool_lock(pool_id):
            now = self._now()
            pre, post = self._refreshed(pool_id, now)
            self._commit_pool(pool_id, pre, post, now)
            return post

    def refresh_all_pools(self) -> None:
        with self._exclusive():
            self._refresh_all(self._now())

    def migrate_pool(self, pool_id: int) -> AssetId:
        """Hand the pool's custody to the configured migrator and adopt the returned asset.

        Raises:
            MigratorNotConfigured: `set_migrator` has not been called.
            MigrationIntegrityFailure: the new asset's custody differs from the old balance.
        """
        with self._exclusive():
            self._require_pool(pool_id)
            if self._migrator is None:
                raise MigratorNotConfigured("no migrator configured")
            now = self._now()
            pool = self._pools[pool_id]
            balance = self._staked(pool.asset_id)
            new_asset = self._call("migrator.migrate", self._migrator.migrate, self._vault, pool.asset_id, balance)
            if not isinstance(new_asset, str) or not new_asset:
                raise MigrationIntegrityFailure(f"migrator returned invalid asset id {new_asset!r}")
            owner_pid = self._asset_index.get(new_asset)
            if owner_pid is not None and owner_pid != pool_id:
                raise DuplicateAsset(f"asset {new_asset} already registered to pool {owner_pid}")
            migrated_balance = self._staked(new_asset)
            if migrated_balance != balance:
                raise MigrationIntegrityFailure(
                    f"pool {pool_id}: migrated balance {migrated_balance} != original {balance}"
                )

            del self._asset_index[pool.asset_id]
            self._asset_index[new_asset] = pool_id
            self._pools[pool_id] = replace(pool, asset_id=new_asset)
            self._emit(LedgerEvent(
                Event.POOL_MIGRATED, now, pool_id, amount=balance,
                data={"from_asset": pool.asset_id, "to_asset": new_asset},
            ))
            return new_asset

    # -- Administrative calls ----------------------------------------------------

    def add_pool(self, weight: int, asset_id: AssetId, refresh_all_first: bool = False, *, caller: AccountId) -> int:
        """Register a pool for `asset_id`. Returns the new pool id.

        Raises:
            Unauthorized: caller is not the owner.
            DuplicateAsset: asset_id already backs a pool.
        """
        weight = _require_amount(weight, name="weight")
        asset_id = _require_account(asset_id, name="asset_id")
        with self._exclusive():
            self._require_owner(caller)
            if asset_id in self._asset_index:
                raise DuplicateAsset(f"asset {asset_id} already registered to pool {self._asset_index[asset_id]}")
            now = self._now()
            if refresh_all_first:
                self._refresh_all(now)

            pool_id = len(self._pools)
            # Lock first: `_require_pool` accepts the id as soon as the pool is visible.
            self._pool_locks.append(threading.RLock())
            self._pools.append(Pool(
                asset_id=asset_id,
                weight=weight,
                last_settled_time=max(now, self._schedule.start_time),
            ))
            self._asset_index[asset_id] = pool_id
            self._total_weight += weight
            self._emit(LedgerEvent(Event.POOL_ADDED, now, pool_id, amount=weight, data={"asset_id": asset_id}))
            return pool_id

    def set_weight(self, pool_id: int, new_weight: int, refresh_all_first: bool = False, *, caller: AccountId) -> None:
        new_weight = _require_amount(new_weight, name="weight")
        with self._exclusive():
            self._require_owner(caller)
            self._require_pool(pool_id)
            now = self._now()
            if refresh_all_first:
                self._refresh_all(now)

            pool = self._pools[pool_id]
            self._total_weight = self._total_weight - pool.weight + new_weight
            self._pools[pool_id] = replace(pool, weight=new_weight)
            self._emit(LedgerEvent(
                Event.WEIGHT_SET, now, pool_id, amount=new_weight, data={"previous_weight": pool.weight},
            ))

    def set_migrator(self, migrator: Optional[Migrator], *, caller: AccountId) -> None:
        with self._exclusive():
            self._require_owner(caller)
            self._migrator = migrator
            self._emit(LedgerEvent(
                Event.MIGRATOR_SET, self._now(),
                data={"migrator": None if migrator is None else type(migrator).__name__},
            ))

    def finalize_migration(self, *, caller: AccountId) -> bool:
        """Set the one-way migration flag. Returns False (and does nothing) if already set."""
        with self._exclusive():
            self._require_owner(caller)
            if self._migrated:
                return False
            self._migrated = True
            self._emit(LedgerEvent(Event.MIGRATION_FINALIZED, self._now()))
            return True

    def transfer_ownership(self, new_owner: AccountId, *, caller: AccountId) -> None:
        new_owner = _require_account(new_owner, name="new_owner")
        with self._exclusive():
            self._require_owner(caller)
            previous, self._owner = self._owner, new_owner
            self._emit(LedgerEvent(
                Event.OWNERSHIP_TRANSFERRED, self._now(), account=new_owner, data={"previous_owner": previous},
            ))

    # -- Locking -----------------------------------------------------------------

    def _require_pool(self, pool_id: Any) -> None:
        if not isinstance(pool_id, int) or isinstance(pool_id, bool) or not 0 <= pool_id < len(self._pools):
            raise PoolNotFound(f"pool {pool_id!r} not found ({len(self._pools)} pools)")

    def _pool_lock(self, pool_id: Any) -> threading.RLock:
        self._require_pool(pool_id)
        return self._pool_locks[pool_id]

    @contextmanager
    def _exclusive(self) -> Iterator[None]:
        with self._admin_lock, ExitStack() as stack:
            for lock in list(self._pool_locks):
                stack.enter_context(lock)
            yield

    def _require_owner(self, caller: AccountId) -> None:
        if caller != self._owner:
            logger.warning("rejected administrative call from %r", caller)
            raise Unauthorized(f"caller {caller!r} is not the owner")

    # -- Core steps ----------------------------------------------------------------

    def _now(self) -> int:
        now = self._clock.now()
        if not isinstance(now, int) or isinstance(now, bool):
            raise TypeError(f"clock returned non-int time {now!r}")
        return now

    def _call(self, label: str, fn: Callable[..., Any], *args: Any) -> Any:
        try:
            return fn(*args)
        except FarmError:
            raise
        except Exception as exc:
            raise CollaboratorError(f"{label} failed: {exc}") from exc

    def _staked(self, asset_id: AssetId) -> int:
        staked = self._call("vault.total_staked", self._vault.total_staked, asset_id)
        if not isinstance(staked, int) or isinstance(staked, bool) or staked < 0:
            raise CollaboratorError(f"vault reported invalid staked supply {staked!r} for {asset_id}")
        return staked

    def _refreshed(self, pool_id: int, now: int) -> Tuple[Pool, Pool]:
        pre = self._pools[pool_id]
        post = refresh_pool(pre, self._schedule, self._total_weight, self._staked(pre.asset_id), now)
        violations = check_pool_transition(pre, post, now)
        if violations:
            raise FarmInvariantError(violations)
        return pre, post

    def _refresh_all(self, now: int) -> None:
        pre = tuple(self._pools)
        post = refresh_pools(pre, self._schedule, self._total_weight, self._staked, now)
        for before, after in zip(pre, post):
            violations = check_pool_transition(before, after, now)
            if violations:
                raise FarmInvariantError(violations)
        for pool_id, (before, after) in enumerate(zip(pre, post)):
            self._commit_pool(pool_id, before, after, now)

    def _settle(self, pool_id: int, account: AccountId, pool: Pool, now: int) -> Settlement:
        current = self._positions.get((pool_id, account), UserPosition())
        return settle_position(current, pool, now, migrated=self._migrated, scale=self._scale)

    def _check_position(self, position: UserPosition, pool: Pool) -> None:
        violations = check_position(position, pool, self._scale)
        if violations:
            raise FarmInvariantError(violations)

    def _pull_stake(self, account: AccountId, asset_id: AssetId, amount: int) -> None:
        before = self._staked(asset_id)
        self._vault.transfer_in(account, asset_id, amount)
        received = self._staked(asset_id) - before
        if received != amount:
            if received > 0:
                self._vault.transfer_out(account, asset_id, received)
            raise TransferShortfall(f"vault received {received} of {amount} {asset_id}")

    def _settlement_effects(self, account: AccountId, settlement: Settlement) -> List[_Effect]:
        effects: List[_Effect] = []
        if settlement.slashed > 0:
            effects.append(("award_sink.destroy", partial(self._sink.destroy, settlement.slashed), None))
        if settlement.payout > 0:
            effects.append(("award_sink.add_award", partial(self._sink.add_award, account, settlement.payout), None))
        return effects

    def _run_effects(self, effects: List[_Effect]) -> None:
        done: List[Tuple[str, Callable[[], Any]]] = []
        try:
            for label, do, undo in effects:
                self._call(label, do)
                if undo is not None:
                    done.append((label, undo))
        except FarmError as exc:
            logger.warning("aborting call: %s", exc)
            for label, undo in reversed(done):
                try:
                    undo()
                except Exception:
                    logger.exception("compensation for %s failed", label)
            raise

    # -- Commit + events -------------------------------------------------------------

    def _commit_pool(self, pool_id: int, pre: Pool, post: Pool, now: int) -> None:
        if post == pre:
            return
        self._pools[pool_id] = post
        logger.debug(
            "pool %d refreshed to t=%d acc=%d", pool_id, post.last_settled_time, post.acc_reward_per_unit,
        )
        self._emit(LedgerEvent(
            Event.POOL_REFRESHED, now, pool_id,
            data={
                "acc_reward_per_unit": post.acc_reward_per_unit,
                "last_settled_time": post.last_settled_time,
            },
        ))

    def _emit_settlement(self, pool_id: int, account: AccountId, settlement: Settlement, now: int) -> None:
        if settlement.slashed > 0:
            self._emit(LedgerEvent(Event.REWARD_SLASHED, now, pool_id, account, settlement.slashed))
        if settlement.payout > 0:
            self._emit(LedgerEvent(Event.REWARD_PAID, now, pool_id, account, settlement.payout))

    def _emit(self, event: LedgerEvent) -> None:
        self._events.append(event)
        if event.event is not Event.POOL_REFRESHED:
            logger.info(
                "%s pool=%s account=%s amount=%d", event.event.value, event.pool_id, event.account, event.amount,
            )
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("event listener failed for %s", event.event.value)
