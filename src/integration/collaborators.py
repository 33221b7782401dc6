"""
External collaborators of the ledger (imperative shell).

The controller only sees the small interfaces below:
- `Clock`: monotonically non-decreasing integer time,
- `StakeVault`: custody of the staked asset per pool,
- `AwardSink`: credits rewards to accounts and destroys slashed rewards,
- `Migrator`: moves a pool's custody to a new asset.

The in-memory implementations back the tests and `tools/farm_scenario.py`.
They fail by raising; the controller turns any such failure into an abort of
the whole call.
"""

from __future__ import annotations

from typing import Dict, Mapping, Optional

from ..state.balances import AccountId, Amount, AssetId, BalanceTable


VAULT_ACCOUNT = "vault"
REWARD_ASSET = "reward"
_BPS_DENOM = 10_000


class Clock:
    """Interface for the time source."""

    def now(self) -> int:
        raise NotImplementedError


class ManualClock(Clock):
    """Clock advanced explicitly by the caller. Refuses to go backwards."""

    def __init__(self, start: int = 0) -> None:
        if not isinstance(start, int) or isinstance(start, bool):
            raise TypeError("start must be an int")
        self._now = start

    def now(self) -> int:
        return self._now

    def advance(self, delta: int) -> int:
        if delta < 0:
            raise ValueError(f"clock cannot move backwards (delta={delta})")
        self._now += delta
        return self._now

    def set(self, time: int) -> int:
        if time < self._now:
            raise ValueError(f"clock cannot move backwards ({time} < {self._now})")
        self._now = time
        return self._now


class StakeVault:
    """Interface for staked-asset custody."""

    def transfer_in(self, account: AccountId, asset: AssetId, amount: Amount) -> None:
        raise NotImplementedError

    def transfer_out(self, account: AccountId, asset: AssetId, amount: Amount) -> None:
        raise NotImplementedError

    def restore(self, account: AccountId, asset: AssetId, amount: Amount) -> None:
        """Exact reversal of `transfer_out` (no fees). Used to unwind an aborted withdraw."""
        raise NotImplementedError

    def total_staked(self, asset: AssetId) -> Amount:
        raise NotImplementedError


class InMemoryStakeVault(StakeVault):
    """
    Vault over two balance tables: account wallets and vault custody.

    `transfer_fee_bps` models a fee-on-transfer asset: the vault receives
    `amount - fee`, which the ledger rejects as a short transfer.
    """

    def __init__(self, wallets: Optional[BalanceTable] = None, *, transfer_fee_bps: int = 0) -> None:
        if not 0 <= transfer_fee_bps <= _BPS_DENOM:
            raise ValueError("transfer_fee_bps must be in [0, 10000]")
        self.wallets = wallets if wallets is not None else BalanceTable()
        self.custody = BalanceTable()
        self._transfer_fee_bps = transfer_fee_bps

    def fund(self, account: AccountId, asset: AssetId, amount: Amount) -> None:
        """Credit an account wallet (faucet for tests and scenarios)."""
        self.wallets.add(account, asset, amount)

    def balance_of(self, account: AccountId, asset: AssetId) -> Amount:
        return self.wallets.get(account, asset)

    def transfer_in(self, account: AccountId, asset: AssetId, amount: Amount) -> None:
        fee = (amount * self._transfer_fee_bps) // _BPS_DENOM
        self.wallets.subtract(account, asset, amount)
        self.custody.add(VAULT_ACCOUNT, asset, amount - fee)

    def transfer_out(self, account: AccountId, asset: AssetId, amount: Amount) -> None:
        self.custody.subtract(VAULT_ACCOUNT, asset, amount)
        self.wallets.add(account, asset, amount)

    def restore(self, account: AccountId, asset: AssetId, amount: Amount) -> None:
        self.wallets.subtract(account, asset, amount)
        self.custody.add(VAULT_ACCOUNT, asset, amount)

    def total_staked(self, asset: AssetId) -> Amount:
        return self.custody.get(VAULT_ACCOUNT, asset)

    def rebind(self, old_asset: AssetId, new_asset: AssetId, amount: Amount) -> None:
        """Re-denominate `amount` of custody from old_asset to new_asset."""
        self.custody.subtract(VAULT_ACCOUNT, old_asset, amount)
        self.custody.add(VAULT_ACCOUNT, new_asset, amount)


class AwardSink:
    """Interface for the reward mint/burn authority."""

    def add_award(self, account: AccountId, amount: Amount) -> None:
        raise NotImplementedError

    def destroy(self, amount: Amount) -> None:
        raise NotImplementedError


class InMemoryAwardSink(AwardSink):
    def __init__(self) -> None:
        self.balances = BalanceTable()
        self.minted: Amount = 0
        self.burned: Amount = 0

    def add_award(self, account: AccountId, amount: Amount) -> None:
        if amount <= 0:
            raise ValueError(f"award must be positive: {amount}")
        self.balances.add(account, REWARD_ASSET, amount)
        self.minted += amount

    def destroy(self, amount: Amount) -> None:
        if amount <= 0:
            raise ValueError(f"burn must be positive: {amount}")
        self.burned += amount

    def balance_of(self, account: AccountId) -> Amount:
        return self.balances.get(account, REWARD_ASSET)

    def awards(self) -> Dict[AccountId, Amount]:
        return {account: amount for (account, _), amount in sorted(self.balances.get_all_balances().items())}


class Migrator:
    """Interface for custody migration. Returns the asset id now holding the stake."""

    def migrate(self, vault: StakeVault, asset: AssetId, amount: Amount) -> AssetId:
        raise NotImplementedError


class RenamingMigrator(Migrator):
    """
    Migrates custody inside an `InMemoryStakeVault` to a renamed asset.

    The new id comes from `mapping` when present, else `asset + suffix`.
    """

    def __init__(self, mapping: Optional[Mapping[AssetId, AssetId]] = None, *, suffix: str = ":v2") -> None:
        self._mapping = dict(mapping or {})
        self._suffix = suffix

    def migrate(self, vault: StakeVault, asset: AssetId, amount: Amount) -> AssetId:
        if not isinstance(vault, InMemoryStakeVault):
            raise TypeError("RenamingMigrator requires an InMemoryStakeVault")
        new_asset = self._mapping.get(asset, asset + self._suffix)
        vault.rebind(asset, new_asset, amount)
        return new_asset
