"""Failure atomicity, listeners and concurrent callers of LedgerController."""

import threading

import pytest

from src.core.farm.errors import CollaboratorError, PoolNotFound, TransferShortfall
from src.core.farm.types import Event
from src.integration.collaborators import InMemoryAwardSink, InMemoryStakeVault, ManualClock
from src.integration.config import LedgerConfig
from src.integration.ledger import LedgerController

CONFIG = LedgerConfig(owner="admin", emission_rate=10, start_time=0, end_time=1000)


class _FailingSink(InMemoryAwardSink):
    def add_award(self, account, amount):
        raise RuntimeError("award sink offline")


def _ledger(vault=None, sink=None):
    clock = ManualClock(0)
    vault = vault if vault is not None else InMemoryStakeVault()
    vault.fund("alice", "LP-A", 1000)
    sink = sink if sink is not None else InMemoryAwardSink()
    ctl = LedgerController(CONFIG, clock=clock, vault=vault, award_sink=sink)
    ctl.add_pool(1, "LP-A", caller="admin")
    return ctl, clock, vault


def _snapshot(ctl, vault):
    return (
        ctl.pool(0),
        ctl.position(0, "alice"),
        len(ctl.events),
        vault.balance_of("alice", "LP-A"),
        vault.total_staked("LP-A"),
    )


class TestCollaboratorFailure:
    def test_deposit_rolls_back_vault_when_award_fails(self):
        ctl, clock, vault = _ledger(sink=_FailingSink())
        ctl.deposit(0, "alice", 100)
        ctl.finalize_migration(caller="admin")
        clock.set(100)
        before = _snapshot(ctl, vault)
        with pytest.raises(CollaboratorError) as exc:
            ctl.deposit(0, "alice", 50)
        assert isinstance(exc.value.__cause__, RuntimeError)
        assert _snapshot(ctl, vault) == before

    def test_withdraw_rolls_back_vault_when_award_fails(self):
        ctl, clock, vault = _ledger(sink=_FailingSink())
        ctl.deposit(0, "alice", 100)
        ctl.finalize_migration(caller="admin")
        clock.set(100)
        before = _snapshot(ctl, vault)
        with pytest.raises(CollaboratorError):
            ctl.withdraw(0, "alice", 60)
        assert _snapshot(ctl, vault) == before

    def test_wallet_shortfall(self):
        ctl, _, vault = _ledger()
        before = _snapshot(ctl, vault)
        with pytest.raises(CollaboratorError):
            ctl.deposit(0, "alice", 5000)
        assert _snapshot(ctl, vault) == before

    def test_withdraw_rollback_skips_transfer_fee(self):
        ctl, clock, vault = _ledger(vault=InMemoryStakeVault(transfer_fee_bps=100), sink=_FailingSink())
        # fee on 99 rounds to zero
        ctl.deposit(0, "alice", 99)
        ctl.deposit(0, "alice", 99)
        ctl.finalize_migration(caller="admin")
        clock.set(100)
        before = _snapshot(ctl, vault)
        with pytest.raises(CollaboratorError):
            ctl.withdraw(0, "alice", 198)
        assert _snapshot(ctl, vault) == before
        assert vault.total_staked("LP-A") == ctl.position(0, "alice").principal == 198


class TestTransferShortfall:
    def test_fee_on_transfer_rejected(self):
        ctl, _, vault = _ledger(vault=InMemoryStakeVault(transfer_fee_bps=100))
        with pytest.raises(TransferShortfall):
            ctl.deposit(0, "alice", 100)
        assert ctl.position(0, "alice").principal == 0
        assert vault.total_staked("LP-A") == 0
        # the received 99 is refunded, the fee is gone
        assert vault.balance_of("alice", "LP-A") == 999

    def test_fee_rounding_to_zero_is_accepted(self):
        ctl, _, vault = _ledger(vault=InMemoryStakeVault(transfer_fee_bps=100))
        ctl.deposit(0, "alice", 99)
        assert vault.total_staked("LP-A") == 99


class TestListeners:
    def test_receive_committed_events(self):
        ctl, _, _ = _ledger()
        seen = []
        ctl.subscribe(seen.append)
        ctl.deposit(0, "alice", 10)
        assert [e.event for e in seen] == [Event.DEPOSIT]

    def test_failing_listener_does_not_abort(self, caplog):
        ctl, _, _ = _ledger()

        def boom(event):
            raise RuntimeError("listener bug")

        ctl.subscribe(boom)
        ctl.deposit(0, "alice", 10)
        assert ctl.position(0, "alice").principal == 10
        assert "event listener failed" in caplog.text

    def test_no_events_on_failure(self):
        ctl, _, _ = _ledger()
        seen = []
        ctl.subscribe(seen.append)
        with pytest.raises(CollaboratorError):
            ctl.deposit(0, "alice", 5000)
        assert seen == []


class TestConcurrency:
    def test_parallel_deposits(self):
        vault = InMemoryStakeVault()
        for i in range(4):
            vault.fund(f"user{i}", "LP-A", 100)
            vault.fund(f"user{i}", "LP-B", 100)
        ctl = LedgerController(CONFIG, clock=ManualClock(0), vault=vault, award_sink=InMemoryAwardSink())
        ctl.add_pool(1, "LP-A", caller="admin")
        ctl.add_pool(1, "LP-B", caller="admin")

        def worker(i):
            for n in range(50):
                ctl.deposit(n % 2, f"user{i}", 1)

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        for i in range(4):
            assert ctl.position(0, f"user{i}").principal == 25
            assert ctl.position(1, f"user{i}").principal == 25
        assert vault.total_staked("LP-A") == vault.total_staked("LP-B") == 100
        assert [e.event for e in ctl.events].count(Event.DEPOSIT) == 200

    def test_new_pool_usable_while_being_added(self):
        ctl, _, vault = _ledger()
        vault.fund("alice", "LP-B", 10)
        failures = []
        done = threading.Event()

        def poll():
            while not done.is_set():
                try:
                    ctl.pending_reward(1, "alice")
                    return
                except PoolNotFound:
                    continue
                except Exception as exc:
                    failures.append(exc)
                    return

        poller = threading.Thread(target=poll)
        poller.start()
        ctl.add_pool(1, "LP-B", caller="admin")
        ctl.deposit(1, "alice", 10)
        done.set()
        poller.join()
        assert failures == []
        assert ctl.position(1, "alice").principal == 10
