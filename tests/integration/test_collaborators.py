# [TESTER] v1

from __future__ import annotations

import pytest

from src.integration.collaborators import (
    InMemoryAwardSink,
    InMemoryStakeVault,
    ManualClock,
    RenamingMigrator,
    StakeVault,
)


def test_manual_clock_is_monotone() -> None:
    clock = ManualClock(10)
    assert clock.advance(5) == 15
    assert clock.set(15) == 15
    with pytest.raises(ValueError):
        clock.set(14)
    with pytest.raises(ValueError):
        clock.advance(-1)


def test_vault_moves_between_wallet_and_custody() -> None:
    vault = InMemoryStakeVault()
    vault.fund("alice", "LP", 100)
    vault.transfer_in("alice", "LP", 60)
    assert vault.balance_of("alice", "LP") == 40
    assert vault.total_staked("LP") == 60
    vault.transfer_out("alice", "LP", 10)
    assert vault.total_staked("LP") == 50
    assert vault.balance_of("alice", "LP") == 50


def test_vault_rejects_overdraw() -> None:
    vault = InMemoryStakeVault()
    vault.fund("alice", "LP", 5)
    with pytest.raises(ValueError):
        vault.transfer_in("alice", "LP", 6)
    with pytest.raises(ValueError):
        vault.transfer_out("alice", "LP", 1)


def test_vault_fee_bounds() -> None:
    with pytest.raises(ValueError):
        InMemoryStakeVault(transfer_fee_bps=10_001)


def test_award_sink_accounting() -> None:
    sink = InMemoryAwardSink()
    sink.add_award("bob", 7)
    sink.add_award("alice", 3)
    sink.add_award("bob", 1)
    sink.destroy(4)
    assert sink.awards() == {"alice": 3, "bob": 8}
    assert (sink.minted, sink.burned) == (11, 4)
    with pytest.raises(ValueError):
        sink.add_award("bob", 0)
    with pytest.raises(ValueError):
        sink.destroy(0)


def test_renaming_migrator() -> None:
    vault = InMemoryStakeVault()
    vault.fund("alice", "LP", 10)
    vault.transfer_in("alice", "LP", 10)
    migrator = RenamingMigrator({"LP": "LP-NEW"})
    assert migrator.migrate(vault, "LP", 10) == "LP-NEW"
    assert vault.total_staked("LP-NEW") == 10
    assert vault.total_staked("LP") == 0
    assert RenamingMigrator(suffix="@2").migrate(vault, "LP-NEW", 10) == "LP-NEW@2"


def test_renaming_migrator_needs_in_memory_vault() -> None:
    with pytest.raises(TypeError):
        RenamingMigrator().migrate(StakeVault(), "LP", 0)


def test_vault_restore_is_exact_even_with_fee() -> None:
    vault = InMemoryStakeVault(transfer_fee_bps=100)
    vault.fund("alice", "LP", 500)
    vault.transfer_in("alice", "LP", 99)
    vault.transfer_out("alice", "LP", 99)
    vault.restore("alice", "LP", 99)
    assert vault.total_staked("LP") == 99
    assert vault.balance_of("alice", "LP") == 401
