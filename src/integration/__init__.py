"""
Ledger orchestration layer: collaborators, configuration, controller, snapshots
"""

from .collaborators import (
    AwardSink,
    Clock,
    InMemoryAwardSink,
    InMemoryStakeVault,
    ManualClock,
    Migrator,
    RenamingMigrator,
    StakeVault,
)
from .config import LedgerConfig, load_config
from .ledger import LedgerController
from .snapshot import LedgerSnapshot, snapshot_from_state, state_from_snapshot

__all__ = [
    "AwardSink",
    "Clock",
    "InMemoryAwardSink",
    "InMemoryStakeVault",
    "ManualClock",
    "Migrator",
    "RenamingMigrator",
    "StakeVault",
    "LedgerConfig",
    "load_config",
    "LedgerController",
    "LedgerSnapshot",
    "snapshot_from_state",
    "state_from_snapshot",
]
