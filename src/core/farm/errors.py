"""Exception types for the farm reward ledger.

The pure core (`accumulator`, `settlement`) raises these directly; the
controller in `src/integration/ledger.py` raises them after unwinding any
external effects, so a raised `FarmError` always means "nothing changed".
"""

from __future__ import annotations


class FarmError(Exception):
    """Base class for every ledger rejection."""


class Unauthorized(FarmError):
    """Raised when an owner-only action is attempted by another caller."""


class InvalidRange(FarmError):
    """Raised when an emission window has ``start_time >= end_time``."""


class InvalidAmount(FarmError):
    """Raised for negative or non-integer amounts and weights."""


class DuplicateAsset(FarmError):
    """Raised when an asset is already registered to a pool."""


class PoolNotFound(FarmError):
    """Raised when a pool id is out of range."""


class MigratorNotConfigured(FarmError):
    """Raised by ``migrate_pool`` before ``set_migrator`` has been called."""


class MigrationIntegrityFailure(FarmError):
    """Raised when the migrated custody balance differs from the original."""


class InsufficientBalance(FarmError):
    """Raised when a withdrawal exceeds the recorded principal."""


class TimeRegression(FarmError):
    """Raised when ``now`` is earlier than a recorded settlement time."""


class TransferShortfall(FarmError):
    """Raised when the vault received a different amount than requested."""


class CollaboratorError(FarmError):
    """Raised when a vault, award sink or migrator call fails."""


class FarmInvariantError(FarmError):
    """Raised when a post-state violates one or more invariants."""

    def __init__(self, violations: list[str]) -> None:
        self.violations = violations
        super().__init__(f"invariant violations: {', '.join(violations)}")
