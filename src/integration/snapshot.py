"""
Ledger snapshot encoding.

Goals:
- Deterministic JSON serialization for hashing / snapshot distribution.
- Round-trippable into `FarmState` (and from there into a `LedgerController`).
- Explicit versioning.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from typing import Any, Dict, Mapping

from ..core.farm.state import FarmState, state_from_dict, state_to_dict
from ..state.canonical import canonical_json_bytes, domain_sep_bytes, sha256_hex


LEDGER_SNAPSHOT_VERSION = 1
MAX_SNAPSHOT_BYTES = 64_000_000


@dataclass(frozen=True)
class LedgerSnapshot:
    """
    Versioned snapshot of a `FarmState`.

    The commitment is *not* included inside `data` to avoid self-reference.
    """

    version: int
    data: Dict[str, Any]

    def canonical_bytes(self) -> bytes:
        return canonical_json_bytes(self.data)

    def commitment_bytes(self) -> bytes:
        payload = domain_sep_bytes("ledger_snapshot", version=self.version) + self.canonical_bytes()
        return hashlib.sha256(payload).digest()

    def commitment_hex(self) -> str:
        payload = domain_sep_bytes("ledger_snapshot", version=self.version) + self.canonical_bytes()
        return sha256_hex(payload)


def snapshot_from_state(state: FarmState, *, version: int = LEDGER_SNAPSHOT_VERSION) -> LedgerSnapshot:
    if not isinstance(version, int) or isinstance(version, bool) or version <= 0:
        raise ValueError("version must be a positive int")
    return LedgerSnapshot(version=version, data=state_to_dict(state))


def state_from_snapshot(snapshot: LedgerSnapshot) -> FarmState:
    """Decode a snapshot into `FarmState`.

    No commitment is checked here: the snapshot is trusted as given. Snapshots
    from outside the process go through `snapshot_from_json()` first.
    """
    if snapshot.version != LEDGER_SNAPSHOT_VERSION:
        raise ValueError(f"unsupported snapshot version {snapshot.version}")
    return state_from_dict(snapshot.data)


def snapshot_to_json(snapshot: LedgerSnapshot) -> str:
    envelope = {
        "version": snapshot.version,
        "data": snapshot.data,
        "commitment": snapshot.commitment_hex(),
    }
    return canonical_json_bytes(envelope).decode("utf-8")


def snapshot_from_json(text: str, *, max_bytes: int = MAX_SNAPSHOT_BYTES) -> LedgerSnapshot:
    """Parse a snapshot envelope and verify its commitment (fail-closed)."""
    if not isinstance(text, str):
        raise TypeError("snapshot must be a JSON string")
    if len(text.encode("utf-8")) > max_bytes:
        raise ValueError("snapshot exceeds max_bytes")
    envelope = json.loads(text)
    if not isinstance(envelope, Mapping):
        raise ValueError("snapshot envelope must be an object")
    version = envelope.get("version")
    data = envelope.get("data")
    if not isinstance(version, int) or isinstance(version, bool):
        raise ValueError("snapshot version must be an int")
    if not isinstance(data, dict):
        raise ValueError("snapshot data must be an object")
    snapshot = LedgerSnapshot(version=version, data=data)
    expected = envelope.get("commitment")
    if not isinstance(expected, str):
        raise ValueError("snapshot commitment missing or not a string")
    if expected != snapshot.commitment_hex():
        raise ValueError("snapshot commitment mismatch")
    return snapshot
