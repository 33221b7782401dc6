"""Persisted ledger state and its plain-dict form.

Layout: the ordered pool list (index = pool id), the (pool id, account) ->
`UserPosition` mapping and the global scalars. The configured migrator is a
live collaborator and is not part of the state.

Round-trip property (tested): `state_from_dict(state_to_dict(s)) == s`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

from .types import AccountId, EmissionSchedule, Pool, UserPosition

POOL_FIELDS: tuple[str, ...] = tuple(Pool.__dataclass_fields__)
POSITION_FIELDS: tuple[str, ...] = tuple(UserPosition.__dataclass_fields__)
SCHEDULE_FIELDS: tuple[str, ...] = tuple(EmissionSchedule.__dataclass_fields__)


@dataclass(frozen=True)
class FarmState:
    schedule: EmissionSchedule
    owner: AccountId
    pools: tuple[Pool, ...] = ()
    positions: Mapping[tuple[int, AccountId], UserPosition] = field(default_factory=dict)
    total_weight: int = 0
    migrated: bool = False


def initial_state(schedule: EmissionSchedule, owner: AccountId) -> FarmState:
    return FarmState(schedule=schedule, owner=owner)


def _int_field(d: Mapping[str, Any], name: str) -> int:
    val = d[name]
    if not isinstance(val, int) or isinstance(val, bool):
        raise TypeError(f"{name!r} must be int, got {type(val).__name__}")
    return int(val)


def state_to_dict(state: FarmState) -> dict[str, Any]:
    """Serialize to plain JSON-compatible data with a deterministic position order."""
    positions = [
        {"pool_id": pool_id, "account": account, **{n: getattr(pos, n) for n in POSITION_FIELDS}}
        for (pool_id, account), pos in sorted(state.positions.items())
    ]
    return {
        "schedule": {n: getattr(state.schedule, n) for n in SCHEDULE_FIELDS},
        "owner": state.owner,
        "pools": [{n: getattr(p, n) for n in POOL_FIELDS} for p in state.pools],
        "positions": positions,
        "total_weight": state.total_weight,
        "migrated": state.migrated,
    }


def state_from_dict(d: Mapping[str, Any]) -> FarmState:
    """Deserialize. Raises KeyError on missing fields and TypeError on bad types."""
    schedule = EmissionSchedule(**{n: _int_field(d["schedule"], n) for n in SCHEDULE_FIELDS})

    owner = d["owner"]
    if not isinstance(owner, str) or not owner:
        raise TypeError("owner must be a non-empty str")

    pools: list[Pool] = []
    for raw in d["pools"]:
        asset_id = raw["asset_id"]
        if not isinstance(asset_id, str) or not asset_id:
            raise TypeError("asset_id must be a non-empty str")
        pools.append(Pool(asset_id=asset_id, **{n: _int_field(raw, n) for n in POOL_FIELDS if n != "asset_id"}))

    positions: dict[tuple[int, AccountId], UserPosition] = {}
    for raw in d["positions"]:
        pool_id = _int_field(raw, "pool_id")
        account = raw["account"]
        if not isinstance(account, str) or not account:
            raise TypeError("account must be a non-empty str")
        if not 0 <= pool_id < len(pools):
            raise ValueError(f"position references unknown pool {pool_id}")
        key = (pool_id, account)
        if key in positions:
            raise ValueError(f"duplicate position {key!r}")
        positions[key] = UserPosition(**{n: _int_field(raw, n) for n in POSITION_FIELDS})

    migrated = d["migrated"]
    if not isinstance(migrated, bool):
        raise TypeError("migrated must be bool")

    total_weight = _int_field(d, "total_weight")
    if total_weight != sum(p.weight for p in pools):
        raise ValueError("total_weight does not match the sum of pool weights")

    return FarmState(
        schedule=schedule,
        owner=owner,
        pools=tuple(pools),
        positions=positions,
        total_weight=total_weight,
        migrated=migrated,
    )
