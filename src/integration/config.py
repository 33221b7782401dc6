"""
Ledger configuration.

`LedgerConfig` is validated at construction; `load_config()` reads it from a
YAML mapping. Unknown keys are rejected (fail-closed) so a typo cannot silently
fall back to a default.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Mapping

import yaml

from ..core.farm.types import ACC_SCALE, EmissionSchedule


@dataclass(frozen=True)
class LedgerConfig:
    # Account allowed to run administrative calls (add_pool, set_weight, ...).
    owner: str

    # Flat emission: `emission_rate` reward units per tick inside
    # [start_time, end_time]; zero outside.
    emission_rate: int
    start_time: int
    end_time: int

    # Fixed-point scale of the per-unit accumulator.
    acc_scale: int = ACC_SCALE

    def __post_init__(self) -> None:
        if not isinstance(self.owner, str) or not self.owner:
            raise ValueError("owner must be a non-empty string")
        # Raises InvalidRange / InvalidAmount.
        self.schedule()

    def schedule(self) -> EmissionSchedule:
        return EmissionSchedule(
            emission_rate=self.emission_rate,
            start_time=self.start_time,
            end_time=self.end_time,
            acc_scale=self.acc_scale,
        )

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "LedgerConfig":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(raw) - known)
        if unknown:
            raise ValueError(f"unknown config keys: {', '.join(unknown)}")
        missing = sorted(f.name for f in fields(cls) if f.name not in raw and f.name != "acc_scale")
        if missing:
            raise ValueError(f"missing config keys: {', '.join(missing)}")
        return cls(**dict(raw))


def load_config(path: str | Path) -> LedgerConfig:
    """Load a `LedgerConfig` from a YAML file.

    The mapping may sit at the top level or under a `ledger:` key.
    """
    raw = yaml.safe_load(Path(path).read_text(encoding="utf-8"))
    if not isinstance(raw, Mapping):
        raise TypeError("config YAML must be a mapping")
    section = raw.get("ledger", raw)
    if not isinstance(section, Mapping):
        raise TypeError("ledger config section must be a mapping")
    return LedgerConfig.from_mapping(section)
