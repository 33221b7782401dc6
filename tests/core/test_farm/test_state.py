"""Tests for src/core/farm/state.py: dict round trip and strict decoding."""

import dataclasses

import pytest

from src.core.farm.errors import InvalidRange
from src.core.farm.state import FarmState, initial_state, state_from_dict, state_to_dict
from src.core.farm.types import EmissionSchedule, Pool, UserPosition

SCHEDULE = EmissionSchedule(emission_rate=10, start_time=0, end_time=1000)


def _populated() -> FarmState:
    return FarmState(
        schedule=SCHEDULE,
        owner="admin",
        pools=(
            Pool("LP-A", weight=100, last_settled_time=500, acc_reward_per_unit=7 * 10**13),
            Pool("LP-B", weight=50, last_settled_time=300, acc_reward_per_unit=0),
        ),
        positions={
            (1, "bob"): UserPosition(principal=10),
            (0, "alice"): UserPosition(
                principal=50,
                reward_baseline=3500,
                locked_rewards=5000,
                stake_duration=500,
                last_settlement_time=500,
                stake_time_integral=50_000,
            ),
        },
        total_weight=150,
        migrated=True,
    )


class TestRoundTrip:
    def test_initial_state(self):
        state = initial_state(SCHEDULE, "admin")
        assert state_from_dict(state_to_dict(state)) == state

    def test_populated_state(self):
        state = _populated()
        assert state_from_dict(state_to_dict(state)) == state

    def test_positions_sorted(self):
        d = state_to_dict(_populated())
        assert [(p["pool_id"], p["account"]) for p in d["positions"]] == [(0, "alice"), (1, "bob")]

    def test_frozen(self):
        state = _populated()
        with pytest.raises(dataclasses.FrozenInstanceError):
            state.migrated = False  # type: ignore[misc]


class TestDecodeRejects:
    def test_total_weight_mismatch(self):
        d = state_to_dict(_populated())
        d["total_weight"] = 151
        with pytest.raises(ValueError, match="total_weight"):
            state_from_dict(d)

    def test_unknown_pool(self):
        d = state_to_dict(_populated())
        d["positions"][0]["pool_id"] = 7
        with pytest.raises(ValueError, match="unknown pool"):
            state_from_dict(d)

    def test_duplicate_position(self):
        d = state_to_dict(_populated())
        d["positions"].append(dict(d["positions"][0]))
        with pytest.raises(ValueError, match="duplicate"):
            state_from_dict(d)

    def test_bool_is_not_an_int(self):
        d = state_to_dict(_populated())
        d["pools"][0]["weight"] = True
        with pytest.raises(TypeError):
            state_from_dict(d)

    def test_migrated_must_be_bool(self):
        d = state_to_dict(_populated())
        d["migrated"] = 1
        with pytest.raises(TypeError):
            state_from_dict(d)

    def test_missing_field(self):
        d = state_to_dict(_populated())
        del d["owner"]
        with pytest.raises(KeyError):
            state_from_dict(d)

    def test_invalid_schedule(self):
        d = state_to_dict(_populated())
        d["schedule"]["end_time"] = 0
        with pytest.raises(InvalidRange):
            state_from_dict(d)
