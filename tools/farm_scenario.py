#!/usr/bin/env python3
"""
Replay a YAML scenario through the ledger with in-memory collaborators.

Scenario shape:

    ledger: {owner: admin, emission_rate: 10, start_time: 0, end_time: 1000}
    wallets:
      - {account: alice, asset: LP-A, amount: 1000}
    steps:
      - {at: 0, op: add_pool, caller: admin, asset: LP-A, weight: 1}
      - {at: 0, op: deposit, pool: 0, account: alice, amount: 100}
      - {at: 500, op: withdraw, pool: 0, account: alice, amount: 500, expect_error: InsufficientBalance}

Prints a JSON summary (events, awards, burned total, snapshot commitment).
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping

import yaml

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from src.core.farm.errors import FarmError
from src.integration.collaborators import InMemoryAwardSink, InMemoryStakeVault, ManualClock, RenamingMigrator
from src.integration.config import LedgerConfig
from src.integration.ledger import LedgerController
from src.integration.snapshot import snapshot_from_state


logger = logging.getLogger("farm_scenario")


def _op_table(ctl: LedgerController, migrator: RenamingMigrator) -> Dict[str, Callable[[Mapping[str, Any]], Any]]:
    return {
        "add_pool": lambda s: ctl.add_pool(
            s["weight"], s["asset"], bool(s.get("refresh_all", False)), caller=s["caller"],
        ),
        "set_weight": lambda s: ctl.set_weight(
            s["pool"], s["weight"], bool(s.get("refresh_all", False)), caller=s["caller"],
        ),
        "set_migrator": lambda s: ctl.set_migrator(migrator, caller=s["caller"]),
        "migrate_pool": lambda s: ctl.migrate_pool(s["pool"]),
        "finalize_migration": lambda s: ctl.finalize_migration(caller=s["caller"]),
        "deposit": lambda s: ctl.deposit(s["pool"], s["account"], s["amount"]),
        "withdraw": lambda s: ctl.withdraw(s["pool"], s["account"], s["amount"]),
        "emergency_withdraw": lambda s: ctl.emergency_withdraw(s["pool"], s["account"]),
        "refresh_pool": lambda s: ctl.refresh_pool(s["pool"]),
        "refresh_all_pools": lambda s: ctl.refresh_all_pools(),
        "pending_reward": lambda s: ctl.pending_reward(s["pool"], s["account"]),
    }


def run_scenario(doc: Mapping[str, Any]) -> Dict[str, Any]:
    """Run a parsed scenario and return the JSON-ready summary.

    Raises:
        ValueError: unknown op, or a step's outcome differs from `expect_error`.
    """
    config = LedgerConfig.from_mapping(doc["ledger"])
    clock = ManualClock(config.start_time)
    vault = InMemoryStakeVault()
    sink = InMemoryAwardSink()
    migrator = RenamingMigrator(doc.get("migrations") or {})
    ctl = LedgerController(config, clock=clock, vault=vault, award_sink=sink)

    for wallet in doc.get("wallets") or []:
        vault.fund(wallet["account"], wallet["asset"], wallet["amount"])

    ops = _op_table(ctl, migrator)
    steps = doc.get("steps") or []
    logger.info("replaying %d steps", len(steps))
    results: List[Dict[str, Any]] = []
    for index, step in enumerate(steps):
        op = step.get("op")
        if op not in ops:
            raise ValueError(f"step {index}: unknown op {op!r}")
        if "at" in step:
            clock.set(step["at"])
        expected = step.get("expect_error")
        try:
            value = ops[op](step)
        except FarmError as exc:
            if expected != type(exc).__name__:
                raise ValueError(f"step {index} ({op}) failed unexpectedly: {type(exc).__name__}: {exc}") from exc
            results.append({"step": index, "op": op, "error": type(exc).__name__})
            continue
        if expected is not None:
            raise ValueError(f"step {index} ({op}) succeeded but expected {expected}")
        results.append({"step": index, "op": op, "result": _jsonable(value)})

    snapshot = snapshot_from_state(ctl.export_state())
    return {
        "results": results,
        "events": [
            {
                "event": e.event.value,
                "time": e.time,
                "pool_id": e.pool_id,
                "account": e.account,
                "amount": e.amount,
            }
            for e in ctl.events
        ],
        "awards": sink.awards(),
        "burned": sink.burned,
        "commitment": snapshot.commitment_hex(),
    }


def _jsonable(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if hasattr(value, "__dataclass_fields__"):
        return {name: _jsonable(getattr(value, name)) for name in value.__dataclass_fields__}
    return repr(value)


def main(argv: List[str] | None = None) -> int:
    ap = argparse.ArgumentParser(description="Replay a farm ledger scenario (YAML).")
    ap.add_argument("scenario", type=Path, help="path to the scenario YAML file")
    ap.add_argument("--indent", type=int, default=2, help="JSON indent (default: 2)")
    ap.add_argument("-v", "--verbose", action="store_true", help="log ledger calls to stderr")
    args = ap.parse_args(argv)

    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING, stream=sys.stderr)

    doc = yaml.safe_load(args.scenario.read_text(encoding="utf-8"))
    if not isinstance(doc, Mapping):
        print(f"[farm-scenario] FAIL: {args.scenario} is not a mapping", file=sys.stderr)
        return 2
    try:
        summary = run_scenario(doc)
    except (ValueError, KeyError, FarmError) as exc:
        print(f"[farm-scenario] FAIL: {exc}", file=sys.stderr)
        return 1
    print(json.dumps(summary, indent=args.indent, sort_keys=True))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
