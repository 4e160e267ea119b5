"""State store: JSON snapshot of the engine state.

The event log says what happened; the state store says where things
stand: owner, authorizer, schedule, used set and redemption table. The
snapshot is rewritten whole after each committed mutation, via a
temporary file and ``os.replace`` so a crash never leaves half a file.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Optional

from claimgate.engine.replay_guard import ReplayGuard
from claimgate.engine.state import EngineState
from claimgate.engine.vesting import (
    InstantSchedule,
    PeriodicVestingSchedule,
    UnlockSchedule,
)
from claimgate.models.claim import VestingConfig

FORMAT_VERSION = 1


def _schedule_to_dict(schedule: UnlockSchedule) -> dict[str, Any]:
    if isinstance(schedule, InstantSchedule):
        return {"kind": "instant"}
    if isinstance(schedule, PeriodicVestingSchedule):
        return {
            "kind": "periodic",
            "start_time": schedule.config.start_time,
            "period_duration": schedule.config.period_duration,
            "period_count": schedule.config.period_count,
            "credit_remainder": schedule.credit_remainder,
        }
    raise ValueError(f"Cannot persist schedule of type {type(schedule).__name__}")


def _schedule_from_dict(data: dict[str, Any]) -> UnlockSchedule:
    kind = data.get("kind")
    if kind == "instant":
        return InstantSchedule()
    if kind == "periodic":
        return PeriodicVestingSchedule(
            config=VestingConfig(
                start_time=data["start_time"],
                period_duration=data["period_duration"],
                period_count=data["period_count"],
            ),
            credit_remainder=data.get("credit_remainder", False),
        )
    raise ValueError(f"Unknown schedule kind in state file: {kind!r}")


class StateStore:
    """File-backed snapshot of an EngineState.

    Usage:
        store = StateStore(Path("data/state.json"))
        store.save(state)
        restored = store.load()  # None if nothing saved yet
    """

    def __init__(self, storage_path: Path) -> None:
        self._storage_path = storage_path

    @property
    def storage_path(self) -> Path:
        return self._storage_path

    def exists(self) -> bool:
        return self._storage_path.exists()

    def save(self, state: EngineState) -> None:
        """Write the snapshot atomically. Raises OSError on I/O failure."""
        records = state.guard.redemption_records()
        document = {
            "version": FORMAT_VERSION,
            "owner": state.owner,
            "authorizer": state.authorizer,
            "schedule": _schedule_to_dict(state.schedule),
            "used": sorted("0x" + h.hex() for h in state.guard.used_hashes()),
            "redemptions": [
                {
                    "recipient": recipient,
                    "message_hash": "0x" + message_hash.hex(),
                    "amount": amount,
                }
                for (recipient, message_hash), amount in sorted(records.items())
            ],
        }
        self._storage_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._storage_path.with_suffix(self._storage_path.suffix + ".tmp")
        with tmp_path.open("w", encoding="utf-8") as f:
            json.dump(document, f, indent=2, sort_keys=True)
            f.write("\n")
        os.replace(tmp_path, self._storage_path)

    def load(self) -> Optional[EngineState]:
        """Load the snapshot, or None if no file exists.

        Raises ValueError on an unknown format version or malformed data.
        """
        if not self._storage_path.exists():
            return None
        data = json.loads(self._storage_path.read_text(encoding="utf-8"))
        if data.get("version") != FORMAT_VERSION:
            raise ValueError(
                f"Unsupported state file version: {data.get('version')!r}"
            )

        redemptions = {
            (entry["recipient"], bytes.fromhex(entry["message_hash"][2:])): entry["amount"]
            for entry in data["redemptions"]
        }
        guard = ReplayGuard(
            used=(bytes.fromhex(h[2:]) for h in data["used"]),
            redemptions=redemptions,
        )
        return EngineState(
            owner=data["owner"],
            authorizer=data["authorizer"],
            schedule=_schedule_from_dict(data["schedule"]),
            guard=guard,
        )
