"""Redemption engine: replay guard, release schedules and claim orchestration."""

from claimgate.engine.claim_engine import ClaimEngine, quote_claim
from claimgate.engine.replay_guard import ReplayGuard
from claimgate.engine.state import EngineState
from claimgate.engine.vesting import (
    InstantSchedule,
    PeriodicVestingSchedule,
    UnlockSchedule,
    unlocked_amount,
)

__all__ = [
    "ClaimEngine",
    "EngineState",
    "InstantSchedule",
    "PeriodicVestingSchedule",
    "ReplayGuard",
    "UnlockSchedule",
    "quote_claim",
    "unlocked_amount",
]
