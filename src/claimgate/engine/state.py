"""Engine state: the single mutable object every engine operation works on.

Nothing here is global. An engine is handed one EngineState at
construction and mutates it in place; persisting or inspecting the
engine means persisting or inspecting this object.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from claimgate.engine.replay_guard import ReplayGuard
from claimgate.engine.vesting import InstantSchedule, UnlockSchedule
from claimgate.models.claim import normalize_address


@dataclass
class EngineState:
    """Owner, trusted authorizer, release schedule and replay tables.

    ``authorizer`` is the address whose signatures are accepted. Rotating
    it invalidates every outstanding authorization signed by the previous
    key, redeemed or not.
    """
    owner: str
    authorizer: str
    schedule: UnlockSchedule = field(default_factory=InstantSchedule)
    guard: ReplayGuard = field(default_factory=ReplayGuard)

    def __post_init__(self) -> None:
        self.owner = normalize_address(self.owner, "owner address")
        self.authorizer = normalize_address(self.authorizer, "authorizer address")
