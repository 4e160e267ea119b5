"""Claim models: authorizations, quotes, receipts and the claim lifecycle.

All amounts and timestamps are plain ints with uint256 semantics: this
is what the off-chain issuer hashes, so any wider or negative value
would produce a digest nobody could have signed.

Lifecycle per (recipient, authorization hash):
    UNCLAIMED → PARTIALLY_CLAIMED → FULLY_CLAIMED
    UNCLAIMED → FULLY_CLAIMED            (one-shot, or a single vesting claim
                                          after every period has unlocked)
    PARTIALLY_CLAIMED → PARTIALLY_CLAIMED (further vesting instalments)
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Dict, Optional

from eth_utils import is_address, to_checksum_address

from claimgate.errors import InvalidAddress, InvalidVestingConfig

UINT256_MAX = 2**256 - 1
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


def normalize_address(value: str, what: str = "address") -> str:
    """Return the checksummed form of an address.

    Raises InvalidAddress for malformed input and for the zero address,
    which is never a valid principal.
    """
    if not isinstance(value, str) or not is_address(value):
        raise InvalidAddress(f"Invalid {what}: {value!r}")
    checksummed = to_checksum_address(value)
    if checksummed == ZERO_ADDRESS:
        raise InvalidAddress(f"Invalid {what}: zero address")
    return checksummed


def _require_uint256(value: int, what: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{what} must be an integer, got {type(value).__name__}")
    if value < 0 or value > UINT256_MAX:
        raise ValueError(f"{what} out of uint256 range: {value}")


class ClaimState(str, enum.Enum):
    """Redemption state of one authorization for one recipient."""
    UNCLAIMED = "unclaimed"
    PARTIALLY_CLAIMED = "partially_claimed"
    FULLY_CLAIMED = "fully_claimed"


CLAIM_TRANSITIONS: Dict[ClaimState, frozenset] = {
    ClaimState.UNCLAIMED: frozenset({
        ClaimState.PARTIALLY_CLAIMED,
        ClaimState.FULLY_CLAIMED,
    }),
    ClaimState.PARTIALLY_CLAIMED: frozenset({
        ClaimState.PARTIALLY_CLAIMED,
        ClaimState.FULLY_CLAIMED,
    }),
    ClaimState.FULLY_CLAIMED: frozenset(),
}


def check_transition(current: ClaimState, target: ClaimState) -> None:
    """Raise ValueError unless current → target is a legal transition."""
    allowed = CLAIM_TRANSITIONS.get(current, frozenset())
    if target not in allowed:
        raise ValueError(
            f"Invalid claim transition: {current.value} → {target.value}. "
            f"Allowed: {', '.join(s.value for s in allowed) or 'none'}"
        )


@dataclass(frozen=True)
class ClaimAuthorization:
    """A signed grant letting ``recipient`` redeem up to ``total_amount``.

    Identity is entirely determined by the four fields: two authorizations
    with equal fields hash identically and share replay state.
    """
    recipient: str
    total_amount: int
    nonce: int
    deadline: int

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "recipient", normalize_address(self.recipient, "recipient"),
        )
        _require_uint256(self.total_amount, "total_amount")
        _require_uint256(self.nonce, "nonce")
        _require_uint256(self.deadline, "deadline")


@dataclass(frozen=True)
class VestingConfig:
    """Process-wide vesting parameters.

    The first period unlocks at ``start_time``; one more unlocks after
    each full ``period_duration`` seconds, up to ``period_count``.
    """
    start_time: int
    period_duration: int
    period_count: int

    def __post_init__(self) -> None:
        if self.start_time < 0:
            raise InvalidVestingConfig(f"start_time must be >= 0, got {self.start_time}")
        if self.period_count < 1:
            raise InvalidVestingConfig(
                f"period_count must be >= 1, got {self.period_count}"
            )
        if self.period_duration < 0:
            raise InvalidVestingConfig(
                f"period_duration must be >= 0, got {self.period_duration}"
            )
        if self.period_duration == 0 and self.period_count > 1:
            raise InvalidVestingConfig(
                "period_duration of 0 only makes sense with a single period"
            )

    def end_time(self) -> int:
        """Timestamp at which the final period unlocks."""
        return self.start_time + (self.period_count - 1) * self.period_duration


@dataclass(frozen=True)
class ClaimQuote:
    """What a recipient could redeem right now."""
    claimable_now: int
    already_claimed: int
    total_available: int


@dataclass(frozen=True)
class ClaimReceipt:
    """Outcome of a committed claim."""
    recipient: str
    amount: int
    cumulative: int
    total_amount: int
    message_hash: str
    state: ClaimState
    event_id: Optional[str] = None
    warning: Optional[str] = None
