"""Replay guard: redemption bookkeeping per authorization.

Two tables:
    used set         message hashes that can never be redeemed again
    redemptions      (recipient, message hash) → cumulative amount released

Policy (applied by the claim engine, not enforced here):
- One-shot authorizations are marked fully used after their single
  successful redemption.
- Vesting authorizations record every partial redemption and are marked
  fully used only when the cumulative amount reaches the total.

Both tables only grow. The one exception is ``rollback_to``, which the
engine uses to undo its own uncommitted writes when a later step of
the same claim aborts.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, Optional, Tuple

RedemptionKey = Tuple[str, bytes]


@dataclass(frozen=True)
class GuardSavepoint:
    """Pre-mutation snapshot of one (recipient, hash) entry."""
    recipient: str
    message_hash: bytes
    redeemed: Optional[int]
    fully_used: bool


class ReplayGuard:
    """Tracks used authorizations and cumulative redemptions.

    Usage:
        guard = ReplayGuard()
        guard.record_redemption(recipient, message_hash, 250)
        guard.mark_fully_used(message_hash)
        guard.is_fully_used(message_hash)  # True
    """

    def __init__(
        self,
        used: Optional[Iterable[bytes]] = None,
        redemptions: Optional[Dict[RedemptionKey, int]] = None,
    ) -> None:
        self._used: set[bytes] = set(used or ())
        self._redemptions: Dict[RedemptionKey, int] = dict(redemptions or {})

    def is_fully_used(self, message_hash: bytes) -> bool:
        return message_hash in self._used

    def redeemed_amount(self, recipient: str, message_hash: bytes) -> int:
        """Cumulative amount released so far (0 if never redeemed)."""
        return self._redemptions.get((recipient, message_hash), 0)

    def record_redemption(
        self,
        recipient: str,
        message_hash: bytes,
        new_cumulative: int,
    ) -> None:
        """Set the cumulative redeemed amount.

        Raises ValueError if the new value is lower than the current one.
        """
        current = self.redeemed_amount(recipient, message_hash)
        if new_cumulative < current:
            raise ValueError(
                f"Redemption cannot decrease: {current} → {new_cumulative}"
            )
        self._redemptions[(recipient, message_hash)] = new_cumulative

    def mark_fully_used(self, message_hash: bytes) -> None:
        """Mark an authorization as spent. Idempotent and permanent."""
        self._used.add(message_hash)

    def savepoint(self, recipient: str, message_hash: bytes) -> GuardSavepoint:
        return GuardSavepoint(
            recipient=recipient,
            message_hash=message_hash,
            redeemed=self._redemptions.get((recipient, message_hash)),
            fully_used=message_hash in self._used,
        )

    def rollback_to(self, savepoint: GuardSavepoint) -> None:
        """Restore the entry captured by ``savepoint``.

        Only valid for undoing writes of an in-flight transaction.
        """
        key = (savepoint.recipient, savepoint.message_hash)
        if savepoint.redeemed is None:
            self._redemptions.pop(key, None)
        else:
            self._redemptions[key] = savepoint.redeemed
        if not savepoint.fully_used:
            self._used.discard(savepoint.message_hash)

    def used_hashes(self) -> FrozenSet[bytes]:
        return frozenset(self._used)

    def redemption_records(self) -> Dict[RedemptionKey, int]:
        """Copy of the redemption table."""
        return dict(self._redemptions)
