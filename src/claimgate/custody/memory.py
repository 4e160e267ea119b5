"""In-memory custodian: a plain balance ledger.

Used by tests, dry runs and the CLI when no chain is configured. Balances
live in a dict keyed by checksummed address. Storage is in-memory only.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional, Tuple

from claimgate.models.claim import normalize_address

logger = logging.getLogger(__name__)


class InMemoryCustodian:
    """Ledger-backed custodian.

    Usage:
        custodian = InMemoryCustodian(vault_address, initial_balance=10_000)
        custodian.transfer(recipient, 250)
        custodian.balance_of(recipient)  # 250

    ``on_transfer`` is invoked after balances move and before ``transfer``
    returns, which lets callers observe (or re-enter) the engine mid-claim.
    Setting ``fail_transfers`` makes every transfer report failure without
    moving anything.
    """

    def __init__(
        self,
        custody_address: str,
        initial_balance: int = 0,
        on_transfer: Optional[Callable[[str, int], None]] = None,
    ) -> None:
        self._custody_address = normalize_address(custody_address, "custody address")
        self._balances: Dict[str, int] = {}
        if initial_balance:
            self.mint(self._custody_address, initial_balance)
        self.on_transfer = on_transfer
        self.fail_transfers = False
        self.transfers: List[Tuple[str, int]] = []

    @property
    def custody_address(self) -> str:
        return self._custody_address

    def balance_of(self, holder: str) -> int:
        return self._balances.get(normalize_address(holder, "holder"), 0)

    def mint(self, holder: str, amount: int) -> None:
        """Credit ``amount`` to ``holder`` out of thin air (funding)."""
        if amount < 0:
            raise ValueError("Mint amount must be non-negative")
        holder = normalize_address(holder, "holder")
        self._balances[holder] = self._balances.get(holder, 0) + amount

    def transfer(self, to: str, amount: int) -> bool:
        to = normalize_address(to, "recipient")
        if self.fail_transfers:
            logger.warning("Transfer of %d to %s refused by custodian", amount, to)
            return False
        if amount < 0 or self.balance_of(self._custody_address) < amount:
            return False
        self._balances[self._custody_address] -= amount
        self._balances[to] = self._balances.get(to, 0) + amount
        if self.on_transfer is not None:
            try:
                self.on_transfer(to, amount)
            except Exception:
                self._balances[to] -= amount
                self._balances[self._custody_address] += amount
                raise
        self.transfers.append((to, amount))
        return True
