"""Custodian contract: the external holder and mover of the claimable token.

The claim engine never moves value itself. It asks a custodian for its
balance and then asks it to transfer. Anything satisfying this Protocol
can back the engine: an in-memory ledger for tests and dry runs, or an
ERC-20 token reached over JSON-RPC.

Contract:
- ``balance_of(holder)`` returns the holder's balance in base units.
- ``transfer(to, amount)`` moves ``amount`` out of ``custody_address``
  and returns True on success. A False return (or an exception) means
  nothing moved; the engine then discards the whole claim.
- ``transfer`` may call back into the engine before returning. The
  engine has already recorded the redemption by then.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class Custodian(Protocol):
    """Abstract contract for custodian implementations."""

    @property
    def custody_address(self) -> str:
        """Address whose balance backs the claims."""
        ...

    def balance_of(self, holder: str) -> int:
        ...

    def transfer(self, to: str, amount: int) -> bool:
        ...
