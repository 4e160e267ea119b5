"""Custody backends: who actually holds and moves the claimable token."""

from claimgate.custody.base import Custodian
from claimgate.custody.memory import InMemoryCustodian
from claimgate.custody.web3_token import Web3TokenCustodian

__all__ = [
    "Custodian",
    "InMemoryCustodian",
    "Web3TokenCustodian",
]
