"""ERC-20 custodian: pays claims out of a token balance over JSON-RPC.

The custody account is the address of ``private_key``. Transfers are
plain ``transfer(to, amount)`` calls signed locally with eth_account and
broadcast with ``send_raw_transaction``; a transfer succeeds when the
mined receipt reports status 1.

Once the transaction has been broadcast, any failure to read its receipt
(a timeout or a dropped RPC connection) leaves the outcome
unknown. It is reported as success so the engine keeps the
redemption recorded: a delayed payout can be reconciled, a double
payout cannot be clawed back.
"""

from __future__ import annotations

import logging
from typing import Any, Union

from eth_account import Account
from web3 import HTTPProvider, Web3
from web3.exceptions import TimeExhausted

from claimgate.models.claim import normalize_address

logger = logging.getLogger(__name__)

ERC20_ABI = [
    {
        "constant": True,
        "inputs": [{"name": "account", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "constant": False,
        "inputs": [
            {"name": "to", "type": "address"},
            {"name": "amount", "type": "uint256"},
        ],
        "name": "transfer",
        "outputs": [{"name": "", "type": "bool"}],
        "stateMutability": "nonpayable",
        "type": "function",
    },
]


class Web3TokenCustodian:
    """Custodian backed by an ERC-20 contract."""

    def __init__(
        self,
        w3: Web3,
        token_address: str,
        private_key: Union[str, bytes],
        chain_id: int = 11155111,  # Sepolia
        gas: int = 100_000,
        gas_price_gwei: str = "2",
        receipt_timeout: int = 300,
    ) -> None:
        self._w3 = w3
        self._account = Account.from_key(private_key)
        self._token_address = normalize_address(token_address, "token address")
        self._token = w3.eth.contract(address=self._token_address, abi=ERC20_ABI)
        self._chain_id = chain_id
        self._gas = gas
        self._gas_price_gwei = gas_price_gwei
        self._receipt_timeout = receipt_timeout

    @classmethod
    def from_rpc(
        cls,
        rpc_url: str,
        token_address: str,
        private_key: Union[str, bytes],
        **kwargs: Any,
    ) -> Web3TokenCustodian:
        return cls(Web3(HTTPProvider(rpc_url)), token_address, private_key, **kwargs)

    @property
    def custody_address(self) -> str:
        return self._account.address

    @property
    def token_address(self) -> str:
        return self._token_address

    def balance_of(self, holder: str) -> int:
        holder = normalize_address(holder, "holder")
        return int(self._token.functions.balanceOf(holder).call())

    def transfer(self, to: str, amount: int) -> bool:
        to = normalize_address(to, "recipient")
        w3 = self._w3
        tx = self._token.functions.transfer(to, amount).build_transaction({
            "from": self._account.address,
            "nonce": w3.eth.get_transaction_count(self._account.address, "pending"),
            "gas": self._gas,
            "gasPrice": w3.to_wei(self._gas_price_gwei, "gwei"),
            "chainId": self._chain_id,
        })
        signed = self._account.sign_transaction(tx)
        tx_hash = w3.eth.send_raw_transaction(signed.raw_transaction)
        logger.info("Sent token transfer %s: %d to %s", tx_hash.hex(), amount, to)

        try:
            receipt = w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self._receipt_timeout,
            )
        except TimeExhausted:
            logger.error(
                "No receipt for %s after %ds; treating as sent, reconcile manually",
                tx_hash.hex(), self._receipt_timeout,
            )
            return True
        except Exception as e:
            logger.error(
                "Receipt for %s unavailable (%s); treating as sent, reconcile manually",
                tx_hash.hex(), e,
            )
            return True

        ok = receipt["status"] == 1
        if not ok:
            logger.warning("Token transfer %s reverted in block %s",
                           tx_hash.hex(), receipt["blockNumber"])
        return ok
