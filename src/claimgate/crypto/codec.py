"""Message codec: canonical packed encoding and hashing of claim parameters.

The layout is Solidity's ``abi.encodePacked(address, uint256, uint256,
uint256)``: a 20-byte address followed by three 32-byte big-endian
integers, no delimiters, no length prefixes. The digest is Keccak-256.

This must match the issuer byte for byte (``ethers.solidityPacked`` +
``keccak256`` on the issuing side). A mismatch does not raise anywhere;
every signature simply fails to verify.
"""

from __future__ import annotations

from eth_abi.packed import encode_packed
from eth_utils import keccak

from claimgate.models.claim import ClaimAuthorization

PACKED_TYPES = ["address", "uint256", "uint256", "uint256"]
PACKED_LENGTH = 20 + 32 * 3


def encode_authorization(auth: ClaimAuthorization) -> bytes:
    """Return the packed encoding of (recipient, total_amount, nonce, deadline)."""
    return encode_packed(
        PACKED_TYPES,
        [auth.recipient, auth.total_amount, auth.nonce, auth.deadline],
    )


def hash_authorization(auth: ClaimAuthorization) -> bytes:
    """Return the 32-byte message hash identifying an authorization."""
    return keccak(encode_authorization(auth))


def message_hash_hex(message_hash: bytes) -> str:
    return "0x" + message_hash.hex()
