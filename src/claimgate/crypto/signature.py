"""Signature verification: recovers the signer of an authorization hash.

Signatures are 65 bytes: r (32) ‖ s (32) ‖ v (1), over the EIP-191
personal-sign digest of the 32-byte message hash:

    keccak256("\\x19Ethereum Signed Message:\\n32" ‖ message_hash)

The prefix keeps a claim signature from being replayed as a transaction
or any other protocol message signed by the same key.

Recovery rules follow the on-chain ECDSA helpers the issuer targets:
v must be 27 or 28, s must lie in the lower half of the curve order,
and any combination that fails recovery is a non-match, never an error.
"""

from __future__ import annotations

from typing import Optional, Union

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_keys.exceptions import BadSignature
from eth_keys.exceptions import ValidationError as KeyValidationError

from claimgate.errors import InvalidSignatureLength, SignatureMismatch

SIGNATURE_LENGTH = 65

SECP256K1_N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141
SECP256K1_HALF_N = SECP256K1_N // 2

SignatureLike = Union[bytes, bytearray, str]


def signature_bytes(signature: SignatureLike) -> bytes:
    """Coerce a signature to raw bytes and enforce the 65-byte length.

    Hex strings are accepted with or without a ``0x`` prefix.
    """
    if isinstance(signature, str):
        text = signature[2:] if signature[:2].lower() == "0x" else signature
        try:
            raw = bytes.fromhex(text)
        except ValueError as e:
            raise SignatureMismatch(f"Signature is not valid hex: {e}") from e
    elif isinstance(signature, (bytes, bytearray)):
        raw = bytes(signature)
    else:
        raise SignatureMismatch(
            f"Signature must be bytes or hex, got {type(signature).__name__}"
        )
    if len(raw) != SIGNATURE_LENGTH:
        raise InvalidSignatureLength(
            f"Invalid signature length: expected {SIGNATURE_LENGTH} bytes, "
            f"got {len(raw)}"
        )
    return raw


def _require_digest(message_hash: bytes) -> None:
    if not isinstance(message_hash, (bytes, bytearray)) or len(message_hash) != 32:
        raise ValueError("message_hash must be exactly 32 bytes")


def recover_signer(message_hash: bytes, signature: SignatureLike) -> Optional[str]:
    """Recover the checksummed signer address, or None if recovery fails.

    Raises InvalidSignatureLength if the signature is not 65 bytes.
    """
    _require_digest(message_hash)
    raw = signature_bytes(signature)
    r = int.from_bytes(raw[0:32], "big")
    s = int.from_bytes(raw[32:64], "big")
    v = raw[64]

    if v not in (27, 28):
        return None
    if r == 0 or s == 0 or r >= SECP256K1_N or s > SECP256K1_HALF_N:
        return None

    signable = encode_defunct(primitive=bytes(message_hash))
    try:
        return Account.recover_message(signable, vrs=(v, r, s))
    except (ValueError, BadSignature, KeyValidationError):
        # Point not on the curve or otherwise unrecoverable.
        return None


def verify(
    message_hash: bytes,
    signature: SignatureLike,
    expected_address: str,
) -> bool:
    """Return True iff ``signature`` over ``message_hash`` was made by
    ``expected_address``.

    Raises InvalidSignatureLength for signatures that are not 65 bytes.
    """
    recovered = recover_signer(message_hash, signature)
    if recovered is None:
        return False
    return recovered.lower() == expected_address.lower()


def sign_authorization(message_hash: bytes, private_key: Union[str, bytes]) -> bytes:
    """Produce a 65-byte signature the way the issuer does.

    Intended for tests and operator tooling; issuance policy lives
    elsewhere.
    """
    _require_digest(message_hash)
    signable = encode_defunct(primitive=bytes(message_hash))
    signed = Account.sign_message(signable, private_key=private_key)
    return bytes(signed.signature)
