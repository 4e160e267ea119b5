"""Cryptographic primitives: packed message hashing and signature recovery."""

from claimgate.crypto.codec import encode_authorization, hash_authorization
from claimgate.crypto.signature import recover_signer, sign_authorization, verify

__all__ = [
    "encode_authorization",
    "hash_authorization",
    "recover_signer",
    "sign_authorization",
    "verify",
]
