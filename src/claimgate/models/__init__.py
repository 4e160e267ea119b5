"""Core data models for claimgate."""

from claimgate.models.claim import (
    CLAIM_TRANSITIONS,
    UINT256_MAX,
    ZERO_ADDRESS,
    ClaimAuthorization,
    ClaimQuote,
    ClaimReceipt,
    ClaimState,
    VestingConfig,
    check_transition,
    normalize_address,
)

__all__ = [
    "CLAIM_TRANSITIONS",
    "UINT256_MAX",
    "ZERO_ADDRESS",
    "ClaimAuthorization",
    "ClaimQuote",
    "ClaimReceipt",
    "ClaimState",
    "VestingConfig",
    "check_transition",
    "normalize_address",
]
