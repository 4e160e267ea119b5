"""Claim errors: the complete abort taxonomy of the redemption engine.

Every rejected operation raises exactly one of these. The first failing
check wins; nothing is aggregated and nothing is retried internally.
Each class carries a stable ``code`` used in logs, audit payloads and
CLI output.
"""

from __future__ import annotations


class ClaimError(Exception):
    """Base class for every engine abort reason."""
    code = "claim_error"


class ExpiredAuthorization(ClaimError):
    """The authorization deadline has passed."""
    code = "expired_authorization"


class ZeroAmount(ClaimError):
    """The authorization grants nothing."""
    code = "zero_amount"


class VestingNotStarted(ClaimError):
    """The vesting schedule has not reached its start time."""
    code = "vesting_not_started"


class SignatureMismatch(ClaimError):
    """The signature was not produced by the current authorizer."""
    code = "signature_mismatch"


class InvalidSignatureLength(SignatureMismatch):
    """The signature is not exactly 65 bytes (r, s, v)."""
    code = "invalid_signature_length"


class ReplayedAuthorization(ClaimError):
    """The authorization has already been fully redeemed."""
    code = "replayed_authorization"


class NothingToClaim(ClaimError):
    """Everything unlocked so far has already been redeemed."""
    code = "nothing_to_claim"


class InsufficientCustody(ClaimError):
    """The custodian does not hold enough to pay out."""
    code = "insufficient_custody"


class TransferFailed(ClaimError):
    """The custodian reported a failed transfer. No state was kept."""
    code = "transfer_failed"


class Unauthorized(ClaimError):
    """A privileged operation was called by someone other than the owner."""
    code = "unauthorized"


class InvalidAddress(ClaimError):
    """A principal is malformed or the zero address."""
    code = "invalid_address"


class ReentrantCall(ClaimError):
    """A mutating operation was re-entered while already in progress."""
    code = "reentrant_call"


class VestingAlreadyStarted(ClaimError):
    """The vesting configuration is frozen once its start time is reached."""
    code = "vesting_already_started"


class InvalidVestingConfig(ClaimError):
    """The vesting parameters are unusable or absent."""
    code = "invalid_vesting_config"
