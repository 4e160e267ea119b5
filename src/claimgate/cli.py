"""claimgate CLI: hash, sign, verify and redeem claim authorizations.

Usage:
    python -m claimgate.cli hash --recipient 0xabc... --amount 100 --nonce 1 --deadline 1767225600
    python -m claimgate.cli sign --recipient 0xabc... --amount 100 --nonce 1 --deadline 1767225600
    python -m claimgate.cli verify --recipient 0xabc... --amount 100 --nonce 1 \\
        --deadline 1767225600 --signature 0x...
    python -m claimgate.cli schedule --total 1000 --at 1767225600
    python -m claimgate.cli quote --recipient 0xabc... --amount 1000 --nonce 1 --deadline 1767225600
    python -m claimgate.cli status
    python -m claimgate.cli claim --recipient 0xabc... --amount 100 --nonce 1 \\
        --deadline 1767225600 --signature 0x...

Settings come from CLAIM_* environment variables (see claimgate.config),
optionally loaded from a .env file.
"""

from __future__ import annotations

import argparse
import json
import os
import sys
from pathlib import Path

from claimgate.config import ClaimSettings
from claimgate.crypto.codec import hash_authorization, message_hash_hex
from claimgate.crypto.signature import sign_authorization
from claimgate.custody.web3_token import Web3TokenCustodian
from claimgate.engine.claim_engine import (
    ClaimEngine,
    authorization_signed_by,
    quote_claim,
    system_clock,
)
from claimgate.engine.state import EngineState
from claimgate.engine.vesting import unlocked_amount, vesting_config_of
from claimgate.errors import ClaimError
from claimgate.logging_config import configure_logging
from claimgate.models.claim import ClaimAuthorization
from claimgate.persistence.event_log import EventLog
from claimgate.persistence.state_store import StateStore


def _authorization(args: argparse.Namespace) -> ClaimAuthorization:
    return ClaimAuthorization(args.recipient, args.amount, args.nonce, args.deadline)


def _load_state(settings: ClaimSettings) -> EngineState:
    """Restore persisted state, or start fresh from settings."""
    state = StateStore(settings.state_path).load()
    if state is not None:
        return state
    if not settings.owner_address or not settings.authorizer_address:
        raise ValueError(
            "No saved state and CLAIM_OWNER_ADDRESS / CLAIM_AUTHORIZER_ADDRESS not set"
        )
    return EngineState(
        owner=settings.owner_address,
        authorizer=settings.authorizer_address,
        schedule=settings.schedule(),
    )


def _make_engine(settings: ClaimSettings) -> ClaimEngine:
    """Create an engine with durable persistence and an ERC-20 custodian."""
    if not (settings.rpc_url and settings.token_address and settings.custody_private_key):
        raise ValueError(
            "CLAIM_RPC_URL, CLAIM_TOKEN_ADDRESS and CLAIM_CUSTODY_PRIVATE_KEY are required"
        )
    settings.state_dir.mkdir(parents=True, exist_ok=True)
    custodian = Web3TokenCustodian.from_rpc(
        settings.rpc_url,
        settings.token_address,
        settings.custody_private_key,
        chain_id=settings.chain_id,
    )
    return ClaimEngine(
        _load_state(settings),
        custodian,
        event_log=EventLog(storage_path=settings.events_path),
        state_store=StateStore(settings.state_path),
    )


def cmd_hash(args: argparse.Namespace, settings: ClaimSettings) -> int:
    print(message_hash_hex(hash_authorization(_authorization(args))))
    return 0


def cmd_sign(args: argparse.Namespace, settings: ClaimSettings) -> int:
    private_key = args.private_key or os.getenv("CLAIM_SIGNER_PRIVATE_KEY")
    if not private_key:
        print("Failed: --private-key or CLAIM_SIGNER_PRIVATE_KEY required", file=sys.stderr)
        return 1
    signature = sign_authorization(hash_authorization(_authorization(args)), private_key)
    print("0x" + signature.hex())
    return 0


def cmd_verify(args: argparse.Namespace, settings: ClaimSettings) -> int:
    """Exit 0 if the signature is valid for the authorizer, 1 otherwise."""
    authorizer = args.authorizer or settings.authorizer_address
    if not authorizer:
        print("Failed: --authorizer or CLAIM_AUTHORIZER_ADDRESS required", file=sys.stderr)
        return 1
    valid = authorization_signed_by(_authorization(args), args.signature, authorizer)
    print("true" if valid else "false")
    return 0 if valid else 1


def cmd_schedule(args: argparse.Namespace, settings: ClaimSettings) -> int:
    config = settings.vesting
    if config is None:
        print("Failed: CLAIM_VESTING_START not set", file=sys.stderr)
        return 1
    at = args.at if args.at is not None else system_clock()
    amount = unlocked_amount(
        args.total, at, config.start_time, config.period_duration,
        config.period_count, credit_remainder=settings.credit_remainder,
    )
    print(amount)
    return 0


def cmd_quote(args: argparse.Namespace, settings: ClaimSettings) -> int:
    state = _load_state(settings)
    at = args.at if args.at is not None else system_clock()
    quote = quote_claim(state, _authorization(args), at)
    print(json.dumps({
        "claimable_now": quote.claimable_now,
        "already_claimed": quote.already_claimed,
        "total_available": quote.total_available,
    }, indent=2))
    return 0


def cmd_status(args: argparse.Namespace, settings: ClaimSettings) -> int:
    state = _load_state(settings)
    config = vesting_config_of(state.schedule)
    status = {
        "owner": state.owner,
        "authorizer": state.authorizer,
        "vesting": None if config is None else {
            "start_time": config.start_time,
            "period_duration": config.period_duration,
            "period_count": config.period_count,
        },
        "used_authorizations": len(state.guard.used_hashes()),
        "redemptions": [
            {"recipient": recipient, "message_hash": message_hash_hex(h), "amount": amount}
            for (recipient, h), amount in sorted(state.guard.redemption_records().items())
        ],
    }
    print(json.dumps(status, indent=2))
    return 0


def cmd_claim(args: argparse.Namespace, settings: ClaimSettings) -> int:
    engine = _make_engine(settings)
    receipt = engine.submit_claim(
        args.recipient, args.amount, args.nonce, args.deadline, args.signature,
    )
    print(json.dumps({
        "recipient": receipt.recipient,
        "amount": receipt.amount,
        "cumulative": receipt.cumulative,
        "total_amount": receipt.total_amount,
        "message_hash": receipt.message_hash,
        "state": receipt.state.value,
        "event_id": receipt.event_id,
        "warning": receipt.warning,
    }, indent=2))
    return 0


def _add_authorization_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--recipient", required=True, help="Recipient address")
    p.add_argument("--amount", required=True, type=int, help="Total amount (base units)")
    p.add_argument("--nonce", required=True, type=int, help="Authorization nonce")
    p.add_argument("--deadline", required=True, type=int, help="Deadline (unix seconds)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="claimgate",
        description="claimgate: signed token claim redemption",
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Path to a .env file (default: ./.env if present)",
    )
    sub = parser.add_subparsers(dest="command")

    p_hash = sub.add_parser("hash", help="Print the message hash of an authorization")
    _add_authorization_args(p_hash)

    p_sign = sub.add_parser("sign", help="Sign an authorization (testing/operations)")
    _add_authorization_args(p_sign)
    p_sign.add_argument("--private-key", help="Signer key (default: CLAIM_SIGNER_PRIVATE_KEY)")

    p_verify = sub.add_parser("verify", help="Check a signature against the authorizer")
    _add_authorization_args(p_verify)
    p_verify.add_argument("--signature", required=True, help="65-byte hex signature")
    p_verify.add_argument("--authorizer", help="Authorizer address (default: from settings)")

    p_sched = sub.add_parser("schedule", help="Unlocked amount under the vesting settings")
    p_sched.add_argument("--total", required=True, type=int, help="Total amount")
    p_sched.add_argument("--at", type=int, help="Timestamp (default: now)")

    p_quote = sub.add_parser("quote", help="Claimable amount for an authorization")
    _add_authorization_args(p_quote)
    p_quote.add_argument("--at", type=int, help="Timestamp (default: now)")

    sub.add_parser("status", help="Show persisted engine state")

    p_claim = sub.add_parser("claim", help="Redeem an authorization on-chain")
    _add_authorization_args(p_claim)
    p_claim.add_argument("--signature", required=True, help="65-byte hex signature")

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    commands = {
        "hash": cmd_hash,
        "sign": cmd_sign,
        "verify": cmd_verify,
        "schedule": cmd_schedule,
        "quote": cmd_quote,
        "status": cmd_status,
        "claim": cmd_claim,
    }

    handler = commands.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return 1

    try:
        settings = ClaimSettings.from_env(args.env_file)
        configure_logging(settings.log_level, json_format=settings.log_json)
        return handler(args, settings)
    except ClaimError as e:
        print(f"Failed: [{e.code}] {e}", file=sys.stderr)
        return 1
    except (ValueError, OSError) as e:
        print(f"Failed: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
