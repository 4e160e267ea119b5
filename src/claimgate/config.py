"""Runtime configuration: environment variables, optionally from a .env file.

Variables:
    CLAIM_OWNER_ADDRESS             privileged principal
    CLAIM_AUTHORIZER_ADDRESS        address whose signatures are trusted
    CLAIM_TOKEN_ADDRESS             ERC-20 token held in custody
    CLAIM_RPC_URL                   JSON-RPC endpoint
    CLAIM_CUSTODY_PRIVATE_KEY       key of the custody account
    CLAIM_CHAIN_ID                  chain id for signed transfers (Sepolia)
    CLAIM_VESTING_START             unix start time; unset means one-shot claims
    CLAIM_VESTING_PERIOD_SECONDS    length of one vesting period (30 days)
    CLAIM_VESTING_PERIODS           number of vesting periods (4)
    CLAIM_VESTING_CREDIT_REMAINDER  pay the division remainder in the last period
    CLAIM_STATE_DIR                 where state.json and events.jsonl live
    CLAIM_LOG_LEVEL                 logging level
    CLAIM_LOG_JSON                  JSON log lines (true) or plain text
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from claimgate.engine.vesting import InstantSchedule, PeriodicVestingSchedule, UnlockSchedule
from claimgate.models.claim import VestingConfig

DEFAULT_CHAIN_ID = 11155111  # Sepolia
DEFAULT_PERIOD_SECONDS = 30 * 24 * 60 * 60
DEFAULT_PERIODS = 4
DEFAULT_STATE_DIR = Path("data")

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _int_env(name: str, default: Optional[int]) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw.strip())
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def _bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValueError(f"{name} must be a boolean, got {raw!r}")


def _str_env(name: str) -> Optional[str]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return None
    return raw.strip()


@dataclass(frozen=True)
class ClaimSettings:
    """Everything needed to assemble an engine outside of tests."""
    owner_address: Optional[str] = None
    authorizer_address: Optional[str] = None
    token_address: Optional[str] = None
    rpc_url: Optional[str] = None
    custody_private_key: Optional[str] = None
    chain_id: int = DEFAULT_CHAIN_ID
    vesting: Optional[VestingConfig] = None
    credit_remainder: bool = False
    state_dir: Path = DEFAULT_STATE_DIR
    log_level: str = "INFO"
    log_json: bool = True

    @classmethod
    def from_env(cls, env_file: Optional[Path] = None) -> ClaimSettings:
        """Read settings from the process environment.

        ``env_file`` (or ./.env when omitted) is loaded first without
        overriding variables that are already set.
        """
        if env_file is not None:
            load_dotenv(env_file)
        else:
            load_dotenv()

        vesting: Optional[VestingConfig] = None
        start = _int_env("CLAIM_VESTING_START", None)
        if start is not None:
            vesting = VestingConfig(
                start_time=start,
                period_duration=_int_env("CLAIM_VESTING_PERIOD_SECONDS", DEFAULT_PERIOD_SECONDS),
                period_count=_int_env("CLAIM_VESTING_PERIODS", DEFAULT_PERIODS),
            )

        level = (_str_env("CLAIM_LOG_LEVEL") or "INFO").upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"CLAIM_LOG_LEVEL is not a logging level: {level!r}")

        state_dir = _str_env("CLAIM_STATE_DIR")
        return cls(
            owner_address=_str_env("CLAIM_OWNER_ADDRESS"),
            authorizer_address=_str_env("CLAIM_AUTHORIZER_ADDRESS"),
            token_address=_str_env("CLAIM_TOKEN_ADDRESS"),
            rpc_url=_str_env("CLAIM_RPC_URL"),
            custody_private_key=_str_env("CLAIM_CUSTODY_PRIVATE_KEY"),
            chain_id=_int_env("CLAIM_CHAIN_ID", DEFAULT_CHAIN_ID),
            vesting=vesting,
            credit_remainder=_bool_env("CLAIM_VESTING_CREDIT_REMAINDER", False),
            state_dir=Path(state_dir) if state_dir else DEFAULT_STATE_DIR,
            log_level=level,
            log_json=_bool_env("CLAIM_LOG_JSON", True),
        )

    def schedule(self) -> UnlockSchedule:
        """The release schedule these settings describe."""
        if self.vesting is None:
            return InstantSchedule()
        return PeriodicVestingSchedule(self.vesting, credit_remainder=self.credit_remainder)

    @property
    def state_path(self) -> Path:
        return self.state_dir / "state.json"

    @property
    def events_path(self) -> Path:
        return self.state_dir / "events.jsonl"
