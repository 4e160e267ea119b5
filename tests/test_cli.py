"""Tests for the claimgate CLI: proves commands dispatch and fail cleanly."""

import json
import logging
import os

import pytest
from eth_account import Account

from claimgate.cli import build_parser, main
from claimgate.crypto.codec import hash_authorization, message_hash_hex
from claimgate.engine.state import EngineState
from claimgate.models.claim import ClaimAuthorization
from claimgate.persistence.state_store import StateStore

SIGNER = Account.from_key("0x" + "11" * 32)
OWNER = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
ALICE = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"
AUTH_ARGS = ["--recipient", ALICE, "--amount", "1000", "--nonce", "1", "--deadline", "2000000000"]


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, tmp_path):
    clean = {k: v for k, v in os.environ.items() if not k.startswith("CLAIM_")}
    clean["CLAIM_STATE_DIR"] = str(tmp_path / "data")
    clean["CLAIM_LOG_JSON"] = "false"
    monkeypatch.setattr(os, "environ", clean)
    yield
    logger = logging.getLogger("claimgate")
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)


def _run(tmp_path, *argv: str) -> int:
    return main(["--env-file", str(tmp_path / "absent.env"), *argv])


class TestCLIParsing:
    def test_verify_command(self) -> None:
        args = build_parser().parse_args(["verify", *AUTH_ARGS, "--signature", "0x00"])
        assert args.command == "verify"
        assert args.amount == 1000
        assert args.authorizer is None

    def test_claim_requires_signature(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args(["claim", *AUTH_ARGS])

    def test_amount_must_be_integer(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args(["hash", "--recipient", ALICE, "--amount", "1.5",
                                       "--nonce", "1", "--deadline", "1"])


class TestCLIExecution:
    def test_no_command_shows_help(self, tmp_path) -> None:
        assert _run(tmp_path) == 0

    def test_hash(self, tmp_path, capsys) -> None:
        assert _run(tmp_path, "hash", *AUTH_ARGS) == 0
        expected = hash_authorization(ClaimAuthorization(ALICE, 1000, 1, 2_000_000_000))
        assert capsys.readouterr().out.strip() == message_hash_hex(expected)

    def test_sign_then_verify(self, tmp_path, capsys) -> None:
        assert _run(tmp_path, "sign", *AUTH_ARGS, "--private-key", "0x" + "11" * 32) == 0
        signature = capsys.readouterr().out.strip()

        assert _run(tmp_path, "verify", *AUTH_ARGS, "--signature", signature,
                    "--authorizer", SIGNER.address) == 0
        assert capsys.readouterr().out.strip() == "true"

        other = Account.from_key("0x" + "22" * 32).address
        assert _run(tmp_path, "verify", *AUTH_ARGS, "--signature", signature,
                    "--authorizer", other) == 1
        assert capsys.readouterr().out.strip() == "false"

    def test_sign_without_key(self, tmp_path, capsys) -> None:
        assert _run(tmp_path, "sign", *AUTH_ARGS) == 1
        assert "CLAIM_SIGNER_PRIVATE_KEY" in capsys.readouterr().err

    def test_verify_without_authorizer(self, tmp_path, capsys) -> None:
        assert _run(tmp_path, "verify", *AUTH_ARGS, "--signature", "0x00") == 1
        assert "Failed" in capsys.readouterr().err

    def test_schedule(self, tmp_path, capsys) -> None:
        os.environ["CLAIM_VESTING_START"] = "1000"
        os.environ["CLAIM_VESTING_PERIOD_SECONDS"] = "100"
        assert _run(tmp_path, "schedule", "--total", "1000", "--at", "1150") == 0
        assert capsys.readouterr().out.strip() == "500"

    def test_schedule_without_vesting(self, tmp_path) -> None:
        assert _run(tmp_path, "schedule", "--total", "1000") == 1

    def test_quote_from_settings(self, tmp_path, capsys) -> None:
        os.environ["CLAIM_OWNER_ADDRESS"] = OWNER
        os.environ["CLAIM_AUTHORIZER_ADDRESS"] = SIGNER.address
        assert _run(tmp_path, "quote", *AUTH_ARGS, "--at", "0") == 0
        quote = json.loads(capsys.readouterr().out)
        assert quote == {"claimable_now": 1000, "already_claimed": 0, "total_available": 1000}

    def test_quote_without_state_or_settings(self, tmp_path, capsys) -> None:
        assert _run(tmp_path, "quote", *AUTH_ARGS) == 1
        assert "CLAIM_OWNER_ADDRESS" in capsys.readouterr().err

    def test_status_reads_saved_state(self, tmp_path, capsys) -> None:
        state = EngineState(owner=OWNER, authorizer=SIGNER.address)
        digest = hash_authorization(ClaimAuthorization(ALICE, 1000, 1, 2_000_000_000))
        state.guard.record_redemption(ALICE, digest, 1000)
        state.guard.mark_fully_used(digest)
        StateStore(tmp_path / "data" / "state.json").save(state)

        assert _run(tmp_path, "status") == 0
        status = json.loads(capsys.readouterr().out)
        assert status["owner"] == OWNER
        assert status["vesting"] is None
        assert status["used_authorizations"] == 1
        assert status["redemptions"][0]["amount"] == 1000

    def test_claim_requires_chain_settings(self, tmp_path, capsys) -> None:
        assert _run(tmp_path, "claim", *AUTH_ARGS, "--signature", "0x00") == 1
        assert "CLAIM_RPC_URL" in capsys.readouterr().err

    def test_claim_error_reports_code(self, tmp_path, capsys) -> None:
        assert _run(tmp_path, "hash", "--recipient", "0x1234", "--amount", "1",
                    "--nonce", "1", "--deadline", "1") == 1
        assert "[invalid_address]" in capsys.readouterr().err

    def test_bad_setting_reported(self, tmp_path, capsys) -> None:
        os.environ["CLAIM_CHAIN_ID"] = "mainnet"
        assert _run(tmp_path, "hash", *AUTH_ARGS) == 1
        assert "CLAIM_CHAIN_ID" in capsys.readouterr().err
