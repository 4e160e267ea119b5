"""Tests for the audit trail: proves the event chain is append-only and tamper-evident."""

import json
from datetime import datetime, timezone

import pytest

from claimgate.persistence.event_log import (
    ROOT_DIGEST,
    AuditEvent,
    EventKind,
    EventLog,
)

ALICE = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"
BOB = "0x3C44CdDdB6a900fa2b585dd299e03d12FA4293BC"
OWNER = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
WHEN = datetime(2026, 1, 1, 0, 0, 0, tzinfo=timezone.utc)


def _claim(recipient: str, amount: int) -> dict:
    return {"recipient": recipient, "amount": amount, "cumulative": amount, "message_hash": "0x00"}


def _rewrite(path, mutate) -> None:
    lines = [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]
    lines = mutate(lines)
    path.write_text("".join(json.dumps(d) + "\n" for d in lines), encoding="utf-8")


class TestAuditEvent:
    def test_digest_is_deterministic(self) -> None:
        a = AuditEvent.chain("EVT-1", EventKind.CLAIM_SUBMITTED, ALICE, {"amount": 1}, ROOT_DIGEST, WHEN)
        b = AuditEvent.chain("EVT-1", EventKind.CLAIM_SUBMITTED, ALICE, {"amount": 1}, ROOT_DIGEST, WHEN)
        assert a.digest == b.digest
        assert a.digest.startswith("sha256:")
        assert a.recorded_at == "2026-01-01T00:00:00Z"

    def test_digest_covers_previous_link(self) -> None:
        a = AuditEvent.chain("EVT-1", EventKind.CLAIM_SUBMITTED, ALICE, {}, ROOT_DIGEST, WHEN)
        b = AuditEvent.chain("EVT-1", EventKind.CLAIM_SUBMITTED, ALICE, {}, "sha256:" + "1" * 64, WHEN)
        assert a.digest != b.digest

    def test_dict_round_trip_verifies(self) -> None:
        event = AuditEvent.chain("EVT-1", EventKind.EMERGENCY_DRAIN, OWNER, {"amount": 5}, ROOT_DIGEST, WHEN)
        assert AuditEvent.from_dict(event.to_dict()) == event

    def test_altered_dict_rejected(self) -> None:
        data = AuditEvent.chain("EVT-1", EventKind.EMERGENCY_DRAIN, OWNER, {"amount": 5}, ROOT_DIGEST, WHEN).to_dict()
        data["payload"]["amount"] = 500
        with pytest.raises(ValueError, match="digest mismatch"):
            AuditEvent.from_dict(data)


class TestEventLog:
    def test_record_chains_events(self) -> None:
        log = EventLog()
        assert log.head_digest == ROOT_DIGEST
        first = log.record("EVT-1", EventKind.CLAIM_SUBMITTED, ALICE, _claim(ALICE, 100))
        second = log.record("EVT-2", EventKind.AUTHORIZER_ROTATED, OWNER, {})
        assert first.previous_digest == ROOT_DIGEST
        assert second.previous_digest == first.digest
        assert log.head_digest == second.digest
        assert log.count == 2
        assert list(log) == [first, second]

    def test_filter_by_kind(self) -> None:
        log = EventLog()
        log.record("EVT-1", EventKind.CLAIM_SUBMITTED, ALICE, _claim(ALICE, 100))
        log.record("EVT-2", EventKind.EMERGENCY_DRAIN, OWNER, {"amount": 1})
        assert [e.event_id for e in log.events(EventKind.EMERGENCY_DRAIN)] == ["EVT-2"]
        assert log.last_event.event_id == "EVT-2"

    def test_claims_for_recipient(self) -> None:
        log = EventLog()
        log.record("EVT-1", EventKind.CLAIM_SUBMITTED, ALICE, _claim(ALICE, 100))
        log.record("EVT-2", EventKind.CLAIM_SUBMITTED, BOB, _claim(BOB, 7))
        log.record("EVT-3", EventKind.CLAIM_SUBMITTED, ALICE, _claim(ALICE, 50))
        assert [e.event_id for e in log.claims_for(ALICE.lower())] == ["EVT-1", "EVT-3"]

    def test_duplicate_id_rejected(self) -> None:
        log = EventLog()
        log.record("EVT-1", EventKind.CLAIM_SUBMITTED, ALICE, {})
        with pytest.raises(ValueError, match="Duplicate"):
            log.record("EVT-1", EventKind.CLAIM_SUBMITTED, ALICE, {})
        assert log.count == 1

    def test_event_off_the_head_rejected(self) -> None:
        log = EventLog()
        log.record("EVT-1", EventKind.CLAIM_SUBMITTED, ALICE, {})
        stale = AuditEvent.chain("EVT-2", EventKind.CLAIM_SUBMITTED, ALICE, {}, ROOT_DIGEST)
        with pytest.raises(ValueError, match="chain head"):
            log.append(stale)

    def test_empty_log(self) -> None:
        log = EventLog()
        assert log.count == 0
        assert log.last_event is None


class TestEventLogPersistence:
    def _write_three(self, path) -> EventLog:
        log = EventLog(storage_path=path)
        log.record("EVT-1", EventKind.CLAIM_SUBMITTED, ALICE, _claim(ALICE, 100))
        log.record("EVT-2", EventKind.CLAIM_SUBMITTED, BOB, _claim(BOB, 7))
        log.record("EVT-3", EventKind.EMERGENCY_DRAIN, OWNER, {"amount": 1})
        return log

    def test_reload_from_file(self, tmp_path) -> None:
        path = tmp_path / "events.jsonl"
        log = self._write_three(path)
        reloaded = EventLog(storage_path=path)
        assert reloaded.events() == log.events()
        assert reloaded.head_digest == log.head_digest

    def test_reloaded_log_keeps_chaining(self, tmp_path) -> None:
        path = tmp_path / "events.jsonl"
        self._write_three(path)
        EventLog(storage_path=path).record("EVT-4", EventKind.CUSTODIAN_UPDATED, OWNER, {})
        assert EventLog(storage_path=path).count == 4

    def test_edited_payload_rejected(self, tmp_path) -> None:
        path = tmp_path / "events.jsonl"
        self._write_three(path)

        def _inflate(lines):
            lines[0]["payload"]["amount"] = 1_000_000
            return lines

        _rewrite(path, _inflate)
        with pytest.raises(ValueError, match="line 1"):
            EventLog(storage_path=path)

    def test_dropped_line_rejected(self, tmp_path) -> None:
        path = tmp_path / "events.jsonl"
        self._write_three(path)
        _rewrite(path, lambda lines: [lines[0], lines[2]])
        with pytest.raises(ValueError, match="chain broken"):
            EventLog(storage_path=path)

    def test_reordered_lines_rejected(self, tmp_path) -> None:
        path = tmp_path / "events.jsonl"
        self._write_three(path)
        _rewrite(path, lambda lines: [lines[1], lines[0], lines[2]])
        with pytest.raises(ValueError, match="chain broken"):
            EventLog(storage_path=path)

    def test_garbage_line_rejected(self, tmp_path) -> None:
        path = tmp_path / "events.jsonl"
        path.write_text("not json\n", encoding="utf-8")
        with pytest.raises(ValueError, match="Corrupt audit log"):
            EventLog(storage_path=path)
