"""Audit trail: a hash-chained log of every committed claim and admin action.

Each committed mutation of the engine becomes one AuditEvent. An event's
digest covers its own fields plus the digest of the event before it, so
the JSONL file is a chain: editing, dropping or reordering a line breaks
every digest after it and the log refuses to load.

Rejected claims produce no event. Nothing was committed, so the only
trace is the warning the engine logs.
"""

from __future__ import annotations

import enum
import hashlib
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator, Optional

ROOT_DIGEST = "sha256:" + "0" * 64


class EventKind(str, enum.Enum):
    """What an audit event records."""
    CLAIM_SUBMITTED = "claim_submitted"
    AUTHORIZER_ROTATED = "authorizer_rotated"
    VESTING_START_UPDATED = "vesting_start_updated"
    CUSTODIAN_UPDATED = "custodian_updated"
    EMERGENCY_DRAIN = "emergency_drain"


def _digest(body: dict[str, Any]) -> str:
    canonical = json.dumps(body, sort_keys=True, ensure_ascii=False).encode("utf-8")
    return f"sha256:{hashlib.sha256(canonical).hexdigest()}"


@dataclass(frozen=True)
class AuditEvent:
    """One link of the audit chain."""
    event_id: str
    kind: EventKind
    recorded_at: str
    actor: str
    payload: dict[str, Any]
    previous_digest: str
    digest: str

    @staticmethod
    def chain(
        event_id: str,
        kind: EventKind,
        actor: str,
        payload: dict[str, Any],
        previous_digest: str,
        recorded_at: Optional[datetime] = None,
    ) -> AuditEvent:
        """Build the event that follows ``previous_digest``."""
        ts = (recorded_at or datetime.now(timezone.utc)).strftime("%Y-%m-%dT%H:%M:%SZ")
        body = {
            "event_id": event_id,
            "kind": kind.value,
            "recorded_at": ts,
            "actor": actor,
            "payload": payload,
            "previous_digest": previous_digest,
        }
        return AuditEvent(
            event_id=event_id,
            kind=kind,
            recorded_at=ts,
            actor=actor,
            payload=payload,
            previous_digest=previous_digest,
            digest=_digest(body),
        )

    @staticmethod
    def from_dict(data: dict[str, Any]) -> AuditEvent:
        """Rebuild a stored event, recomputing its digest.

        Raises ValueError if the stored digest does not match.
        """
        event = AuditEvent.chain(
            event_id=data["event_id"],
            kind=EventKind(data["kind"]),
            actor=data["actor"],
            payload=data["payload"],
            previous_digest=data["previous_digest"],
            recorded_at=datetime.strptime(
                data["recorded_at"], "%Y-%m-%dT%H:%M:%SZ",
            ).replace(tzinfo=timezone.utc),
        )
        if event.digest != data["digest"]:
            raise ValueError(
                f"Event {data['event_id']} digest mismatch: "
                f"stored {data['digest']}, computed {event.digest}"
            )
        return event

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "kind": self.kind.value,
            "recorded_at": self.recorded_at,
            "actor": self.actor,
            "payload": self.payload,
            "previous_digest": self.previous_digest,
            "digest": self.digest,
        }


class EventLog:
    """Append-only audit chain with optional JSONL write-through.

    Usage:
        log = EventLog(Path("data/events.jsonl"))
        log.record("EVT-00000001", EventKind.CLAIM_SUBMITTED, recipient, payload)
        log.claims_for(recipient)

    A log opened on an existing file replays and verifies the whole chain
    first, and refuses to load if any link is broken.
    """

    def __init__(self, storage_path: Optional[Path] = None) -> None:
        self._events: list[AuditEvent] = []
        self._event_ids: set[str] = set()
        self._storage_path = storage_path

        if storage_path and storage_path.exists():
            self._replay(storage_path)

    @property
    def head_digest(self) -> str:
        """Digest the next event must chain onto."""
        return self._events[-1].digest if self._events else ROOT_DIGEST

    def record(
        self,
        event_id: str,
        kind: EventKind,
        actor: str,
        payload: dict[str, Any],
    ) -> AuditEvent:
        """Chain a new event onto the head and append it."""
        event = AuditEvent.chain(event_id, kind, actor, payload, self.head_digest)
        self.append(event)
        return event

    def append(self, event: AuditEvent) -> None:
        """Append a pre-built event.

        Raises ValueError for a duplicate event ID or an event that does
        not chain onto the current head. The file is written before
        memory, so an OSError leaves the log unchanged.
        """
        if event.event_id in self._event_ids:
            raise ValueError(f"Duplicate event ID: {event.event_id}")
        if event.previous_digest != self.head_digest:
            raise ValueError(
                f"Event {event.event_id} does not extend the chain head {self.head_digest}"
            )
        if self._storage_path:
            with self._storage_path.open("a", encoding="utf-8") as f:
                f.write(json.dumps(event.to_dict(), sort_keys=True, ensure_ascii=False) + "\n")
        self._events.append(event)
        self._event_ids.add(event.event_id)

    def events(self, kind: Optional[EventKind] = None) -> list[AuditEvent]:
        if kind is None:
            return list(self._events)
        return [e for e in self._events if e.kind == kind]

    def claims_for(self, recipient: str) -> list[AuditEvent]:
        """Committed claims paid to ``recipient``, oldest first."""
        wanted = recipient.lower()
        return [
            e for e in self._events
            if e.kind == EventKind.CLAIM_SUBMITTED
            and str(e.payload.get("recipient", "")).lower() == wanted
        ]

    def __iter__(self) -> Iterator[AuditEvent]:
        return iter(list(self._events))

    @property
    def count(self) -> int:
        return len(self._events)

    @property
    def last_event(self) -> Optional[AuditEvent]:
        return self._events[-1] if self._events else None

    def _replay(self, path: Path) -> None:
        with path.open("r", encoding="utf-8") as f:
            for line_num, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                try:
                    event = AuditEvent.from_dict(json.loads(line))
                except (KeyError, ValueError) as e:
                    raise ValueError(f"Corrupt audit log (line {line_num}): {e}") from e
                if event.event_id in self._event_ids:
                    raise ValueError(
                        f"Corrupt audit log (line {line_num}): "
                        f"duplicate event ID {event.event_id}"
                    )
                if event.previous_digest != self.head_digest:
                    raise ValueError(
                        f"Corrupt audit log (line {line_num}): chain broken "
                        f"before event {event.event_id}"
                    )
                self._events.append(event)
                self._event_ids.add(event.event_id)
