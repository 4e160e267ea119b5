"""Persistence: append-only audit log and engine state snapshots."""

from claimgate.persistence.event_log import AuditEvent, EventKind, EventLog
from claimgate.persistence.state_store import StateStore

__all__ = ["AuditEvent", "EventKind", "EventLog", "StateStore"]
