"""Audit trail and durable state."""

from hybridgov.persistence.event_log import EventKind, EventLog, EventRecord
from hybridgov.persistence.state_store import StateStore

__all__ = ["EventKind", "EventLog", "EventRecord", "StateStore"]
