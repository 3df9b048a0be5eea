"""Persistence — append-only event log and state snapshots."""

from presale.persistence.event_log import EventKind, EventLog, EventRecord
from presale.persistence.state_store import PersistedState, StateStore

__all__ = ["EventKind", "EventLog", "EventRecord", "PersistedState", "StateStore"]
