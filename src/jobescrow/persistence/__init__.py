"""Persistence — audit log and ledger snapshots."""

from jobescrow.persistence.event_log import EventLog, EventRecord
from jobescrow.persistence.state_store import StateStore

__all__ = [
    "EventLog",
    "EventRecord",
    "StateStore",
]
