"""Append-only event log — the audit record of every committed escrow step.

Every committed ledger operation emits a notification, and the log
subscribes to the ledger to record them. Records are immutable once
written. The log serves as:
1. The audit trail for client and provider.
2. Evidence of commit order per job (records are appended under the job lock).

The log can be persisted to a JSONL file and is verified on load: a
record whose hash does not match its content, or a duplicated event id,
aborts recovery.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Any, Optional

from jobescrow.models.job import EscrowEvent, EscrowEventKind


def _canonical_hash(
    event_id: str,
    event_kind: str,
    timestamp_utc: str,
    actor_id: str,
    job_id: int,
    payload: dict[str, Any],
) -> str:
    canonical = json.dumps(
        {
            "event_id": event_id,
            "event_kind": event_kind,
            "timestamp_utc": timestamp_utc,
            "actor_id": actor_id,
            "job_id": job_id,
            "payload": payload,
        },
        sort_keys=True,
        ensure_ascii=False,
    ).encode("utf-8")
    return f"sha256:{hashlib.sha256(canonical).hexdigest()}"


@dataclass(frozen=True)
class EventRecord:
    """A single immutable entry in the escrow log."""
    event_id: str
    event_kind: EscrowEventKind
    timestamp_utc: str
    actor_id: str
    job_id: int
    payload: dict[str, Any]
    event_hash: str

    @staticmethod
    def create(
        event_id: str,
        event: EscrowEvent,
        timestamp_utc: Optional[datetime] = None,
    ) -> EventRecord:
        """Create a new record with computed hash."""
        ts = timestamp_utc or datetime.now(timezone.utc)
        ts_str = ts.strftime("%Y-%m-%dT%H:%M:%SZ")
        return EventRecord(
            event_id=event_id,
            event_kind=event.kind,
            timestamp_utc=ts_str,
            actor_id=event.actor_id,
            job_id=event.job_id,
            payload=dict(event.payload),
            event_hash=_canonical_hash(
                event_id, event.kind.value, ts_str,
                event.actor_id, event.job_id, dict(event.payload),
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "event_kind": self.event_kind.value,
            "timestamp_utc": self.timestamp_utc,
            "actor_id": self.actor_id,
            "job_id": self.job_id,
            "payload": self.payload,
            "event_hash": self.event_hash,
        }


class EventLog:
    """Append-only event log with optional file persistence.

    Usage:
        log = EventLog(storage_path=Path("data/events.jsonl"))
        ledger.subscribe(log.record)
    """

    def __init__(self, storage_path: Optional[Path] = None) -> None:
        self._events: list[EventRecord] = []
        self._event_ids: set[str] = set()
        self._storage_path = storage_path
        self._lock = Lock()

        if storage_path and storage_path.exists():
            self._load_from_file(storage_path)

    def record(self, event: EscrowEvent) -> EventRecord:
        """Subscriber entry point: wrap a notification and append it."""
        with self._lock:
            event_id = f"evt_{len(self._events):08d}"
            entry = EventRecord.create(event_id, event)
            self._append_locked(entry)
        return entry

    def append(self, entry: EventRecord) -> None:
        """Append a record.

        Raises ValueError if event_id is a duplicate (replay protection).
        """
        with self._lock:
            self._append_locked(entry)

    def events(self, kind: Optional[EscrowEventKind] = None) -> list[EventRecord]:
        """Return records, optionally filtered by kind."""
        if kind is None:
            return list(self._events)
        return [e for e in self._events if e.event_kind == kind]

    def events_for_job(self, job_id: int) -> list[EventRecord]:
        """Return the records for one job, in commit order."""
        return [e for e in self._events if e.job_id == job_id]

    @property
    def count(self) -> int:
        return len(self._events)

    @property
    def last_event(self) -> Optional[EventRecord]:
        return self._events[-1] if self._events else None

    def _append_locked(self, entry: EventRecord) -> None:
        if entry.event_id in self._event_ids:
            raise ValueError(f"Duplicate event ID: {entry.event_id}")
        if self._storage_path:
            self._storage_path.parent.mkdir(parents=True, exist_ok=True)
            with self._storage_path.open("a", encoding="utf-8") as f:
                f.write(
                    json.dumps(entry.to_dict(), sort_keys=True, ensure_ascii=False)
                    + "\n"
                )
        self._events.append(entry)
        self._event_ids.add(entry.event_id)

    def _load_from_file(self, path: Path) -> None:
        """Load records from a JSONL file with integrity verification.

        Fail-closed: rejects tampered records (hash mismatch) and
        duplicate event IDs.
        """
        with path.open("r", encoding="utf-8") as f:
            for line_num, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                data = json.loads(line)
                event_id = data["event_id"]

                if event_id in self._event_ids:
                    raise ValueError(
                        f"Duplicate event ID on recovery (line {line_num}): {event_id}"
                    )

                expected_hash = _canonical_hash(
                    event_id,
                    data["event_kind"],
                    data["timestamp_utc"],
                    data["actor_id"],
                    data["job_id"],
                    data["payload"],
                )
                if data["event_hash"] != expected_hash:
                    raise ValueError(
                        f"Integrity check failed (line {line_num}): event {event_id} "
                        f"stored hash {data['event_hash']} != computed {expected_hash}"
                    )

                self._events.append(EventRecord(
                    event_id=event_id,
                    event_kind=EscrowEventKind(data["event_kind"]),
                    timestamp_utc=data["timestamp_utc"],
                    actor_id=data["actor_id"],
                    job_id=int(data["job_id"]),
                    payload=data["payload"],
                    event_hash=data["event_hash"],
                ))
                self._event_ids.add(event_id)
