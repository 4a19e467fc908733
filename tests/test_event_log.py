"""Tests for the append-only escrow event log."""

import json
import pytest
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path

from jobescrow.escrow.ledger import EscrowLedger
from jobescrow.escrow.transfer import BookTransfer
from jobescrow.models.job import EscrowEvent, EscrowEventKind
from jobescrow.persistence.event_log import EventLog, EventRecord


def _now() -> datetime:
    return datetime(2026, 2, 16, 12, 0, 0, tzinfo=timezone.utc)


def _event(job_id: int = 0, kind: EscrowEventKind = EscrowEventKind.JOB_COMPLETED) -> EscrowEvent:
    return EscrowEvent(kind=kind, job_id=job_id, actor_id="provider")


class TestEventRecord:
    def test_hash_is_deterministic(self) -> None:
        a = EventRecord.create("evt_1", _event(), timestamp_utc=_now())
        b = EventRecord.create("evt_1", _event(), timestamp_utc=_now())
        assert a.event_hash.startswith("sha256:")
        assert a.event_hash == b.event_hash
        assert a.timestamp_utc == "2026-02-16T12:00:00Z"

    def test_hash_covers_job_id(self) -> None:
        a = EventRecord.create("evt_1", _event(job_id=1), timestamp_utc=_now())
        b = EventRecord.create("evt_1", _event(job_id=2), timestamp_utc=_now())
        assert a.event_hash != b.event_hash


class TestEventLog:
    def test_record_assigns_sequential_ids(self) -> None:
        log = EventLog()
        first = log.record(_event())
        second = log.record(_event())
        assert (first.event_id, second.event_id) == ("evt_00000000", "evt_00000001")
        assert log.count == 2
        assert log.last_event == second

    def test_duplicate_id_rejected(self) -> None:
        log = EventLog()
        entry = EventRecord.create("evt_x", _event())
        log.append(entry)
        with pytest.raises(ValueError, match="Duplicate event ID"):
            log.append(entry)

    def test_filter_by_kind_and_job(self) -> None:
        log = EventLog()
        log.record(_event(0, EscrowEventKind.JOB_CREATED))
        log.record(_event(1, EscrowEventKind.JOB_CREATED))
        log.record(_event(0, EscrowEventKind.REFUND_ISSUED))
        assert len(log.events(EscrowEventKind.JOB_CREATED)) == 2
        assert [e.event_kind for e in log.events_for_job(0)] == [
            EscrowEventKind.JOB_CREATED, EscrowEventKind.REFUND_ISSUED,
        ]

    def test_subscribed_to_ledger(self) -> None:
        log = EventLog()
        ledger = EscrowLedger(BookTransfer({"client": Decimal("100")}))
        ledger.subscribe(log.record)
        job = ledger.create_job("client", "provider", Decimal("100"), Decimal("30"), Decimal("30"))
        ledger.request_refund("client", job.job_id)
        assert [e.event_kind for e in log.events()] == [
            EscrowEventKind.JOB_CREATED, EscrowEventKind.REFUND_ISSUED,
        ]
        assert log.events()[1].payload == {"amount": "30"}


class TestEventLogPersistence:
    def test_reload_from_file(self, tmp_path: Path) -> None:
        path = tmp_path / "events.jsonl"
        log = EventLog(storage_path=path)
        log.record(_event(0, EscrowEventKind.JOB_CREATED))
        log.record(_event(0, EscrowEventKind.JOB_COMPLETED))

        reloaded = EventLog(storage_path=path)
        assert reloaded.count == 2
        assert reloaded.events() == log.events()
        # New ids continue after the recovered ones
        assert reloaded.record(_event()).event_id == "evt_00000002"

    def test_tampered_record_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / "events.jsonl"
        EventLog(storage_path=path).record(_event(0))
        data = json.loads(path.read_text())
        data["job_id"] = 5
        path.write_text(json.dumps(data) + "\n")
        with pytest.raises(ValueError, match="Integrity check failed"):
            EventLog(storage_path=path)

    def test_duplicate_on_recovery_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / "events.jsonl"
        EventLog(storage_path=path).record(_event(0))
        line = path.read_text()
        path.write_text(line + line)
        with pytest.raises(ValueError, match="Duplicate event ID on recovery"):
            EventLog(storage_path=path)
