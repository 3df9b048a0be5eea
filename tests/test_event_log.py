"""Tests for the append-only event log."""

import json
import pytest
from datetime import datetime, timezone
from pathlib import Path

from presale.persistence.event_log import EventKind, EventLog, EventRecord


def _now() -> datetime:
    return datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def _event(event_id: str = "EVT-00000001", kind: EventKind = EventKind.CONTRIBUTION_RECORDED) -> EventRecord:
    return EventRecord.create(
        event_id=event_id,
        event_kind=kind,
        actor_id="alice",
        payload={"participant": "alice", "amount": "5", "tier": "tier_1"},
        timestamp_utc=_now(),
    )


class TestEventRecord:
    def test_hash_is_deterministic(self) -> None:
        assert _event().event_hash == _event().event_hash
        assert _event().event_hash.startswith("sha256:")

    def test_hash_covers_payload(self) -> None:
        other = EventRecord.create(
            event_id="EVT-00000001",
            event_kind=EventKind.CONTRIBUTION_RECORDED,
            actor_id="alice",
            payload={"participant": "alice", "amount": "6", "tier": "tier_1"},
            timestamp_utc=_now(),
        )
        assert other.event_hash != _event().event_hash

    def test_timestamp_format(self) -> None:
        assert _event().timestamp_utc == "2026-03-01T12:00:00Z"


class TestEventLog:
    def test_append_and_filter(self) -> None:
        log = EventLog()
        log.append(_event("EVT-00000001"))
        log.append(_event("EVT-00000002", EventKind.FUNDS_FORWARDED))
        assert log.count == 2
        assert len(log.events(EventKind.FUNDS_FORWARDED)) == 1
        assert log.last_event.event_id == "EVT-00000002"
        assert len(log.events_for_actor("alice")) == 2

    def test_duplicate_id_rejected(self) -> None:
        log = EventLog()
        log.append(_event())
        with pytest.raises(ValueError, match="Duplicate"):
            log.append(_event())
        assert log.count == 1

    def test_empty_log(self) -> None:
        log = EventLog()
        assert log.count == 0
        assert log.last_event is None


class TestEventLogPersistence:
    def test_reload_from_file(self, tmp_path: Path) -> None:
        path = tmp_path / "events.jsonl"
        log = EventLog(storage_path=path)
        log.append(_event("EVT-00000001"))
        log.append(_event("EVT-00000002", EventKind.SALE_CLOSED))

        reloaded = EventLog(storage_path=path)
        assert reloaded.count == 2
        assert reloaded.event_hashes() == log.event_hashes()
        assert reloaded.events()[1].event_kind == EventKind.SALE_CLOSED

    def test_tampered_record_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / "events.jsonl"
        EventLog(storage_path=path).append(_event())

        data = json.loads(path.read_text(encoding="utf-8"))
        data["payload"]["amount"] = "500"
        path.write_text(json.dumps(data) + "\n", encoding="utf-8")

        with pytest.raises(ValueError, match="Integrity"):
            EventLog(storage_path=path)

    def test_duplicate_on_recovery_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / "events.jsonl"
        line = json.dumps(_event().to_dict(), sort_keys=True)
        path.write_text(line + "\n" + line + "\n", encoding="utf-8")
        with pytest.raises(ValueError, match="Duplicate"):
            EventLog(storage_path=path)
