# tests/test_storage_gateway.py
"""Unit tests for the persistence gateway: write buffer, quota handling and backups."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import asyncio
import pytest
from datetime import timedelta
from campus_parking.errors import NotFound
from campus_parking.models.storage_entry import StorageEntry
from campus_parking.services.storage_gateway import KEY_BACKUPS, KEY_LAST_SYNC, StorageGateway


class FakeMonotonic:
    def __init__(self):
        self.value = 1000.0

    def __call__(self):
        return self.value


def make_gateway(session_factory, clock, **options):
    return StorageGateway(session_factory, clock=clock, **options)


def stored_keys(session_factory):
    with session_factory() as db:
        return {e.key for e in db.query(StorageEntry).all()}


class TestBasicOperations:
    def test_save_and_load_roundtrip_under_prefix(self, session_factory, clock):
        gw = make_gateway(session_factory, clock, prefix="test:")
        assert gw.save("vehicles", [{"id": "VH-REG-0001"}]) is True
        assert gw.load("vehicles") == [{"id": "VH-REG-0001"}]
        assert "test:vehicles" in stored_keys(session_factory)

    def test_load_missing_returns_default(self, session_factory, clock):
        gw = make_gateway(session_factory, clock)
        assert gw.load("nothing", []) == []

    def test_remove_and_clear_all(self, session_factory, clock):
        gw = make_gateway(session_factory, clock)
        gw.save("a", 1)
        gw.save("b", 2)
        gw.remove("a")
        assert gw.load("a") is None
        gw.clear_all()
        assert gw.load("b") is None


class TestWriteBuffer:
    def test_debounced_writes_coalesce_until_due(self, session_factory, clock):
        mono = FakeMonotonic()
        gw = make_gateway(session_factory, clock, monotonic=mono, default_delay_ms=500)

        gw.debounced_save("sessions", [1])
        mono.value += 0.3
        gw.debounced_save("sessions", [1, 2])   # restarts the quiet interval

        mono.value += 0.3
        assert gw.flush_due() == 0
        assert gw.load("sessions") == [1, 2]    # buffered value is visible to readers
        assert gw.full_key("sessions") not in stored_keys(session_factory)

        mono.value += 0.3
        assert gw.flush_due() == 1
        assert gw.pending_keys() == []
        assert gw.full_key("sessions") in stored_keys(session_factory)
        assert gw.load(KEY_LAST_SYNC) == clock().isoformat()

    def test_flush_writes_everything_now(self, session_factory, clock):
        gw = make_gateway(session_factory, clock, monotonic=FakeMonotonic())
        gw.debounced_save("vehicles", ["v"])
        gw.debounced_save("exceptions", ["e"])
        assert gw.flush() == 2
        fresh = make_gateway(session_factory, clock)
        assert fresh.load("vehicles") == ["v"]
        assert fresh.load("exceptions") == ["e"]

    @pytest.mark.asyncio
    async def test_stopping_the_flush_loop_flushes_pending_writes(self, session_factory, clock):
        gw = make_gateway(session_factory, clock, default_delay_ms=60_000)
        gw.start_flush_loop(interval=0.01)
        gw.debounced_save("sessions", ["open"])
        await asyncio.sleep(0.03)
        assert gw.pending_keys() == ["sessions"]

        await gw.stop_flush_loop()
        assert gw.pending_keys() == []
        assert make_gateway(session_factory, clock).load("sessions") == ["open"]


class TestQuotaAndBackups:
    def test_backup_retention_keeps_newest_five(self, session_factory, clock):
        gw = make_gateway(session_factory, clock)
        for i in range(7):
            clock.advance_to(clock() + timedelta(minutes=1))
            gw.create_backup({"vehicles": [], "sessions": [], "exceptions": [], "n": i})

        backups = gw.list_backups()
        assert len(backups) == 5
        assert [b["data"]["n"] for b in backups] == [2, 3, 4, 5, 6]
        assert gw.latest_backup()["data"]["n"] == 6
        assert backups[0]["version"] == "1.0.0"

    def test_quota_pressure_prunes_oldest_backups_and_retries(self, session_factory, clock):
        gw = make_gateway(session_factory, clock, quota_bytes=4000, backup_prune_keep=3)
        for i in range(5):
            clock.advance_to(clock() + timedelta(minutes=1))
            gw.create_backup({"blob": "x" * 500, "n": i})

        assert gw.save("vehicles", ["y" * 1200]) is True
        assert [b["data"]["n"] for b in gw.list_backups()] == [2, 3, 4]

    def test_save_fails_softly_when_nothing_can_be_pruned(self, session_factory, clock):
        gw = make_gateway(session_factory, clock, quota_bytes=100)
        assert gw.save("vehicles", ["z" * 500]) is False
        assert gw.load("vehicles") is None

    def test_delete_unknown_backup_raises(self, session_factory, clock):
        gw = make_gateway(session_factory, clock)
        backup = gw.create_backup({})
        gw.delete_backup(backup["timestamp"])
        assert gw.list_backups() == []
        with pytest.raises(NotFound):
            gw.delete_backup(backup["timestamp"])

    def test_storage_info_reports_usage(self, session_factory, clock):
        gw = make_gateway(session_factory, clock, quota_bytes=10_000)
        gw.save(KEY_BACKUPS, [])
        info = gw.storage_info()
        assert info["total"] == 10_000
        assert 0 < info["used"] < 10_000
