"""
Tests for the live collection view: every change triggers a full re-fetch.
"""

from __future__ import annotations

import pytest

from core.records.errors import StoreError
from core.store import InMemoryRecordStore, LiveCollection


@pytest.fixture
def store():
    s = InMemoryRecordStore()
    s.insert("complaints", "1", {"complaint_id": "1", "created_at": "2024-01-01T00:00:00"})
    return s


class FlakyStore(InMemoryRecordStore):
    def __init__(self):
        super().__init__()
        self.fail_reads = False

    def list_all(self, collection):
        if self.fail_reads:
            raise StoreError("backend down")
        return super().list_all(collection)


class TestLiveCollection:

    def test_open_loads_everything(self, store):
        live = LiveCollection(store, "complaints").open()
        assert [r["complaint_id"] for r in live.rows] == ["1"]
        assert live.refresh_count == 1
        assert live.is_open

    def test_change_triggers_full_refetch(self, store):
        with LiveCollection(store, "complaints") as live:
            store.insert("complaints", "2", {"complaint_id": "2", "created_at": "2024-02-01T00:00:00"})
            store.patch("complaints", "1", {"status": "resolved"})

            assert live.refresh_count == 3
            assert [r["complaint_id"] for r in live.rows] == ["2", "1"]
            assert live.rows[1]["status"] == "resolved"

    def test_other_collections_are_ignored(self, store):
        with LiveCollection(store, "complaints") as live:
            store.insert("bookings", "B1", {"booking_id": "B1"})
            assert live.refresh_count == 1

    def test_close_stops_updates(self, store):
        live = LiveCollection(store, "complaints").open()
        live.close()
        store.insert("complaints", "2", {"complaint_id": "2"})
        assert live.refresh_count == 1
        assert store.subscription_count == 0

    def test_refresh_callback(self, store):
        seen = []
        with LiveCollection(store, "complaints", on_refresh=seen.append):
            store.delete("complaints", "1")
        assert seen == [[{"complaint_id": "1", "created_at": "2024-01-01T00:00:00", "version": 1}], []]

    def test_failed_refetch_keeps_previous_rows(self):
        store = FlakyStore()
        store.insert("complaints", "1", {"complaint_id": "1"})
        live = LiveCollection(store, "complaints").open()

        store.fail_reads = True
        store.insert("complaints", "2", {"complaint_id": "2"})

        assert [r["complaint_id"] for r in live.rows] == ["1"]
        assert isinstance(live.last_error, StoreError)


class Clock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


class TestFreshRows:

    def test_first_read_opens_the_view(self, store):
        live = LiveCollection(store, "complaints")
        assert [r["complaint_id"] for r in live.fresh_rows()] == ["1"]
        assert live.is_open
        live.close()

    def test_reads_within_max_age_use_the_loaded_rows(self, store):
        clock = Clock()
        live = LiveCollection(store, "complaints", max_age=30, clock=clock).open()
        clock.now += 10
        live.fresh_rows()
        assert live.refresh_count == 1

    def test_old_view_is_refetched(self, store):
        clock = Clock()
        live = LiveCollection(store, "complaints", max_age=30, clock=clock).open()
        # A write from another process publishes nothing here
        store._collections["complaints"]["2"] = {"complaint_id": "2", "created_at": "2024-02-01T00:00:00"}

        clock.now += 30
        rows = live.fresh_rows()

        assert live.refresh_count == 2
        assert [r["complaint_id"] for r in rows] == ["2", "1"]

    def test_read_after_failed_reload_retries(self):
        store = FlakyStore()
        live = LiveCollection(store, "complaints").open()
        store.fail_reads = True
        store.insert("complaints", "1", {"complaint_id": "1"})
        assert live.last_error is not None

        store.fail_reads = False
        assert [r["complaint_id"] for r in live.fresh_rows()] == ["1"]
        assert live.last_error is None

    def test_read_failure_is_raised(self):
        store = FlakyStore()
        store.fail_reads = True
        with pytest.raises(StoreError):
            LiveCollection(store, "complaints").fresh_rows()
