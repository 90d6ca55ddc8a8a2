"""Tests for the SQLite DAO: schema, idempotent inserts, sync state and queries."""

from datetime import timedelta

import pytest

from aranet_errors import StoreError
from conftest import NOW
from history_db import HistoryDB
from models import HistoryRecord


def records(count, start=NOW - timedelta(hours=1), step=timedelta(minutes=5), co2=800):
    return [
        HistoryRecord(timestamp=start + i * step, co2=co2 + i, temperature=21.0 + i,
                      pressure=1000.0 + i, humidity=40 + i)
        for i in range(count)
    ]


class TestInsertHistory:
    def test_insert_reports_new_rows(self, db):
        assert db.insert_history("dev-1", records(3)) == 3
        assert db.count_history("dev-1") == 3

    def test_second_insert_is_noop(self, db):
        batch = records(5)
        db.insert_history("dev-1", batch)

        assert db.insert_history("dev-1", batch) == 0
        assert db.count_history("dev-1") == 5

    def test_partial_overlap_inserts_only_new(self, db):
        db.insert_history("dev-1", records(5))
        assert db.insert_history("dev-1", records(8)) == 3

    def test_same_timestamp_on_two_devices(self, db):
        batch = records(2)
        db.insert_history("dev-1", batch)
        assert db.insert_history("dev-2", batch) == 2

    def test_device_row_is_upserted(self, db):
        db.insert_history("dev-1", records(1))
        device = db.get_device("dev-1")
        assert device is not None
        assert device.first_seen is not None


class TestSyncState:
    def test_missing(self, db):
        assert db.get_sync_state("dev-1") is None

    def test_upsert(self, db):
        db.update_sync_state("dev-1", 100, 100, NOW)
        db.update_sync_state("dev-1", 110, 110, NOW + timedelta(minutes=10))

        state = db.get_sync_state("dev-1")

        assert state.last_history_index == 110
        assert state.total_readings == 110
        assert state.last_sync_at == NOW + timedelta(minutes=10)


class TestDevices:
    def test_metadata_keeps_known_values(self, db):
        db.upsert_device("dev-1", name="Aranet4 1A2B3")
        db.update_device_metadata("dev-1", device_type="Aranet4", serial="123")
        db.update_device_metadata("dev-1", firmware="1.4.19")

        device = db.get_device("dev-1")

        assert device.name == "Aranet4 1A2B3"
        assert device.device_type == "Aranet4"
        assert device.serial == "123"
        assert device.firmware == "1.4.19"

    def test_list_and_delete_cascades(self, db):
        db.insert_history("a", records(2))
        db.insert_history("b", records(2))
        db.update_sync_state("a", 2, 2, NOW)

        assert [d.id for d in db.list_devices()] == ["a", "b"]
        assert db.delete_device("a") == 1
        assert db.count_history("a") == 0
        assert db.get_sync_state("a") is None
        assert db.count_history() == 2


class TestQueries:
    def test_query_order_and_paging(self, db):
        db.insert_history("dev-1", records(6))

        newest = db.query_history("dev-1", limit=2)
        oldest = db.query_history("dev-1", newest_first=False, limit=2, offset=1)

        assert [r.co2 for r in newest] == [805, 804]
        assert [r.co2 for r in oldest] == [801, 802]
        assert newest[0].device_id == "dev-1"

    def test_query_time_window(self, db):
        batch = records(6)
        db.insert_history("dev-1", batch)

        rows = db.query_history("dev-1", since=batch[2].timestamp, until=batch[3].timestamp)

        assert sorted(r.co2 for r in rows) == [802, 803]
        assert rows[0].to_history_record() == batch[3]

    def test_newest_timestamp(self, db):
        batch = records(4)
        db.insert_history("dev-1", batch)
        assert db.newest_history_timestamp("dev-1") == batch[-1].timestamp
        assert db.newest_history_timestamp("other") is None

    def test_stats(self, db):
        batch = records(3) + [HistoryRecord(timestamp=NOW, co2=0, temperature=30.0,
                                            pressure=1010.0, humidity=50)]
        db.insert_history("dev-1", batch)

        stats = db.history_stats("dev-1")

        assert stats.count == 4
        assert stats.co2 == (800, 802, 801.0)
        assert stats.temperature[0] == 21.0
        assert stats.temperature[1] == 30.0
        assert stats.radon is None
        assert stats.oldest == batch[0].timestamp
        assert stats.newest == NOW

    def test_stats_empty(self, db):
        stats = db.history_stats()
        assert stats.count == 0
        assert stats.co2 is None and stats.oldest is None


class TestErrors:
    def test_closed_database_raises_store_error(self, tmp_path):
        database = HistoryDB(tmp_path / "closed.db")
        database.close()

        with pytest.raises(StoreError):
            database.insert_history("dev-1", records(1))
