# =============================================================================
# tests/unit/test_local_database.py
# Unit Tests for LocalRecordStore
# =============================================================================

import pytest
from datetime import date, datetime, timedelta, timezone

from vibrate_core.errors import StorageError
from vibrate_core.models import RecordFilter, SyncStatus


class TestPutAndQuery:
    """Upsert by derived key and filtered reads"""

    def test_put_then_query_by_compound_key(self, store, make_record):
        """Exactly one equal record comes back for (unit, equipment, date)"""
        record = make_record(ago=2)
        store.put(record)

        found = store.query(RecordFilter(unit="DRI1", equipment="GB-cp48A", date=record.date))

        assert found == [record]

    def test_put_twice_keeps_one_record(self, store, make_record):
        """A second write with the same key replaces the first"""
        store.put(make_record(parameters={"V1": 1.0}))
        store.put(make_record(parameters={"V1": 3.5}))

        records = store.query()

        assert len(records) == 1
        assert records[0].parameters == {"V1": 3.5}

    def test_get_by_id(self, store, make_record):
        record = store.put(make_record(ago=1))

        assert store.get(record.id) == record
        assert store.get("DRI1_GB-cp48A_1999-01-01") is None

    def test_put_rejects_synced_record(self, store, make_record):
        """Synced status can only come from mark_synced"""
        with pytest.raises(ValueError):
            store.put(make_record(status=SyncStatus.SYNCED))

    def test_query_by_status_and_range(self, store, make_record):
        store.put(make_record(ago=0, status=SyncStatus.PENDING))
        store.put(make_record(ago=5, status=SyncStatus.PENDING))
        store.put(make_record(ago=3, equipment="CP-cp51"))

        pending = store.query(RecordFilter(sync_status=SyncStatus.PENDING))
        recent = store.query(RecordFilter(date_from=date.today() - timedelta(days=3)))

        assert len(pending) == 2
        assert {r.equipment for r in recent} == {"GB-cp48A", "CP-cp51"}
        assert len(recent) == 2

    def test_query_by_unit_and_user(self, store, make_record):
        store.put(make_record(unit="DRI1", user_id="u1"))
        store.put(make_record(unit="DRI2", user_id="u2"))

        assert [r.unit for r in store.query(RecordFilter(unit="DRI2"))] == ["DRI2"]
        assert [r.user_id for r in store.query(RecordFilter(user_id="u1"))] == ["u1"]


class TestDelete:
    """Idempotent deletes"""

    def test_delete_existing_and_missing(self, store, make_record):
        record = store.put(make_record())

        assert store.delete(record.id) is True
        assert store.delete(record.id) is False
        assert store.query() == []


class TestMarkSynced:
    """Reconciler-only pending -> synced transition"""

    def test_mark_synced_sets_status_and_server_timestamp(self, store, make_record):
        record = store.put(make_record(status=SyncStatus.PENDING))
        server_ts = datetime(2024, 2, 1, 12, 0, tzinfo=timezone.utc)

        marked = store.mark_synced([record], server_ts)
        stored = store.get(record.id)

        assert marked == [record.id]
        assert stored.sync_status is SyncStatus.SYNCED
        assert stored.server_timestamp == server_ts

    def test_overwrite_during_sync_stays_pending(self, store, make_record):
        """A newer local write is not marked by an older acknowledgement"""
        submitted = store.put(make_record(parameters={"V1": 1.0}, status=SyncStatus.PENDING))
        store.put(make_record(parameters={"V1": 2.0}, status=SyncStatus.PENDING))

        marked = store.mark_synced([submitted])

        assert marked == []
        assert store.get(submitted.id).sync_status is SyncStatus.PENDING

    def test_local_only_is_never_marked(self, store, make_record):
        record = store.put(make_record(status=SyncStatus.LOCAL_ONLY))

        assert store.mark_synced([record]) == []
        assert store.get(record.id).sync_status is SyncStatus.LOCAL_ONLY


class TestCountsAndExport:
    """Status counts and pandas export"""

    def test_count_by_status(self, store, make_record):
        store.put(make_record(ago=0, status=SyncStatus.PENDING))
        store.put(make_record(ago=1, status=SyncStatus.PENDING))
        store.put(make_record(ago=2))

        counts = store.count_by_status()

        assert counts == {"local_only": 1, "pending": 2, "synced": 0}
        assert store.get_pending_count() == 2

    def test_to_dataframe_is_wide(self, store, make_record):
        store.put(make_record(ago=1, parameters={"V1": 1.1, "H1": 2.2}))
        store.put(make_record(ago=0, parameters={"V1": 1.3}))

        df = store.to_dataframe()

        assert list(df["V1"]) == [1.1, 1.3]
        assert "H1" in df.columns
        assert df["date"].is_monotonic_increasing

    def test_to_dataframe_empty(self, store):
        df = store.to_dataframe()

        assert df.empty
        assert "sync_status" in df.columns


class TestSettings:
    """Key-value settings and last sync time"""

    def test_setting_round_trip(self, store):
        store.set_setting("user_settings", {"analysis_threshold": 35})

        assert store.get_setting("user_settings") == {"analysis_threshold": 35}
        assert store.get_setting("missing", default="x") == "x"

    def test_last_sync_time(self, store):
        assert store.last_sync_time is None

        when = store.set_last_sync_time(datetime(2024, 3, 1, 9, 30, tzinfo=timezone.utc))

        assert store.last_sync_time == when

    def test_clear_removes_records_and_settings(self, store, make_record):
        store.put(make_record())
        store.set_last_sync_time()

        store.clear()

        assert store.query() == []
        assert store.last_sync_time is None


class TestFailures:
    """SQLite failures surface as StorageError"""

    def test_query_before_initialize_raises_storage_error(self, tmp_path):
        from vibrate_core.offline import LocalRecordStore

        raw = LocalRecordStore(tmp_path / "empty.db")
        with pytest.raises(StorageError) as exc_info:
            raw.query()
        raw.close()

        assert exc_info.value.code == "STORE_001"
        assert exc_info.value.details["operation"] == "query"

    def test_initialize_is_idempotent(self, store):
        assert store.initialize() is store
