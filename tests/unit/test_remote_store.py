# =============================================================================
# tests/unit/test_remote_store.py
# Unit Tests for the remote record transports and error mapping
# =============================================================================

import json

import httpx
import pytest
from datetime import date
from unittest.mock import MagicMock

from conftest import USER_ID, USER_NAME, days_ago
from vibrate_core.config import AppConfig
from vibrate_core.errors import (
    AuthError,
    ConfigurationError,
    NetworkError,
    RemoteError,
    RemoteErrorKind,
)
from vibrate_core.models import RecordFilter, SyncStatus
from vibrate_core.offline import InMemoryRecordTransport, SupabaseRecordTransport
from vibrate_core.offline.remote_store import map_remote_error


class FakeAPIError(Exception):
    """Shape of a PostgREST API error"""

    def __init__(self, code, message):
        super().__init__(message)
        self.code = code
        self.message = message


@pytest.fixture
def remote_config():
    return AppConfig(supabase_url="https://example.supabase.co", supabase_key="anon-key")


@pytest.fixture
def supabase_transport(remote_config, mock_supabase):
    return SupabaseRecordTransport(remote_config, client=mock_supabase)


# =============================================================================
# ERROR MAPPING
# =============================================================================

class TestMapRemoteError:
    """Transport failures map onto a stable kind"""

    @pytest.mark.parametrize("error,kind", [
        (FakeAPIError("PGRST116", "JSON object requested, multiple (or no) rows returned"), RemoteErrorKind.NOT_FOUND),
        (FakeAPIError("23505", "duplicate key value violates unique constraint"), RemoteErrorKind.CONFLICT),
        (FakeAPIError("23503", "violates foreign key constraint"), RemoteErrorKind.CONFLICT),
        (FakeAPIError("PGRST301", "JWT expired"), RemoteErrorKind.AUTH_REQUIRED),
        (FakeAPIError("42501", "permission denied for table vibrate_data"), RemoteErrorKind.AUTH_REQUIRED),
        (FakeAPIError("XX000", "something odd"), RemoteErrorKind.UNKNOWN),
        (RuntimeError("Failed to fetch"), RemoteErrorKind.NETWORK_UNREACHABLE),
        (httpx.ConnectError("connection refused"), RemoteErrorKind.NETWORK_UNREACHABLE),
        (httpx.ReadTimeout("timed out"), RemoteErrorKind.NETWORK_UNREACHABLE),
        (ConnectionResetError("reset by peer"), RemoteErrorKind.NETWORK_UNREACHABLE),
    ])
    def test_kinds(self, error, kind):
        mapped = map_remote_error(error, "query_records")

        assert isinstance(mapped, RemoteError)
        assert mapped.kind is kind
        assert mapped.details["operation"] == "query_records"

    def test_subclasses(self):
        assert isinstance(map_remote_error(httpx.ConnectError("down")), NetworkError)
        assert isinstance(map_remote_error(FakeAPIError("PGRST301", "JWT expired")), AuthError)

    def test_http_status_codes(self):
        error = RuntimeError("conflict")
        error.response = MagicMock(status_code=409)

        assert map_remote_error(error).kind is RemoteErrorKind.CONFLICT

    def test_remote_error_passes_through(self):
        original = NetworkError()

        assert map_remote_error(original) is original

    def test_transport_code_is_kept(self):
        mapped = map_remote_error(FakeAPIError("23505", "duplicate"))

        assert mapped.transport_code == "23505"
        assert mapped.code == "REMOTE_409"


# =============================================================================
# SUPABASE TRANSPORT
# =============================================================================

class TestSupabaseSubmit:
    """Batch push through the edge function"""

    def test_submit_invokes_function(self, supabase_transport, mock_supabase, make_record):
        records = [make_record(ago=1, user_id=USER_ID), make_record(ago=0, user_id=USER_ID)]
        mock_supabase.functions.invoke.return_value = {"successCount": 2, "errors": []}

        result = supabase_transport.submit_batch(records)

        name = mock_supabase.functions.invoke.call_args.args[0]
        options = mock_supabase.functions.invoke.call_args.kwargs["invoke_options"]
        assert name == "sync-local-data"
        assert [item["measurementDate"] for item in options["body"]["localData"]] == [
            days_ago(1).isoformat(), days_ago(0).isoformat(),
        ]
        assert result.success_count == 2
        assert result.errors == []

    def test_bytes_response_with_record_errors(self, supabase_transport, mock_supabase, make_record):
        record = make_record(ago=1)
        mock_supabase.functions.invoke.return_value = json.dumps({
            "successCount": 0,
            "errors": [{
                "data": {"unitType": "DRI1", "equipmentId": "GB-cp48A", "measurementDate": days_ago(1).isoformat()},
                "error": "duplicate key",
            }],
        }).encode()

        result = supabase_transport.submit_batch([record])

        assert result.failed_ids == [record.id]
        assert result.errors[0].message == "duplicate key"
        assert not result.has_unattributed_errors

    def test_server_uuid_does_not_override_key_fields(self, supabase_transport, mock_supabase, make_record):
        refused, accepted = make_record(ago=1), make_record(ago=2)
        mock_supabase.functions.invoke.return_value = {
            "successCount": 1,
            "errors": [{
                "id": "9f3a-server-uuid",
                "data": {"unitType": "DRI1", "equipmentId": "GB-cp48A", "measurementDate": days_ago(1).isoformat()},
                "error": "check constraint",
            }],
        }

        result = supabase_transport.submit_batch([refused, accepted])

        assert result.failed_ids == [refused.id]

    def test_unknown_error_id_is_unattributed(self, supabase_transport, mock_supabase, make_record):
        mock_supabase.functions.invoke.return_value = {
            "successCount": 0,
            "errors": [{"id": "9f3a-server-uuid", "error": "row rejected"}],
        }

        result = supabase_transport.submit_batch([make_record()])

        assert result.failed_ids == []
        assert result.has_unattributed_errors

    def test_unattributed_error(self, supabase_transport, mock_supabase, make_record):
        mock_supabase.functions.invoke.return_value = {"successCount": 0, "errors": ["batch rejected"]}

        result = supabase_transport.submit_batch([make_record()])

        assert result.has_unattributed_errors
        assert result.failed_ids == []

    def test_empty_batch_skips_request(self, supabase_transport, mock_supabase):
        assert supabase_transport.submit_batch([]).success_count == 0
        mock_supabase.functions.invoke.assert_not_called()

    def test_invoke_failure_is_mapped(self, supabase_transport, mock_supabase, make_record):
        mock_supabase.functions.invoke.side_effect = httpx.ConnectError("offline")

        with pytest.raises(NetworkError):
            supabase_transport.submit_batch([make_record()])


class TestSupabaseQuery:
    """Filtered, paginated reads"""

    def test_filters_applied(self, supabase_transport, mock_query, server_row):
        mock_query.execute.return_value = MagicMock(data=[server_row()])

        records = supabase_transport.query_records(RecordFilter(unit="DRI1", date_from="2024-01-01"))

        mock_query.eq.assert_any_call("unit_type", "DRI1")
        mock_query.gte.assert_called_once_with("measurement_date", "2024-01-01")
        mock_query.order.assert_any_call("measurement_date", desc=True)
        assert len(records) == 1
        assert records[0].sync_status is SyncStatus.SYNCED
        assert records[0].user_name == USER_NAME
        assert records[0].parameters == {"V1": 1.5}

    def test_pagination(self, supabase_transport, mock_query, server_row):
        supabase_transport.PAGE_SIZE = 2
        mock_query.execute.side_effect = [
            MagicMock(data=[server_row(equipment="GB-cp48A"), server_row(equipment="CP-cp51")]),
            MagicMock(data=[server_row(equipment="GB-cp71")]),
        ]

        records = supabase_transport.query_records()

        assert [r.equipment for r in records] == ["GB-cp48A", "CP-cp51", "GB-cp71"]
        assert [c.args for c in mock_query.range.call_args_list] == [(0, 1), (2, 3)]

    def test_non_synced_status_filter_returns_nothing(self, supabase_transport, mock_supabase):
        assert supabase_transport.query_records(RecordFilter(sync_status="pending")) == []
        mock_supabase.table.assert_not_called()

    def test_query_failure_is_mapped(self, supabase_transport, mock_query):
        mock_query.execute.side_effect = FakeAPIError("PGRST301", "JWT expired")

        with pytest.raises(AuthError):
            supabase_transport.query_records()


class TestSupabaseDeleteAndSettings:
    """Owner-scoped delete and settings rows"""

    def test_delete_scoped_to_owner(self, supabase_transport, mock_query):
        assert supabase_transport.delete_record("DRI1", "GB-cp48A", date(2024, 5, 2), USER_ID) is True

        mock_query.delete.assert_called_once()
        mock_query.eq.assert_any_call("measurement_date", "2024-05-02")
        mock_query.eq.assert_any_call("user_id", USER_ID)

    def test_fetch_settings_strips_owner(self, supabase_transport, mock_query):
        mock_query.execute.return_value = MagicMock(data=[{"user_id": USER_ID, "analysis_threshold": 30}])

        assert supabase_transport.fetch_user_settings(USER_ID) == {"analysis_threshold": 30}

    def test_fetch_missing_settings(self, supabase_transport):
        assert supabase_transport.fetch_user_settings(USER_ID) is None

    def test_save_settings_upserts(self, supabase_transport, mock_query):
        supabase_transport.save_user_settings(USER_ID, {"auto_sync": False})

        mock_query.upsert.assert_called_once_with({"user_id": USER_ID, "auto_sync": False})

    def test_check_connection(self, supabase_transport, mock_query):
        assert supabase_transport.check_connection() is True

        mock_query.execute.side_effect = httpx.ConnectError("down")
        assert supabase_transport.check_connection() is False

    def test_not_configured(self):
        transport = SupabaseRecordTransport(AppConfig())

        assert transport.is_connected() is False
        with pytest.raises(ConfigurationError):
            transport.query_records()


# =============================================================================
# IN-MEMORY TRANSPORT
# =============================================================================

class TestInMemoryTransport:
    """Process-local remote store"""

    def test_submit_stamps_owner_and_status(self, make_record):
        transport = InMemoryRecordTransport()
        transport.current_user_id = USER_ID

        result = transport.submit_batch([make_record()])
        stored = transport.query_records()[0]

        assert result.success_count == 1
        assert stored.user_id == USER_ID
        assert stored.sync_status is SyncStatus.SYNCED
        assert stored.server_timestamp is not None

    def test_rows_are_per_owner(self, make_record):
        transport = InMemoryRecordTransport()
        transport.add_remote(make_record(user_id="u1"))
        transport.add_remote(make_record(user_id="u2"))

        assert transport.row_count == 2
        assert transport.delete_record("DRI1", "GB-cp48A", days_ago(0), "u1") is True
        assert [r.user_id for r in transport.query_records()] == ["u2"]

    def test_rejected_ids(self, make_record):
        transport = InMemoryRecordTransport()
        record = make_record()
        transport.rejected[record.id] = "duplicate key"

        result = transport.submit_batch([record])

        assert result.failed_ids == [record.id]
        assert transport.row_count == 0

    def test_fail_with_is_one_shot(self):
        transport = InMemoryRecordTransport()
        transport.fail_with = httpx.ConnectError("down")

        assert transport.check_connection() is False
        with pytest.raises(NetworkError):
            transport.query_records()
        assert transport.query_records() == []
        assert transport.check_connection() is True
