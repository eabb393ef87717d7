# =============================================================================
# tests/integration/test_offline_sync_flow.py
# Integration Tests for the offline entry -> sync -> shared history flow
# =============================================================================

import pytest
from datetime import date

from conftest import USER_ID, USER_NAME, days_ago
from vibrate_core.config import AppConfig
from vibrate_core.context import build_context
from vibrate_core.errors import NetworkError
from vibrate_core.models import RecordFilter, SyncStatus
from vibrate_core.offline import ConnectionManager, InMemoryRecordTransport, SessionAuthProvider
from vibrate_core.services import MeasurementService


class SwitchableNetwork:
    """Internet probe a test can flip"""

    def __init__(self, up=False):
        self.up = up

    def __call__(self):
        return self.up


@pytest.mark.integration
class TestOfflineSyncFlow:
    """
    Two devices sharing one remote history.

    Tests the flow:
    1. Entry while offline and signed out stays on the device
    2. Entry after sign-in waits as pending while the network is down
    3. Connection restored pushes pending records automatically
    4. A second device sees the shared history and analyzes it
    """

    @pytest.fixture
    def remote(self):
        return InMemoryRecordTransport()

    @pytest.fixture
    def network(self):
        return SwitchableNetwork(up=False)

    @pytest.fixture
    def device_a(self, tmp_path, remote, network):
        remote.current_user_id = USER_ID
        ctx = build_context(
            config=AppConfig(db_path=tmp_path / "device_a.db"),
            transport=remote,
            connection=ConnectionManager(internet_probe=network, remote_probe=remote.check_connection),
        )
        yield ctx
        ctx.close()

    @pytest.fixture
    def device_b(self, tmp_path, remote):
        auth = SessionAuthProvider()
        auth.sign_in("9a0c-user-0002", full_name="Operator B")
        ctx = build_context(
            config=AppConfig(db_path=tmp_path / "device_b.db"),
            transport=remote,
            auth=auth,
            connection=ConnectionManager(internet_probe=lambda: True, remote_probe=lambda: True),
        )
        yield ctx
        ctx.close()

    def test_full_flow(self, device_a, device_b, remote, network):
        service_a = MeasurementService(device_a)
        device_a.connection.check_connection()
        assert device_a.connection.is_offline

        # Signed out: stays local forever
        local_only = service_a.save_measurement({
            "unit": "DRI1", "equipment": "GB-cp48A", "date": days_ago(3).isoformat(),
            "parameters": {"V1": 1.0},
        }).data
        assert local_only.sync_status is SyncStatus.LOCAL_ONLY

        device_a.auth.sign_in(USER_ID, full_name=USER_NAME)
        service_a.save_settings({"auto_sync": True})
        for ago, value in ((2, 1.0), (1, 1.1), (0, 2.5)):
            result = service_a.save_measurement({
                "unit": "DRI1", "equipment": "GB-cp48A", "date": days_ago(ago).isoformat(),
                "parameters": {"V1": value},
            })
            assert result.data.sync_status is SyncStatus.PENDING

        with pytest.raises(NetworkError):
            device_a.reconciler.sync_to_server()
        assert device_a.store.get_pending_count() == 3

        # Back online: the status change pushes everything pending
        network.up = True
        device_a.connection.check_connection()

        assert device_a.store.get_pending_count() == 0
        assert remote.row_count == 3
        assert device_a.store.get(local_only.id).sync_status is SyncStatus.LOCAL_ONLY

        # The other device sees the shared history
        shared = device_b.reconciler.get_data(RecordFilter(unit="DRI1"), prefer_remote=True)
        assert [r.date for r in shared] == [days_ago(0), days_ago(1), days_ago(2)]
        assert {r.user_id for r in shared} == {USER_ID}

        report = MeasurementService(device_b).analyze(as_of=date.today())
        assert report.metadata["critical_count"] == 1
        assert report.data.trends[0].direction == "increasing"

    def test_overwrite_while_syncing_is_not_lost(self, device_a, remote, network):
        network.up = True
        device_a.connection.check_connection()
        device_a.auth.sign_in(USER_ID)
        entry = {
            "unit": "DRI2", "equipment": "FN-fnMAB", "date": days_ago(1).isoformat(),
            "parameters": {"GV1": 0.5},
        }
        device_a.reconciler.save_data(entry)

        original_submit = remote.submit_batch

        def submit_then_overwrite(records):
            result = original_submit(records)
            device_a.reconciler.save_data({**entry, "parameters": {"GV1": 0.7}})
            return result

        remote.submit_batch = submit_then_overwrite
        result = device_a.reconciler.sync_to_server()
        remote.submit_batch = original_submit

        stored = device_a.store.query(RecordFilter(unit="DRI2"))[0]
        assert result.synced_count == 0
        assert stored.sync_status is SyncStatus.PENDING
        assert stored.parameters == {"GV1": 0.7}

        assert device_a.reconciler.sync_to_server().synced_count == 1
        assert remote.query_records(RecordFilter(unit="DRI2"))[0].parameters == {"GV1": 0.7}
