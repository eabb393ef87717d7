# =============================================================================
# tests/unit/test_measurement_service.py
# Unit Tests for MeasurementService
# =============================================================================

import pandas as pd
import pytest
from datetime import date

from conftest import days_ago
from vibrate_core.analytics import AnalysisReport, AnalysisSettings
from vibrate_core.models import MeasurementRecord, RecordFilter, SyncStatus
from vibrate_core.services import MeasurementService


@pytest.fixture
def service(context):
    return MeasurementService(context)


def reading(ago, v1, equipment="GB-cp48A", unit="DRI1"):
    return {
        "unit": unit,
        "equipment": equipment,
        "date": days_ago(ago).isoformat(),
        "parameters": {"V1": v1},
    }


class TestSaveAndLoad:
    """Entry and listing"""

    def test_save_valid_entry(self, service, entry):
        result = service.save_measurement(entry)

        assert result.success
        assert isinstance(result.data, MeasurementRecord)
        assert result.data.sync_status is SyncStatus.LOCAL_ONLY

    def test_save_invalid_entry_reports_fields(self, service, entry):
        entry["parameters"]["GV1"] = 2.5
        entry["notes"] = "x" * 600

        result = service.save_measurement(entry)

        assert not result.success
        assert result.error_code == "VAL_002"
        assert set(result.field_errors) == {"notes", "parameters.GV1"}
        assert result.field_errors["parameters.GV1"] == "Maximum value is 2"

    def test_get_measurements_as_frame(self, service):
        service.save_measurement(reading(2, 1.0))
        service.save_measurement(reading(1, 1.5))

        records = service.get_measurements().data
        frame = service.get_measurements(RecordFilter(unit="DRI1"), as_frame=True).data

        assert [r.date for r in records] == [days_ago(1), days_ago(2)]
        assert isinstance(frame, pd.DataFrame)
        assert sorted(frame["V1"]) == [1.0, 1.5]

    def test_delete(self, service):
        record = service.save_measurement(reading(1, 1.0)).data

        assert service.delete_measurement(record.id).data is True
        assert service.get_measurements().data == []

    def test_delete_malformed_id(self, service):
        result = service.delete_measurement("DRI1-nothing")

        assert not result.success
        assert result.error_code == "VAL_001"
        assert result.error == "Invalid record reference"


class TestSync:
    """Sync through the service"""

    def test_sync_requires_sign_in(self, service, entry):
        service.save_measurement(entry)

        result = service.sync()

        assert not result.success
        assert result.error_code == "REMOTE_401"

    def test_sync_signed_in(self, service, signed_in, entry):
        service.save_measurement(entry)

        result = service.sync()

        assert result.success
        assert result.data.synced_count == 1
        assert result.metadata["message"] == "1 of 1 records synced"
        assert service.get_sync_status().data["pending_count"] == 0


class TestAnalyze:
    """Analysis over stored measurements"""

    def test_analyze_with_saved_settings(self, service):
        service.save_settings({"analysis_threshold": 50})
        service.save_measurement(reading(2, 1.0))
        service.save_measurement(reading(1, 1.4))

        result = service.analyze(as_of=date.today())

        assert result.success
        assert isinstance(result.data, AnalysisReport)
        assert result.data.settings.threshold_percent == 50
        assert {k: result.metadata[k] for k in ("empty", "alert_count", "critical_count")} == {
            "empty": False, "alert_count": 0, "critical_count": 0,
        }
        assert result.metadata["elapsed_seconds"] >= 0

    def test_analyze_detects_spike(self, service):
        service.save_measurement(reading(2, 1.0))
        service.save_measurement(reading(1, 2.0))
        service.save_measurement(reading(1, 9.0, unit="DRI2", equipment="GB-cp48A"))

        result = service.analyze(AnalysisSettings(), as_of=date.today())

        assert result.metadata["alert_count"] == 1
        assert result.metadata["critical_count"] == 1
        assert result.data.record_count == 2

    def test_analyze_empty(self, service):
        result = service.analyze(as_of=date.today())

        assert result.success
        assert result.metadata["empty"] is True


class TestSettingsAndMaintenance:
    """Settings, stats and clearing"""

    def test_settings_round_trip(self, service):
        service.save_settings({"auto_sync": True})

        settings = service.get_settings().data

        assert settings["auto_sync"] is True
        assert settings["analysis_threshold"] == 20

    def test_database_stats_and_clear(self, service, entry):
        service.save_measurement(entry)

        assert service.get_database_stats().data["local"]["total"] == 1

        assert service.clear_local_data().success
        assert service.get_database_stats().data["local"]["total"] == 0
