# =============================================================================
# vibrate_core/services/measurement_service.py
# Measurement Service - plain calls for the UI layer
# =============================================================================

from __future__ import annotations
from datetime import date
from typing import Any, Dict, Mapping, Optional

from .base_service import BaseService, ServiceResult
from vibrate_core.analytics import AnalysisSettings, run_analysis
from vibrate_core.context import VibrateContext
from vibrate_core.models import RecordFilter
from vibrate_core.offline import records_frame


class MeasurementService(BaseService):
    """
    Service for measurement entry, sync and analysis.

    Every method returns a ServiceResult; failures carry the error code from
    the exception hierarchy and, for validation, one message per field.

    Usage:
        service = MeasurementService(build_context())

        result = service.save_measurement({
            "unit": "DRI1", "equipment": "GB-cp48A", "date": "2024-05-01",
            "parameters": {"V1": 1.25, "A1": 0.4},
        })
        if not result:
            show(result.field_errors)

        report = service.analyze().data
    """

    def __init__(self, context: VibrateContext):
        super().__init__(locale=context.config.locale)
        self.context = context
        self.reconciler = context.reconciler

    def save_measurement(self, data: Mapping[str, Any]) -> ServiceResult:
        """Validate and store one entry; data is the saved MeasurementRecord."""
        return self.safe_execute("Saving measurement", self.reconciler.save_data, data)

    def get_measurements(
        self,
        filters: Optional[RecordFilter] = None,
        prefer_remote: bool = True,
        as_frame: bool = False,
    ) -> ServiceResult:
        """Combined remote + unsynced local view, newest first (or a DataFrame)."""
        def _fetch():
            records = self.reconciler.get_data(filters, prefer_remote=prefer_remote)
            return records_frame(records) if as_frame else records

        return self.safe_execute("Loading measurements", _fetch)

    def delete_measurement(self, record_id: str) -> ServiceResult:
        return self.safe_execute("Deleting measurement", self.reconciler.delete_data, record_id)

    def sync(self) -> ServiceResult:
        """Push pending records; data is the SyncResult."""
        result = self.safe_execute("Syncing measurements", self.reconciler.sync_to_server)
        if result.success:
            result.metadata["message"] = result.data.message
        return result

    def analyze(
        self,
        settings: Optional[AnalysisSettings] = None,
        as_of: Optional[date] = None,
        unit: str = "DRI1",
    ) -> ServiceResult:
        """
        Run the trend/anomaly analysis over the settings' window.

        Without explicit settings the user's saved analysis settings are used.
        """
        def _analyze():
            analysis_settings = settings or AnalysisSettings.from_user_settings(
                self.reconciler.get_user_settings(), unit=unit,
            )
            date_from, date_to = analysis_settings.window(as_of)
            records = self.reconciler.get_data(
                RecordFilter(unit=analysis_settings.unit, date_from=date_from, date_to=date_to),
                prefer_remote=True,
            )
            return run_analysis(records, analysis_settings, as_of=as_of)

        result = self.safe_execute("Running analysis", _analyze)
        if result.success:
            report = result.data
            result.metadata.update({
                "empty": report.is_empty,
                "alert_count": len(report.alerts),
                "critical_count": sum(1 for a in report.alerts if a.severity == "critical"),
            })
        return result

    def get_database_stats(self) -> ServiceResult:
        return self.safe_execute("Collecting database stats", self.reconciler.get_database_stats)

    def get_sync_status(self) -> ServiceResult:
        return self.safe_execute("Reading sync status", self.reconciler.get_sync_status)

    def get_settings(self) -> ServiceResult:
        return self.safe_execute("Loading user settings", self.reconciler.get_user_settings)

    def save_settings(self, settings: Dict[str, Any]) -> ServiceResult:
        return self.safe_execute("Saving user settings", self.reconciler.save_user_settings, settings)

    def clear_local_data(self) -> ServiceResult:
        return self.safe_execute("Clearing local data", self.reconciler.clear_local_data)
