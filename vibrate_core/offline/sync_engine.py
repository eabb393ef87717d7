# =============================================================================
# vibrate_core/offline/sync_engine.py
# Sync Reconciler between the Local Record Store and the remote store
# =============================================================================
"""
SyncReconciler - pushes pending local records, merges read views and routes
deletes and user settings between the two stores.

Features:
- Single-flight push (a concurrent ``sync_to_server`` raises SyncInProgress)
- Pre-push schema validation, invalid records reported per record
- Records only become ``synced`` after the remote store acknowledged them
- Remote ∪ local-unsynced read view that degrades to local data offline
- Without a transport (local-only mode) every read and write stays local
"""

from __future__ import annotations
import threading
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Mapping, Optional
import logging

from vibrate_core import catalog
from vibrate_core.errors import (
    AuthError,
    ConfigurationError,
    NetworkError,
    RemoteError,
    StorageError,
    SyncInProgress,
    ValidationError,
    VibrateError,
)
from vibrate_core.logging import LogContext
from vibrate_core.models import (
    MeasurementRecord,
    RecordFilter,
    SyncStatus,
    parse_record_id,
    sort_newest_first,
    utc_now,
)
from vibrate_core.validation import clean_entry, validate_record

from .auth_status import AuthStatusProvider
from .connection_manager import ConnectionManager, ConnectionState, ConnectionStatus
from .local_database import LocalRecordStore
from .remote_store import RemoteRecordTransport

logger = logging.getLogger(__name__)

USER_SETTINGS_KEY = "user_settings"
SETTINGS_META_COLUMNS = {"id", "user_id", "created_at", "updated_at"}
RECENT_ENTRIES_LIMIT = 10


@dataclass
class RecordSyncError:
    """Why one record was not synced."""
    record_id: Optional[str]
    message: str
    fields: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"record_id": self.record_id, "message": self.message, "fields": self.fields}


@dataclass
class SyncResult:
    """Outcome of one ``sync_to_server`` call."""
    success: bool
    synced_count: int = 0
    submitted_count: int = 0
    failed_ids: List[str] = field(default_factory=list)
    errors: List[RecordSyncError] = field(default_factory=list)
    message: str = ""
    completed_at: Optional[datetime] = None

    @property
    def has_failures(self) -> bool:
        return bool(self.errors)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "synced_count": self.synced_count,
            "submitted_count": self.submitted_count,
            "failed_ids": list(self.failed_ids),
            "errors": [e.to_dict() for e in self.errors],
            "message": self.message,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


class SyncReconciler:
    """
    Moves measurement records between the Local Record Store and the remote
    store.

    Usage:
        reconciler = SyncReconciler(store, transport, auth, connection)
        reconciler.save_data({"unit": "DRI1", "equipment": "GB-cp48A", ...})
        result = reconciler.sync_to_server()
        rows = reconciler.get_data(RecordFilter(unit="DRI1"), prefer_remote=True)
    """

    def __init__(
        self,
        store: LocalRecordStore,
        transport: Optional[RemoteRecordTransport],
        auth: AuthStatusProvider,
        connection: Optional[ConnectionManager] = None,
    ):
        self.store = store
        self.transport = transport
        self.auth = auth
        self.connection = connection
        self._sync_lock = threading.Lock()
        self._is_syncing = False

    @property
    def is_syncing(self) -> bool:
        return self._is_syncing

    @property
    def remote_enabled(self) -> bool:
        return self.transport is not None

    @property
    def _known_offline(self) -> bool:
        return self.connection is not None and self.connection.is_offline

    def _remote_reachable(self) -> bool:
        return self.remote_enabled and self.auth.is_authenticated and not self._known_offline

    # =========================================================================
    # PUSH
    # =========================================================================

    def sync_to_server(self) -> SyncResult:
        """
        Push every pending record in one batch.

        Raises:
            SyncInProgress: another sync on this reconciler is running
            AuthError: nobody is signed in
            ConfigurationError: no remote store is configured
            NetworkError: the connection manager reports the backend offline
            RemoteError: the batch call failed; all records stay pending
        """
        if not self._sync_lock.acquire(blocking=False):
            raise SyncInProgress()

        try:
            self._is_syncing = True

            if not self.auth.is_authenticated:
                raise AuthError("Sign in to sync local records", operation="sync")
            if not self.remote_enabled:
                raise ConfigurationError("Remote sync is not configured", config_key="supabase")
            if self._known_offline:
                raise NetworkError("Cannot sync while offline", operation="sync")

            with LogContext(logger, "Syncing pending records"):
                return self._push_pending()
        finally:
            self._is_syncing = False
            self._sync_lock.release()

    def _push_pending(self) -> SyncResult:
        pending = self.store.query(RecordFilter(sync_status=SyncStatus.PENDING))
        today = date.today()

        valid: List[MeasurementRecord] = []
        errors: List[RecordSyncError] = []
        for record in pending:
            issues = validate_record(record, today)
            if issues:
                logger.warning(f"Skipping invalid record {record.id}: {[i.rule for i in issues]}")
                errors.append(RecordSyncError(
                    record.id,
                    "; ".join(i.message for i in issues),
                    fields=[i.field for i in issues],
                ))
            else:
                valid.append(record)

        if not valid:
            completed_at = self.store.set_last_sync_time()
            return SyncResult(
                success=True,
                failed_ids=[e.record_id for e in errors],
                errors=errors,
                message="No records to sync",
                completed_at=completed_at,
            )

        logger.info(f"Submitting {len(valid)} pending records")
        submit = self.transport.submit_batch(valid)

        if submit.has_unattributed_errors:
            # Cannot tell which records were refused; keep the whole batch pending
            accepted: List[MeasurementRecord] = []
        else:
            refused = set(submit.failed_ids)
            accepted = [r for r in valid if r.id not in refused]

        marked = self.store.mark_synced(accepted, utc_now())

        accepted_ids = {r.id for r in accepted}
        failed_ids = [e.record_id for e in errors] + [r.id for r in valid if r.id not in accepted_ids]
        errors.extend(RecordSyncError(e.record_id, e.message) for e in submit.errors)

        completed_at = self.store.set_last_sync_time()
        message = f"{len(marked)} of {len(valid)} records synced"
        if errors:
            message += f", {len(errors)} failed"
        logger.info(message)

        return SyncResult(
            success=True,
            synced_count=len(marked),
            submitted_count=len(valid),
            failed_ids=failed_ids,
            errors=errors,
            message=message,
            completed_at=completed_at,
        )

    def on_connection_change(self, state: ConnectionState) -> None:
        """Push pending records when the backend comes back, if auto sync is on."""
        if not self.remote_enabled:
            return
        if state.status != ConnectionStatus.ONLINE or not self.auth.is_authenticated:
            return
        if not self._local_settings().get("auto_sync"):
            return

        logger.info("Connection restored, triggering sync")
        try:
            self.sync_to_server()
        except VibrateError as e:
            logger.warning(f"Automatic sync failed: {e}")

    # =========================================================================
    # READ / WRITE / DELETE
    # =========================================================================

    def get_data(
        self,
        filters: Optional[RecordFilter] = None,
        prefer_remote: bool = False,
    ) -> List[MeasurementRecord]:
        """
        Combined view: remote records plus local records not yet synced,
        newest first.

        When the remote fetch fails the local records are returned as they
        are, synced copies included.
        """
        filters = filters or RecordFilter()

        remote: List[MeasurementRecord] = []
        remote_ok = False
        if prefer_remote and self._remote_reachable():
            try:
                remote = self.transport.query_records(filters)
                remote_ok = True
            except RemoteError as e:
                logger.warning(f"Remote fetch failed, using local data: {e}")

        try:
            local = self.store.query(filters)
        except StorageError as e:
            logger.error(f"Local fetch failed: {e}")
            local = []

        if remote_ok:
            local = [r for r in local if r.sync_status is not SyncStatus.SYNCED]

        return sort_newest_first(remote + local)

    def save_data(self, data: Mapping[str, Any]) -> MeasurementRecord:
        """
        Validate and store one entry locally, attributed to the current user.

        Raises:
            RecordValidationError: with every field violation
            StorageError: the local write failed
        """
        cleaned = clean_entry(data)
        user = self.auth.current_user
        authenticated = self.auth.is_authenticated

        record = MeasurementRecord(
            unit=cleaned["unit"],
            equipment=cleaned["equipment"],
            date=cleaned["date"],
            parameters=cleaned["parameters"],
            notes=cleaned["notes"],
            user_id=user.id if user else None,
            user_name=user.full_name if user else None,
            timestamp=utc_now(),
            sync_status=SyncStatus.for_write(authenticated),
        )
        self.store.put(record)
        logger.info(f"Saved record {record.id} ({record.sync_status.value})")

        if authenticated and self.remote_enabled and self._local_settings().get("sync_on_data_entry"):
            try:
                self.sync_to_server()
            except VibrateError as e:
                logger.warning(f"Sync after save failed, record kept locally: {e}")

        return record

    def delete_data(self, record_id: str) -> bool:
        """
        Delete a record locally and, when it lives remotely, on the server.

        The remote delete is scoped to the signed-in user and runs first; if
        it fails the local copy is kept and the error propagates.

        Returns:
            True if a local or remote copy was deleted
        """
        try:
            unit, equipment, day = parse_record_id(record_id)
        except ValueError:
            raise ValidationError("Invalid record id", "id", "invalid_record_id", value=record_id)

        local = self.store.get(record_id)
        remote_deleted = False

        if self.remote_enabled and self.auth.is_authenticated and (
            local is None or local.sync_status is SyncStatus.SYNCED
        ):
            remote_deleted = self.transport.delete_record(unit, equipment, day, self.auth.current_user_id)
            logger.info(f"Deleted remote record {record_id}")

        removed = self.store.delete(record_id)
        return removed or remote_deleted

    # =========================================================================
    # STATUS & STATS
    # =========================================================================

    def get_sync_status(self) -> Dict[str, Any]:
        last_sync = self.store.last_sync_time
        return {
            "is_syncing": self._is_syncing,
            "last_sync": last_sync.isoformat() if last_sync else None,
            "is_authenticated": self.auth.is_authenticated,
            "pending_count": self.store.get_pending_count(),
            "connection": self.connection.status.value if self.connection else None,
        }

    @staticmethod
    def _count_by_unit(records: List[MeasurementRecord]) -> Dict[str, int]:
        counts = {unit_id: 0 for unit_id in catalog.unit_ids()}
        for record in records:
            counts[record.unit] = counts.get(record.unit, 0) + 1
        return counts

    def get_database_stats(self) -> Dict[str, Any]:
        """Local totals plus best-effort remote totals and recent entries."""
        local_records = self.store.query()
        by_status = self.store.count_by_status()
        last_sync = self.store.last_sync_time

        stats: Dict[str, Any] = {
            "local": {
                "total": len(local_records),
                "pending": by_status[SyncStatus.PENDING.value],
                "local_only": by_status[SyncStatus.LOCAL_ONLY.value],
                "synced": by_status[SyncStatus.SYNCED.value],
                "by_unit": self._count_by_unit(local_records),
            },
            "remote": None,
            "recent_entries": [],
            "last_sync": last_sync.isoformat() if last_sync else None,
        }

        if self._remote_reachable():
            try:
                remote_records = self.transport.query_records()
            except RemoteError as e:
                logger.warning(f"Remote stats unavailable: {e}")
            else:
                stats["remote"] = {
                    "total": len(remote_records),
                    "by_unit": self._count_by_unit(remote_records),
                }
                recent = sorted(
                    remote_records,
                    key=lambda r: r.server_timestamp or r.timestamp,
                    reverse=True,
                )[:RECENT_ENTRIES_LIMIT]
                stats["recent_entries"] = [
                    {
                        "id": r.id,
                        "unit": r.unit,
                        "equipment": r.equipment,
                        "equipment_name": r.equipment_name,
                        "date": r.date.isoformat(),
                        "user_name": r.user_name,
                        "server_timestamp": r.server_timestamp.isoformat() if r.server_timestamp else None,
                    }
                    for r in recent
                ]

        return stats

    # =========================================================================
    # USER SETTINGS
    # =========================================================================

    def _local_settings(self) -> Dict[str, Any]:
        settings = dict(catalog.DEFAULT_SETTINGS)
        settings.update(self.store.get_setting(USER_SETTINGS_KEY, {}) or {})
        return settings

    def get_user_settings(self) -> Dict[str, Any]:
        """Defaults, overlaid by the local copy, overlaid by the remote copy."""
        settings = self._local_settings()

        if self._remote_reachable():
            try:
                remote = self.transport.fetch_user_settings(self.auth.current_user_id)
            except RemoteError as e:
                logger.warning(f"Remote settings unavailable, using local copy: {e}")
            else:
                if remote:
                    settings.update({k: v for k, v in remote.items() if k not in SETTINGS_META_COLUMNS})

        return settings

    def apply_remote_settings(self, row: Mapping[str, Any]) -> Dict[str, Any]:
        """Overlay a settings row changed on another device onto the local copy."""
        merged = self._local_settings()
        merged.update({k: v for k, v in row.items() if k not in SETTINGS_META_COLUMNS})
        self.store.set_setting(USER_SETTINGS_KEY, merged)
        logger.info("Applied settings changed on another device")
        return merged

    def save_user_settings(self, settings: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Save settings locally, then remotely when signed in.

        Raises:
            RemoteError: the remote save failed; the local copy is kept
        """
        merged = {**self._local_settings(), **dict(settings)}
        self.store.set_setting(USER_SETTINGS_KEY, merged)

        if self.remote_enabled and self.auth.is_authenticated:
            self.transport.save_user_settings(self.auth.current_user_id, merged)

        return merged

    def clear_local_data(self) -> None:
        """Remove every local record and setting."""
        self.store.clear()
