# =============================================================================
# vibrate_core/offline/remote_store.py
# Remote Record Transport (Supabase) and in-memory stand-in
# =============================================================================
"""
Boundary to the hosted measurement history.

``RemoteRecordTransport`` is the contract the reconciler talks to:

    submit_batch(records)       -> SubmitResult(success_count, errors)
    query_records(filters)      -> [MeasurementRecord]   (all synced)
    delete_record(unit, equipment, date, owner_user_id)
    fetch_user_settings(user_id) / save_user_settings(user_id, settings)
    check_connection()

Every transport failure is raised as a ``RemoteError`` with a stable
``kind`` (see ``map_remote_error``).
"""

from __future__ import annotations
import json
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple
import logging

import httpx

from vibrate_core.config import AppConfig
from vibrate_core.errors import (
    AuthError,
    ConfigurationError,
    NetworkError,
    RemoteError,
    RemoteErrorKind,
)
from vibrate_core.models import (
    MeasurementRecord,
    RecordFilter,
    SyncStatus,
    make_record_id,
    sort_newest_first,
    utc_now,
)

logger = logging.getLogger(__name__)

# PostgREST / Postgres error codes
PG_NO_ROWS = "PGRST116"
PG_JWT_EXPIRED = "PGRST301"
PG_UNIQUE_VIOLATION = "23505"
PG_FOREIGN_KEY_VIOLATION = "23503"

AUTH_CODES = {PG_JWT_EXPIRED, "PGRST302", "42501"}


def map_remote_error(error: Exception, operation: Optional[str] = None) -> RemoteError:
    """
    Translate a transport-specific failure into the stable taxonomy:
    not_found, conflict, auth_required, network_unreachable, unknown.
    """
    if isinstance(error, RemoteError):
        return error

    message = str(getattr(error, "message", None) or error)

    if isinstance(error, (httpx.TransportError, ConnectionError, TimeoutError)):
        return NetworkError(f"Remote store unreachable: {message}", operation=operation)

    code = str(getattr(error, "code", "") or "")
    status = getattr(error, "status", None)
    response = getattr(error, "response", None)
    if status is None and response is not None:
        status = getattr(response, "status_code", None)

    if code == PG_NO_ROWS or status == 404:
        kind = RemoteErrorKind.NOT_FOUND
    elif code in (PG_UNIQUE_VIOLATION, PG_FOREIGN_KEY_VIOLATION) or status == 409:
        kind = RemoteErrorKind.CONFLICT
    elif code in AUTH_CODES or status in (401, 403) or "JWT" in message:
        return AuthError(message, operation=operation, transport_code=code or None)
    elif "network" in message.lower() or "failed to fetch" in message.lower():
        return NetworkError(message, operation=operation, transport_code=code or None)
    else:
        kind = RemoteErrorKind.UNKNOWN

    return RemoteError(message, kind=kind, operation=operation, transport_code=code or None)


@dataclass
class SubmitError:
    """A record the remote store refused; ``record_id`` is None when unattributable."""
    record_id: Optional[str]
    message: str


@dataclass
class SubmitResult:
    success_count: int
    errors: List[SubmitError] = field(default_factory=list)

    @property
    def failed_ids(self) -> List[str]:
        return [e.record_id for e in self.errors if e.record_id]

    @property
    def has_unattributed_errors(self) -> bool:
        return any(e.record_id is None for e in self.errors)


class RemoteRecordTransport(ABC):
    """Abstract remote store used by the sync reconciler"""

    @abstractmethod
    def submit_batch(self, records: Sequence[MeasurementRecord]) -> SubmitResult:
        """Push records in one request."""
        pass

    @abstractmethod
    def query_records(self, filters: Optional[RecordFilter] = None) -> List[MeasurementRecord]:
        """Fetch matching remote records, newest first."""
        pass

    @abstractmethod
    def delete_record(self, unit: str, equipment: str, day: date, owner_user_id: str) -> bool:
        """Delete the owner's copy of one record."""
        pass

    @abstractmethod
    def fetch_user_settings(self, user_id: str) -> Optional[Dict[str, Any]]:
        pass

    @abstractmethod
    def save_user_settings(self, user_id: str, settings: Dict[str, Any]) -> None:
        pass

    def check_connection(self) -> bool:
        """Cheap reachability probe."""
        try:
            self.query_records(RecordFilter(date=date.today()))
            return True
        except RemoteError:
            return False


def _record_id_from_error_item(item: Dict[str, Any], submitted_ids: Set[str]) -> Optional[str]:
    """
    Best-effort mapping of an edge-function error entry to a submitted record
    id. The key fields win over ``id``; anything that names no submitted
    record is unattributed.
    """
    candidate = None
    source = item.get("data") or item.get("record") or item
    if isinstance(source, dict):
        unit = source.get("unitType") or source.get("unit_type")
        equipment = source.get("equipmentId") or source.get("equipment_id")
        day = source.get("measurementDate") or source.get("measurement_date")
        if unit and equipment and day:
            candidate = make_record_id(unit, equipment, str(day)[:10])
    if candidate is None and item.get("id"):
        candidate = str(item["id"])
    return candidate if candidate in submitted_ids else None


# =============================================================================
# SUPABASE TRANSPORT
# =============================================================================

class SupabaseRecordTransport(RemoteRecordTransport):
    """
    Transport backed by a Supabase project.

    - pushes go through the ``sync-local-data`` edge function, which stamps
      ownership from the caller's JWT and reports per-record errors
    - reads and deletes go straight to the ``vibrate_data`` table
    """

    PAGE_SIZE = 1000
    PROFILE_JOIN = "*, user_profiles!vibrate_data_user_id_fkey(full_name)"

    def __init__(self, config: AppConfig, client: Any = None):
        self.config = config
        self._client = client

    @property
    def client(self):
        """Lazily create the Supabase client."""
        if self._client is None:
            if not self.config.remote_configured:
                raise ConfigurationError("Supabase is not configured", config_key="supabase")
            from supabase import create_client
            self._client = create_client(self.config.supabase_url, self.config.supabase_key)
        return self._client

    def is_connected(self) -> bool:
        """Check if a Supabase client is available."""
        return self._client is not None or self.config.remote_configured

    def submit_batch(self, records: Sequence[MeasurementRecord]) -> SubmitResult:
        if not records:
            return SubmitResult(success_count=0)

        client = self.client
        try:
            response = client.functions.invoke(
                self.config.sync_function,
                invoke_options={
                    "body": {"localData": [r.to_sync_payload() for r in records]},
                    "responseType": "json",
                },
            )
        except Exception as e:
            raise map_remote_error(e, "submit_batch") from e

        if isinstance(response, (bytes, str)):
            response = json.loads(response or "{}")
        response = response or {}

        submitted_ids = {r.id for r in records}
        errors = [
            SubmitError(
                record_id=_record_id_from_error_item(item, submitted_ids) if isinstance(item, dict) else None,
                message=str(item.get("error", item) if isinstance(item, dict) else item),
            )
            for item in response.get("errors") or []
        ]
        success_count = response.get("successCount", len(records) - len(errors))

        logger.info(f"Remote accepted {success_count}/{len(records)} records")
        return SubmitResult(success_count=int(success_count), errors=errors)

    def query_records(self, filters: Optional[RecordFilter] = None) -> List[MeasurementRecord]:
        filters = filters or RecordFilter()
        if filters.sync_status and filters.sync_status is not SyncStatus.SYNCED:
            return []

        all_rows: List[Dict[str, Any]] = []
        offset = 0

        client = self.client
        try:
            while True:
                query = client.table(self.config.records_table).select(self.PROFILE_JOIN)

                if filters.unit:
                    query = query.eq("unit_type", filters.unit)
                if filters.equipment:
                    query = query.eq("equipment_id", filters.equipment)
                if filters.date:
                    query = query.eq("measurement_date", filters.date.isoformat())
                if filters.date_from:
                    query = query.gte("measurement_date", filters.date_from.isoformat())
                if filters.date_to:
                    query = query.lte("measurement_date", filters.date_to.isoformat())
                if filters.user_id:
                    query = query.eq("user_id", filters.user_id)

                response = (
                    query.order("measurement_date", desc=True)
                    .order("server_timestamp", desc=True)
                    .range(offset, offset + self.PAGE_SIZE - 1)
                    .execute()
                )

                if not response.data:
                    break
                all_rows.extend(response.data)
                # Fewer than a page means we've reached the end
                if len(response.data) < self.PAGE_SIZE:
                    break
                offset += self.PAGE_SIZE

        except Exception as e:
            raise map_remote_error(e, "query_records") from e

        return [MeasurementRecord.from_server_row(row) for row in all_rows]

    def delete_record(self, unit: str, equipment: str, day: date, owner_user_id: str) -> bool:
        client = self.client
        try:
            (
                client.table(self.config.records_table)
                .delete()
                .eq("unit_type", unit)
                .eq("equipment_id", equipment)
                .eq("measurement_date", day.isoformat())
                .eq("user_id", owner_user_id)
                .execute()
            )
        except Exception as e:
            raise map_remote_error(e, "delete_record") from e
        return True

    def fetch_user_settings(self, user_id: str) -> Optional[Dict[str, Any]]:
        client = self.client
        try:
            response = (
                client.table(self.config.settings_table)
                .select("*")
                .eq("user_id", user_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            raise map_remote_error(e, "fetch_user_settings") from e

        if not response.data:
            return None
        settings = dict(response.data[0])
        settings.pop("user_id", None)
        return settings

    def save_user_settings(self, user_id: str, settings: Dict[str, Any]) -> None:
        client = self.client
        try:
            client.table(self.config.settings_table).upsert(
                {"user_id": user_id, **settings}
            ).execute()
        except Exception as e:
            raise map_remote_error(e, "save_user_settings") from e

    def check_connection(self) -> bool:
        try:
            self.client.table(self.config.records_table).select("id").limit(1).execute()
            return True
        except Exception as e:
            logger.debug(f"Supabase check failed: {e}")
            return False


# =============================================================================
# IN-MEMORY TRANSPORT
# =============================================================================

class InMemoryRecordTransport(RemoteRecordTransport):
    """
    Remote store kept in process memory.

    Opt-in for demos and tests; never wired by default. Failures can be
    injected: ``fail_with`` is raised (mapped) on the next call, and ids in
    ``rejected`` come back as per-record errors from ``submit_batch``.
    """

    def __init__(self):
        self._rows: Dict[Tuple[str, Optional[str]], MeasurementRecord] = {}
        self._settings: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()
        self.fail_with: Optional[Exception] = None
        self.rejected: Dict[str, str] = {}
        self.submitted_batches: List[List[str]] = []
        self.current_user_id: Optional[str] = None

    def _maybe_fail(self, operation: str) -> None:
        if self.fail_with is not None:
            error, self.fail_with = self.fail_with, None
            raise map_remote_error(error, operation)

    def add_remote(self, record: MeasurementRecord) -> MeasurementRecord:
        """Seed a row as if another client had already synced it."""
        stored = record.with_status(
            SyncStatus.SYNCED,
            server_timestamp=record.server_timestamp or utc_now(),
        )
        with self._lock:
            self._rows[(stored.id, stored.user_id)] = stored
        return stored

    def submit_batch(self, records: Sequence[MeasurementRecord]) -> SubmitResult:
        self._maybe_fail("submit_batch")
        self.submitted_batches.append([r.id for r in records])

        errors: List[SubmitError] = []
        accepted = 0
        now = utc_now()
        with self._lock:
            for record in records:
                if record.id in self.rejected:
                    errors.append(SubmitError(record.id, self.rejected[record.id]))
                    continue
                owner = record.user_id or self.current_user_id
                self._rows[(record.id, owner)] = record.with_status(
                    SyncStatus.SYNCED, server_timestamp=now, user_id=owner,
                )
                accepted += 1

        return SubmitResult(success_count=accepted, errors=errors)

    def query_records(self, filters: Optional[RecordFilter] = None) -> List[MeasurementRecord]:
        self._maybe_fail("query_records")
        filters = filters or RecordFilter()
        with self._lock:
            rows = [r for r in self._rows.values() if filters.matches(r)]
        return sort_newest_first(rows)

    def delete_record(self, unit: str, equipment: str, day: date, owner_user_id: str) -> bool:
        self._maybe_fail("delete_record")
        with self._lock:
            removed = self._rows.pop((make_record_id(unit, equipment, day), owner_user_id), None)
        return removed is not None

    def fetch_user_settings(self, user_id: str) -> Optional[Dict[str, Any]]:
        self._maybe_fail("fetch_user_settings")
        settings = self._settings.get(user_id)
        return dict(settings) if settings is not None else None

    def save_user_settings(self, user_id: str, settings: Dict[str, Any]) -> None:
        self._maybe_fail("save_user_settings")
        self._settings[user_id] = dict(settings)

    def check_connection(self) -> bool:
        return self.fail_with is None

    @property
    def row_count(self) -> int:
        return len(self._rows)
