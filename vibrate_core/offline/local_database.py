# =============================================================================
# vibrate_core/offline/local_database.py
# Local SQLite Record Store for Offline Operations
# =============================================================================
"""
LocalRecordStore - durable on-device storage of measurement records.

Features:
- Records keyed by the derived id ``<unit>_<equipment>_<date>`` (upsert)
- Secondary indexes on unit, equipment, date and sync status, plus the
  compound (unit, equipment, date) index used for exact lookups
- Key-value settings table (user settings, last sync time)
- Thread-local connections
- pandas export
"""

from __future__ import annotations
import json
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union
import logging

import pandas as pd

from vibrate_core.errors import StorageError
from vibrate_core.models import MeasurementRecord, RecordFilter, SyncStatus, utc_now

logger = logging.getLogger(__name__)

LAST_SYNC_KEY = "last_sync"


def records_frame(records: Iterable[MeasurementRecord]) -> pd.DataFrame:
    """Wide DataFrame of records, one column per parameter, oldest first."""
    rows = []
    for record in records:
        row = {
            "id": record.id,
            "unit": record.unit,
            "equipment": record.equipment,
            "date": pd.Timestamp(record.date),
            "user_name": record.user_name,
            "sync_status": record.sync_status.value,
            "notes": record.notes,
        }
        row.update(record.parameters)
        rows.append(row)

    if not rows:
        return pd.DataFrame(columns=["id", "unit", "equipment", "date", "sync_status"])
    return pd.DataFrame(rows).sort_values(["date", "unit", "equipment"]).reset_index(drop=True)


class LocalRecordStore:
    """
    Local SQLite store for measurement records.

    The store does not apply business validation; callers validate before
    ``put``. Any SQLite failure is raised as ``StorageError``.
    """

    DEFAULT_DB_PATH = Path(__file__).parent.parent.parent / "local_data" / "vibrate.db"

    RECORDS_TABLE = "measurements"
    SETTINGS_TABLE = "app_settings"

    SCHEMA = {
        "measurements": """
            CREATE TABLE IF NOT EXISTS measurements (
                id TEXT PRIMARY KEY,
                unit TEXT NOT NULL,
                equipment TEXT NOT NULL,
                equipment_name TEXT,
                date TEXT NOT NULL,
                parameters_json TEXT NOT NULL,
                notes TEXT,
                user_id TEXT,
                user_name TEXT,
                timestamp TEXT NOT NULL,
                server_timestamp TEXT,
                sync_status TEXT NOT NULL DEFAULT 'local_only'
            )
        """,
        "app_settings": """
            CREATE TABLE IF NOT EXISTS app_settings (
                key TEXT PRIMARY KEY,
                value TEXT,
                updated_at TEXT DEFAULT CURRENT_TIMESTAMP
            )
        """,
    }

    INDEXES = {
        "idx_measurements_unit": "CREATE INDEX IF NOT EXISTS idx_measurements_unit ON measurements (unit)",
        "idx_measurements_equipment": "CREATE INDEX IF NOT EXISTS idx_measurements_equipment ON measurements (equipment)",
        "idx_measurements_date": "CREATE INDEX IF NOT EXISTS idx_measurements_date ON measurements (date)",
        "idx_measurements_sync_status": "CREATE INDEX IF NOT EXISTS idx_measurements_sync_status ON measurements (sync_status)",
        "idx_measurements_unit_equipment_date": (
            "CREATE INDEX IF NOT EXISTS idx_measurements_unit_equipment_date "
            "ON measurements (unit, equipment, date)"
        ),
    }

    COLUMNS = (
        "id", "unit", "equipment", "equipment_name", "date", "parameters_json",
        "notes", "user_id", "user_name", "timestamp", "server_timestamp", "sync_status",
    )

    def __init__(self, db_path: Optional[Union[Path, str]] = None):
        """
        Initialize the record store.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path) if db_path else self.DEFAULT_DB_PATH
        self._ensure_directory()
        self._local = threading.local()
        self._connections: List[sqlite3.Connection] = []
        self._connections_lock = threading.Lock()
        self._initialized = False

    def _ensure_directory(self) -> None:
        """Ensure database directory exists."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def _get_connection(self) -> sqlite3.Connection:
        """Get thread-local database connection."""
        if getattr(self._local, "connection", None) is None:
            try:
                connection = sqlite3.connect(str(self.db_path), check_same_thread=False)
            except sqlite3.Error as e:
                raise StorageError(f"Cannot open local database: {e}", operation="connect") from e
            connection.row_factory = sqlite3.Row
            self._local.connection = connection
            with self._connections_lock:
                self._connections.append(connection)
        return self._local.connection

    @contextmanager
    def transaction(self, operation: str = "write"):
        """Context manager for database transactions."""
        conn = self._get_connection()
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise StorageError(f"Local {operation} failed: {e}", operation=operation) from e
        except Exception:
            conn.rollback()
            raise

    def _read(self, sql: str, params: Iterable[Any] = (), operation: str = "read") -> List[sqlite3.Row]:
        try:
            return self._get_connection().execute(sql, list(params)).fetchall()
        except sqlite3.Error as e:
            raise StorageError(f"Local {operation} failed: {e}", operation=operation) from e

    def initialize(self) -> LocalRecordStore:
        """Initialize database schema."""
        if self._initialized:
            return self

        with self.transaction("initialize") as conn:
            for table_name, schema in self.SCHEMA.items():
                conn.execute(schema)
                logger.debug(f"Created/verified table: {table_name}")
            for index_name, ddl in self.INDEXES.items():
                conn.execute(ddl)
                logger.debug(f"Created/verified index: {index_name}")

        self._initialized = True
        logger.info(f"Local record store initialized at: {self.db_path}")
        return self

    # =========================================================================
    # RECORD OPERATIONS
    # =========================================================================

    def put(self, record: MeasurementRecord) -> MeasurementRecord:
        """
        Upsert a record by its derived key; an existing record with the same
        (unit, equipment, date) is replaced.

        Records can only enter the store as ``local_only`` or ``pending``;
        ``synced`` is reached through ``mark_synced``.
        """
        if record.sync_status is SyncStatus.SYNCED:
            raise ValueError("Synced status is set by the reconciler via mark_synced()")

        row = record.to_row()
        columns = ", ".join(self.COLUMNS)
        placeholders = ", ".join("?" for _ in self.COLUMNS)

        with self.transaction("put") as conn:
            conn.execute(
                f"INSERT OR REPLACE INTO {self.RECORDS_TABLE} ({columns}) VALUES ({placeholders})",
                [row[c] for c in self.COLUMNS],
            )

        logger.debug(f"Stored record {record.id} ({record.sync_status.value})")
        return record

    def get(self, record_id: str) -> Optional[MeasurementRecord]:
        """Get a record by its derived key."""
        rows = self._read(
            f"SELECT * FROM {self.RECORDS_TABLE} WHERE id = ?",
            [record_id],
            operation="get",
        )
        return MeasurementRecord.from_row(rows[0]) if rows else None

    def query(self, filters: Optional[RecordFilter] = None) -> List[MeasurementRecord]:
        """
        Return every record matching the filter, unordered.

        The compound (unit, equipment, date) condition is placed first so
        SQLite picks the compound index; single-column conditions fall back
        to the unit/equipment/date indexes.
        """
        filters = filters or RecordFilter()
        where, params = self._build_where(filters)

        sql = f"SELECT * FROM {self.RECORDS_TABLE}"
        if where:
            sql += " WHERE " + " AND ".join(where)

        rows = self._read(sql, params, operation="query")
        return [MeasurementRecord.from_row(row) for row in rows]

    @staticmethod
    def _build_where(filters: RecordFilter) -> Tuple[List[str], List[Any]]:
        where: List[str] = []
        params: List[Any] = []

        if filters.is_compound_key:
            where.append("unit = ? AND equipment = ? AND date = ?")
            params += [filters.unit, filters.equipment, filters.date.isoformat()]
        else:
            if filters.unit:
                where.append("unit = ?")
                params.append(filters.unit)
            if filters.equipment:
                where.append("equipment = ?")
                params.append(filters.equipment)
            if filters.date:
                where.append("date = ?")
                params.append(filters.date.isoformat())

        if filters.date_from:
            where.append("date >= ?")
            params.append(filters.date_from.isoformat())
        if filters.date_to:
            where.append("date <= ?")
            params.append(filters.date_to.isoformat())
        if filters.sync_status:
            where.append("sync_status = ?")
            params.append(filters.sync_status.value)
        if filters.user_id:
            where.append("user_id = ?")
            params.append(filters.user_id)

        return where, params

    def delete(self, record_id: str) -> bool:
        """Delete a record; deleting an unknown id is not an error."""
        with self.transaction("delete") as conn:
            cursor = conn.execute(
                f"DELETE FROM {self.RECORDS_TABLE} WHERE id = ?",
                [record_id],
            )
            removed = cursor.rowcount > 0

        if removed:
            logger.debug(f"Deleted local record {record_id}")
        return removed

    def mark_synced(
        self,
        submitted: Iterable[MeasurementRecord],
        server_timestamp: Optional[datetime] = None,
    ) -> List[str]:
        """
        Transition acknowledged records from ``pending`` to ``synced``.

        Only rows that are still pending with the local timestamp that was
        submitted are updated; a record overwritten while the sync was in
        flight stays pending.

        Returns:
            Ids that were marked synced
        """
        server_timestamp = server_timestamp or utc_now()
        marked: List[str] = []

        with self.transaction("mark_synced") as conn:
            for record in submitted:
                cursor = conn.execute(
                    f"""
                    UPDATE {self.RECORDS_TABLE}
                    SET sync_status = ?, server_timestamp = ?
                    WHERE id = ? AND sync_status = ? AND timestamp = ?
                    """,
                    [
                        SyncStatus.SYNCED.value,
                        server_timestamp.isoformat(),
                        record.id,
                        SyncStatus.PENDING.value,
                        record.timestamp.isoformat(),
                    ],
                )
                if cursor.rowcount > 0:
                    marked.append(record.id)

        return marked

    def count_by_status(self) -> Dict[str, int]:
        """Number of records per sync status (all statuses present)."""
        rows = self._read(
            f"SELECT sync_status, COUNT(*) AS count FROM {self.RECORDS_TABLE} GROUP BY sync_status",
            operation="count",
        )
        counts = {status.value: 0 for status in SyncStatus}
        counts.update({row["sync_status"]: row["count"] for row in rows})
        return counts

    def get_pending_count(self) -> int:
        """Get count of records waiting to be pushed."""
        return self.count_by_status()[SyncStatus.PENDING.value]

    def clear(self) -> None:
        """Remove every record and setting."""
        with self.transaction("clear") as conn:
            conn.execute(f"DELETE FROM {self.RECORDS_TABLE}")
            conn.execute(f"DELETE FROM {self.SETTINGS_TABLE}")
        logger.info("Local record store cleared")

    # =========================================================================
    # PANDAS INTEGRATION
    # =========================================================================

    def to_dataframe(self, filters: Optional[RecordFilter] = None) -> pd.DataFrame:
        """
        Load matching records into a wide DataFrame, one column per parameter.
        """
        return records_frame(self.query(filters))

    # =========================================================================
    # SETTINGS
    # =========================================================================

    def get_setting(self, key: str, default: Any = None) -> Any:
        """Get an app setting."""
        rows = self._read(
            f"SELECT value FROM {self.SETTINGS_TABLE} WHERE key = ?",
            [key],
            operation="get_setting",
        )
        if rows:
            try:
                return json.loads(rows[0]["value"])
            except (json.JSONDecodeError, TypeError):
                return rows[0]["value"]
        return default

    def set_setting(self, key: str, value: Any) -> None:
        """Set an app setting."""
        with self.transaction("set_setting") as conn:
            conn.execute(
                f"""
                INSERT OR REPLACE INTO {self.SETTINGS_TABLE} (key, value, updated_at)
                VALUES (?, ?, ?)
                """,
                [key, json.dumps(value), utc_now().isoformat()],
            )

    @property
    def last_sync_time(self) -> Optional[datetime]:
        """Completion time of the last successful sync, if any."""
        value = self.get_setting(LAST_SYNC_KEY)
        return datetime.fromisoformat(value) if value else None

    def set_last_sync_time(self, when: Optional[datetime] = None) -> datetime:
        when = when or utc_now()
        self.set_setting(LAST_SYNC_KEY, when.isoformat())
        return when

    def close(self) -> None:
        """Close every connection opened by this store."""
        with self._connections_lock:
            for connection in self._connections:
                connection.close()
            self._connections.clear()
        self._local = threading.local()
