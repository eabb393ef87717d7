# =============================================================================
# vibrate_core/models/records.py
# Measurement record model and its local/server representations
# =============================================================================
"""
MeasurementRecord - one day's vibration readings for one piece of equipment.

A record is identified by the derived key ``<unit>_<equipment>_<date>``;
writing a record with an existing key replaces the earlier one.

Two wire shapes exist besides the local SQLite row:
- the server row of the ``vibrate_data`` table (snake_case columns)
- the payload accepted by the ``sync-local-data`` edge function (camelCase)
"""

from __future__ import annotations
import json
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from vibrate_core import catalog


class SyncStatus(str, Enum):
    """Relationship of a local record to the remote store."""
    LOCAL_ONLY = "local_only"   # written while signed out
    PENDING = "pending"         # written while signed in, not yet accepted
    SYNCED = "synced"           # accepted by the remote store

    @classmethod
    def for_write(cls, authenticated: bool) -> SyncStatus:
        """Status of a freshly written record."""
        return cls.PENDING if authenticated else cls.LOCAL_ONLY


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def make_record_id(unit: str, equipment: str, day: Union[date, str]) -> str:
    """Derived key: unit + "_" + equipment + "_" + ISO date."""
    day_str = day.isoformat() if isinstance(day, date) else str(day)
    return f"{unit}_{equipment}_{day_str}"


def parse_record_id(record_id: str) -> Tuple[str, str, date]:
    """Split a derived key back into (unit, equipment, date)."""
    parts = record_id.split("_", 2)
    if len(parts) != 3:
        raise ValueError(f"Malformed record id: {record_id!r}")
    unit, equipment, day = parts
    return unit, equipment, date.fromisoformat(day)


def _to_date(value: Union[date, str, None]) -> Optional[date]:
    if value is None or isinstance(value, date) and not isinstance(value, datetime):
        return value
    if isinstance(value, datetime):
        return value.date()
    return date.fromisoformat(str(value)[:10])


def _to_datetime(value: Union[datetime, str, None]) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    text = str(value)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


@dataclass
class MeasurementRecord:
    """A validated (or about to be validated) measurement entry."""
    unit: str
    equipment: str
    date: date
    parameters: Dict[str, float] = field(default_factory=dict)
    notes: str = ""
    user_id: Optional[str] = None
    user_name: Optional[str] = None
    timestamp: datetime = field(default_factory=utc_now)
    server_timestamp: Optional[datetime] = None
    sync_status: SyncStatus = SyncStatus.LOCAL_ONLY
    equipment_name: Optional[str] = None

    def __post_init__(self):
        self.date = _to_date(self.date)
        self.timestamp = _to_datetime(self.timestamp)
        self.server_timestamp = _to_datetime(self.server_timestamp)
        self.sync_status = SyncStatus(self.sync_status)
        if self.equipment_name is None:
            equipment = catalog.get_equipment(self.equipment)
            if equipment is not None:
                self.equipment_name = equipment.name

    @property
    def id(self) -> str:
        return make_record_id(self.unit, self.equipment, self.date)

    @property
    def key(self) -> Tuple[str, str, date]:
        return self.unit, self.equipment, self.date

    def with_status(self, status: SyncStatus, **changes) -> MeasurementRecord:
        """Copy of the record with a different sync status."""
        return replace(self, sync_status=status, **changes)

    # =========================================================================
    # LOCAL (SQLITE) ROW
    # =========================================================================

    def to_row(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "unit": self.unit,
            "equipment": self.equipment,
            "equipment_name": self.equipment_name,
            "date": self.date.isoformat(),
            "parameters_json": json.dumps(self.parameters, sort_keys=True),
            "notes": self.notes,
            "user_id": self.user_id,
            "user_name": self.user_name,
            "timestamp": _iso(self.timestamp),
            "server_timestamp": _iso(self.server_timestamp),
            "sync_status": self.sync_status.value,
        }

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> MeasurementRecord:
        return cls(
            unit=row["unit"],
            equipment=row["equipment"],
            equipment_name=row["equipment_name"],
            date=row["date"],
            parameters=json.loads(row["parameters_json"]) if row["parameters_json"] else {},
            notes=row["notes"] or "",
            user_id=row["user_id"],
            user_name=row["user_name"],
            timestamp=row["timestamp"],
            server_timestamp=row["server_timestamp"],
            sync_status=row["sync_status"],
        )

    # =========================================================================
    # SERVER REPRESENTATIONS
    # =========================================================================

    def to_sync_payload(self) -> Dict[str, Any]:
        """Body item for the sync-local-data edge function."""
        return {
            "unitType": self.unit,
            "equipmentId": self.equipment,
            "measurementDate": self.date.isoformat(),
            "parameters": self.parameters,
            "notes": self.notes or "",
            "localTimestamp": _iso(self.timestamp),
        }

    def to_server_row(self) -> Dict[str, Any]:
        """Row for direct writes to the vibrate_data table."""
        return {
            "unit_type": self.unit,
            "equipment_id": self.equipment,
            "equipment_name": self.equipment_name,
            "measurement_date": self.date.isoformat(),
            "parameters": self.parameters,
            "notes": self.notes or "",
            "user_id": self.user_id,
            "local_timestamp": _iso(self.timestamp),
        }

    @classmethod
    def from_server_row(cls, row: Mapping[str, Any]) -> MeasurementRecord:
        """Remote rows are, by definition, synced."""
        profile = row.get("user_profiles") or {}
        server_ts = row.get("server_timestamp")
        return cls(
            unit=row["unit_type"],
            equipment=row["equipment_id"],
            equipment_name=row.get("equipment_name"),
            date=row["measurement_date"],
            parameters=dict(row.get("parameters") or {}),
            notes=row.get("notes") or "",
            user_id=row.get("user_id"),
            user_name=profile.get("full_name") or row.get("user_name"),
            timestamp=row.get("local_timestamp") or server_ts,
            server_timestamp=server_ts,
            sync_status=SyncStatus.SYNCED,
        )


@dataclass
class RecordFilter:
    """Query filter shared by the local store and the remote transport."""
    unit: Optional[str] = None
    equipment: Optional[str] = None
    date: Optional[date] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    sync_status: Optional[SyncStatus] = None
    user_id: Optional[str] = None

    def __post_init__(self):
        self.date = _to_date(self.date)
        self.date_from = _to_date(self.date_from)
        self.date_to = _to_date(self.date_to)
        if self.sync_status is not None:
            self.sync_status = SyncStatus(self.sync_status)

    @property
    def is_compound_key(self) -> bool:
        return bool(self.unit and self.equipment and self.date)

    def matches(self, record: MeasurementRecord) -> bool:
        if self.unit and record.unit != self.unit:
            return False
        if self.equipment and record.equipment != self.equipment:
            return False
        if self.date and record.date != self.date:
            return False
        if self.date_from and record.date < self.date_from:
            return False
        if self.date_to and record.date > self.date_to:
            return False
        if self.sync_status and record.sync_status != self.sync_status:
            return False
        if self.user_id and record.user_id != self.user_id:
            return False
        return True


_MIN_TS = datetime.min.replace(tzinfo=timezone.utc)


def sort_newest_first(records):
    """Order by date descending, then local write time descending."""
    def _key(record: MeasurementRecord):
        ts = record.timestamp or _MIN_TS
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        return record.date, ts

    return sorted(records, key=_key, reverse=True)
