# =============================================================================
# vibrate_core/models/__init__.py
# =============================================================================

from .records import (
    MeasurementRecord,
    RecordFilter,
    SyncStatus,
    make_record_id,
    parse_record_id,
    sort_newest_first,
    utc_now,
)

__all__ = [
    "MeasurementRecord",
    "RecordFilter",
    "SyncStatus",
    "make_record_id",
    "parse_record_id",
    "sort_newest_first",
    "utc_now",
]
