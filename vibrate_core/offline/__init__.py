# =============================================================================
# vibrate_core/offline/__init__.py
# Local-First Storage and Sync for Vibration Measurements
# =============================================================================
"""
Local-First Storage Module

Every measurement is written to the device first; signed-in operators push
pending records to the hosted store on demand (or on entry / reconnect when
the matching settings are on).

Architecture:
------------
┌─────────────────────────────────────────────────────────────────┐
│                     LOCAL-FIRST ARCHITECTURE                     │
├─────────────────────────────────────────────────────────────────┤
│                                                                  │
│   ┌──────────────────────────────────────────────────────────┐  │
│   │                   SyncReconciler                          │  │
│   │   save / get (remote ∪ local-unsynced) / delete / sync    │  │
│   └──────────────────────────────────────────────────────────┘  │
│          │                  │                    │               │
│          ▼                  ▼                    ▼               │
│   ┌──────────────┐  ┌────────────────┐  ┌─────────────────┐     │
│   │ AuthStatus   │  │ ConnectionMgr  │  │ RemoteTransport │     │
│   │ (signed in?) │  │ (online?)      │  │ (Supabase)      │     │
│   └──────────────┘  └────────────────┘  └─────────────────┘     │
│          │                                       │               │
│          ▼                                       ▼               │
│   ┌──────────────┐                      ┌─────────────────┐     │
│   │LocalRecord   │                      │ ChangeNotifier  │     │
│   │Store (SQLite)│                      │ (realtime feed) │     │
│   └──────────────┘                      └─────────────────┘     │
└─────────────────────────────────────────────────────────────────┘

Usage:
------
from vibrate_core.context import build_context

ctx = build_context()
ctx.auth.sign_in(user_id, full_name="Operator A")
ctx.reconciler.save_data({...})
result = ctx.reconciler.sync_to_server()
"""

from vibrate_core.offline.auth_status import (
    AuthEvent,
    AuthStatusProvider,
    SessionAuthProvider,
    SessionUser,
)

from vibrate_core.offline.connection_manager import (
    ConnectionManager,
    ConnectionState,
    ConnectionStatus,
)

from vibrate_core.offline.local_database import LocalRecordStore, records_frame

from vibrate_core.offline.remote_store import (
    RemoteRecordTransport,
    SupabaseRecordTransport,
    InMemoryRecordTransport,
    SubmitError,
    SubmitResult,
    map_remote_error,
)

from vibrate_core.offline.sync_engine import (
    SyncReconciler,
    SyncResult,
    RecordSyncError,
)

from vibrate_core.offline.realtime import (
    ChangeNotifier,
    ChangeEvent,
    ChangeType,
)

__all__ = [
    # Auth status
    "AuthEvent",
    "AuthStatusProvider",
    "SessionAuthProvider",
    "SessionUser",
    # Connection Management
    "ConnectionManager",
    "ConnectionState",
    "ConnectionStatus",
    # Local store
    "LocalRecordStore",
    "records_frame",
    # Remote store
    "RemoteRecordTransport",
    "SupabaseRecordTransport",
    "InMemoryRecordTransport",
    "SubmitError",
    "SubmitResult",
    "map_remote_error",
    # Reconciler
    "SyncReconciler",
    "SyncResult",
    "RecordSyncError",
    # Realtime
    "ChangeNotifier",
    "ChangeEvent",
    "ChangeType",
]
