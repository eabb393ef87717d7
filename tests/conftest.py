# =============================================================================
# tests/conftest.py
# Pytest Configuration and Fixtures
# =============================================================================

import pytest
from datetime import date, datetime, timedelta, timezone
from typing import Dict, Optional
from unittest.mock import MagicMock

from vibrate_core.config import AppConfig
from vibrate_core.models import MeasurementRecord, SyncStatus
from vibrate_core.offline import (
    InMemoryRecordTransport,
    LocalRecordStore,
    SessionAuthProvider,
    SyncReconciler,
)


USER_ID = "7b1d5c3e-user-0001"
USER_NAME = "Operator A"


# =============================================================================
# SAMPLE DATA FIXTURES
# =============================================================================

def days_ago(n: int) -> date:
    return date.today() - timedelta(days=n)


@pytest.fixture
def make_record():
    """Factory for measurement records dated relative to today"""
    counter = {"n": 0}

    def _make(
        unit: str = "DRI1",
        equipment: str = "GB-cp48A",
        ago: int = 0,
        parameters: Optional[Dict[str, float]] = None,
        status: SyncStatus = SyncStatus.LOCAL_ONLY,
        user_id: Optional[str] = None,
        notes: str = "",
    ) -> MeasurementRecord:
        counter["n"] += 1
        return MeasurementRecord(
            unit=unit,
            equipment=equipment,
            date=days_ago(ago),
            parameters=parameters if parameters is not None else {"V1": 1.25, "GV1": 0.4},
            notes=notes,
            user_id=user_id,
            user_name=USER_NAME if user_id else None,
            # Distinct, increasing write times
            timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc) + timedelta(seconds=counter["n"]),
            sync_status=status,
        )

    return _make


@pytest.fixture
def entry():
    """Raw form values for one valid entry"""
    return {
        "unit": "DRI1",
        "equipment": "GB-cp48A",
        "date": days_ago(1).isoformat(),
        "parameters": {"V1": 1.25, "H1": 2.5, "GV1": 0.35},
        "notes": "  bearing noise after restart  ",
    }


# =============================================================================
# STORE / SYNC FIXTURES
# =============================================================================

@pytest.fixture
def store(tmp_path):
    """Initialized local record store in a temp directory"""
    local_store = LocalRecordStore(tmp_path / "vibrate.db").initialize()
    yield local_store
    local_store.close()


@pytest.fixture
def auth():
    """Signed-out session"""
    return SessionAuthProvider()


@pytest.fixture
def signed_in(auth):
    """Session with an operator signed in"""
    auth.sign_in(USER_ID, full_name=USER_NAME)
    return auth


@pytest.fixture
def transport():
    transport = InMemoryRecordTransport()
    transport.current_user_id = USER_ID
    return transport


@pytest.fixture
def reconciler(store, transport, auth):
    return SyncReconciler(store, transport, auth)


@pytest.fixture
def config(tmp_path):
    """Local-only configuration"""
    return AppConfig(db_path=tmp_path / "context.db")


@pytest.fixture
def context(config, transport, auth):
    from vibrate_core.context import build_context

    ctx = build_context(config=config, transport=transport, auth=auth)
    yield ctx
    ctx.close()


# =============================================================================
# MOCK FIXTURES
# =============================================================================

@pytest.fixture
def mock_streamlit(monkeypatch):
    """Mock the Streamlit module used by the error handlers and context"""
    mock_st = MagicMock()
    mock_st.session_state = {}
    monkeypatch.setattr("vibrate_core.errors.handlers.st", mock_st)
    monkeypatch.setattr("vibrate_core.context.st", mock_st)
    return mock_st


@pytest.fixture
def mock_query():
    """Chainable PostgREST query builder mock"""
    query = MagicMock()
    for method in ("select", "eq", "gte", "lte", "order", "range", "limit", "delete", "upsert"):
        getattr(query, method).return_value = query
    query.execute.return_value = MagicMock(data=[])
    return query


@pytest.fixture
def mock_supabase(mock_query):
    """Mock Supabase client"""
    mock_client = MagicMock()
    mock_client.table.return_value = mock_query
    mock_client.functions.invoke.return_value = {"successCount": 0, "errors": []}
    return mock_client


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def build_server_row(unit="DRI1", equipment="GB-cp48A", day=None, parameters=None, user_id=USER_ID):
    """A vibrate_data row as returned by the REST API"""
    day = day or days_ago(1)
    return {
        "id": 17,
        "unit_type": unit,
        "equipment_id": equipment,
        "measurement_date": day.isoformat(),
        "parameters": parameters or {"V1": 1.5},
        "notes": "",
        "user_id": user_id,
        "local_timestamp": "2024-01-01T08:00:00+00:00",
        "server_timestamp": "2024-01-01T08:00:05Z",
        "user_profiles": {"full_name": USER_NAME},
    }


@pytest.fixture
def server_row():
    return build_server_row
