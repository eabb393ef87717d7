# =============================================================================
# vibrate_core/context.py
# Object graph for one running app
# =============================================================================
"""
Builds the store, session, transport, connection manager, reconciler and
change notifier once and hands them around explicitly.

    ctx = build_context()
    service = MeasurementService(ctx)

In a Streamlit app use ``session_context()`` so each browser session keeps
its own graph across reruns.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Optional

import streamlit as st

from vibrate_core.config import AppConfig, load_config
from vibrate_core.logging import get_logger
from vibrate_core.offline import (
    AuthStatusProvider,
    ChangeNotifier,
    ConnectionManager,
    LocalRecordStore,
    RemoteRecordTransport,
    SessionAuthProvider,
    SupabaseRecordTransport,
    SyncReconciler,
)

logger = get_logger(__name__)

SESSION_KEY = "vibrate_context"


@dataclass
class VibrateContext:
    config: AppConfig
    store: LocalRecordStore
    auth: AuthStatusProvider
    transport: Optional[RemoteRecordTransport]
    connection: ConnectionManager
    reconciler: SyncReconciler
    notifier: ChangeNotifier

    def close(self) -> None:
        """Stop monitoring, drop listeners and close database connections."""
        self.connection.unregister_callback(self.reconciler.on_connection_change)
        self.connection.stop_monitoring()
        self.notifier.close()
        self.store.close()


def build_context(
    config: Optional[AppConfig] = None,
    transport: Optional[RemoteRecordTransport] = None,
    auth: Optional[AuthStatusProvider] = None,
    store: Optional[LocalRecordStore] = None,
    connection: Optional[ConnectionManager] = None,
    monitor_connection: bool = False,
) -> VibrateContext:
    """
    Create every collaborator once.

    Without a configured Supabase project there is no transport: records
    stay on this machine and sync reports a configuration error. Pass a
    transport explicitly to use another remote store.

    Args:
        monitor_connection: Probe connectivity now and keep probing on a
            background thread
    """
    config = config or load_config()
    store = (store or LocalRecordStore(config.db_path)).initialize()
    auth = auth or SessionAuthProvider()

    if transport is None:
        if config.remote_configured:
            transport = SupabaseRecordTransport(config)
        else:
            logger.info("Supabase not configured, running local-only")

    if connection is None:
        connection = ConnectionManager(
            remote_url=config.supabase_url or None,
            timeout=config.connection_timeout,
            remote_probe=None if config.remote_configured or transport is None else transport.check_connection,
        )

    reconciler = SyncReconciler(store, transport, auth, connection)
    connection.register_callback(reconciler.on_connection_change)
    notifier = ChangeNotifier(auth, table=config.records_table, settings_table=config.settings_table)
    notifier.add_settings_listener(reconciler.apply_remote_settings)

    if monitor_connection:
        connection.check_connection()
        connection.start_monitoring()

    return VibrateContext(
        config=config,
        store=store,
        auth=auth,
        transport=transport,
        connection=connection,
        reconciler=reconciler,
        notifier=notifier,
    )


def session_context(**kwargs) -> VibrateContext:
    """Context stored in ``st.session_state``, built on first use."""
    if SESSION_KEY not in st.session_state:
        st.session_state[SESSION_KEY] = build_context(**kwargs)
    return st.session_state[SESSION_KEY]
