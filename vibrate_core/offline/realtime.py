# =============================================================================
# vibrate_core/offline/realtime.py
# Remote change feed -> listener notifications
# =============================================================================
"""
ChangeNotifier - turns Postgres change events on the measurement table into
``ChangeEvent`` objects for UI refresh, and passes the signed-in user's
settings rows on to settings listeners.

The notifier is active only while a user is signed in; it never writes to
the Local Record Store.
"""

from __future__ import annotations
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional
import logging

from vibrate_core.models import MeasurementRecord

from .auth_status import AuthEvent, AuthStatusProvider, SessionUser

logger = logging.getLogger(__name__)


class ChangeType(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


@dataclass
class ChangeEvent:
    event_type: ChangeType
    record: Optional[MeasurementRecord] = None
    old_record: Optional[MeasurementRecord] = None
    key: Optional[Any] = None

    @property
    def subject(self) -> Optional[MeasurementRecord]:
        """The record the event is about (the old one for deletes)."""
        return self.record or self.old_record


ChangeListener = Callable[[ChangeEvent], None]
SettingsListener = Callable[[Dict[str, Any]], None]


@dataclass
class _Subscription:
    callback: ChangeListener
    unit: Optional[str] = None
    equipment: Optional[str] = None

    def wants(self, event: ChangeEvent) -> bool:
        if self.unit is None and self.equipment is None:
            return True
        subject = event.subject
        if subject is None:
            # Key-only delete rows cannot be matched against a filter
            return True
        if self.unit and subject.unit != self.unit:
            return False
        if self.equipment and subject.equipment != self.equipment:
            return False
        return True


def _server_row_to_record(row: Optional[Mapping[str, Any]]) -> Optional[MeasurementRecord]:
    """Convert a change-feed row; partial rows (delete keys only) give None."""
    if not row or not all(row.get(k) for k in ("unit_type", "equipment_id", "measurement_date")):
        return None
    try:
        return MeasurementRecord.from_server_row(row)
    except (KeyError, TypeError, ValueError) as e:
        logger.warning(f"Unreadable change-feed row: {e}")
        return None


def _payload_parts(payload: Mapping[str, Any]):
    """(data, raw event type) for both payload shapes."""
    data = payload.get("data", payload)
    raw_type = data.get("type") or data.get("eventType") or payload.get("eventType")
    return data, raw_type


class ChangeNotifier:
    """
    Listener registry fed by the remote change feed.

    Usage:
        notifier = ChangeNotifier(auth)
        remove = notifier.add_listener(refresh_table, unit="DRI1")
        notifier.add_settings_listener(apply_settings)
        await notifier.connect(async_client)
    """

    CHANNEL_NAME = "vibrate_data_changes"

    def __init__(
        self,
        auth: AuthStatusProvider,
        table: str = "vibrate_data",
        schema: str = "public",
        settings_table: str = "user_settings",
    ):
        self.table = table
        self.schema = schema
        self.settings_table = settings_table
        self._auth = auth
        self._subscriptions: List[_Subscription] = []
        self._settings_listeners: List[SettingsListener] = []
        self._lock = threading.Lock()
        self._enabled = auth.is_authenticated
        self._channel = None
        self._client = None
        self._unsubscribe_auth = auth.subscribe(self._on_auth_event)

    @property
    def enabled(self) -> bool:
        return self._enabled

    def enable(self) -> None:
        self._enabled = True
        logger.info("Realtime notifications enabled")

    def disable(self) -> None:
        self._enabled = False
        logger.info("Realtime notifications disabled")

    def _on_auth_event(self, event: AuthEvent, user: Optional[SessionUser]) -> None:
        if event is AuthEvent.SIGNED_IN:
            self.enable()
        elif event is AuthEvent.SIGNED_OUT:
            self.disable()

    def add_listener(
        self,
        callback: ChangeListener,
        unit: Optional[str] = None,
        equipment: Optional[str] = None,
    ) -> Callable[[], None]:
        """
        Register a listener, optionally limited to one unit/equipment.

        Deletes that carry only the row key reach every listener.
        """
        subscription = _Subscription(callback, unit, equipment)
        with self._lock:
            self._subscriptions.append(subscription)

        def remove() -> None:
            with self._lock:
                if subscription in self._subscriptions:
                    self._subscriptions.remove(subscription)

        return remove

    def add_settings_listener(self, callback: SettingsListener) -> Callable[[], None]:
        """Register a callback for the signed-in user's settings row."""
        with self._lock:
            self._settings_listeners.append(callback)

        def remove() -> None:
            with self._lock:
                if callback in self._settings_listeners:
                    self._settings_listeners.remove(callback)

        return remove

    @property
    def listener_count(self) -> int:
        return len(self._subscriptions)

    @staticmethod
    def parse_payload(payload: Mapping[str, Any]) -> Optional[ChangeEvent]:
        """
        Build a ChangeEvent from a ``postgres_changes`` payload.

        Accepts both the Python client shape (``data.type`` / ``data.record``
        / ``data.old_record``) and the flat shape (``eventType`` / ``new`` /
        ``old``).
        """
        data, raw_type = _payload_parts(payload)
        if not raw_type:
            return None
        try:
            event_type = ChangeType(str(raw_type).lower())
        except ValueError:
            logger.debug(f"Ignoring change-feed event {raw_type!r}")
            return None

        new_row = data.get("record", data.get("new"))
        old_row = data.get("old_record", data.get("old"))
        key_row = old_row if event_type is ChangeType.DELETE else new_row
        return ChangeEvent(
            event_type=event_type,
            record=_server_row_to_record(new_row) if event_type is not ChangeType.DELETE else None,
            old_record=_server_row_to_record(old_row),
            key=(key_row or {}).get("id"),
        )

    def handle_payload(self, payload: Mapping[str, Any]) -> Optional[ChangeEvent]:
        """Parse one payload and dispatch it to matching listeners."""
        if not self._enabled:
            return None

        event = self.parse_payload(payload)
        if event is None:
            return None

        with self._lock:
            targets = [s for s in self._subscriptions if s.wants(event)]

        for subscription in targets:
            try:
                subscription.callback(event)
            except Exception as e:
                logger.error(f"Error in change listener: {e}")

        return event

    def handle_settings_payload(self, payload: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        """Pass an inserted or updated settings row of the current user on."""
        if not self._enabled:
            return None

        data, raw_type = _payload_parts(payload)
        if str(raw_type).upper() not in ("INSERT", "UPDATE"):
            return None

        row = data.get("record", data.get("new")) or {}
        if not row or row.get("user_id") != self._auth.current_user_id:
            return None

        with self._lock:
            targets = list(self._settings_listeners)

        for callback in targets:
            try:
                callback(dict(row))
            except Exception as e:
                logger.error(f"Error in settings listener: {e}")

        return dict(row)

    # =========================================================================
    # SUPABASE REALTIME CHANNEL
    # =========================================================================

    async def connect(self, async_client: Any) -> None:
        """
        Subscribe to the table's change feed on a Supabase async client,
        plus the signed-in user's settings row.
        """
        if self._channel is not None:
            return

        channel = async_client.channel(self.CHANNEL_NAME)
        channel.on_postgres_changes(
            "*",
            schema=self.schema,
            table=self.table,
            callback=self.handle_payload,
        )
        user_id = self._auth.current_user_id
        if user_id:
            channel.on_postgres_changes(
                "*",
                schema=self.schema,
                table=self.settings_table,
                filter=f"user_id=eq.{user_id}",
                callback=self.handle_settings_payload,
            )
        await channel.subscribe()

        self._client = async_client
        self._channel = channel
        logger.info(f"Subscribed to changes on {self.schema}.{self.table}")

    async def disconnect(self) -> None:
        if self._channel is None:
            return
        await self._client.remove_channel(self._channel)
        self._channel = None
        logger.info(f"Unsubscribed from changes on {self.schema}.{self.table}")

    def close(self) -> None:
        """Detach from the auth provider and drop every listener."""
        self._unsubscribe_auth()
        with self._lock:
            self._subscriptions.clear()
            self._settings_listeners.clear()
