# =============================================================================
# vibrate_core/offline/connection_manager.py
# Connection Status Detection for the Remote Record Store
# =============================================================================
"""
ConnectionManager - tracks whether the remote record store is reachable.

Features:
- Internet probe (well-known DNS hosts) plus a remote-store probe
- Optional periodic health checks on a daemon thread
- Callbacks on status changes

The reconciler consults ``is_offline`` before pushing; an UNKNOWN status
(never checked) is not treated as offline.
"""

from __future__ import annotations
import socket
import threading
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional, Sequence, Tuple
from urllib.parse import urlparse
import logging

logger = logging.getLogger(__name__)


class ConnectionStatus(Enum):
    """Connection status states."""
    ONLINE = "online"           # Internet and remote store reachable
    OFFLINE = "offline"         # No connectivity
    DEGRADED = "degraded"       # Internet OK but remote store unavailable
    CHECKING = "checking"
    UNKNOWN = "unknown"         # Initial state


@dataclass
class ConnectionState:
    """Current connection state with metadata."""
    status: ConnectionStatus = ConnectionStatus.UNKNOWN
    internet_available: bool = False
    remote_available: bool = False
    last_check: Optional[datetime] = None
    last_online: Optional[datetime] = None
    consecutive_failures: int = 0
    error_message: Optional[str] = None


Probe = Callable[[], bool]


def socket_probe(host: str, port: int, timeout: float) -> bool:
    """True when a TCP connection to host:port can be opened."""
    try:
        with socket.create_connection((host, port), timeout=timeout):
            return True
    except OSError:
        return False


class ConnectionManager:
    """
    Connection status detection for one remote backend.

    Usage:
        manager = ConnectionManager(remote_url=config.supabase_url)
        manager.check_connection()
        if manager.is_offline:
            # Keep working locally
    """

    CHECK_INTERVAL_ONLINE = 30      # Seconds between checks when online
    CHECK_INTERVAL_OFFLINE = 10     # Seconds between checks when offline

    INTERNET_HOSTS: Sequence[Tuple[str, int]] = (
        ("8.8.8.8", 53),
        ("1.1.1.1", 53),
        ("208.67.222.222", 53),
    )

    def __init__(
        self,
        remote_url: Optional[str] = None,
        timeout: float = 5,
        internet_probe: Optional[Probe] = None,
        remote_probe: Optional[Probe] = None,
    ):
        """
        Args:
            remote_url: Base URL of the remote store; None means local-only
            timeout: Seconds allowed per probe
            internet_probe: Replaces the DNS-host probe
            remote_probe: Replaces the TCP probe of ``remote_url``
        """
        self.remote_url = remote_url
        self.timeout = timeout
        self._internet_probe = internet_probe or self._check_internet
        self._remote_probe = remote_probe or self._check_remote
        self._state = ConnectionState()
        self._state_lock = threading.Lock()
        self._callbacks: List[Callable[[ConnectionState], None]] = []
        self._monitor_thread: Optional[threading.Thread] = None
        self._stop_monitoring = threading.Event()

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def status(self) -> ConnectionStatus:
        return self._state.status

    @property
    def is_online(self) -> bool:
        """Check if we have full connectivity."""
        return self._state.status == ConnectionStatus.ONLINE

    @property
    def is_offline(self) -> bool:
        """Remote store known to be unreachable (offline or degraded)."""
        return self._state.status in (ConnectionStatus.OFFLINE, ConnectionStatus.DEGRADED)

    def check_connection(self) -> ConnectionState:
        """
        Perform a connection check and update state.

        Returns:
            Updated ConnectionState
        """
        with self._state_lock:
            old_status = self._state.status
            self._state.status = ConnectionStatus.CHECKING
            self._state.last_check = datetime.now()

            internet_ok = self._run_probe(self._internet_probe)
            self._state.internet_available = internet_ok

            remote_ok = self._run_probe(self._remote_probe) if internet_ok else False
            self._state.remote_available = remote_ok

            if internet_ok and remote_ok:
                self._state.status = ConnectionStatus.ONLINE
                self._state.last_online = datetime.now()
                self._state.consecutive_failures = 0
                self._state.error_message = None
            elif internet_ok:
                self._state.status = ConnectionStatus.DEGRADED
                self._state.consecutive_failures += 1
            else:
                self._state.status = ConnectionStatus.OFFLINE
                self._state.consecutive_failures += 1

            new_status = self._state.status

        if old_status != new_status:
            logger.info(f"Connection status changed: {old_status.value} -> {new_status.value}")
            self._notify_callbacks()

        return self._state

    def _run_probe(self, probe: Probe) -> bool:
        try:
            return bool(probe())
        except Exception as e:
            self._state.error_message = str(e)
            logger.debug(f"Connection probe failed: {e}")
            return False

    def _check_internet(self) -> bool:
        return any(socket_probe(host, port, self.timeout) for host, port in self.INTERNET_HOSTS)

    def _check_remote(self) -> bool:
        if not self.remote_url:
            # No remote configured - local-only mode has nothing to reach
            return True

        parsed = urlparse(self.remote_url)
        if not parsed.hostname:
            self._state.error_message = f"Invalid remote URL: {self.remote_url}"
            return False
        port = parsed.port or (80 if parsed.scheme == "http" else 443)
        return socket_probe(parsed.hostname, port, self.timeout)

    # =========================================================================
    # MONITORING
    # =========================================================================

    def start_monitoring(self) -> None:
        """Start background connection monitoring."""
        if self._monitor_thread is not None and self._monitor_thread.is_alive():
            return

        self._stop_monitoring.clear()
        self._monitor_thread = threading.Thread(
            target=self._monitoring_loop,
            daemon=True,
            name="ConnectionMonitor",
        )
        self._monitor_thread.start()
        logger.debug("Connection monitoring started")

    def stop_monitoring(self) -> None:
        self._stop_monitoring.set()
        if self._monitor_thread:
            self._monitor_thread.join(timeout=5)
        logger.debug("Connection monitoring stopped")

    def _monitoring_loop(self) -> None:
        while not self._stop_monitoring.is_set():
            interval = self.CHECK_INTERVAL_ONLINE if self.is_online else self.CHECK_INTERVAL_OFFLINE
            if self._stop_monitoring.wait(timeout=interval):
                break
            try:
                self.check_connection()
            except Exception as e:
                logger.error(f"Error in connection check: {e}")

    def register_callback(self, callback: Callable[[ConnectionState], None]) -> None:
        """Register a callback for connection status changes."""
        if callback not in self._callbacks:
            self._callbacks.append(callback)

    def unregister_callback(self, callback: Callable[[ConnectionState], None]) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def _notify_callbacks(self) -> None:
        for callback in list(self._callbacks):
            try:
                callback(self._state)
            except Exception as e:
                logger.error(f"Error in connection callback: {e}")

    def force_offline(self) -> None:
        """Force offline mode (user preference or tests)."""
        with self._state_lock:
            self._state.status = ConnectionStatus.OFFLINE
            self._state.internet_available = False
            self._state.remote_available = False
        self._notify_callbacks()
        logger.info("Forced offline mode")

    def get_status_display(self) -> dict:
        """Get status information for UI display."""
        return {
            "status": self._state.status.value,
            "is_online": self.is_online,
            "internet": self._state.internet_available,
            "remote": self._state.remote_available,
            "last_check": self._state.last_check.isoformat() if self._state.last_check else None,
            "last_online": self._state.last_online.isoformat() if self._state.last_online else None,
            "failures": self._state.consecutive_failures,
            "error": self._state.error_message,
        }
