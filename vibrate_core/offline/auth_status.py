# =============================================================================
# vibrate_core/offline/auth_status.py
# Authentication status signal consumed by the sync layer
# =============================================================================
"""
The reconciler only needs to know *whether* someone is signed in and *who*;
credentials and sign-in screens live elsewhere. ``SessionAuthProvider`` is
the in-process session the UI updates after its own login flow.
"""

from __future__ import annotations
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional
import logging

logger = logging.getLogger(__name__)


class AuthEvent(Enum):
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"


@dataclass(frozen=True)
class SessionUser:
    id: str
    full_name: Optional[str] = None
    role: Optional[str] = None


AuthCallback = Callable[[AuthEvent, Optional[SessionUser]], None]


class AuthStatusProvider(ABC):
    """Read-only view of the current session plus change notifications."""

    @property
    @abstractmethod
    def is_authenticated(self) -> bool:
        pass

    @property
    @abstractmethod
    def current_user(self) -> Optional[SessionUser]:
        pass

    @abstractmethod
    def subscribe(self, callback: AuthCallback) -> Callable[[], None]:
        """Register for sign-in/sign-out events; returns an unsubscribe function."""
        pass

    @property
    def current_user_id(self) -> Optional[str]:
        user = self.current_user
        return user.id if user else None

    @property
    def current_user_name(self) -> Optional[str]:
        user = self.current_user
        return user.full_name if user else None


class SessionAuthProvider(AuthStatusProvider):
    """
    Session holder driven by the UI's login flow.

    Usage:
        auth = SessionAuthProvider()
        auth.sign_in("3f2c...", full_name="Operator A")
        auth.is_authenticated  # True
    """

    def __init__(self, user: Optional[SessionUser] = None):
        self._user = user
        self._callbacks: List[AuthCallback] = []
        self._lock = threading.Lock()

    @property
    def is_authenticated(self) -> bool:
        return self._user is not None

    @property
    def current_user(self) -> Optional[SessionUser]:
        return self._user

    def sign_in(self, user_id: str, full_name: Optional[str] = None, role: Optional[str] = None) -> SessionUser:
        with self._lock:
            self._user = SessionUser(user_id, full_name, role)
        logger.info(f"Session started for user {user_id}")
        self._notify(AuthEvent.SIGNED_IN, self._user)
        return self._user

    def sign_out(self) -> None:
        with self._lock:
            previous, self._user = self._user, None
        if previous is not None:
            logger.info(f"Session ended for user {previous.id}")
            self._notify(AuthEvent.SIGNED_OUT, previous)

    def subscribe(self, callback: AuthCallback) -> Callable[[], None]:
        if callback not in self._callbacks:
            self._callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    def _notify(self, event: AuthEvent, user: Optional[SessionUser]) -> None:
        for callback in list(self._callbacks):
            try:
                callback(event, user)
            except Exception as e:
                logger.error(f"Error in auth callback: {e}")
