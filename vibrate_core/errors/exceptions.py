# =============================================================================
# vibrate_core/errors/exceptions.py
# Custom Exception Hierarchy for the Vibration Data Core
# =============================================================================

from enum import Enum
from typing import Optional, Dict, Any, List


class VibrateError(Exception):
    """
    Base exception for all vibration data core errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code (e.g., "STORE_001")
        details: Additional context as a dictionary
        recoverable: Whether the error can be recovered from
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = True,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or "VIB_000"
        self.details = details or {}
        self.recoverable = recoverable

    def __str__(self) -> str:
        base = f"[{self.code}] {self.message}"
        if self.details:
            base += f" | Details: {self.details}"
        return base

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization"""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
        }


# =============================================================================
# VALIDATION EXCEPTIONS
# =============================================================================

class ValidationError(VibrateError):
    """
    A single field violation of the measurement record schema.

    ``field`` names the offending field (``unit``, ``equipment``, ``date``,
    ``notes``, ``parameters`` or ``parameters.<id>``) and ``rule`` names the
    broken constraint, so a decimal-places failure is distinguishable from a
    range failure on the same field.
    """

    def __init__(
        self,
        message: str,
        field: str,
        rule: str,
        value: Any = None,
        limit: Any = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        details["field"] = field
        details["rule"] = rule
        if value is not None:
            details["value"] = value
        if limit is not None:
            details["limit"] = limit

        super().__init__(
            message=message,
            code="VAL_001",
            details=details,
            **kwargs,
        )
        self.field = field
        self.rule = rule
        self.value = value
        self.limit = limit


class RecordValidationError(VibrateError):
    """Raised with every field violation found in one record."""

    def __init__(
        self,
        issues: List[ValidationError],
        record_id: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        details["issues"] = [
            {"field": issue.field, "rule": issue.rule, "message": issue.message}
            for issue in issues
        ]
        if record_id:
            details["record_id"] = record_id

        fields = ", ".join(issue.field for issue in issues)
        super().__init__(
            message=f"Record failed validation: {fields}",
            code="VAL_002",
            details=details,
            **kwargs,
        )
        self.issues = list(issues)
        self.record_id = record_id

    @property
    def fields(self) -> List[str]:
        """Offending field names, in the order they were checked."""
        return [issue.field for issue in self.issues]

    def by_field(self) -> Dict[str, List[ValidationError]]:
        """Group the issues by field for per-field rendering."""
        grouped: Dict[str, List[ValidationError]] = {}
        for issue in self.issues:
            grouped.setdefault(issue.field, []).append(issue)
        return grouped


# =============================================================================
# STORAGE / SYNC EXCEPTIONS
# =============================================================================

class StorageError(VibrateError):
    """Raised when the local record store cannot read or persist data"""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        record_id: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if operation:
            details["operation"] = operation
        if record_id:
            details["record_id"] = record_id

        super().__init__(
            message=message,
            code="STORE_001",
            details=details,
            **kwargs,
        )


class SyncInProgress(VibrateError):
    """Raised when a sync is requested while another one is running"""

    def __init__(self, message: str = "A sync is already in progress", **kwargs):
        super().__init__(message=message, code="SYNC_001", **kwargs)


# =============================================================================
# REMOTE TRANSPORT EXCEPTIONS
# =============================================================================

class RemoteErrorKind(str, Enum):
    """Stable taxonomy for remote transport failures."""
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    AUTH_REQUIRED = "auth_required"
    NETWORK_UNREACHABLE = "network_unreachable"
    UNKNOWN = "unknown"


REMOTE_ERROR_CODES = {
    RemoteErrorKind.NOT_FOUND: "REMOTE_404",
    RemoteErrorKind.CONFLICT: "REMOTE_409",
    RemoteErrorKind.AUTH_REQUIRED: "REMOTE_401",
    RemoteErrorKind.NETWORK_UNREACHABLE: "REMOTE_503",
    RemoteErrorKind.UNKNOWN: "REMOTE_000",
}


class RemoteError(VibrateError):
    """Raised when the remote record store rejects or cannot serve a call"""

    def __init__(
        self,
        message: str,
        kind: RemoteErrorKind = RemoteErrorKind.UNKNOWN,
        operation: Optional[str] = None,
        transport_code: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        details["kind"] = kind.value
        if operation:
            details["operation"] = operation
        if transport_code:
            details["transport_code"] = transport_code

        super().__init__(
            message=message,
            code=REMOTE_ERROR_CODES[kind],
            details=details,
            **kwargs,
        )
        self.kind = kind
        self.transport_code = transport_code


class NetworkError(RemoteError):
    """Remote store unreachable (offline, DNS, timeout)"""

    def __init__(self, message: str = "Remote store is unreachable", **kwargs):
        kwargs.pop("kind", None)
        super().__init__(message, kind=RemoteErrorKind.NETWORK_UNREACHABLE, **kwargs)


class AuthError(RemoteError):
    """Remote call needs an authenticated session"""

    def __init__(self, message: str = "Authentication required", **kwargs):
        kwargs.pop("kind", None)
        super().__init__(message, kind=RemoteErrorKind.AUTH_REQUIRED, **kwargs)


# =============================================================================
# CONFIGURATION EXCEPTIONS
# =============================================================================

class ConfigurationError(VibrateError):
    """Raised when configuration is invalid or missing"""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if config_key:
            details["config_key"] = config_key

        super().__init__(
            message=message,
            code="CONFIG_001",
            details=details,
            recoverable=False,
            **kwargs,
        )
