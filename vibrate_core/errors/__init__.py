# =============================================================================
# vibrate_core/errors/__init__.py
# Centralized Error Handling for the Vibration Data Core
# =============================================================================

from .exceptions import (
    VibrateError,
    ValidationError,
    RecordValidationError,
    StorageError,
    SyncInProgress,
    RemoteError,
    RemoteErrorKind,
    NetworkError,
    AuthError,
    ConfigurationError,
)

from .messages import localize, localize_fields

from .handlers import (
    handle_error,
    safe_execute,
    ErrorContext,
    error_boundary,
)

__all__ = [
    # Exceptions
    "VibrateError",
    "ValidationError",
    "RecordValidationError",
    "StorageError",
    "SyncInProgress",
    "RemoteError",
    "RemoteErrorKind",
    "NetworkError",
    "AuthError",
    "ConfigurationError",
    # Messages
    "localize",
    "localize_fields",
    # Handlers
    "handle_error",
    "safe_execute",
    "ErrorContext",
    "error_boundary",
]
