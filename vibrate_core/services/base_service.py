# =============================================================================
# vibrate_core/services/base_service.py
# Base Service Class with Common Functionality
# =============================================================================

from __future__ import annotations
from abc import ABC
from typing import Optional, Dict, Any, Callable
from dataclasses import dataclass

from vibrate_core.logging import get_logger, LogContext
from vibrate_core.errors import (
    handle_error,
    localize,
    localize_fields,
    RecordValidationError,
    VibrateError,
)
from vibrate_core.errors.messages import DEFAULT_LOCALE


@dataclass
class ServiceResult:
    """
    Standard result container for service operations.

    ``error`` is the localized, operator-facing message; ``field_errors``
    maps each offending field to its message for validation failures.
    """
    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    field_errors: Optional[Dict[str, str]] = None
    metadata: Optional[Dict[str, Any]] = None

    def __bool__(self) -> bool:
        return self.success

    @classmethod
    def ok(cls, data: Any = None, metadata: Dict[str, Any] = None) -> ServiceResult:
        """Create a successful result"""
        return cls(success=True, data=data, metadata=metadata)

    @classmethod
    def fail(
        cls,
        error: str,
        error_code: str = "UNKNOWN",
        metadata: Dict[str, Any] = None
    ) -> ServiceResult:
        """Create a failed result"""
        return cls(
            success=False,
            error=error,
            error_code=error_code,
            metadata=metadata,
        )

    @classmethod
    def from_exception(cls, e: Exception, locale: str = DEFAULT_LOCALE) -> ServiceResult:
        """Create a failed result from an exception"""
        if isinstance(e, VibrateError):
            return cls(
                success=False,
                error=localize(e, locale),
                error_code=e.code,
                field_errors=localize_fields(e, locale) if isinstance(e, RecordValidationError) else None,
                metadata=e.details,
            )
        return cls(
            success=False,
            error=str(e),
            error_code="EXCEPTION",
        )


class BaseService(ABC):
    """
    Abstract base class for services.

    Provides common functionality:
    - Logging
    - Error handling
    - Result standardization

    Usage:
        class MyService(BaseService):
            def do_something(self) -> ServiceResult:
                return self.safe_execute("Doing something", self._do_it)
    """

    def __init__(self, locale: str = DEFAULT_LOCALE):
        self.logger = get_logger(self.__class__.__name__)
        self.locale = locale

    def log_operation(self, operation: str) -> LogContext:
        """
        Create a logging context for an operation.

        Usage:
            with self.log_operation("Syncing measurements"):
                reconciler.sync_to_server()
        """
        return LogContext(self.logger, operation)

    def safe_execute(
        self,
        operation: str,
        func: Callable[..., Any],
        *args,
        **kwargs
    ) -> ServiceResult:
        """
        Execute a function with error handling and logging.

        Args:
            operation: Description of the operation
            func: Function to execute
            *args, **kwargs: Arguments to pass to func

        Returns:
            ServiceResult with success/failure status; successful results
            carry ``elapsed_seconds`` in their metadata
        """
        try:
            with self.log_operation(operation) as timing:
                result = func(*args, **kwargs)
            return ServiceResult.ok(result, metadata={"elapsed_seconds": round(timing.elapsed, 3)})
        except VibrateError as e:
            handle_error(e, show_user_message=False, locale=self.locale)
            return ServiceResult.from_exception(e, self.locale)
        except Exception as e:
            self.logger.error(f"{operation} failed: {e}", exc_info=True)
            return ServiceResult.fail(str(e))
