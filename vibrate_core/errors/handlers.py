# =============================================================================
# vibrate_core/errors/handlers.py
# Error Handling Utilities for the Vibration Data Core
# =============================================================================

from __future__ import annotations
import functools
import traceback
from typing import Optional, Callable, TypeVar, Any
import streamlit as st

from vibrate_core.logging import get_logger
from .exceptions import VibrateError, RecordValidationError
from .messages import DEFAULT_LOCALE, localize, localize_fields

logger = get_logger(__name__)

T = TypeVar("T")


def handle_error(
    error: Exception,
    show_user_message: bool = True,
    log_error: bool = True,
    user_message: Optional[str] = None,
    locale: str = DEFAULT_LOCALE,
) -> str:
    """
    Centralized error handling function.

    Args:
        error: The exception to handle
        show_user_message: Whether to display error to user via st.error
        log_error: Whether to log the error
        user_message: Custom message to show user (localized message if None)
        locale: Message catalog to render with

    Returns:
        The message shown (or that would have been shown) to the user
    """
    if isinstance(error, VibrateError):
        message = user_message or localize(error, locale)
        code = error.code
        details = error.details
        recoverable = error.recoverable
    else:
        message = user_message or localize(error, locale)
        code = "UNKNOWN"
        details = {"traceback": traceback.format_exc()}
        recoverable = True

    if log_error:
        # Validation problems are expected operator input, not faults
        if isinstance(error, RecordValidationError):
            logger.warning(f"[{code}] {error.message}")
        else:
            logger.error(
                f"[{code}] {message}",
                extra={"details": details},
                exc_info=True,
            )

    if show_user_message:
        if isinstance(error, RecordValidationError) and user_message is None:
            render_field_errors(error, locale)
        elif recoverable:
            st.error(f"Error: {message}")
        else:
            st.error(f"Critical Error: {message}. Please contact support.")

    return message


def render_field_errors(error: RecordValidationError, locale: str = DEFAULT_LOCALE) -> None:
    """Show one message per offending field."""
    st.error(localize(error, locale).split(":")[0])
    for field, message in localize_fields(error, locale).items():
        st.warning(f"{field}: {message}")


def safe_execute(
    func: Callable[..., T],
    *args,
    default: Optional[T] = None,
    error_message: Optional[str] = None,
    reraise: bool = False,
    locale: str = DEFAULT_LOCALE,
    **kwargs,
) -> Optional[T]:
    """
    Run ``func`` and turn any failure into user feedback plus ``default``.

    Usage:
        records = safe_execute(
            reconciler.get_data,
            RecordFilter(unit="DRI1"),
            default=[],
            error_message="Failed to load measurements"
        )
    """
    try:
        return func(*args, **kwargs)
    except Exception as e:
        handle_error(e, user_message=error_message, locale=locale)
        if reraise:
            raise
        return default


class ErrorContext:
    """
    Context manager for error handling with automatic logging and user feedback.

    Recoverable errors are shown and suppressed when ``recoverable`` is set;
    errors flagged non-recoverable (bad configuration) always propagate.
    The handled exception stays available as ``ctx.error``.

    Usage:
        with ErrorContext("Syncing measurements") as ctx:
            reconciler.sync_to_server()
        if ctx.error is None:
            refresh()
    """

    def __init__(
        self,
        operation: str,
        recoverable: bool = True,
        show_success: bool = False,
        success_message: Optional[str] = None,
        locale: str = DEFAULT_LOCALE,
    ):
        self.operation = operation
        self.recoverable = recoverable
        self.show_success = show_success
        self.success_message = success_message
        self.locale = locale
        self.error: Optional[BaseException] = None

    def __enter__(self) -> ErrorContext:
        logger.info(f"Starting: {self.operation}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if exc_type is None:
            logger.info(f"Completed: {self.operation}")
            if self.show_success:
                st.success(self.success_message or f"{self.operation} completed")
            return False

        if not isinstance(exc_val, Exception):
            return False

        self.error = exc_val
        if isinstance(exc_val, VibrateError):
            handle_error(exc_val, locale=self.locale)
            return self.recoverable and exc_val.recoverable

        handle_error(exc_val, user_message=f"Error during: {self.operation}", locale=self.locale)
        return self.recoverable


def error_boundary(
    default_return: Any = None,
    error_message: Optional[str] = None,
    log: bool = True,
    locale: str = DEFAULT_LOCALE,
):
    """
    Decorator for read-path functions: on failure show a message and
    return ``default_return``.

    Core errors are shown with their localized message unless
    ``error_message`` is given; other exceptions only show ``error_message``.

    Usage:
        @error_boundary(default_return=[], error_message="Loading chart data failed")
        def load_chart_data(unit: str) -> list:
            ...
    """
    def decorator(func: Callable[..., T]) -> Callable[..., Optional[T]]:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> Optional[T]:
            try:
                return func(*args, **kwargs)
            except Exception as e:
                if log:
                    logger.error(
                        f"Error in {func.__name__}: {e}",
                        exc_info=not isinstance(e, VibrateError),
                    )
                message = error_message
                if message is None and isinstance(e, VibrateError):
                    message = localize(e, locale)
                if message:
                    st.error(message)
                return default_return

        return wrapper

    return decorator
