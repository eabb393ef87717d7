# =============================================================================
# vibrate_core/logging/config.py
# Logging Configuration for the Vibration Data Core
# =============================================================================

import logging
import os
import sys
import time
from pathlib import Path
from datetime import datetime
from typing import Optional, Union


LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

LOG_DIR = Path("logs")
LEVEL_ENV_VAR = "VIBRATE_LOG_LEVEL"

# Chatty client libraries pulled in by supabase
NOISY_LOGGERS = (
    "urllib3",
    "httpx",
    "httpcore",
    "hpack",
    "supabase",
    "postgrest",
    "realtime",
    "websockets",
)


def _resolve_level(level: Union[int, str, None]) -> int:
    if level is None:
        level = os.getenv(LEVEL_ENV_VAR, "INFO")
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        # Unknown names come back as "Level <name>"
        return resolved if isinstance(resolved, int) else logging.INFO
    return level


def setup_logging(
    level: Union[int, str, None] = None,
    log_to_file: bool = True,
    log_filename: Optional[str] = None,
    log_dir: Optional[Path] = None,
) -> Optional[Path]:
    """
    Configure logging for an app embedding the core.

    Args:
        level: Logging level or its name; defaults to $VIBRATE_LOG_LEVEL, then INFO
        log_to_file: Also write a daily file under ``log_dir``
        log_filename: Custom log filename (default: vibrate_YYYY-MM-DD.log)
        log_dir: Directory for the file (default: ./logs)

    Returns:
        Path of the log file, or None when logging to stdout only
    """
    handlers = [logging.StreamHandler(sys.stdout)]
    log_path = None

    if log_to_file:
        directory = Path(log_dir) if log_dir else LOG_DIR
        directory.mkdir(parents=True, exist_ok=True)
        log_path = directory / (log_filename or f"vibrate_{datetime.now().strftime('%Y-%m-%d')}.log")
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))

    logging.basicConfig(
        level=_resolve_level(level),
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        handlers=handlers,
        force=True,
    )

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger("vibrate_core").info("Logging initialized")
    return log_path


def get_logger(name: str) -> logging.Logger:
    """
    Usage:
        from vibrate_core.logging import get_logger
        logger = get_logger(__name__)
    """
    return logging.getLogger(name)


class LogContext:
    """
    Context manager for logging operation timing and status.

    Recoverable core errors (offline, validation, sign-in required) are
    logged as warnings without a traceback; anything else as an error.

    Usage:
        with LogContext(logger, "Syncing pending records"):
            reconciler.sync_to_server()
        # Logs: "Syncing pending records... started"
        # Logs: "Syncing pending records... completed (0.42s)"
    """

    def __init__(self, logger: logging.Logger, operation: str):
        self.logger = logger
        self.operation = operation
        self.start_time = None
        self.end_time = None

    def __enter__(self):
        self.start_time = time.time()
        self.logger.info(f"{self.operation}... started")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.end_time = time.time()

        if exc_type is None:
            self.logger.info(f"{self.operation}... completed ({self.elapsed:.2f}s)")
        elif getattr(exc_val, "recoverable", False):
            self.logger.warning(f"{self.operation}... failed ({self.elapsed:.2f}s): {exc_val}")
        else:
            self.logger.error(
                f"{self.operation}... failed ({self.elapsed:.2f}s): {exc_val}",
                exc_info=True
            )

        return False

    @property
    def elapsed(self) -> float:
        """Seconds the operation took (so far, while still running)."""
        if self.start_time is None:
            return 0.0
        return (self.end_time or time.time()) - self.start_time
