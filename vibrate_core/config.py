# =============================================================================
# vibrate_core/config.py
# Runtime configuration (Streamlit secrets or environment)
# =============================================================================

from __future__ import annotations
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from vibrate_core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_DB_PATH = Path(__file__).parent.parent / "local_data" / "vibrate.db"


@dataclass
class AppConfig:
    """
    Configuration for the local store and the Supabase backend.

    An empty ``supabase_url`` means local-only mode: records are kept on
    this device and nothing is pushed anywhere.
    """
    supabase_url: str = ""
    supabase_key: str = ""
    db_path: Path = field(default_factory=lambda: DEFAULT_DB_PATH)
    records_table: str = "vibrate_data"
    settings_table: str = "user_settings"
    sync_function: str = "sync-local-data"
    connection_timeout: int = 5
    locale: str = "en"

    @property
    def remote_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)


def _load_streamlit_secrets() -> Dict[str, Any]:
    """
    Read the ``[supabase]`` block of .streamlit/secrets.toml:

        [supabase]
        url = "https://your-project.supabase.co"
        key = "your-anon-key"
    """
    try:
        import streamlit as st
        if "supabase" in st.secrets:
            return dict(st.secrets["supabase"])
    except Exception as e:
        # No secrets file outside a Streamlit run
        logger.debug(f"Streamlit secrets not available: {e}")
    return {}


def load_config(overrides: Optional[Dict[str, Any]] = None) -> AppConfig:
    """
    Build the configuration.

    Precedence: explicit overrides, then Streamlit secrets, then environment
    variables (SUPABASE_URL, SUPABASE_KEY, VIBRATE_DB_PATH, VIBRATE_LOCALE),
    then defaults.
    """
    secrets = _load_streamlit_secrets()
    overrides = overrides or {}

    db_path = overrides.get("db_path") or os.getenv("VIBRATE_DB_PATH")

    config = AppConfig(
        supabase_url=overrides.get("supabase_url")
        or secrets.get("url")
        or os.getenv("SUPABASE_URL", ""),
        supabase_key=overrides.get("supabase_key")
        or secrets.get("key")
        or os.getenv("SUPABASE_KEY", ""),
        db_path=Path(db_path) if db_path else DEFAULT_DB_PATH,
        locale=overrides.get("locale") or os.getenv("VIBRATE_LOCALE", "en"),
    )

    for key in ("records_table", "settings_table", "sync_function", "connection_timeout"):
        if key in overrides:
            setattr(config, key, overrides[key])

    if not config.remote_configured:
        logger.info("Supabase not configured - running in local-only mode")

    return config
