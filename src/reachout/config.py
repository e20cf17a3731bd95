from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

DATA_DIR = Path.home() / ".reachout"


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "")
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r, using %s", name, raw, default)
        return default


@dataclass
class Settings:
    db_path: Path = field(default_factory=lambda: DATA_DIR / "reachout.db")
    poll_interval: float = 5 * 60  # seconds
    toast_ttl: float = 5 * 60
    undo_window: float = 10.0
    soft_delete_window: float = 30.0
    status_cache_ttl: float = 60.0
    due_soon_hours: float = 24.0


def load_settings() -> Settings:
    """Build settings from REACHOUT_* environment variables."""
    defaults = Settings()
    db_path = os.environ.get("REACHOUT_DB_PATH", "")
    return Settings(
        db_path=Path(db_path) if db_path else defaults.db_path,
        poll_interval=_env_float("REACHOUT_POLL_INTERVAL", defaults.poll_interval),
        toast_ttl=_env_float("REACHOUT_TOAST_TTL", defaults.toast_ttl),
        undo_window=_env_float("REACHOUT_UNDO_WINDOW", defaults.undo_window),
        soft_delete_window=_env_float(
            "REACHOUT_SOFT_DELETE_WINDOW", defaults.soft_delete_window
        ),
        status_cache_ttl=_env_float(
            "REACHOUT_STATUS_CACHE_TTL", defaults.status_cache_ttl
        ),
        due_soon_hours=_env_float("REACHOUT_DUE_SOON_HOURS", defaults.due_soon_hours),
    )
