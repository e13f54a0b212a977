"""Centralized application configuration."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional
import os
import sys


def get_default_data_dir(
    app_name: str,
    *,
    platform: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
    home: Optional[Path] = None,
) -> Path:
    """Return an OS-specific user data directory for ``app_name``."""

    platform_id = (platform or sys.platform).lower()
    environ = dict(os.environ if env is None else env)
    home_dir = Path(home or Path.home())
    sanitized = app_name.strip() or "app"
    sanitized = sanitized.replace("/", "-").replace("\\", "-")

    override = environ.get("FOCUS_COACH_DATA_DIR")
    if override:
        return Path(override).expanduser()

    if platform_id.startswith("win"):
        base = Path(environ.get("APPDATA") or home_dir / "AppData" / "Roaming")
    elif platform_id == "darwin":
        base = Path(environ.get("APPDATA") or home_dir / "Library" / "Application Support")
    else:
        base = Path(environ.get("XDG_DATA_HOME") or home_dir / ".local" / "share")

    return (base.expanduser() / sanitized)


APP_NAME = "DailyFocusCoach"
STORAGE_KEY_PREFIX = "daily-focus-coach"


DATA_DIR = get_default_data_dir(APP_NAME)
LOG_DIR = DATA_DIR / "logs"

for _dir in (DATA_DIR, LOG_DIR):
    _dir.mkdir(parents=True, exist_ok=True)


DB_PATH = DATA_DIR / "focus_coach.db"
CONFIG_PATH = DATA_DIR / "config.json"
DEVICE_ID_PATH = DATA_DIR / "device_id.txt"
SYNC_LOG_PATH = LOG_DIR / "sync.log"
MIGRATION_LOG_PATH = LOG_DIR / "migration.log"


@dataclass(frozen=True)
class SyncSettings:
    batch_size: int = 5
    max_retry_count: int = 3
    debounce_sec: float = 0.5
    reconnect_delay_sec: float = 1.0
    periodic_interval_sec: float = 60.0
    # 0 keeps the plain "retry on the next pass" behaviour
    retry_backoff_sec: float = 0.0
    retry_backoff_cap_sec: float = 30.0


SYNC = SyncSettings()


@dataclass(frozen=True)
class RemoteSettings:
    url: Optional[str] = field(default_factory=lambda: os.getenv("FOCUS_COACH_REMOTE_URL"))
    api_key: Optional[str] = field(default_factory=lambda: os.getenv("FOCUS_COACH_REMOTE_KEY"))
    timeout_sec: float = 15.0
    health_path: str = "/rest/v1/"


REMOTE = RemoteSettings()


@dataclass(frozen=True)
class AISettings:
    api_key: Optional[str] = field(default_factory=lambda: os.getenv("OPENAI_API_KEY"))
    model: str = "gpt-4o-mini"
    timeout_sec: float = 30.0
    max_tokens: int = 300


AI = AISettings()


__all__ = [
    "AI",
    "APP_NAME",
    "AISettings",
    "CONFIG_PATH",
    "DATA_DIR",
    "DB_PATH",
    "DEVICE_ID_PATH",
    "LOG_DIR",
    "MIGRATION_LOG_PATH",
    "REMOTE",
    "RemoteSettings",
    "STORAGE_KEY_PREFIX",
    "SYNC",
    "SYNC_LOG_PATH",
    "SyncSettings",
    "get_default_data_dir",
]
