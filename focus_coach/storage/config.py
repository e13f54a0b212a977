"""Remote connection settings kept in ``config.json``."""
from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, FrozenSet, Optional

from focus_coach.core.settings import CONFIG_PATH, REMOTE
from focus_coach.storage.files import write_atomic

logger = logging.getLogger(__name__)


@dataclass
class AppConfig:
    """Empty fields fall back to the ``FOCUS_COACH_REMOTE_*`` environment."""

    remote_url: Optional[str] = None
    remote_api_key: Optional[str] = None
    user_id: Optional[str] = None
    access_token: Optional[str] = None

    @classmethod
    def keys(cls) -> FrozenSet[str]:
        return frozenset(f.name for f in fields(cls))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AppConfig":
        values: Dict[str, Optional[str]] = {}
        for key in cls.keys():
            value = data.get(key)
            if value is not None and not isinstance(value, str):
                logger.warning("Config value %s is not a string, ignored", key)
                continue
            values[key] = value
        return cls(**values)

    def resolved_remote_url(self) -> Optional[str]:
        return self.remote_url or REMOTE.url

    def resolved_api_key(self) -> Optional[str]:
        return self.remote_api_key or REMOTE.api_key


def _target(path: Optional[Path]) -> Path:
    return Path(path) if path else CONFIG_PATH


def load_config(path: Optional[Path] = None) -> AppConfig:
    """Read the config file; a missing or broken file gives an empty config."""

    target = _target(path)
    try:
        data = json.loads(target.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return AppConfig()
    except (OSError, ValueError) as exc:
        logger.warning("Cannot read config %s: %s", target, exc)
        return AppConfig()
    if not isinstance(data, dict):
        logger.warning("Config %s is not a JSON object", target)
        return AppConfig()
    return AppConfig.from_dict(data)


def save_config(config: AppConfig, path: Optional[Path] = None) -> None:
    text = json.dumps(asdict(config), ensure_ascii=False, indent=2, sort_keys=True)
    write_atomic(_target(path), text)


def update_config(path: Optional[Path] = None, **changes: Any) -> AppConfig:
    target = _target(path)
    unknown = sorted(set(changes) - AppConfig.keys())
    if unknown:
        logger.warning("Unknown config keys ignored: %s", ", ".join(unknown))
    known = {key: value for key, value in changes.items() if key in AppConfig.keys()}
    cfg = replace(load_config(target), **known)
    save_config(cfg, target)
    return cfg


__all__ = ["AppConfig", "load_config", "save_config", "update_config"]
