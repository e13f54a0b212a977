"""Per-install identifier stamped on every row this device writes remotely."""
from __future__ import annotations

import logging
import uuid
from pathlib import Path

from focus_coach.core.settings import DEVICE_ID_PATH
from focus_coach.storage.files import write_atomic

logger = logging.getLogger(__name__)

DEVICE_PREFIX = "focus-coach-"


def new_device_id() -> str:
    return f"{DEVICE_PREFIX}{uuid.uuid4().hex[:12]}"


def get_device_id(path: str | Path | None = None) -> str:
    """Return the id saved at ``path``, creating it on first use.

    If the id cannot be saved it is still returned and lasts for this process.
    """

    target = Path(path) if path else DEVICE_ID_PATH
    try:
        stored = target.read_text(encoding="utf-8").strip()
    except FileNotFoundError:
        stored = ""
    except OSError as exc:
        logger.warning("Cannot read device id from %s: %s", target, exc)
        stored = ""
    if stored:
        return stored

    device_id = new_device_id()
    try:
        write_atomic(target, device_id)
    except OSError as exc:
        logger.warning("Cannot save device id to %s: %s", target, exc)
    return device_id


__all__ = ["DEVICE_PREFIX", "get_device_id", "new_device_id"]
