"""Key-value persistence underneath the local collections."""
from __future__ import annotations

import json
import logging
from typing import Any, Iterable, Optional

from sqlmodel import select

from focus_coach.datetime_utils import utc_now
from focus_coach.models.kv import KeyValue
from focus_coach.storage.db import SessionFactory, get_session


logger = logging.getLogger(__name__)


def _serialise(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, sort_keys=True)


def _deserialise(key: str, payload: Optional[str]) -> Any:
    if payload is None:
        return None
    try:
        return json.loads(payload)
    except json.JSONDecodeError:
        logger.warning("Stored value under %s is not valid JSON, ignoring it", key)
        return None


class KeyValueStore:
    """Synchronous JSON values addressed by stable namespaced keys."""

    def __init__(self, session_factory: SessionFactory = get_session):
        self._session_factory = session_factory

    def get(self, key: str) -> Any:
        """Return the decoded value, or ``None`` when absent or unreadable."""

        with self._session_factory() as session:
            row = session.get(KeyValue, key)
            return _deserialise(key, row.value if row else None)

    def set(self, key: str, value: Any) -> None:
        payload = _serialise(value)
        with self._session_factory() as session:
            row = session.get(KeyValue, key)
            if row is None:
                row = KeyValue(key=key, value=payload)
            else:
                row.value = payload
                row.updated_at = utc_now()
            session.add(row)
            session.commit()

    def delete(self, key: str) -> None:
        with self._session_factory() as session:
            row = session.get(KeyValue, key)
            if row is not None:
                session.delete(row)
                session.commit()

    def delete_many(self, keys: Iterable[str]) -> None:
        wanted = list(keys)
        with self._session_factory() as session:
            rows = session.exec(select(KeyValue).where(KeyValue.key.in_(wanted))).all()
            for row in rows:
                session.delete(row)
            session.commit()

    def exists(self, key: str) -> bool:
        with self._session_factory() as session:
            return session.get(KeyValue, key) is not None


__all__ = ["KeyValueStore"]
