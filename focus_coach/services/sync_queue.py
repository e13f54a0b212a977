from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlmodel import select

from focus_coach.datetime_utils import ensure_utc, utc_now
from focus_coach.models.sync_op import (
    Collection,
    SyncKind,
    SyncPayload,
    SyncQueueEntry,
    decode_payload,
    encode_payload,
)
from focus_coach.storage.db import SessionFactory, get_session


logger = logging.getLogger(__name__)


def new_operation_id() -> str:
    return uuid.uuid4().hex


def _next_try(retry_count: int, base_sec: float, cap_sec: float) -> datetime:
    if base_sec <= 0:
        return utc_now()
    delay = min(cap_sec, base_sec * 2 ** max(retry_count - 1, 0))
    return utc_now() + timedelta(seconds=delay)


@dataclass
class SyncOperation:
    seq: int
    operation_id: str
    kind: SyncKind
    collection: Collection
    key: str
    data: Dict[str, Any]
    enqueued_at: str
    retry_count: int
    local_id: Optional[int]
    last_error: Optional[str]
    next_try_at: datetime

    def decode(self) -> SyncPayload:
        return decode_payload(self.kind, self.collection, self.key, self.data)


def _to_operation(row: SyncQueueEntry) -> SyncOperation:
    try:
        data = json.loads(row.payload)
    except json.JSONDecodeError:
        data = {}
    return SyncOperation(
        seq=row.seq,
        operation_id=row.operation_id,
        kind=SyncKind(row.kind),
        collection=Collection(row.collection),
        key=row.record_key,
        data=data if isinstance(data, dict) else {},
        enqueued_at=row.enqueued_at,
        retry_count=row.retry_count,
        local_id=row.local_id,
        last_error=row.last_error,
        next_try_at=ensure_utc(row.next_try_at),
    )


class SyncQueue:
    """Durable FIFO of pending remote mutations, one row per operation."""

    def __init__(
        self,
        session_factory: SessionFactory = get_session,
        *,
        backoff_sec: float = 0.0,
        backoff_cap_sec: float = 30.0,
    ) -> None:
        self._session_factory = session_factory
        self.backoff_sec = backoff_sec
        self.backoff_cap_sec = backoff_cap_sec

    def enqueue(
        self,
        collection: Collection | str,
        payload: SyncPayload,
        *,
        local_id: Optional[int] = None,
    ) -> SyncOperation:
        kind, key, data = encode_payload(payload)
        record = SyncQueueEntry(
            operation_id=new_operation_id(),
            kind=kind.value,
            collection=Collection(collection).value,
            record_key=key,
            payload=json.dumps(data, ensure_ascii=False),
            local_id=local_id,
        )
        with self._session_factory() as session:
            session.add(record)
            session.commit()
            session.refresh(record)
            return _to_operation(record)

    def pending(self, *, due_only: bool = False, limit: Optional[int] = None) -> List[SyncOperation]:
        """Operations in enqueue order."""

        stmt = select(SyncQueueEntry).order_by(SyncQueueEntry.seq.asc())
        if due_only:
            stmt = stmt.where(SyncQueueEntry.next_try_at <= utc_now())
        if limit is not None:
            stmt = stmt.limit(limit)
        with self._session_factory() as session:
            return [_to_operation(row) for row in session.exec(stmt)]

    def get(self, operation_id: str) -> Optional[SyncOperation]:
        with self._session_factory() as session:
            row = self._find(session, operation_id)
            return _to_operation(row) if row else None

    def remove(self, operation_id: str) -> None:
        with self._session_factory() as session:
            row = self._find(session, operation_id)
            if row:
                session.delete(row)
                session.commit()

    def record_failure(self, operation_id: str, error: str, max_retries: int) -> bool:
        """Count a failed attempt; return True when the operation was abandoned."""

        with self._session_factory() as session:
            row = self._find(session, operation_id)
            if not row:
                return False
            row.retry_count += 1
            row.last_error = error[:1000]
            if row.retry_count >= max_retries:
                logger.warning(
                    "Sync operation %s (%s %s/%s) abandoned after %d attempts: %s",
                    row.operation_id,
                    row.kind,
                    row.collection,
                    row.record_key,
                    row.retry_count,
                    row.last_error,
                )
                session.delete(row)
                session.commit()
                return True
            row.next_try_at = _next_try(row.retry_count, self.backoff_sec, self.backoff_cap_sec)
            session.add(row)
            session.commit()
            return False

    def count(self) -> int:
        with self._session_factory() as session:
            return int(session.exec(select(func.count()).select_from(SyncQueueEntry)).one())

    def clear(self) -> None:
        with self._session_factory() as session:
            for row in session.exec(select(SyncQueueEntry)).all():
                session.delete(row)
            session.commit()

    @staticmethod
    def _find(session, operation_id: str) -> Optional[SyncQueueEntry]:
        stmt = select(SyncQueueEntry).where(SyncQueueEntry.operation_id == operation_id)
        return session.exec(stmt).first()


__all__ = ["SyncOperation", "SyncQueue", "new_operation_id"]
