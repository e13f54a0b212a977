"""Queued sync operations: the SQLModel table plus the typed payload variants."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Type, Union

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel

from focus_coach.datetime_utils import now_iso, utc_now
from focus_coach.models.goal import Goal, TinyGoal
from focus_coach.models.task import DailyTask, RecurringTask
from focus_coach.models.user import DailyQuote, UserData


class SyncKind(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class Collection(str, Enum):
    GOALS = "goals"
    TINY_GOALS = "tiny_goals"
    DAILY_TASKS = "daily_tasks"
    RECURRING_TASKS = "recurring_tasks"
    QUOTES = "quotes"
    PREFERENCES = "preferences"


RECORD_TYPES: Dict[Collection, Type[SQLModel]] = {
    Collection.GOALS: Goal,
    Collection.TINY_GOALS: TinyGoal,
    Collection.DAILY_TASKS: DailyTask,
    Collection.RECURRING_TASKS: RecurringTask,
    Collection.QUOTES: DailyQuote,
    Collection.PREFERENCES: UserData,
}


class SyncQueueEntry(SQLModel, table=True):
    __tablename__ = "sync_queue"

    seq: Optional[int] = Field(default=None, primary_key=True)
    operation_id: str = Field(index=True, unique=True)
    kind: str
    collection: str = Field(index=True)
    record_key: str
    payload: str
    local_id: Optional[int] = None
    retry_count: int = Field(default=0)
    last_error: Optional[str] = None
    enqueued_at: str = Field(default_factory=now_iso)
    next_try_at: datetime = Field(
        default_factory=utc_now, index=True, sa_type=DateTime(timezone=True)
    )


@dataclass(frozen=True)
class Insert:
    key: str
    record: SQLModel


@dataclass(frozen=True)
class Patch:
    key: str
    fields: Dict[str, Any]


@dataclass(frozen=True)
class Remove:
    key: str


SyncPayload = Union[Insert, Patch, Remove]


def encode_payload(payload: SyncPayload) -> tuple[SyncKind, str, Dict[str, Any]]:
    if isinstance(payload, Insert):
        return SyncKind.CREATE, payload.key, payload.record.model_dump(mode="json")
    if isinstance(payload, Patch):
        return SyncKind.UPDATE, payload.key, dict(payload.fields)
    if isinstance(payload, Remove):
        return SyncKind.DELETE, payload.key, {}
    raise TypeError(f"Unsupported payload: {payload!r}")


def decode_payload(
    kind: SyncKind | str,
    collection: Collection | str,
    key: str,
    data: Dict[str, Any],
) -> SyncPayload:
    """Rebuild a payload variant, validating it against the collection's record shape."""

    kind = SyncKind(kind)
    record_type = RECORD_TYPES[Collection(collection)]
    if kind is SyncKind.CREATE:
        return Insert(key=key, record=record_type.model_validate(data))
    if kind is SyncKind.UPDATE:
        unknown = set(data) - set(record_type.model_fields)
        if unknown:
            raise ValueError(f"Unknown fields for {Collection(collection).value}: {sorted(unknown)}")
        return Patch(key=key, fields=dict(data))
    return Remove(key=key)


__all__ = [
    "Collection",
    "Insert",
    "Patch",
    "RECORD_TYPES",
    "Remove",
    "SyncKind",
    "SyncPayload",
    "SyncQueueEntry",
    "decode_payload",
    "encode_payload",
]
