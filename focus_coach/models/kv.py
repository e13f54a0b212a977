"""Key-value table backing the local collections."""
from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel

from focus_coach.datetime_utils import utc_now


class KeyValue(SQLModel, table=True):
    __tablename__ = "kv_store"

    key: str = Field(primary_key=True)
    value: str
    updated_at: datetime = Field(default_factory=utc_now, sa_type=DateTime(timezone=True))


__all__ = ["KeyValue"]
