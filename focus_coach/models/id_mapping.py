"""Mapping table between local numeric ids and remote identifiers."""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, UniqueConstraint
from sqlmodel import Field, SQLModel

from focus_coach.datetime_utils import utc_now


class EntityType(str, Enum):
    GOAL = "goal"
    TINY_GOAL = "tiny_goal"


class IdMapping(SQLModel, table=True):
    """One row per entity that has been persisted remotely at least once."""

    __tablename__ = "id_mapping"
    __table_args__ = (UniqueConstraint("entity_type", "local_id", name="ux_id_mapping_local"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    local_id: int = Field(index=True)
    remote_id: str = Field(index=True)
    entity_type: str = Field(index=True)
    created_at: datetime = Field(default_factory=utc_now, sa_type=DateTime(timezone=True))


__all__ = ["EntityType", "IdMapping"]
