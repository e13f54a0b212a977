"""Persistence helpers for local-to-remote identity translation."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlmodel import select

from focus_coach.datetime_utils import ensure_utc
from focus_coach.errors import DuplicateMappingError
from focus_coach.models.id_mapping import EntityType, IdMapping
from focus_coach.storage.db import SessionFactory, get_session


def new_remote_id() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True)
class Mapping:
    local_id: int
    remote_id: str
    entity_type: EntityType
    created_at: datetime


def _to_mapping(row: IdMapping) -> Mapping:
    return Mapping(
        local_id=row.local_id,
        remote_id=row.remote_id,
        entity_type=EntityType(row.entity_type),
        created_at=ensure_utc(row.created_at),
    )


class IdMappingTable:
    """The only place where local ids and remote ids are translated."""

    def __init__(self, session_factory: SessionFactory = get_session):
        self._session_factory = session_factory

    def get_remote_id(self, local_id: int, entity_type: EntityType | str) -> Optional[str]:
        kind = EntityType(entity_type).value
        with self._session_factory() as session:
            stmt = select(IdMapping).where(
                IdMapping.local_id == local_id, IdMapping.entity_type == kind
            )
            row = session.exec(stmt).first()
            return row.remote_id if row else None

    def get_local_id(self, remote_id: str, entity_type: EntityType | str) -> Optional[int]:
        if not remote_id:
            return None
        kind = EntityType(entity_type).value
        with self._session_factory() as session:
            stmt = select(IdMapping).where(
                IdMapping.remote_id == remote_id, IdMapping.entity_type == kind
            )
            row = session.exec(stmt).first()
            return row.local_id if row else None

    def create_mapping(
        self,
        local_id: int,
        entity_type: EntityType | str,
        remote_id: Optional[str] = None,
    ) -> str:
        """Persist a new mapping and return its remote id.

        Raises :class:`DuplicateMappingError` when the pair is already mapped;
        callers check :meth:`get_remote_id` first or use :meth:`ensure_mapping`.
        """

        kind = EntityType(entity_type).value
        value = remote_id or new_remote_id()
        with self._session_factory() as session:
            session.add(IdMapping(local_id=local_id, remote_id=value, entity_type=kind))
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise DuplicateMappingError(
                    f"{kind} {local_id} is already mapped to a remote id"
                ) from exc
        return value

    def ensure_mapping(
        self,
        local_id: int,
        entity_type: EntityType | str,
        remote_id: Optional[str] = None,
    ) -> str:
        existing = self.get_remote_id(local_id, entity_type)
        if existing:
            return existing
        return self.create_mapping(local_id, entity_type, remote_id)

    def list_mappings(self, entity_type: EntityType | str | None = None) -> List[Mapping]:
        with self._session_factory() as session:
            stmt = select(IdMapping).order_by(IdMapping.id)
            if entity_type is not None:
                stmt = stmt.where(IdMapping.entity_type == EntityType(entity_type).value)
            return [_to_mapping(row) for row in session.exec(stmt)]

    def clear(self) -> None:
        with self._session_factory() as session:
            for row in session.exec(select(IdMapping)).all():
                session.delete(row)
            session.commit()


__all__ = ["IdMappingTable", "Mapping", "new_remote_id"]
