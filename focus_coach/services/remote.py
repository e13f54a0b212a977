"""Contract between the sync core and whatever stores data remotely.

Records crossing this boundary are plain dicts using the local field names.
The adapter owns translation to its own schema.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Protocol

from focus_coach.errors import RemoteStoreError
from focus_coach.models.sync_op import Collection


# Column that identifies a row in each collection.
KEY_FIELDS: Dict[Collection, str] = {
    Collection.GOALS: "id",
    Collection.TINY_GOALS: "id",
    Collection.DAILY_TASKS: "date",
    Collection.RECURRING_TASKS: "id",
    Collection.QUOTES: "date",
    Collection.PREFERENCES: "user_id",
}


class RemoteCollection(Protocol):
    async def insert(self, record: Dict[str, Any]) -> Dict[str, Any]:
        """Create the record, or overwrite the row already holding its key."""

    async def update(self, key: str, partial: Dict[str, Any]) -> Dict[str, Any]:
        ...

    async def delete(self, key: str) -> None:
        ...

    async def list(self, filters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        ...


class RemoteStore(Protocol):
    def collection(self, name: Collection) -> RemoteCollection:
        ...


def build_remote_record(collection: Collection, key: str, data: Dict[str, Any]) -> Dict[str, Any]:
    """Attach the remote key to a local record dump.

    ``key`` is the remote id for goals and tiny goals, the local id for
    recurring tasks, the ISO date for daily tasks and quotes. Preferences are
    keyed by the signed-in user, which the adapter fills in.
    """

    record = dict(data)
    key_field = KEY_FIELDS[collection]
    if collection is Collection.PREFERENCES:
        return record
    record[key_field] = key
    return record


class UnconfiguredRemote:
    """Stands in when no remote URL is set; every call fails like a network error."""

    def __init__(self, collection: Collection) -> None:
        self.name = Collection(collection)

    def _fail(self) -> RemoteStoreError:
        return RemoteStoreError(f"Remote store is not configured ({self.name.value})")

    async def insert(self, record: Dict[str, Any]) -> Dict[str, Any]:
        raise self._fail()

    async def update(self, key: str, partial: Dict[str, Any]) -> Dict[str, Any]:
        raise self._fail()

    async def delete(self, key: str) -> None:
        raise self._fail()

    async def list(self, filters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        raise self._fail()


class UnconfiguredRemoteStore:
    def collection(self, name: Collection) -> UnconfiguredRemote:
        return UnconfiguredRemote(name)


__all__ = [
    "KEY_FIELDS",
    "RemoteCollection",
    "RemoteStore",
    "UnconfiguredRemoteStore",
    "build_remote_record",
]
