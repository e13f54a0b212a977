"""Remote store adapter for a PostgREST (Supabase-style) backend."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import httpx

from focus_coach.core.settings import REMOTE
from focus_coach.errors import RemoteStoreError
from focus_coach.models.sync_op import Collection
from focus_coach.services.auth import IdentityProvider
from focus_coach.services.remote import KEY_FIELDS
from focus_coach.storage.device import get_device_id


logger = logging.getLogger(__name__)

_SERVER_COLUMNS = ("user_id", "last_modified_device", "version")


def _flatten_preferences(record: Dict[str, Any]) -> Dict[str, Any]:
    prefs = dict(record.get("preferences") or {})
    row: Dict[str, Any] = {
        "api_key_encrypted": record.get("api_key"),
        "reminder_time": prefs.get("reminder_time"),
        "theme": prefs.get("theme"),
        "notifications": prefs.get("notifications"),
        "show_daily_quote": prefs.get("show_daily_quote"),
        "sync_enabled": True,
    }
    # A patch may carry only some of the fields.
    return {k: v for k, v in row.items() if k == "sync_enabled" or v is not None}


def _nest_preferences(row: Dict[str, Any]) -> Dict[str, Any]:
    prefs = {
        name: row[name]
        for name in ("reminder_time", "theme", "notifications", "show_daily_quote")
        if row.get(name) is not None
    }
    return {"api_key": row.get("api_key_encrypted"), "preferences": prefs}


def _identity(record: Dict[str, Any]) -> Dict[str, Any]:
    return dict(record)


@dataclass(frozen=True)
class RemoteTable:
    name: str
    key_column: str
    order: Optional[str] = None
    to_db: Callable[[Dict[str, Any]], Dict[str, Any]] = _identity
    from_db: Callable[[Dict[str, Any]], Dict[str, Any]] = _identity
    local_only: frozenset = field(default_factory=frozenset)


TABLES: Dict[Collection, RemoteTable] = {
    Collection.GOALS: RemoteTable("goals", "id", order="created_at.desc"),
    Collection.TINY_GOALS: RemoteTable("tiny_goals", "id", order="created_at.desc"),
    Collection.DAILY_TASKS: RemoteTable("daily_tasks", "date", order="date.desc"),
    Collection.RECURRING_TASKS: RemoteTable("recurring_tasks", "id", order="created_at.desc"),
    Collection.QUOTES: RemoteTable("daily_quotes", "date", order="date.desc"),
    Collection.PREFERENCES: RemoteTable(
        "user_preferences",
        "user_id",
        to_db=_flatten_preferences,
        from_db=_nest_preferences,
        local_only=frozenset({"stats"}),
    ),
}


class PostgrestCollection:
    def __init__(self, store: "PostgrestRemoteStore", collection: Collection) -> None:
        self._store = store
        self.collection = collection
        self.table = TABLES[collection]

    def _to_row(self, record: Dict[str, Any]) -> Dict[str, Any]:
        data = {k: v for k, v in record.items() if k not in self.table.local_only}
        row = self.table.to_db(data)
        row["last_modified_device"] = self._store.device_id
        user_id = self._store.user_id()
        if user_id:
            row["user_id"] = user_id
        return row

    def _from_row(self, row: Dict[str, Any]) -> Dict[str, Any]:
        record = self.table.from_db(row)
        if self.collection is not Collection.PREFERENCES:
            for column in _SERVER_COLUMNS:
                record.pop(column, None)
        return record

    def _key_filter(self, key: str) -> Dict[str, str]:
        params = {self.table.key_column: f"eq.{key}"}
        user_id = self._store.user_id()
        if user_id and self.table.key_column != "user_id":
            params["user_id"] = f"eq.{user_id}"
        return params

    def _conflict_target(self) -> str:
        if self.table.key_column in ("id", "user_id"):
            return self.table.key_column
        return f"user_id,{self.table.key_column}"

    async def insert(self, record: Dict[str, Any]) -> Dict[str, Any]:
        row = self._to_row(record)
        response = await self._store.request(
            "POST",
            self.table.name,
            params={"on_conflict": self._conflict_target()},
            json=[row],
            prefer="resolution=merge-duplicates,return=representation",
        )
        rows = response.json() or []
        return self._from_row(rows[0]) if rows else dict(record)

    async def update(self, key: str, partial: Dict[str, Any]) -> Dict[str, Any]:
        if self.collection is Collection.PREFERENCES:
            key = self._store.user_id() or key
        row = self._to_row(partial)
        row.pop(self.table.key_column, None)
        response = await self._store.request(
            "PATCH",
            self.table.name,
            params=self._key_filter(key),
            json=row,
            prefer="return=representation",
        )
        rows = response.json() or []
        if not rows:
            raise RemoteStoreError(
                f"Failed to update {self.table.name}: no row with {self.table.key_column}={key}",
                status=404,
            )
        return self._from_row(rows[0])

    async def delete(self, key: str) -> None:
        await self._store.request("DELETE", self.table.name, params=self._key_filter(key))

    async def list(self, filters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        params: Dict[str, str] = {"select": "*"}
        if self.table.order:
            params["order"] = self.table.order
        for name, value in (filters or {}).items():
            params[name] = f"eq.{value}"
        response = await self._store.request("GET", self.table.name, params=params)
        return [self._from_row(row) for row in response.json() or []]


class PostgrestRemoteStore:
    """Talks to ``{base_url}/rest/v1/<table>`` with the anon key plus user token."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        *,
        identity: Optional[IdentityProvider] = None,
        client: Optional[httpx.AsyncClient] = None,
        device_id: Optional[str] = None,
        timeout: float = REMOTE.timeout_sec,
    ) -> None:
        self.base_url = (base_url or REMOTE.url or "").rstrip("/")
        self.api_key = api_key or REMOTE.api_key
        if not self.base_url:
            raise ValueError("Remote store URL is not configured")
        self.identity = identity
        self.device_id = device_id or get_device_id()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=self.base_url, timeout=timeout)
        self._collections: Dict[Collection, PostgrestCollection] = {}

    def collection(self, name: Collection | str) -> PostgrestCollection:
        key = Collection(name)
        if key not in self._collections:
            self._collections[key] = PostgrestCollection(self, key)
        return self._collections[key]

    def user_id(self) -> Optional[str]:
        user = self.identity.current_user() if self.identity else None
        return user.user_id if user else None

    def _headers(self, prefer: Optional[str]) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["apikey"] = self.api_key
        user = self.identity.current_user() if self.identity else None
        token = (user.access_token if user else None) or self.api_key
        if token:
            headers["Authorization"] = f"Bearer {token}"
        if prefer:
            headers["Prefer"] = prefer
        return headers

    async def request(
        self,
        method: str,
        table: str,
        *,
        params: Optional[Dict[str, str]] = None,
        json: Any = None,
        prefer: Optional[str] = None,
    ) -> httpx.Response:
        url = f"{self.base_url}/rest/v1/{table}"
        try:
            response = await self._client.request(
                method, url, params=params, json=json, headers=self._headers(prefer)
            )
        except httpx.HTTPError as exc:
            raise RemoteStoreError(f"{method} {table} failed: {exc}") from exc

        if response.status_code >= 400:
            detail = response.text[:300]
            logger.debug("%s %s -> %s %s", method, table, response.status_code, detail)
            raise RemoteStoreError(
                f"{method} {table} failed with {response.status_code}: {detail}",
                status=response.status_code,
            )
        return response

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "PostgrestRemoteStore":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()


__all__ = ["KEY_FIELDS", "PostgrestCollection", "PostgrestRemoteStore", "TABLES", "RemoteTable"]
