import asyncio
import os
import sys
import tempfile
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

import pytest

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Keep logs and the default database out of the real user data directory.
os.environ.setdefault("FOCUS_COACH_DATA_DIR", tempfile.mkdtemp(prefix="focus-coach-tests-"))

from sqlmodel import create_engine  # noqa: E402

from focus_coach.core.settings import SyncSettings  # noqa: E402
from focus_coach.errors import RemoteStoreError  # noqa: E402
from focus_coach.models.sync_op import Collection  # noqa: E402
from focus_coach.services.auth import Identity, SessionIdentityProvider  # noqa: E402
from focus_coach.services.id_mappings import IdMappingTable  # noqa: E402
from focus_coach.services.local_store import LocalStore  # noqa: E402
from focus_coach.services.network import NetworkMonitor  # noqa: E402
from focus_coach.services.remote import KEY_FIELDS  # noqa: E402
from focus_coach.services.sync_engine import SyncEngine  # noqa: E402
from focus_coach.services.sync_queue import SyncQueue  # noqa: E402
from focus_coach.storage.db import init_db, make_session_factory  # noqa: E402
from focus_coach.storage.store import KeyValueStore  # noqa: E402


FAST_SYNC = SyncSettings(
    debounce_sec=0.05,
    reconnect_delay_sec=0.01,
    periodic_interval_sec=0,
)


class FakeRemoteCollection:
    """In-memory remote table that can be told to fail or to block."""

    def __init__(self, name: Collection):
        self.name = name
        self.rows: Dict[str, dict] = {}
        self.calls: List[Tuple[str, str]] = []
        self.fail_next = 0
        self.fail_if: Optional[Callable[[str, dict], bool]] = None
        self.on_call: Optional[Callable[[str, str], None]] = None
        self.gate: Optional[asyncio.Event] = None

    async def _enter(self, op: str, key: str, data: dict) -> None:
        self.calls.append((op, key))
        if self.on_call is not None:
            self.on_call(op, key)
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_next > 0:
            self.fail_next -= 1
            raise RemoteStoreError(f"{op} {self.name.value}/{key} rejected", status=503)
        if self.fail_if is not None and self.fail_if(key, data):
            raise RemoteStoreError(f"{op} {self.name.value}/{key} rejected", status=400)

    async def insert(self, record):
        key = str(record.get(KEY_FIELDS[self.name]) or "me")
        await self._enter("insert", key, record)
        self.rows[key] = dict(record)
        return dict(record)

    async def update(self, key, partial):
        await self._enter("update", key, partial)
        if key not in self.rows:
            raise RemoteStoreError(f"no {self.name.value} row {key}", status=404)
        self.rows[key].update(partial)
        return dict(self.rows[key])

    async def delete(self, key):
        await self._enter("delete", key, {})
        self.rows.pop(key, None)

    async def list(self, filters=None):
        await self._enter("list", "*", filters or {})
        return [dict(row) for row in self.rows.values()]


class FakeRemoteStore:
    def __init__(self):
        self.collections = {name: FakeRemoteCollection(name) for name in Collection}

    def collection(self, name):
        return self.collections[Collection(name)]

    def total_calls(self, op: Optional[str] = None) -> int:
        return sum(
            1
            for coll in self.collections.values()
            for call, _ in coll.calls
            if op is None or call == op
        )


@pytest.fixture()
def db_engine():
    engine = create_engine("sqlite:///:memory:")
    init_db(engine)
    return engine


@pytest.fixture()
def session_factory(db_engine):
    return make_session_factory(db_engine)


@pytest.fixture()
def kv(session_factory):
    return KeyValueStore(session_factory)


@pytest.fixture()
def local(kv):
    return LocalStore(kv)


@pytest.fixture()
def mappings(session_factory):
    return IdMappingTable(session_factory)


@pytest.fixture()
def queue(session_factory):
    return SyncQueue(session_factory)


@pytest.fixture()
def remote():
    return FakeRemoteStore()


@pytest.fixture()
def identity():
    return SessionIdentityProvider(Identity(user_id="user-1", email="me@example.com"))


@pytest.fixture()
def network():
    return NetworkMonitor(online=True)


@pytest.fixture()
def sync_engine(queue, kv, mappings, remote, identity, network):
    return SyncEngine(queue, kv, mappings, remote, identity, network, settings=FAST_SYNC)
