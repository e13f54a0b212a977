from __future__ import annotations

import asyncio
from dataclasses import asdict, dataclass, replace
from typing import Any, Dict, Optional, Set

from focus_coach.core.log import get_logger
from focus_coach.core.settings import SYNC, SYNC_LOG_PATH, SyncSettings
from focus_coach.datetime_utils import now_iso
from focus_coach.errors import RemoteStoreError
from focus_coach.models.id_mapping import EntityType
from focus_coach.models.sync_op import Collection, Insert, Patch, Remove, SyncPayload
from focus_coach.services.auth import Identity, IdentityProvider
from focus_coach.services.events import EventChannel
from focus_coach.services.id_mappings import IdMappingTable, new_remote_id
from focus_coach.services.local_store import MIGRATION_STATUS_KEY, SYNC_STATE_KEY
from focus_coach.services.network import NetworkMonitor
from focus_coach.services.remote import RemoteCollection, RemoteStore, build_remote_record
from focus_coach.services.sync_queue import SyncOperation, SyncQueue
from focus_coach.storage.store import KeyValueStore


MAPPED_COLLECTIONS: Dict[Collection, EntityType] = {
    Collection.GOALS: EntityType.GOAL,
    Collection.TINY_GOALS: EntityType.TINY_GOAL,
}

_PERSISTED_FIELDS = (
    "last_sync_time",
    "pending_operations",
    "sync_enabled",
    "has_error",
    "error_message",
)


@dataclass
class SyncState:
    is_online: bool = True
    is_syncing: bool = False
    last_sync_time: Optional[str] = None
    pending_operations: int = 0
    sync_enabled: bool = False
    has_error: bool = False
    error_message: Optional[str] = None

    @property
    def status(self) -> str:
        """Single word for a status indicator."""

        if not self.is_online:
            return "offline"
        if self.is_syncing:
            return "syncing"
        if self.has_error:
            return "error"
        if self.pending_operations > 0:
            return "pending"
        return "synced"

    def to_persisted(self) -> Dict[str, Any]:
        data = asdict(self)
        return {name: data[name] for name in _PERSISTED_FIELDS}

    @classmethod
    def from_persisted(cls, data: Any) -> "SyncState":
        if not isinstance(data, dict):
            return cls()
        known = {name: data[name] for name in _PERSISTED_FIELDS if name in data}
        try:
            return cls(**known)
        except TypeError:
            return cls()


@dataclass
class DrainReport:
    processed: int = 0
    failed: int = 0
    abandoned: int = 0
    interrupted: bool = False

    def add(self, other: "DrainReport") -> None:
        self.processed += other.processed
        self.failed += other.failed
        self.abandoned += other.abandoned
        self.interrupted = self.interrupted or other.interrupted


class SyncEngine:
    """Drains the sync queue against the remote store.

    Runs on a single asyncio loop. Drains are debounced, never overlap and stop
    as soon as the network goes away; whatever is left in the queue waits for
    the next pass.
    """

    def __init__(
        self,
        queue: SyncQueue,
        kv: KeyValueStore,
        mappings: IdMappingTable,
        remote: RemoteStore,
        identity: IdentityProvider,
        network: NetworkMonitor,
        settings: SyncSettings = SYNC,
    ) -> None:
        self.queue = queue
        self.kv = kv
        self.mappings = mappings
        self.remote = remote
        self.identity = identity
        self.network = network
        self.settings = settings
        self.logger = get_logger("focus_coach.sync", SYNC_LOG_PATH)
        self.changes: EventChannel[SyncState] = EventChannel("sync-state")

        self._state = SyncState(is_online=network.is_online)
        self._draining = False
        self._rerun = False
        self._timer: Optional[asyncio.TimerHandle] = None
        self._periodic: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()
        self._unsubscribers: list = []
        self._initialized = False
        self._closing = False

    # ------------------------------------------------------------------
    # Lifecycle
    async def initialize(self, *, periodic: bool = True) -> None:
        if self._initialized:
            return
        persisted = SyncState.from_persisted(self.kv.get(SYNC_STATE_KEY))
        migration = self.kv.get(MIGRATION_STATUS_KEY) or {}
        self._state = replace(
            persisted,
            is_online=self.network.is_online,
            is_syncing=False,
            pending_operations=self.queue.count(),
        )
        if (
            not self._state.sync_enabled
            and self.identity.current_user() is not None
            and isinstance(migration, dict)
            and migration.get("is_completed")
        ):
            self._state.sync_enabled = True

        self._unsubscribers.append(self.network.changes.subscribe(self._on_network_change))
        self._unsubscribers.append(self.identity.changes.subscribe(self._on_identity_change))
        if periodic and self.settings.periodic_interval_sec > 0:
            self._periodic = asyncio.ensure_future(self._periodic_drain())

        self._initialized = True
        self._closing = False
        self._save_state()
        self._notify()
        self.logger.info(
            "Sync engine ready: enabled=%s online=%s pending=%d",
            self._state.sync_enabled,
            self._state.is_online,
            self._state.pending_operations,
        )
        if self._state.sync_enabled and self._state.pending_operations:
            self.schedule_drain(0)

    async def dispose(self) -> None:
        """Stop reacting to signals and let any running drain finish.

        A drain that is already talking to the remote store runs to the end of
        its current pass so that delivered operations are removed from the
        queue; no new drain starts once this has been called.
        """

        self._closing = True
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        self._cancel_timer()
        if self._periodic is not None:
            self._periodic.cancel()
            await asyncio.gather(self._periodic, return_exceptions=True)
            self._periodic = None
        await self.wait_idle()
        self._initialized = False

    async def wait_idle(self) -> DrainReport:
        """Wait for drains already started and return their combined report."""

        total = DrainReport()
        while self._tasks:
            running = list(self._tasks)
            results = await asyncio.gather(*running, return_exceptions=True)
            self._tasks.difference_update(running)
            for result in results:
                if isinstance(result, DrainReport):
                    total.add(result)
        return total

    # ------------------------------------------------------------------
    # State
    @property
    def state(self) -> SyncState:
        return replace(self._state)

    @property
    def is_enabled(self) -> bool:
        return self._state.sync_enabled

    def _save_state(self) -> None:
        self.kv.set(SYNC_STATE_KEY, self._state.to_persisted())

    def _notify(self) -> None:
        self.changes.emit(self.state)

    def enable_sync(self) -> None:
        self._state.sync_enabled = True
        self._save_state()
        self._notify()
        self.logger.info("Sync enabled")
        if self._state.is_online:
            self.schedule_drain(0)

    def disable_sync(self) -> None:
        self._state.sync_enabled = False
        self._cancel_timer()
        self._save_state()
        self._notify()
        self.logger.info("Sync disabled")

    # ------------------------------------------------------------------
    # Queue
    def enqueue(
        self,
        collection: Collection | str,
        payload: SyncPayload,
        *,
        local_id: Optional[int] = None,
    ) -> Optional[SyncOperation]:
        """Persist a mutation for later delivery; ignored while sync is off."""

        if not self._state.sync_enabled:
            return None
        operation = self.queue.enqueue(collection, payload, local_id=local_id)
        self._state.pending_operations = self.queue.count()
        self._save_state()
        self._notify()
        self.logger.debug(
            "Queued %s %s/%s", operation.kind.value, operation.collection.value, operation.key
        )
        self.schedule_drain()
        return operation

    def schedule_drain(self, delay: Optional[float] = None) -> None:
        """Start a drain after ``delay`` seconds, restarting any pending timer."""

        if self._closing:
            return
        if self._draining:
            self._rerun = True
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop yet; the queue is drained on the next initialize().
            return
        self._cancel_timer()
        wait = self.settings.debounce_sec if delay is None else delay
        self._timer = loop.call_later(wait, self._start_drain)

    def _start_drain(self) -> None:
        self._timer = None
        task = asyncio.ensure_future(self.drain())
        self._tasks.add(task)
        task.add_done_callback(self._drain_done)

    def _drain_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            self.logger.error("Drain task crashed", exc_info=task.exception())

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _can_drain(self) -> bool:
        return (
            self._state.sync_enabled
            and self.network.is_online
            and self.identity.current_user() is not None
            and not self._draining
        )

    async def drain(self) -> DrainReport:
        report = DrainReport()
        if not self._can_drain():
            return report
        try:
            operations = self.queue.pending(due_only=True)
        except Exception as exc:
            self._record_error(exc)
            self._save_state()
            self._notify()
            return report
        if not operations:
            return report

        self._draining = True
        self._rerun = False
        self._state.is_syncing = True
        self._state.has_error = False
        self._state.error_message = None
        self._notify()

        try:
            size = max(1, self.settings.batch_size)
            for start in range(0, len(operations), size):
                batch = operations[start : start + size]
                if not await self._run_batch(batch, report):
                    break
            self._state.last_sync_time = now_iso()
            self.logger.info(
                "Drain finished: processed=%d failed=%d abandoned=%d interrupted=%s",
                report.processed,
                report.failed,
                report.abandoned,
                report.interrupted,
            )
        except Exception as exc:
            self._record_error(exc)
        finally:
            self._draining = False
            self._state.is_syncing = False
            self._state.pending_operations = self.queue.count()
            self._save_state()
            self._notify()

        if self._rerun:
            self._rerun = False
            if self._state.pending_operations:
                self.schedule_drain()
        return report

    def _record_error(self, exc: Exception) -> None:
        self.logger.exception("Sync queue processing failed")
        self._state.has_error = True
        self._state.error_message = str(exc) or "Sync failed"

    async def _run_batch(self, batch: list[SyncOperation], report: DrainReport) -> bool:
        for operation in batch:
            if not self.network.is_online:
                report.interrupted = True
                self.logger.info("Went offline, stopping drain before %s", operation.operation_id)
                return False
            try:
                await self._execute(operation)
            except Exception as exc:
                report.failed += 1
                self.logger.warning(
                    "Sync op %s %s/%s failed: %s",
                    operation.kind.value,
                    operation.collection.value,
                    operation.key,
                    exc,
                )
                if self.queue.record_failure(
                    operation.operation_id, str(exc), self.settings.max_retry_count
                ):
                    report.abandoned += 1
                continue
            self.queue.remove(operation.operation_id)
            report.processed += 1
        return True

    async def manual_sync(self) -> DrainReport:
        if not self._state.sync_enabled or self._state.is_syncing:
            return DrainReport()
        self._cancel_timer()
        self._state.has_error = False
        self._state.error_message = None
        self._notify()
        return await self.drain()

    def clear_queue(self) -> None:
        self._cancel_timer()
        self.queue.clear()
        self._state.pending_operations = 0
        self._save_state()
        self._notify()

    async def _periodic_drain(self) -> None:
        while True:
            await asyncio.sleep(self.settings.periodic_interval_sec)
            if self._state.sync_enabled:
                self.schedule_drain(0)

    # ------------------------------------------------------------------
    # Signals
    def _on_network_change(self, online: bool) -> None:
        self._state.is_online = online
        if online:
            self.logger.info("Back online")
            self._notify()
            if self._state.sync_enabled:
                self.schedule_drain(self.settings.reconnect_delay_sec)
            return
        self.logger.info("Offline, %d operations kept", self._state.pending_operations)
        self._cancel_timer()
        self._state.is_syncing = False
        self._notify()

    def _on_identity_change(self, identity: Optional[Identity]) -> None:
        if identity is None:
            self._cancel_timer()
            self._notify()
            return
        if self._state.sync_enabled and self._state.is_online:
            self.schedule_drain(0)

    # ------------------------------------------------------------------
    # Remote dispatch
    async def _execute(self, operation: SyncOperation) -> None:
        payload = operation.decode()
        remote = self.remote.collection(operation.collection)
        entity_type = MAPPED_COLLECTIONS.get(operation.collection)
        if entity_type is not None:
            await self._execute_mapped(operation, payload, remote, entity_type)
            return

        if isinstance(payload, Insert):
            record = payload.record.model_dump(mode="json")
            await remote.insert(build_remote_record(operation.collection, payload.key, record))
        elif isinstance(payload, Patch):
            await remote.update(payload.key, payload.fields)
        elif isinstance(payload, Remove):
            await remote.delete(payload.key)

    async def _execute_mapped(
        self,
        operation: SyncOperation,
        payload: SyncPayload,
        remote: RemoteCollection,
        entity_type: EntityType,
    ) -> None:
        local_id = operation.local_id if operation.local_id is not None else int(payload.key)
        remote_id = self.mappings.get_remote_id(local_id, entity_type)

        if isinstance(payload, Insert):
            target = remote_id or new_remote_id()
            record = payload.record.model_dump(mode="json")
            await remote.insert(build_remote_record(operation.collection, target, record))
            if remote_id is None:
                self.mappings.ensure_mapping(local_id, entity_type, target)
            return

        if isinstance(payload, Patch):
            if remote_id is None:
                raise RemoteStoreError(f"{entity_type.value} {local_id} has no remote id yet")
            await remote.update(remote_id, payload.fields)
            return

        if remote_id is None:
            self.logger.debug("%s %s was never synced, nothing to delete", entity_type.value, local_id)
            return
        await remote.delete(remote_id)


__all__ = ["DrainReport", "MAPPED_COLLECTIONS", "SyncEngine", "SyncState"]
