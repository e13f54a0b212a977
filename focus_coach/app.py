"""Wires the storage, sync and migration services together."""
from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.engine import Engine

from focus_coach.core.settings import REMOTE, SYNC, SyncSettings
from focus_coach.models.migration import MigrationResult
from focus_coach.models.user import UserStats
from focus_coach.services.ai import AIService
from focus_coach.services.auth import Identity, IdentityProvider, SessionIdentityProvider
from focus_coach.services.hybrid_store import HybridStore
from focus_coach.services.id_mappings import IdMappingTable
from focus_coach.services.local_store import LocalStore
from focus_coach.services.migration import MigrationService
from focus_coach.services.network import NetworkMonitor
from focus_coach.services.remote import RemoteStore, UnconfiguredRemoteStore
from focus_coach.services.rest_remote import PostgrestRemoteStore
from focus_coach.services.stats import compute_stats
from focus_coach.services.sync_engine import SyncEngine
from focus_coach.services.sync_queue import SyncQueue
from focus_coach.storage.config import AppConfig, load_config
from focus_coach.storage.db import init_db, make_session_factory
from focus_coach.storage.store import KeyValueStore


logger = logging.getLogger(__name__)


class FocusCoachApp:
    """Owns one instance of every service and their lifecycle.

    Usage::

        async with FocusCoachApp() as app:
            app.store.set_daily_task(today, task)
    """

    def __init__(
        self,
        *,
        db_engine: Optional[Engine] = None,
        config: Optional[AppConfig] = None,
        remote: Optional[RemoteStore] = None,
        identity: Optional[IdentityProvider] = None,
        network: Optional[NetworkMonitor] = None,
        ai: Optional[AIService] = None,
        sync_settings: SyncSettings = SYNC,
    ) -> None:
        self.config = config or load_config()
        self.db_engine = init_db(db_engine)
        session_factory = make_session_factory(self.db_engine)

        self.kv = KeyValueStore(session_factory)
        self.local = LocalStore(self.kv)
        self.mappings = IdMappingTable(session_factory)
        self.queue = SyncQueue(
            session_factory,
            backoff_sec=sync_settings.retry_backoff_sec,
            backoff_cap_sec=sync_settings.retry_backoff_cap_sec,
        )
        self.identity = identity or self._identity_from_config()
        self.remote = remote or self._remote_from_config()
        self.network = network or NetworkMonitor(health_url=self._health_url())
        self.sync = SyncEngine(
            self.queue,
            self.kv,
            self.mappings,
            self.remote,
            self.identity,
            self.network,
            settings=sync_settings,
        )
        self.store = HybridStore(self.local, self.sync, self.mappings)
        self.migration = MigrationService(self.local, self.mappings, self.remote, self.identity)
        self.ai = ai or AIService()

    def _identity_from_config(self) -> SessionIdentityProvider:
        if self.config.user_id:
            return SessionIdentityProvider(
                Identity(user_id=self.config.user_id, access_token=self.config.access_token)
            )
        return SessionIdentityProvider()

    def _remote_from_config(self) -> RemoteStore:
        url = self.config.resolved_remote_url()
        if not url:
            logger.info("No remote store configured, working offline")
            return UnconfiguredRemoteStore()
        return PostgrestRemoteStore(
            url, self.config.resolved_api_key(), identity=self.identity
        )

    def _health_url(self) -> Optional[str]:
        url = self.config.resolved_remote_url()
        return f"{url.rstrip('/')}{REMOTE.health_path}" if url else None

    async def start(self, *, periodic: bool = True) -> None:
        await self.sync.initialize(periodic=periodic)

    async def stop(self) -> None:
        await self.sync.dispose()
        close = getattr(self.remote, "aclose", None)
        if close is not None:
            await close()

    async def __aenter__(self) -> "FocusCoachApp":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()

    async def migrate(self, *, force: bool = False) -> MigrationResult:
        """Run the migration and switch ongoing sync on when it succeeds."""

        result = await self.migration.migrate(force=force)
        if result.success:
            self.sync.enable_sync()
        return result

    def refresh_stats(self) -> UserStats:
        # Stats are derived locally and never queued for sync.
        stats = compute_stats(self.local.get_daily_tasks())
        user_data = self.local.get_user_data()
        user_data.stats = stats
        self.local.set_user_data(user_data)
        return stats


__all__ = ["FocusCoachApp"]
