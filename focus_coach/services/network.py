"""Online/offline signal consumed by the sync engine."""
from __future__ import annotations

import logging
from typing import Optional

import httpx

from focus_coach.services.events import EventChannel


logger = logging.getLogger(__name__)


class NetworkMonitor:
    """Tracks connectivity and publishes a bool on every transition."""

    def __init__(
        self,
        online: bool = True,
        *,
        health_url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 5.0,
    ) -> None:
        self._online = online
        self.health_url = health_url
        self._client = client
        self.timeout = timeout
        self.changes: EventChannel[bool] = EventChannel("network")

    @property
    def is_online(self) -> bool:
        return self._online

    def set_online(self, online: bool) -> None:
        if online == self._online:
            return
        self._online = online
        logger.info("Network is now %s", "online" if online else "offline")
        self.changes.emit(online)

    async def check_connectivity(self) -> bool:
        """Ping ``health_url`` and update the online flag from the outcome."""

        if not self.health_url:
            return self._online
        try:
            if self._client is not None:
                response = await self._client.get(self.health_url, timeout=self.timeout)
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.get(self.health_url, timeout=self.timeout)
            reachable = response.status_code < 500
        except httpx.HTTPError as exc:
            logger.debug("Connectivity check failed: %s", exc)
            reachable = False
        self.set_online(reachable)
        return reachable


__all__ = ["NetworkMonitor"]
