"""Small publish/subscribe channel used for progress and state updates."""
from __future__ import annotations

import logging
from typing import Callable, Generic, List, TypeVar


T = TypeVar("T")

logger = logging.getLogger(__name__)


class EventChannel(Generic[T]):
    """Fan an event out to every subscriber.

    A failing listener is logged and skipped so one broken subscriber cannot
    stop the others or the publisher.
    """

    def __init__(self, name: str = "events") -> None:
        self.name = name
        self._listeners: List[Callable[[T], None]] = []

    def subscribe(self, callback: Callable[[T], None]) -> Callable[[], None]:
        self._listeners.append(callback)

        def unsubscribe() -> None:
            self.unsubscribe(callback)

        return unsubscribe

    def unsubscribe(self, callback: Callable[[T], None]) -> None:
        try:
            self._listeners.remove(callback)
        except ValueError:
            pass

    def emit(self, event: T) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Listener on %s failed", self.name)

    def __len__(self) -> int:
        return len(self._listeners)


__all__ = ["EventChannel"]
