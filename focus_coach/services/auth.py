"""Identity provider boundary: who is signed in, and when that changes."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol

from focus_coach.services.events import EventChannel


@dataclass(frozen=True)
class Identity:
    user_id: str
    email: Optional[str] = None
    access_token: Optional[str] = None


class IdentityProvider(Protocol):
    changes: EventChannel[Optional[Identity]]

    def current_user(self) -> Optional[Identity]:
        ...


class SessionIdentityProvider:
    """Holds the identity handed over by the external auth flow."""

    def __init__(self, identity: Optional[Identity] = None) -> None:
        self._identity = identity
        self.changes: EventChannel[Optional[Identity]] = EventChannel("identity")

    def current_user(self) -> Optional[Identity]:
        return self._identity

    def sign_in(self, identity: Identity) -> None:
        self._identity = identity
        self.changes.emit(identity)

    def sign_out(self) -> None:
        if self._identity is None:
            return
        self._identity = None
        self.changes.emit(None)


__all__ = ["Identity", "IdentityProvider", "SessionIdentityProvider"]
