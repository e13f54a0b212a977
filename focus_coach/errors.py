"""Exception types shared by the storage, sync and migration services."""
from __future__ import annotations


class FocusCoachError(Exception):
    """Base class for errors raised by focus_coach."""


class Unauthenticated(FocusCoachError):
    """Raised when an operation needs a signed-in identity and none is present."""

    def __init__(self, message: str = "User must be authenticated to migrate data") -> None:
        super().__init__(message)


class MigrationAlreadyCompleted(FocusCoachError):
    """Raised when a migration is requested after one already completed."""


class RemoteStoreError(FocusCoachError):
    """A remote collection call failed (network, permission or validation)."""

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class DuplicateMappingError(FocusCoachError):
    """An identity mapping already exists for the (local_id, entity_type) pair."""


class AIServiceError(FocusCoachError):
    """The AI suggestion service could not produce a usable answer."""


__all__ = [
    "AIServiceError",
    "DuplicateMappingError",
    "FocusCoachError",
    "MigrationAlreadyCompleted",
    "RemoteStoreError",
    "Unauthenticated",
]
