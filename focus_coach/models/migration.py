"""Progress events and persisted records of the one-time migration."""
from __future__ import annotations

from enum import Enum
from typing import List, Optional

from sqlmodel import Field, SQLModel


class MigrationStage(str, Enum):
    PREPARING = "preparing"
    GOALS = "goals"
    TINY_GOALS = "tiny_goals"
    DAILY_TASKS = "daily_tasks"
    RECURRING_TASKS = "recurring_tasks"
    QUOTES = "quotes"
    PREFERENCES = "preferences"
    COMPLETE = "complete"


class MigrationProgress(SQLModel):
    stage: MigrationStage
    current: int = 0
    total: int = 0
    percentage: int = 0
    current_item: Optional[str] = None


class MigratedItems(SQLModel):
    goals: int = 0
    tiny_goals: int = 0
    daily_tasks: int = 0
    recurring_tasks: int = 0
    quotes: int = 0
    preferences: int = 0

    def total(self) -> int:
        return (
            self.goals
            + self.tiny_goals
            + self.daily_tasks
            + self.recurring_tasks
            + self.quotes
            + self.preferences
        )


class MigrationResult(SQLModel):
    success: bool
    migrated_items: MigratedItems = Field(default_factory=MigratedItems)
    errors: List[str] = Field(default_factory=list)
    duration_ms: int = 0
    total_items: int = 0


class MigrationRecord(SQLModel):
    """What is persisted after every attempt."""

    is_completed: bool = False
    last_attempt: Optional[str] = None
    last_result: Optional[MigrationResult] = None


class MigrationStatus(MigrationRecord):
    has_local_data: bool = False
    needs_migration: bool = False


class IntegrityReport(SQLModel):
    is_valid: bool
    issues: List[str] = Field(default_factory=list)


__all__ = [
    "IntegrityReport",
    "MigratedItems",
    "MigrationProgress",
    "MigrationRecord",
    "MigrationResult",
    "MigrationStage",
    "MigrationStatus",
]
