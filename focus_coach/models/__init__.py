"""Record shapes and SQLModel tables used by the Daily Focus Coach core."""
from .goal import Goal, GoalCategory, Goals, SubTask, TinyGoal
from .id_mapping import EntityType, IdMapping
from .kv import KeyValue
from .migration import (
    IntegrityReport,
    MigratedItems,
    MigrationProgress,
    MigrationRecord,
    MigrationResult,
    MigrationStage,
    MigrationStatus,
)
from .sync_op import Collection, Insert, Patch, Remove, SyncKind, SyncQueueEntry
from .task import DailyTask, MonthlyOption, RecurrenceType, RecurringTask
from .user import DailyQuote, UserData, UserPreferences, UserStats

__all__ = [
    "Collection",
    "DailyQuote",
    "DailyTask",
    "EntityType",
    "Goal",
    "GoalCategory",
    "Goals",
    "IdMapping",
    "Insert",
    "IntegrityReport",
    "KeyValue",
    "MigratedItems",
    "MigrationProgress",
    "MigrationRecord",
    "MigrationResult",
    "MigrationStage",
    "MigrationStatus",
    "MonthlyOption",
    "Patch",
    "RecurrenceType",
    "RecurringTask",
    "Remove",
    "SubTask",
    "SyncKind",
    "SyncQueueEntry",
    "TinyGoal",
    "UserData",
    "UserPreferences",
    "UserStats",
]
