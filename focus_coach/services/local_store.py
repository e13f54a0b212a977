"""Local collections: the synchronous, always-available data layer."""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, TypeVar

from pydantic import TypeAdapter, ValidationError

from focus_coach.core.settings import STORAGE_KEY_PREFIX
from focus_coach.datetime_utils import now_iso
from focus_coach.models.goal import Goal, Goals, TinyGoal
from focus_coach.models.task import DailyTask, RecurringTask
from focus_coach.models.user import DailyQuote, UserData
from focus_coach.storage.store import KeyValueStore


logger = logging.getLogger(__name__)

T = TypeVar("T")


def storage_key(name: str) -> str:
    return f"{STORAGE_KEY_PREFIX}-{name}"


GOALS_KEY = storage_key("goals")
TINY_GOALS_KEY = storage_key("tiny-goals")
DAILY_TASKS_KEY = storage_key("daily-tasks")
RECURRING_TASKS_KEY = storage_key("recurring-tasks")
DAILY_QUOTES_KEY = storage_key("daily-quotes")
USER_DATA_KEY = storage_key("user-data")
SYNC_STATE_KEY = storage_key("sync-state")
MIGRATION_STATUS_KEY = storage_key("migration-status")

COLLECTION_KEYS = (
    GOALS_KEY,
    TINY_GOALS_KEY,
    DAILY_TASKS_KEY,
    RECURRING_TASKS_KEY,
    DAILY_QUOTES_KEY,
    USER_DATA_KEY,
)

_TINY_GOALS = TypeAdapter(List[TinyGoal])
_DAILY_TASKS = TypeAdapter(Dict[str, DailyTask])
_RECURRING_TASKS = TypeAdapter(List[RecurringTask])
_DAILY_QUOTES = TypeAdapter(Dict[str, DailyQuote])


class LocalStore:
    """Typed getters and setters over :class:`KeyValueStore`.

    Reads never raise: a missing or corrupted value degrades to the empty
    default for that collection.
    """

    def __init__(self, kv: KeyValueStore) -> None:
        self.kv = kv

    # ----- helpers -----
    def _read(self, key: str, parse: Callable[[Any], T], default: Callable[[], T]) -> T:
        raw = self.kv.get(key)
        if raw is None:
            return default()
        try:
            return parse(raw)
        except (ValidationError, TypeError, ValueError) as exc:
            logger.warning("Discarding unreadable value under %s: %s", key, exc)
            return default()

    # ----- goals -----
    def get_goals(self) -> Goals:
        return self._read(GOALS_KEY, Goals.model_validate, Goals)

    def set_goals(self, goals: Goals) -> None:
        self.kv.set(GOALS_KEY, goals.model_dump(mode="json"))

    # ----- tiny goals -----
    def get_tiny_goals(self) -> List[TinyGoal]:
        return self._read(TINY_GOALS_KEY, _TINY_GOALS.validate_python, list)

    def set_tiny_goals(self, tiny_goals: List[TinyGoal]) -> None:
        self.kv.set(TINY_GOALS_KEY, _TINY_GOALS.dump_python(tiny_goals, mode="json"))

    # ----- daily tasks -----
    def get_daily_tasks(self) -> Dict[str, DailyTask]:
        return self._read(DAILY_TASKS_KEY, _DAILY_TASKS.validate_python, dict)

    def set_daily_tasks(self, daily_tasks: Dict[str, DailyTask]) -> None:
        self.kv.set(DAILY_TASKS_KEY, _DAILY_TASKS.dump_python(daily_tasks, mode="json"))

    def get_daily_task(self, date: str) -> Optional[DailyTask]:
        return self.get_daily_tasks().get(date)

    def set_daily_task(self, date: str, task: DailyTask) -> None:
        tasks = self.get_daily_tasks()
        tasks[date] = task
        self.set_daily_tasks(tasks)

    # ----- recurring tasks -----
    def get_recurring_tasks(self) -> List[RecurringTask]:
        return self._read(RECURRING_TASKS_KEY, _RECURRING_TASKS.validate_python, list)

    def set_recurring_tasks(self, recurring_tasks: List[RecurringTask]) -> None:
        self.kv.set(
            RECURRING_TASKS_KEY,
            _RECURRING_TASKS.dump_python(recurring_tasks, mode="json"),
        )

    # ----- quotes -----
    def get_daily_quotes(self) -> Dict[str, DailyQuote]:
        return self._read(DAILY_QUOTES_KEY, _DAILY_QUOTES.validate_python, dict)

    def set_daily_quotes(self, quotes: Dict[str, DailyQuote]) -> None:
        self.kv.set(DAILY_QUOTES_KEY, _DAILY_QUOTES.dump_python(quotes, mode="json"))

    def get_daily_quote(self, date: str) -> Optional[DailyQuote]:
        return self.get_daily_quotes().get(date)

    def set_daily_quote(self, date: str, quote: DailyQuote) -> None:
        quotes = self.get_daily_quotes()
        quotes[date] = quote
        self.set_daily_quotes(quotes)

    # ----- user data -----
    def get_user_data(self) -> UserData:
        return self._read(USER_DATA_KEY, UserData.model_validate, UserData)

    def set_user_data(self, user_data: UserData) -> None:
        self.kv.set(USER_DATA_KEY, user_data.model_dump(mode="json"))

    # ----- whole-store operations -----
    def has_local_data(self) -> bool:
        """True when any collection holds something other than its default."""

        return (
            not self.get_goals().is_empty()
            or bool(self.get_tiny_goals())
            or bool(self.get_daily_tasks())
            or bool(self.get_recurring_tasks())
            or bool(self.get_daily_quotes())
            or self.get_user_data().is_customized()
        )

    def has_data_for_date(self, date: str) -> bool:
        task = self.get_daily_task(date)
        return bool(task and task.text.strip())

    def completed_goals(self) -> List[Goal]:
        return [goal for goal in self.get_goals().all() if goal.is_complete]

    def clear_all(self) -> None:
        self.kv.delete_many(COLLECTION_KEYS)

    def export_data(self) -> Dict[str, Any]:
        return {
            "goals": self.get_goals().model_dump(mode="json"),
            "tiny_goals": _TINY_GOALS.dump_python(self.get_tiny_goals(), mode="json"),
            "daily_tasks": _DAILY_TASKS.dump_python(self.get_daily_tasks(), mode="json"),
            "recurring_tasks": _RECURRING_TASKS.dump_python(self.get_recurring_tasks(), mode="json"),
            "daily_quotes": _DAILY_QUOTES.dump_python(self.get_daily_quotes(), mode="json"),
            "user_data": self.get_user_data().model_dump(mode="json"),
            "exported_at": now_iso(),
        }

    def import_data(self, data: Dict[str, Any]) -> None:
        """Overwrite each collection present in ``data``; others are left alone."""

        if data.get("goals") is not None:
            self.set_goals(Goals.model_validate(data["goals"]))
        if data.get("tiny_goals") is not None:
            self.set_tiny_goals(_TINY_GOALS.validate_python(data["tiny_goals"]))
        if data.get("daily_tasks") is not None:
            self.set_daily_tasks(_DAILY_TASKS.validate_python(data["daily_tasks"]))
        if data.get("recurring_tasks") is not None:
            self.set_recurring_tasks(_RECURRING_TASKS.validate_python(data["recurring_tasks"]))
        if data.get("daily_quotes") is not None:
            self.set_daily_quotes(_DAILY_QUOTES.validate_python(data["daily_quotes"]))
        if data.get("user_data") is not None:
            self.set_user_data(UserData.model_validate(data["user_data"]))


__all__ = [
    "COLLECTION_KEYS",
    "DAILY_QUOTES_KEY",
    "DAILY_TASKS_KEY",
    "GOALS_KEY",
    "LocalStore",
    "MIGRATION_STATUS_KEY",
    "RECURRING_TASKS_KEY",
    "SYNC_STATE_KEY",
    "TINY_GOALS_KEY",
    "USER_DATA_KEY",
    "storage_key",
]
