"""Write path: local store first, then explicit sync operations."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlmodel import SQLModel

from focus_coach.models.goal import Goal, Goals, TinyGoal
from focus_coach.models.sync_op import Collection, Insert, Patch, Remove, SyncPayload
from focus_coach.models.task import DailyTask, RecurringTask
from focus_coach.models.user import DailyQuote, UserData
from focus_coach.services.id_mappings import IdMappingTable
from focus_coach.services.local_store import LocalStore
from focus_coach.services.sync_engine import MAPPED_COLLECTIONS, SyncEngine


logger = logging.getLogger(__name__)

PREFERENCES_KEY = "preferences"

Change = Tuple[SyncPayload, Optional[int]]


def changed_fields(before: Dict[str, Any], after: Dict[str, Any]) -> Dict[str, Any]:
    return {name: value for name, value in after.items() if before.get(name) != value}


def diff_records(
    before: Dict[str, SQLModel],
    after: Dict[str, SQLModel],
    *,
    patch: bool = True,
) -> List[Tuple[str, str, SyncPayload]]:
    """Compare two keyed snapshots.

    Returns ``(status, key, payload)`` tuples where status is ``new``,
    ``changed`` or ``removed``. With ``patch=False`` a changed record is sent
    as a full Insert.
    """

    result: List[Tuple[str, str, SyncPayload]] = []
    for key, record in after.items():
        previous = before.get(key)
        if previous is None:
            result.append(("new", key, Insert(key=key, record=record)))
            continue
        old = previous.model_dump(mode="json")
        new = record.model_dump(mode="json")
        fields = changed_fields(old, new)
        if not fields:
            continue
        if patch:
            result.append(("changed", key, Patch(key=key, fields=fields)))
        else:
            result.append(("changed", key, Insert(key=key, record=record)))
    for key in before:
        if key not in after:
            result.append(("removed", key, Remove(key=key)))
    return result


class HybridStore:
    """Same getters and setters as :class:`LocalStore`, plus queued sync."""

    def __init__(self, local: LocalStore, engine: SyncEngine, mappings: IdMappingTable) -> None:
        self.local = local
        self.engine = engine
        self.mappings = mappings

    # ----- internals -----
    def _push(self, collection: Collection, changes: List[Change]) -> int:
        if not self.engine.is_enabled:
            return 0
        for payload, local_id in changes:
            self.engine.enqueue(collection, payload, local_id=local_id)
        return len(changes)

    def _mapped_changes(
        self,
        collection: Collection,
        before: Dict[str, SQLModel],
        after: Dict[str, SQLModel],
    ) -> List[Change]:
        entity_type = MAPPED_COLLECTIONS[collection]
        changes: List[Change] = []
        for status, key, payload in diff_records(before, after):
            local_id = int(key)
            if status == "changed" and self.mappings.get_remote_id(local_id, entity_type) is None:
                payload = Insert(key=key, record=after[key])
            changes.append((payload, local_id))
        return changes

    # ----- goals -----
    def get_goals(self) -> Goals:
        return self.local.get_goals()

    def set_goals(self, goals: Goals) -> int:
        before = {str(goal.id): goal for goal in self.local.get_goals().all()}
        self.local.set_goals(goals)
        if not self.engine.is_enabled:
            return 0
        after = {str(goal.id): goal for goal in goals.all()}
        return self._push(Collection.GOALS, self._mapped_changes(Collection.GOALS, before, after))

    def get_goal(self, goal_id: int) -> Optional[Goal]:
        return next((goal for goal in self.get_goals().all() if goal.id == goal_id), None)

    # ----- tiny goals -----
    def get_tiny_goals(self) -> List[TinyGoal]:
        return self.local.get_tiny_goals()

    def set_tiny_goals(self, tiny_goals: List[TinyGoal]) -> int:
        before = {str(goal.id): goal for goal in self.local.get_tiny_goals()}
        self.local.set_tiny_goals(tiny_goals)
        if not self.engine.is_enabled:
            return 0
        after = {str(goal.id): goal for goal in tiny_goals}
        return self._push(
            Collection.TINY_GOALS, self._mapped_changes(Collection.TINY_GOALS, before, after)
        )

    # ----- daily tasks -----
    def get_daily_tasks(self) -> Dict[str, DailyTask]:
        return self.local.get_daily_tasks()

    def get_daily_task(self, date: str) -> Optional[DailyTask]:
        return self.local.get_daily_task(date)

    def set_daily_tasks(self, daily_tasks: Dict[str, DailyTask]) -> int:
        before = self.local.get_daily_tasks()
        self.local.set_daily_tasks(daily_tasks)
        changes = [
            (payload, None)
            for _, _, payload in diff_records(before, daily_tasks, patch=False)
        ]
        return self._push(Collection.DAILY_TASKS, changes)

    def set_daily_task(self, date: str, task: DailyTask) -> int:
        tasks = self.local.get_daily_tasks()
        tasks[date] = task
        return self.set_daily_tasks(tasks)

    # ----- recurring tasks -----
    def get_recurring_tasks(self) -> List[RecurringTask]:
        return self.local.get_recurring_tasks()

    def set_recurring_tasks(self, recurring_tasks: List[RecurringTask]) -> int:
        before = {task.id: task for task in self.local.get_recurring_tasks()}
        self.local.set_recurring_tasks(recurring_tasks)
        after = {task.id: task for task in recurring_tasks}
        changes = [(payload, None) for _, _, payload in diff_records(before, after)]
        return self._push(Collection.RECURRING_TASKS, changes)

    # ----- quotes -----
    def get_daily_quotes(self) -> Dict[str, DailyQuote]:
        return self.local.get_daily_quotes()

    def get_daily_quote(self, date: str) -> Optional[DailyQuote]:
        return self.local.get_daily_quote(date)

    def set_daily_quotes(self, quotes: Dict[str, DailyQuote]) -> int:
        before = self.local.get_daily_quotes()
        self.local.set_daily_quotes(quotes)
        changes = [(payload, None) for _, _, payload in diff_records(before, quotes, patch=False)]
        return self._push(Collection.QUOTES, changes)

    def set_daily_quote(self, date: str, quote: DailyQuote) -> int:
        quotes = self.local.get_daily_quotes()
        quotes[date] = quote
        return self.set_daily_quotes(quotes)

    # ----- user data -----
    def get_user_data(self) -> UserData:
        return self.local.get_user_data()

    def set_user_data(self, user_data: UserData) -> int:
        before = self.local.get_user_data()
        self.local.set_user_data(user_data)
        if before.model_dump(mode="json") == user_data.model_dump(mode="json"):
            return 0
        return self._push(
            Collection.PREFERENCES, [(Insert(key=PREFERENCES_KEY, record=user_data), None)]
        )

    # ----- whole store -----
    def has_local_data(self) -> bool:
        return self.local.has_local_data()

    def export_data(self) -> Dict[str, Any]:
        return self.local.export_data()

    def clear_all(self) -> None:
        self.local.clear_all()
        self.engine.clear_queue()
        logger.info("Local data and pending sync operations cleared")


__all__ = ["HybridStore", "PREFERENCES_KEY", "changed_fields", "diff_records"]
