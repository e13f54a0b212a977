from __future__ import annotations

import time
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Tuple, TypeVar

from pydantic import ValidationError

from focus_coach.core.log import get_logger
from focus_coach.core.settings import MIGRATION_LOG_PATH
from focus_coach.datetime_utils import now_iso
from focus_coach.errors import MigrationAlreadyCompleted, RemoteStoreError, Unauthenticated
from focus_coach.models.goal import Goal, TinyGoal
from focus_coach.models.id_mapping import EntityType
from focus_coach.models.migration import (
    IntegrityReport,
    MigratedItems,
    MigrationProgress,
    MigrationRecord,
    MigrationResult,
    MigrationStage,
    MigrationStatus,
)
from focus_coach.models.sync_op import Collection
from focus_coach.models.task import DailyTask, RecurringTask
from focus_coach.models.user import DailyQuote
from focus_coach.services.auth import IdentityProvider
from focus_coach.services.events import EventChannel
from focus_coach.services.id_mappings import IdMappingTable, new_remote_id
from focus_coach.services.local_store import MIGRATION_STATUS_KEY, LocalStore
from focus_coach.services.remote import RemoteStore, build_remote_record


T = TypeVar("T")


def _percentage(current: int, total: int) -> int:
    if total <= 0:
        return 0
    return round(current / total * 100)


class MigrationService:
    """Copies every local collection to the remote store once per user."""

    def __init__(
        self,
        local: LocalStore,
        mappings: IdMappingTable,
        remote: RemoteStore,
        identity: IdentityProvider,
    ) -> None:
        self.local = local
        self.kv = local.kv
        self.mappings = mappings
        self.remote = remote
        self.identity = identity
        self.progress: EventChannel[MigrationProgress] = EventChannel("migration-progress")
        self.logger = get_logger("focus_coach.migration", MIGRATION_LOG_PATH)

    # ------------------------------------------------------------------
    # Status
    def _load_record(self) -> MigrationRecord:
        raw = self.kv.get(MIGRATION_STATUS_KEY)
        if raw is None:
            return MigrationRecord()
        try:
            return MigrationRecord.model_validate(raw)
        except ValidationError as exc:
            self.logger.warning("Ignoring unreadable migration status: %s", exc)
            return MigrationRecord()

    def _save_record(self, result: MigrationResult) -> None:
        record = MigrationRecord(
            is_completed=result.success,
            last_attempt=now_iso(),
            last_result=result,
        )
        self.kv.set(MIGRATION_STATUS_KEY, record.model_dump(mode="json"))

    def has_local_data(self) -> bool:
        return self.local.has_local_data()

    def get_status(self) -> MigrationStatus:
        record = self._load_record()
        has_data = self.has_local_data()
        return MigrationStatus(
            **record.model_dump(),
            has_local_data=has_data,
            needs_migration=has_data and not record.is_completed,
        )

    def reset_status(self) -> None:
        """Forget the last attempt and every identity mapping."""

        self.kv.delete(MIGRATION_STATUS_KEY)
        self.mappings.clear()
        self.logger.info("Migration status and identity mappings reset")

    # ------------------------------------------------------------------
    # Progress
    def _report(
        self,
        stage: MigrationStage,
        current: int,
        total: int,
        current_item: Optional[str] = None,
    ) -> None:
        self.progress.emit(
            MigrationProgress(
                stage=stage,
                current=current,
                total=total,
                percentage=_percentage(current, total),
                current_item=current_item,
            )
        )

    async def _run_stage(
        self,
        stage: MigrationStage,
        items: Sequence[T],
        describe: Callable[[T], str],
        failure: Callable[[T], str],
        push: Callable[[T], Awaitable[Any]],
    ) -> Tuple[int, List[str]]:
        total = len(items)
        count = 0
        errors: List[str] = []
        self._report(stage, 0, total)
        for index, item in enumerate(items, start=1):
            self._report(stage, index, total, describe(item))
            try:
                await push(item)
            except Exception as exc:
                message = f"{failure(item)}: {exc}"
                errors.append(message)
                self.logger.error(message)
                continue
            count += 1
        return count, errors

    # ------------------------------------------------------------------
    # Per-collection pushes
    async def _push_mapped(
        self,
        collection: Collection,
        entity_type: EntityType,
        local_id: int,
        data: dict,
    ) -> None:
        # Reusing an existing mapping turns a re-run into an upsert of the same row.
        remote_id = self.mappings.get_remote_id(local_id, entity_type) or new_remote_id()
        await self.remote.collection(collection).insert(
            build_remote_record(collection, remote_id, data)
        )
        self.mappings.ensure_mapping(local_id, entity_type, remote_id)

    async def _push_goal(self, goal: Goal) -> None:
        await self._push_mapped(
            Collection.GOALS, EntityType.GOAL, goal.id, goal.model_dump(mode="json")
        )

    async def _push_tiny_goal(self, tiny_goal: TinyGoal) -> None:
        await self._push_mapped(
            Collection.TINY_GOALS,
            EntityType.TINY_GOAL,
            tiny_goal.id,
            tiny_goal.model_dump(mode="json"),
        )

    async def _push_daily_task(self, item: Tuple[str, DailyTask]) -> None:
        date, task = item
        await self.remote.collection(Collection.DAILY_TASKS).insert(
            build_remote_record(Collection.DAILY_TASKS, date, task.model_dump(mode="json"))
        )

    async def _push_recurring_task(self, task: RecurringTask) -> None:
        await self.remote.collection(Collection.RECURRING_TASKS).insert(
            build_remote_record(Collection.RECURRING_TASKS, task.id, task.model_dump(mode="json"))
        )

    async def _push_quote(self, item: Tuple[str, DailyQuote]) -> None:
        date, quote = item
        await self.remote.collection(Collection.QUOTES).insert(
            build_remote_record(Collection.QUOTES, date, quote.model_dump(mode="json"))
        )

    # ------------------------------------------------------------------
    async def migrate(self, *, force: bool = False) -> MigrationResult:
        """Run the full migration.

        Raises :class:`Unauthenticated` without a signed-in user and
        :class:`MigrationAlreadyCompleted` when a previous run succeeded,
        unless ``force`` is set. Per-item failures are collected in the
        result; anything else is recorded as a failed attempt.
        """

        started = time.monotonic()
        if self.identity.current_user() is None:
            raise Unauthenticated()
        if not force and self._load_record().is_completed:
            raise MigrationAlreadyCompleted("Local data has already been migrated")

        self.logger.info("Migration started (force=%s)", force)
        self._report(MigrationStage.PREPARING, 0, 1)
        errors: List[str] = []
        migrated = MigratedItems()

        try:
            goals = self.local.get_goals().all()
            migrated.goals, stage_errors = await self._run_stage(
                MigrationStage.GOALS,
                goals,
                lambda goal: goal.text,
                lambda goal: f'Failed to migrate goal "{goal.text}"',
                self._push_goal,
            )
            errors.extend(stage_errors)

            tiny_goals = self.local.get_tiny_goals()
            migrated.tiny_goals, stage_errors = await self._run_stage(
                MigrationStage.TINY_GOALS,
                tiny_goals,
                lambda goal: goal.text,
                lambda goal: f'Failed to migrate tiny goal "{goal.text}"',
                self._push_tiny_goal,
            )
            errors.extend(stage_errors)

            daily_tasks = sorted(self.local.get_daily_tasks().items())
            migrated.daily_tasks, stage_errors = await self._run_stage(
                MigrationStage.DAILY_TASKS,
                daily_tasks,
                lambda item: f"{item[0]}: {item[1].text}",
                lambda item: f"Failed to migrate daily task for {item[0]}",
                self._push_daily_task,
            )
            errors.extend(stage_errors)

            recurring = self.local.get_recurring_tasks()
            migrated.recurring_tasks, stage_errors = await self._run_stage(
                MigrationStage.RECURRING_TASKS,
                recurring,
                lambda task: task.text,
                lambda task: f'Failed to migrate recurring task "{task.text}"',
                self._push_recurring_task,
            )
            errors.extend(stage_errors)

            quotes = sorted(self.local.get_daily_quotes().items())
            migrated.quotes, stage_errors = await self._run_stage(
                MigrationStage.QUOTES,
                quotes,
                lambda item: f"{item[0]}: {item[1].author}",
                lambda item: f"Failed to migrate quote for {item[0]}",
                self._push_quote,
            )
            errors.extend(stage_errors)

            user_data = self.local.get_user_data()
            preferences = [user_data] if user_data.is_customized() else []
            migrated.preferences, stage_errors = await self._run_stage(
                MigrationStage.PREFERENCES,
                preferences,
                lambda _: "User preferences",
                lambda _: "Failed to migrate user preferences",
                lambda data: self.remote.collection(Collection.PREFERENCES).insert(
                    build_remote_record(Collection.PREFERENCES, "", data.model_dump(mode="json"))
                ),
            )
            errors.extend(stage_errors)
        except Exception as exc:
            self.logger.exception("Migration aborted")
            errors.append(f"Migration failed: {exc}")
            result = MigrationResult(
                success=False,
                errors=errors,
                duration_ms=int((time.monotonic() - started) * 1000),
            )
            self._save_record(result)
            return result

        total_items = migrated.total()
        self._report(MigrationStage.COMPLETE, total_items, total_items)
        result = MigrationResult(
            success=not errors,
            migrated_items=migrated,
            errors=errors,
            duration_ms=int((time.monotonic() - started) * 1000),
            total_items=total_items,
        )
        self._save_record(result)
        self.logger.info(
            "Migration finished: success=%s items=%d errors=%d in %dms",
            result.success,
            total_items,
            len(errors),
            result.duration_ms,
        )
        return result

    async def validate_integrity(self) -> IntegrityReport:
        """Compare local and remote counts; mismatches are reported, never repaired."""

        if self.identity.current_user() is None:
            return IntegrityReport(is_valid=False, issues=["User not authenticated"])

        issues: List[str] = []
        local_goals = len(self.local.get_goals().all())
        local_tiny = len(self.local.get_tiny_goals())
        local_tasks = len(self.local.get_daily_tasks())
        try:
            remote_goals = len(await self.remote.collection(Collection.GOALS).list())
            remote_tiny = len(await self.remote.collection(Collection.TINY_GOALS).list())
            remote_tasks = len(await self.remote.collection(Collection.DAILY_TASKS).list())
        except RemoteStoreError as exc:
            return IntegrityReport(is_valid=False, issues=[f"Validation failed: {exc}"])

        if remote_goals != local_goals:
            issues.append(f"Goals count mismatch: local={local_goals}, remote={remote_goals}")
        if remote_tiny != local_tiny:
            issues.append(f"Tiny goals count mismatch: local={local_tiny}, remote={remote_tiny}")
        if remote_tasks != local_tasks:
            issues.append(f"Daily tasks count mismatch: local={local_tasks}, remote={remote_tasks}")
        for issue in issues:
            self.logger.warning(issue)
        return IntegrityReport(is_valid=not issues, issues=issues)


__all__ = ["MigrationService"]
