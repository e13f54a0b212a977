from focus_coach.models import (
    DailyQuote,
    DailyTask,
    Goal,
    GoalCategory,
    Goals,
    KeyValue,
    RecurrenceType,
    RecurringTask,
    TinyGoal,
    UserData,
    UserPreferences,
)
from focus_coach.services.local_store import GOALS_KEY, TINY_GOALS_KEY


def _goals():
    return Goals(
        personal=[Goal(id=1, text="Run a 10k", progress=40)],
        professional=[
            Goal(id=2, text="Ship v2", category=GoalCategory.PROFESSIONAL, progress=10),
            Goal(
                id=3,
                text="Write docs",
                category=GoalCategory.PROFESSIONAL,
                progress=20,
                completed_at="2024-03-01T10:00:00+00:00",
            ),
        ],
    )


def test_empty_store_returns_defaults(local):
    assert local.get_goals() == Goals()
    assert local.get_tiny_goals() == []
    assert local.get_daily_tasks() == {}
    assert local.get_recurring_tasks() == []
    assert local.get_daily_quotes() == {}
    assert local.get_user_data() == UserData()
    assert local.has_local_data() is False


def test_reads_return_what_was_written(local):
    goals = _goals()
    tiny = [TinyGoal(id=7, text="Drink water")]
    gym = RecurringTask(
        id="r1", text="Gym", recurrence_type=RecurrenceType.WEEKLY, weekly_days=[5, 1, 3, 3]
    )

    local.set_goals(goals)
    local.set_tiny_goals(tiny)
    local.set_recurring_tasks([gym])

    assert local.get_goals() == goals
    assert local.get_tiny_goals() == tiny
    stored = local.get_recurring_tasks()
    assert stored[0].weekly_days == [1, 3, 5]


def test_daily_task_is_upserted_per_date(local):
    local.set_daily_task("2024-03-01", DailyTask(text="Plan sprint"))
    local.set_daily_task("2024-03-02", DailyTask(text="Review PRs"))
    local.set_daily_task("2024-03-01", DailyTask(text="Plan sprint", completed=True))

    tasks = local.get_daily_tasks()
    assert set(tasks) == {"2024-03-01", "2024-03-02"}
    assert tasks["2024-03-01"].completed is True
    assert local.has_data_for_date("2024-03-02") is True
    assert local.has_data_for_date("2024-03-03") is False


def test_quote_by_date(local):
    quote = DailyQuote(quote="Keep going.", author="Someone", mood="tired")
    local.set_daily_quote("2024-03-01", quote)
    assert local.get_daily_quote("2024-03-01") == quote
    assert local.get_daily_quote("2024-03-02") is None


def test_invalid_shape_degrades_to_default(local, kv):
    kv.set(GOALS_KEY, {"personal": "not-a-list"})
    kv.set(TINY_GOALS_KEY, [{"text": "missing id"}])

    assert local.get_goals() == Goals()
    assert local.get_tiny_goals() == []


def test_unparsable_json_degrades_to_default(local, session_factory):
    with session_factory() as session:
        session.add(KeyValue(key=GOALS_KEY, value="{not json"))
        session.commit()

    assert local.get_goals() == Goals()


def test_default_user_data_is_not_local_data(local):
    local.set_user_data(UserData())
    assert local.has_local_data() is False

    local.set_user_data(UserData(preferences=UserPreferences(theme="dark")))
    assert local.has_local_data() is True


def test_completed_goals_ignore_progress(local):
    local.set_goals(_goals())
    assert [goal.id for goal in local.completed_goals()] == [3]


def test_export_import_and_clear(local):
    goals = _goals()
    local.set_goals(goals)
    local.set_daily_task("2024-03-01", DailyTask(text="Plan sprint"))
    exported = local.export_data()
    assert "exported_at" in exported

    local.clear_all()
    assert local.has_local_data() is False

    local.import_data({"goals": exported["goals"], "daily_tasks": exported["daily_tasks"]})
    assert local.get_goals() == goals
    assert local.get_daily_task("2024-03-01").text == "Plan sprint"
    assert local.get_tiny_goals() == []
