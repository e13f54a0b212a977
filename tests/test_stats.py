from datetime import date

from focus_coach.models import DailyTask
from focus_coach.services.stats import compute_stats


TODAY = date(2024, 3, 10)


def _tasks(**days):
    return {
        f"2024-03-{day[1:]}": DailyTask(text=text, completed=done)
        for day, (text, done) in days.items()
    }


def test_empty_history():
    stats = compute_stats({}, today=TODAY)
    assert (stats.total_tasks, stats.completed_tasks) == (0, 0)
    assert (stats.current_streak, stats.longest_streak) == (0, 0)


def test_blank_tasks_are_not_counted():
    tasks = _tasks(d09=("  ", True), d10=("Plan", False))
    stats = compute_stats(tasks, today=TODAY)
    assert stats.total_tasks == 1
    assert stats.completed_tasks == 0


def test_current_streak_counts_from_yesterday_when_today_is_open():
    tasks = _tasks(
        d07=("A", True),
        d08=("B", True),
        d09=("C", True),
        d10=("D", False),
    )
    stats = compute_stats(tasks, today=TODAY)
    assert stats.current_streak == 3
    assert stats.longest_streak == 3


def test_gap_breaks_current_streak_but_not_longest():
    tasks = _tasks(
        d01=("A", True),
        d02=("B", True),
        d03=("C", True),
        d04=("D", True),
        d08=("E", True),
        d10=("F", True),
    )
    stats = compute_stats(tasks, today=TODAY)
    assert stats.current_streak == 1
    assert stats.longest_streak == 4
    assert stats.completed_tasks == 6


def test_stale_history_has_no_current_streak():
    tasks = _tasks(d01=("A", True), d02=("B", True))
    stats = compute_stats(tasks, today=TODAY)
    assert stats.current_streak == 0
    assert stats.longest_streak == 2
