from __future__ import annotations

from datetime import date, timedelta
from typing import Dict, Optional

from focus_coach.datetime_utils import parse_iso_date
from focus_coach.models.task import DailyTask
from focus_coach.models.user import UserStats


def compute_stats(daily_tasks: Dict[str, DailyTask], today: Optional[date] = None) -> UserStats:
    """Totals and completion streaks over the daily focus history.

    The current streak still counts when today's focus is not done yet, as long
    as yesterday's was.
    """

    today = today or date.today()
    set_tasks = {key: task for key, task in daily_tasks.items() if task.text.strip()}
    completed_days = sorted(
        day
        for day in (parse_iso_date(key) for key, task in set_tasks.items() if task.completed)
        if day is not None
    )

    longest = 0
    run = 0
    previous: Optional[date] = None
    for day in completed_days:
        run = run + 1 if previous is not None and day - previous == timedelta(days=1) else 1
        longest = max(longest, run)
        previous = day

    done = set(completed_days)
    cursor = today if today in done else today - timedelta(days=1)
    current = 0
    while cursor in done:
        current += 1
        cursor -= timedelta(days=1)

    return UserStats(
        total_tasks=len(set_tasks),
        completed_tasks=len(done),
        current_streak=current,
        longest_streak=longest,
    )


__all__ = ["compute_stats"]
