"""Daily focus tasks (one per date) and recurring tasks."""
from __future__ import annotations

from enum import Enum
from typing import List, Optional

from pydantic import field_validator
from sqlmodel import Field, SQLModel

from focus_coach.datetime_utils import now_iso


class DailyTask(SQLModel):
    text: str = ""
    completed: bool = False
    completed_at: Optional[str] = None


class RecurrenceType(str, Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class MonthlyOption(str, Enum):
    FIRST_DAY = "firstDay"
    MID_MONTH = "midMonth"
    LAST_DAY = "lastDay"


class RecurringTask(SQLModel):
    id: str
    text: str
    recurrence_type: RecurrenceType
    weekly_days: Optional[List[int]] = None  # 0-6, Sunday first
    monthly_option: Optional[MonthlyOption] = None
    last_completed: Optional[str] = None
    created_at: str = Field(default_factory=now_iso)
    updated_at: str = Field(default_factory=now_iso)

    @field_validator("weekly_days")
    @classmethod
    def _check_weekdays(cls, value: Optional[List[int]]) -> Optional[List[int]]:
        if value is None:
            return None
        for day in value:
            if not 0 <= day <= 6:
                raise ValueError(f"weekday index out of range: {day}")
        return sorted(set(value))


__all__ = ["DailyTask", "MonthlyOption", "RecurrenceType", "RecurringTask"]
