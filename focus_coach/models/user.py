"""User preferences, cached stats and daily quotes."""
from __future__ import annotations

from typing import Optional

from sqlmodel import Field, SQLModel


DEFAULT_REMINDER_TIME = "09:00"


class UserPreferences(SQLModel):
    reminder_time: str = DEFAULT_REMINDER_TIME
    theme: str = "light"
    notifications: bool = True
    show_daily_quote: bool = True


class UserStats(SQLModel):
    """Derived counters; recomputed from daily tasks, never synced on their own."""

    total_tasks: int = 0
    completed_tasks: int = 0
    current_streak: int = 0
    longest_streak: int = 0


class UserData(SQLModel):
    api_key: Optional[str] = None
    preferences: UserPreferences = Field(default_factory=UserPreferences)
    stats: UserStats = Field(default_factory=UserStats)

    def is_customized(self) -> bool:
        return bool(self.api_key) or self.preferences != UserPreferences()


class DailyQuote(SQLModel):
    quote: str
    author: str
    date: Optional[str] = None
    mood: Optional[str] = None


__all__ = [
    "DEFAULT_REMINDER_TIME",
    "DailyQuote",
    "UserData",
    "UserPreferences",
    "UserStats",
]
