"""Goal and tiny goal shapes as kept in the local store."""
from __future__ import annotations

from enum import Enum
from typing import List, Optional

from sqlmodel import Field, SQLModel

from focus_coach.datetime_utils import now_iso


class GoalCategory(str, Enum):
    PERSONAL = "personal"
    PROFESSIONAL = "professional"


class SubTask(SQLModel):
    id: str
    title: str
    completed: bool = False
    completed_at: Optional[str] = None


class Goal(SQLModel):
    id: int
    text: str
    description: Optional[str] = None
    category: GoalCategory = GoalCategory.PERSONAL
    progress: int = Field(default=0, ge=0, le=100)
    target_date: Optional[str] = None
    completed_at: Optional[str] = None
    subtasks: List[SubTask] = Field(default_factory=list)
    created_at: str = Field(default_factory=now_iso)
    updated_at: str = Field(default_factory=now_iso)

    @property
    def is_complete(self) -> bool:
        # A completion timestamp wins over whatever progress says.
        return self.completed_at is not None


class Goals(SQLModel):
    personal: List[Goal] = Field(default_factory=list)
    professional: List[Goal] = Field(default_factory=list)

    def all(self) -> List[Goal]:
        return [*self.personal, *self.professional]

    def is_empty(self) -> bool:
        return not self.personal and not self.professional


class TinyGoal(SQLModel):
    id: int
    text: str
    completed_at: Optional[str] = None
    created_at: Optional[str] = None


__all__ = ["Goal", "GoalCategory", "Goals", "SubTask", "TinyGoal"]
