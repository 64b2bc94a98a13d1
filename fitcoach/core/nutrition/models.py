"""
Domain models for macro targets and diet plans.

Both are versioned by effective date range rather than by a status flag:
a plan is active on a given day when the day falls in
[effective_from, effective_to], with an open end meaning "until replaced".
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional
from uuid import uuid4

from ..program.models import utc_now


@dataclass
class DateRangeVersion:
    """Shared shape of every date-range versioned plan."""
    id: str = field(default_factory=lambda: str(uuid4()))
    client_id: str = ""
    effective_from: date = field(default_factory=lambda: utc_now().date())
    effective_to: Optional[date] = None
    created_at: datetime = field(default_factory=utc_now)

    def is_active_on(self, day: date) -> bool:
        if day < self.effective_from:
            return False
        return self.effective_to is None or day <= self.effective_to

    @property
    def is_open_ended(self) -> bool:
        return self.effective_to is None


@dataclass
class MacroPlan(DateRangeVersion):
    """Daily calorie and macro targets set by the coach."""
    kcal: int = 0
    protein: int = 0
    carbs: int = 0
    fat: int = 0
    steps_goal: Optional[int] = None
    cardio_goal: Optional[str] = None

    def __post_init__(self) -> None:
        for name in ("kcal", "protein", "carbs", "fat"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} cannot be negative")


@dataclass
class MealOption:
    """One interchangeable option for a meal."""
    id: str = field(default_factory=lambda: str(uuid4()))
    name: str = ""
    foods: list[str] = field(default_factory=list)
    tips: Optional[str] = None
    coach_note: Optional[str] = None


@dataclass
class MealTime:
    """A meal slot in the day (breakfast, lunch...) with its options."""
    id: str = field(default_factory=lambda: str(uuid4()))
    name: str = ""
    options: list[MealOption] = field(default_factory=list)


@dataclass
class DietPlan(DateRangeVersion):
    name: str = ""
    meals: list[MealTime] = field(default_factory=list)
