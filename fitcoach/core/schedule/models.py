"""
Domain models for the client calendar.

Strength and cardio sessions come from different tables and carry
different details, but the calendar treats them alike over their shared
shape (client, date, completion) plus a `type` discriminant.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import ClassVar, Optional, Union
from uuid import uuid4

from ..program.models import utc_now


class SessionType(Enum):
    """Discriminant of UnifiedCalendarItem. `rank` is the same-day order."""
    STRENGTH = "strength"
    CARDIO = "cardio"

    @property
    def rank(self) -> int:
        return _SESSION_RANK[self]


_SESSION_RANK = {SessionType.STRENGTH: 0, SessionType.CARDIO: 1}


class CardioBlockType(Enum):
    CONTINUOUS = "continuous"
    INTERVALS = "intervals"
    STATION = "station"


@dataclass
class CardioBlock:
    """
    One block of a cardio session.

    Continuous blocks (easy runs, warm-ups) use duration/distance and a
    target pace or heart rate. Interval blocks repeat a work/rest pair
    `sets` times.
    """
    id: str = field(default_factory=lambda: str(uuid4()))
    type: CardioBlockType = CardioBlockType.CONTINUOUS
    notes: Optional[str] = None
    duration: Optional[float] = None  # minutes
    distance: Optional[float] = None  # km
    target_pace: Optional[str] = None
    target_hr: Optional[str] = None
    sets: Optional[int] = None
    work_distance: Optional[float] = None
    work_duration: Optional[float] = None
    work_target_pace: Optional[str] = None
    work_target_hr: Optional[str] = None
    rest_duration: Optional[float] = None
    rest_distance: Optional[float] = None
    rest_type: Optional[str] = None  # "active" or "passive"

    def __post_init__(self) -> None:
        if self.type is CardioBlockType.INTERVALS and self.sets is not None and self.sets < 1:
            raise ValueError("Interval blocks need at least one set")


@dataclass
class CardioStructure:
    """The prescription of a cardio session: a training type and its blocks."""
    training_type: Optional[str] = None  # rodaje, series, tempo, fartlek...
    blocks: list[CardioBlock] = field(default_factory=list)

    @property
    def total_duration_minutes(self) -> float:
        total = 0.0
        for block in self.blocks:
            if block.type is CardioBlockType.INTERVALS:
                reps = block.sets or 1
                total += reps * ((block.work_duration or 0) + (block.rest_duration or 0))
            else:
                total += block.duration or 0
        return total


@dataclass
class ScheduledSession:
    """Shape shared by every calendar session."""
    type: ClassVar[SessionType]

    id: str = field(default_factory=lambda: str(uuid4()))
    client_id: str = ""
    date: date = field(default_factory=lambda: utc_now().date())
    is_completed: bool = False
    created_at: datetime = field(default_factory=utc_now)


@dataclass
class StrengthSession(ScheduledSession):
    """A training day of a program, placed on a calendar date."""
    type: ClassVar[SessionType] = SessionType.STRENGTH

    program_id: str = ""
    day_id: str = ""
    day_name: Optional[str] = None
    program_name: Optional[str] = None


@dataclass
class CardioSession(ScheduledSession):
    """A running/cardio session, with results logged by the client."""
    type: ClassVar[SessionType] = SessionType.CARDIO

    name: str = ""
    structure: CardioStructure = field(default_factory=CardioStructure)
    description: Optional[str] = None
    rpe: Optional[int] = None
    duration_minutes: Optional[float] = None
    distance_km: Optional[float] = None
    notes: Optional[str] = None


UnifiedCalendarItem = Union[StrengthSession, CardioSession]


@dataclass(frozen=True)
class CheckinEvent:
    """A client's next check-in, as shown on the coach calendar."""
    client_id: str
    client_name: str
    date: date
    is_urgent: bool
    type: str = "checkin"

    @property
    def id(self) -> str:
        return f"checkin-{self.client_id}"
