"""
Domain models for training programs.

A training program is a sparse matrix: exercises (grouped into days) down
one side, coach-defined columns across the top, and one layer per week.
Exercises and columns carry no mutable data themselves. Everything a coach
prescribes or a client logs lives in Cells.

These are plain dataclasses with no knowledge of storage or HTTP.
"""

import math
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Optional, Union
from uuid import uuid4

from ..errors import InvalidCellValue


# Week sentinel for exercise-scoped cells: the value applies to every week.
ALL_WEEKS = 0


class ColumnDataType(Enum):
    """How a column's values are entered and displayed."""
    TEXT = "text"
    NUMBER = "number"
    TIME = "time"
    TEXTAREA = "textarea"


class ColumnScope(Enum):
    """
    Whether a column holds one value for the whole program or one per week.

    EXERCISE columns are prescriptions that don't change week to week
    (tempo, technique notes). WEEK columns are what varies: load, reps
    achieved, RPE.
    """
    EXERCISE = "exercise"
    WEEK = "week"

    @classmethod
    def from_db(cls, raw: str) -> "ColumnScope":
        # Older rows were written with "cell" for per-week columns
        if raw == "cell":
            return cls.WEEK
        return cls(raw)


class ProgramStatus(Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    ARCHIVED = "archived"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Cell values
# ---------------------------------------------------------------------------

_TIME_PATTERN = re.compile(r"^(?:(\d{1,2}):)?([0-5]?\d):([0-5]\d)$")


@dataclass(frozen=True)
class CellValue:
    """
    A typed cell value.

    `raw` is a float for NUMBER cells and a string for the other kinds.
    None means the cell was cleared.
    """
    kind: ColumnDataType
    raw: Union[str, float, None] = None

    @classmethod
    def parse(cls, kind: ColumnDataType, value) -> "CellValue":
        """Validate and normalize user input for a column of this kind."""
        if value is None or (isinstance(value, str) and not value.strip()):
            return cls(kind=kind)

        if kind is ColumnDataType.NUMBER:
            return cls(kind=kind, raw=_parse_number(value))

        if isinstance(value, bool) or not isinstance(value, (str, int, float)):
            raise InvalidCellValue(
                f"Expected a string for a {kind.value} column, got {type(value).__name__}"
            )
        text = str(value)

        if kind is ColumnDataType.TIME:
            text = text.strip()
            if not _TIME_PATTERN.match(text):
                raise InvalidCellValue(
                    f"'{text}' is not a time (use M:SS, MM:SS or H:MM:SS)"
                )
            return cls(kind=kind, raw=text)

        if kind is ColumnDataType.TEXT and ("\n" in text or "\r" in text):
            raise InvalidCellValue("Text columns hold a single line; use a textarea column")

        return cls(kind=kind, raw=text)

    @classmethod
    def from_stored(cls, kind: ColumnDataType, stored: Optional[str]) -> "CellValue":
        """Decode a value persisted by to_stored()."""
        if stored is None or stored == "":
            return cls(kind=kind)
        if kind is ColumnDataType.NUMBER:
            return cls(kind=kind, raw=float(stored))
        return cls(kind=kind, raw=stored)

    def to_stored(self) -> Optional[str]:
        if self.raw is None:
            return None
        if self.kind is ColumnDataType.NUMBER:
            number = float(self.raw)
            return str(int(number)) if number.is_integer() else repr(number)
        return str(self.raw)

    @property
    def is_empty(self) -> bool:
        return self.raw is None

    @property
    def display(self) -> str:
        """What the table/card renders."""
        return self.to_stored() or ""


def _parse_number(value) -> float:
    if isinstance(value, bool):
        raise InvalidCellValue("Booleans are not numbers")
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        # Comma decimals are common in the gym ("82,5")
        try:
            number = float(value.strip().replace(",", "."))
        except ValueError:
            raise InvalidCellValue(f"'{value}' is not a number") from None
    else:
        raise InvalidCellValue(f"Expected a number, got {type(value).__name__}")
    if not math.isfinite(number):
        raise InvalidCellValue("Numbers must be finite")
    return number


# ---------------------------------------------------------------------------
# Matrix structure
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Column:
    """
    A coach-defined column of the training matrix.

    Frozen because columns are immutable once created: they define how
    every cell referencing them is rendered and who may write it.
    """
    id: str
    label: str
    data_type: ColumnDataType = ColumnDataType.TEXT
    scope: ColumnScope = ColumnScope.WEEK
    editable_by_client: bool = False
    order: int = 0
    program_id: Optional[str] = None


@dataclass(frozen=True)
class TrainingDay:
    id: str
    name: str
    order: int = 0
    program_id: Optional[str] = None


@dataclass(frozen=True)
class Exercise:
    """One exercise row, belonging to exactly one training day."""
    id: str
    day_id: str
    name: str
    order: int = 0
    program_id: Optional[str] = None


@dataclass(frozen=True)
class CellKey:
    """Resolved address of a cell: week is ALL_WEEKS for exercise-scoped columns."""
    exercise_id: str
    column_id: str
    week: int


@dataclass(frozen=True)
class CellRef:
    """What a successful write returns."""
    id: str
    key: CellKey
    value: CellValue
    updated_at: datetime


@dataclass
class Cell:
    id: str = field(default_factory=lambda: str(uuid4()))
    exercise_id: str = ""
    column_id: str = ""
    week_number: int = ALL_WEEKS
    value: Optional[CellValue] = None
    updated_at: Optional[datetime] = None
    updated_by: Optional[str] = None

    @property
    def key(self) -> CellKey:
        return CellKey(self.exercise_id, self.column_id, self.week_number)


# ---------------------------------------------------------------------------
# Programs
# ---------------------------------------------------------------------------

@dataclass
class TrainingProgram:
    """
    A client's training program.

    At most one program per client is ACTIVE at a time; ProgramLifecycle
    enforces that when promoting a draft.
    """
    id: str = field(default_factory=lambda: str(uuid4()))
    client_id: str = ""
    coach_id: Optional[str] = None
    name: str = ""
    total_weeks: int = 4
    effective_from: Optional[date] = None
    effective_to: Optional[date] = None
    status: ProgramStatus = ProgramStatus.DRAFT
    created_at: datetime = field(default_factory=utc_now)

    def __post_init__(self) -> None:
        if self.total_weeks < 1:
            raise ValueError("A program needs at least one week")

    @property
    def is_active(self) -> bool:
        return self.status is ProgramStatus.ACTIVE


@dataclass
class TrainingProgramFull:
    """A program with everything needed to render its matrix."""
    program: TrainingProgram
    days: list[TrainingDay] = field(default_factory=list)
    columns: list[Column] = field(default_factory=list)
    exercises: list[Exercise] = field(default_factory=list)
    cells: list[Cell] = field(default_factory=list)

    def exercises_for_day(self, day_id: str) -> list[Exercise]:
        return sorted(
            (e for e in self.exercises if e.day_id == day_id),
            key=lambda e: e.order,
        )
