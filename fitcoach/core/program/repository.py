"""
Repository for training program structure.

Translates between the program domain models and the rows a
RelationalStore holds. Application code asks for programs, days, columns
and exercises in domain terms and never builds rows itself.
"""

import logging
from datetime import date, datetime
from typing import Any, Optional
from uuid import uuid4

from ..errors import RecordNotFound
from ..store import RelationalStore
from .models import (
    Cell,
    CellValue,
    Column,
    ColumnDataType,
    ColumnScope,
    Exercise,
    ProgramStatus,
    TrainingDay,
    TrainingProgram,
    TrainingProgramFull,
    utc_now,
)

logger = logging.getLogger(__name__)


PROGRAMS = "training_programs"
DAYS = "training_days"
COLUMNS = "training_columns"
EXERCISES = "training_exercises"
CELLS = "training_cells"

CELL_CONFLICT_KEY = ("exercise_id", "column_id", "week_index")


# ---------------------------------------------------------------------------
# Row conversion
# ---------------------------------------------------------------------------

def to_iso_date(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None


def from_iso_date(value: Any) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def from_iso_timestamp(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def program_to_row(program: TrainingProgram) -> dict:
    return {
        "id": program.id,
        "client_id": program.client_id,
        "coach_id": program.coach_id,
        "name": program.name,
        "total_weeks": program.total_weeks,
        "effective_from": to_iso_date(program.effective_from),
        "effective_to": to_iso_date(program.effective_to),
        "status": program.status.value,
        "created_at": program.created_at.isoformat(),
    }


def program_from_row(row: dict) -> TrainingProgram:
    return TrainingProgram(
        id=row["id"],
        client_id=row["client_id"],
        coach_id=row.get("coach_id"),
        name=row.get("name") or "",
        total_weeks=row.get("total_weeks") or 1,
        effective_from=from_iso_date(row.get("effective_from")),
        effective_to=from_iso_date(row.get("effective_to")),
        status=ProgramStatus(row.get("status") or "draft"),
        created_at=from_iso_timestamp(row.get("created_at")) or utc_now(),
    )


def column_from_row(row: dict) -> Column:
    return Column(
        id=row["id"],
        program_id=row.get("program_id"),
        label=row.get("label") or "",
        data_type=ColumnDataType(row.get("data_type") or "text"),
        scope=ColumnScope.from_db(row.get("scope") or "week"),
        editable_by_client=(row.get("editable_by") or "coach") != "coach",
        order=row.get("order_index") or 0,
    )


def day_from_row(row: dict) -> TrainingDay:
    return TrainingDay(
        id=row["id"],
        program_id=row.get("program_id"),
        name=row.get("name") or "",
        order=row.get("order_index") or 0,
    )


def exercise_from_row(row: dict) -> Exercise:
    return Exercise(
        id=row["id"],
        program_id=row.get("program_id"),
        day_id=row["day_id"],
        name=row.get("exercise_name") or "",
        order=row.get("order_index") or 0,
    )


def cell_from_row(row: dict, column: Optional[Column]) -> Cell:
    kind = column.data_type if column else ColumnDataType(row.get("value_type") or "text")
    return Cell(
        id=row["id"],
        exercise_id=row["exercise_id"],
        column_id=row["column_id"],
        week_number=row.get("week_index") or 0,
        value=CellValue.from_stored(kind, row.get("value")),
        updated_at=from_iso_timestamp(row.get("updated_at")),
        updated_by=row.get("updated_by"),
    )


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------

class ProgramRepository:
    """
    Reads and writes program structure.

    Columns and exercises are only ever added, never edited: a column's
    type and scope define every cell that references it.
    """

    def __init__(self, store: RelationalStore) -> None:
        self._store = store

    def save_program(self, program: TrainingProgram) -> TrainingProgram:
        self._store.upsert(PROGRAMS, program_to_row(program), ("id",))
        return program

    def get_program(self, program_id: str) -> TrainingProgram:
        rows = self._store.select(PROGRAMS, {"id": program_id})
        if not rows:
            raise RecordNotFound(PROGRAMS, program_id)
        return program_from_row(rows[0])

    def programs_for_client(self, client_id: str) -> list[TrainingProgram]:
        """All programs for a client, newest first."""
        rows = self._store.select(
            PROGRAMS, {"client_id": client_id}, order_by=["-created_at"]
        )
        return [program_from_row(row) for row in rows]

    def add_day(self, program_id: str, name: str, order: Optional[int] = None) -> TrainingDay:
        self.get_program(program_id)
        if order is None:
            order = len(self.days(program_id))
        row = self._store.insert(DAYS, {
            "id": str(uuid4()),
            "program_id": program_id,
            "name": name,
            "order_index": order,
        })
        return day_from_row(row)

    def add_column(
        self,
        program_id: str,
        label: str,
        data_type: ColumnDataType = ColumnDataType.TEXT,
        scope: ColumnScope = ColumnScope.WEEK,
        editable_by_client: bool = False,
        order: Optional[int] = None,
    ) -> Column:
        self.get_program(program_id)
        if order is None:
            order = len(self.columns(program_id))
        row = self._store.insert(COLUMNS, {
            "id": str(uuid4()),
            "program_id": program_id,
            "label": label,
            "data_type": data_type.value,
            "scope": scope.value,
            "editable_by": "both" if editable_by_client else "coach",
            "order_index": order,
        })
        logger.info(
            "Added column",
            extra={"program_id": program_id, "column_id": row["id"], "scope": scope.value}
        )
        return column_from_row(row)

    def add_exercise(
        self,
        program_id: str,
        day_id: str,
        name: str,
        order: Optional[int] = None,
    ) -> Exercise:
        if not any(day.id == day_id for day in self.days(program_id)):
            raise RecordNotFound(DAYS, day_id)
        if order is None:
            order = len([e for e in self.exercises(program_id) if e.day_id == day_id])
        row = self._store.insert(EXERCISES, {
            "id": str(uuid4()),
            "program_id": program_id,
            "day_id": day_id,
            "exercise_name": name,
            "order_index": order,
        })
        return exercise_from_row(row)

    def days(self, program_id: str) -> list[TrainingDay]:
        rows = self._store.select(DAYS, {"program_id": program_id}, order_by=["order_index"])
        return [day_from_row(row) for row in rows]

    def columns(self, program_id: str) -> list[Column]:
        rows = self._store.select(COLUMNS, {"program_id": program_id}, order_by=["order_index"])
        return [column_from_row(row) for row in rows]

    def exercises(self, program_id: str) -> list[Exercise]:
        rows = self._store.select(
            EXERCISES, {"program_id": program_id}, order_by=["order_index"]
        )
        return [exercise_from_row(row) for row in rows]

    def cells(self, program_id: str, columns: list[Column]) -> list[Cell]:
        by_id = {column.id: column for column in columns}
        rows = self._store.select(CELLS, {"program_id": program_id})
        return [cell_from_row(row, by_id.get(row["column_id"])) for row in rows]

    def load_full(self, program_id: str) -> TrainingProgramFull:
        """Everything needed to render one program's matrix."""
        program = self.get_program(program_id)
        columns = self.columns(program_id)
        return TrainingProgramFull(
            program=program,
            days=self.days(program_id),
            columns=columns,
            exercises=self.exercises(program_id),
            cells=self.cells(program_id, columns),
        )
