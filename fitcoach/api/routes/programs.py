"""
Training program API endpoints.

Coaches create draft programs, build their structure (days, columns,
exercises) and activate them. Coaches and the owning client read the
matrix and write cells; which columns a client may write is decided by the
column policy, not here.

Cell writes through this API are applied immediately. Debouncing and the
saving indicator live in the SavePipeline, which interactive front-ends
drive on their side of the connection.
"""

import logging
from datetime import date, datetime
from typing import Optional, Union

from fastapi import APIRouter, Query, status
from pydantic import BaseModel, Field

from ...core.program import (
    CellStore,
    CellValue,
    Column,
    ColumnDataType,
    ColumnScope,
    Exercise,
    TrainingDay,
    TrainingProgram,
    TrainingProgramFull,
)
from ..dependencies import (
    ActorDep,
    ClientActorDep,
    CoachDep,
    ProgramLifecycleDep,
    ProgramRepositoryDep,
    StoreDep,
)

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Request/Response Models
# ---------------------------------------------------------------------------

class CreateProgramRequest(BaseModel):
    """Request to create a draft program."""
    client_id: str = Field(description="Client the program is for", min_length=1)
    name: str = Field(description="Program name", min_length=1, max_length=255)
    total_weeks: int = Field(description="Number of weeks in the program", ge=1, le=52)
    effective_from: Optional[date] = Field(None, description="Planned start date")
    effective_to: Optional[date] = Field(None, description="Planned end date")


class ProgramResponse(BaseModel):
    id: str
    client_id: str
    coach_id: Optional[str] = None
    name: str
    total_weeks: int
    status: str
    effective_from: Optional[date] = None
    effective_to: Optional[date] = None
    created_at: datetime


class AddDayRequest(BaseModel):
    name: str = Field(description="Day name, e.g. 'Upper A'", min_length=1, max_length=255)
    order: Optional[int] = Field(None, description="Position; appended when omitted", ge=0)


class DayResponse(BaseModel):
    id: str
    name: str
    order: int


class AddColumnRequest(BaseModel):
    """A new matrix column. Columns can't be changed once created."""
    label: str = Field(description="Column header", min_length=1, max_length=255)
    data_type: ColumnDataType = Field(ColumnDataType.TEXT, description="How values are entered")
    scope: ColumnScope = Field(
        ColumnScope.WEEK,
        description="'exercise' for one value across all weeks, 'week' for one per week",
    )
    editable_by_client: bool = Field(False, description="Whether the client may write it")
    order: Optional[int] = Field(None, ge=0)


class ColumnResponse(BaseModel):
    id: str
    label: str
    data_type: ColumnDataType
    scope: ColumnScope
    editable_by_client: bool
    order: int


class AddExerciseRequest(BaseModel):
    day_id: str = Field(description="Training day the exercise belongs to")
    name: str = Field(description="Exercise name", min_length=1, max_length=255)
    order: Optional[int] = Field(None, ge=0)


class ExerciseResponse(BaseModel):
    id: str
    day_id: str
    name: str
    order: int


class CellResponse(BaseModel):
    """Effective value of one cell for one week."""
    exercise_id: str
    column_id: str
    week: int = Field(description="Week that was asked for")
    resolved_week: int = Field(description="Week the value is stored under (0 = all weeks)")
    value: Union[float, str, None] = None
    display: str = ""
    updated_at: Optional[datetime] = None


class WriteCellRequest(BaseModel):
    exercise_id: str
    column_id: str
    week: int = Field(description="Week being edited (ignored for exercise-scoped columns)", ge=0)
    value: Union[float, str, None] = Field(None, description="New value; empty clears the cell")


class ProgramDetailResponse(BaseModel):
    """Everything needed to render a program's matrix."""
    program: ProgramResponse
    days: list[DayResponse]
    columns: list[ColumnResponse]
    exercises: list[ExerciseResponse]
    cells: list[CellResponse]


# ---------------------------------------------------------------------------
# Conversion helpers
# ---------------------------------------------------------------------------

def _program_response(program: TrainingProgram) -> ProgramResponse:
    return ProgramResponse(
        id=program.id,
        client_id=program.client_id,
        coach_id=program.coach_id,
        name=program.name,
        total_weeks=program.total_weeks,
        status=program.status.value,
        effective_from=program.effective_from,
        effective_to=program.effective_to,
        created_at=program.created_at,
    )


def _day_response(day: TrainingDay) -> DayResponse:
    return DayResponse(id=day.id, name=day.name, order=day.order)


def _column_response(column: Column) -> ColumnResponse:
    return ColumnResponse(
        id=column.id,
        label=column.label,
        data_type=column.data_type,
        scope=column.scope,
        editable_by_client=column.editable_by_client,
        order=column.order,
    )


def _exercise_response(exercise: Exercise) -> ExerciseResponse:
    return ExerciseResponse(
        id=exercise.id, day_id=exercise.day_id, name=exercise.name, order=exercise.order
    )


def _cell_response(
    exercise_id: str,
    column_id: str,
    week: int,
    resolved_week: int,
    value: Optional[CellValue],
    updated_at: Optional[datetime] = None,
) -> CellResponse:
    return CellResponse(
        exercise_id=exercise_id,
        column_id=column_id,
        week=week,
        resolved_week=resolved_week,
        value=value.raw if value else None,
        display=value.display if value else "",
        updated_at=updated_at,
    )


def _detail_response(full: TrainingProgramFull) -> ProgramDetailResponse:
    return ProgramDetailResponse(
        program=_program_response(full.program),
        days=[_day_response(d) for d in full.days],
        columns=[_column_response(c) for c in full.columns],
        exercises=[_exercise_response(e) for e in full.exercises],
        cells=[
            _cell_response(
                cell.exercise_id,
                cell.column_id,
                cell.week_number,
                cell.week_number,
                cell.value,
                cell.updated_at,
            )
            for cell in full.cells
            if cell.value is not None and not cell.value.is_empty
        ],
    )


# ---------------------------------------------------------------------------
# Programs
# ---------------------------------------------------------------------------

@router.post(
    "/programs",
    response_model=ProgramResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a draft program",
)
async def create_program(
    request: CreateProgramRequest,
    actor: CoachDep,
    lifecycle: ProgramLifecycleDep,
) -> ProgramResponse:
    program = lifecycle.create_program(
        client_id=request.client_id,
        coach_id=actor.actor_id,
        name=request.name,
        total_weeks=request.total_weeks,
        effective_from=request.effective_from,
        effective_to=request.effective_to,
    )
    return _program_response(program)


@router.get(
    "/programs/{program_id}",
    response_model=ProgramDetailResponse,
    summary="Get a program with its matrix",
)
async def get_program(
    program_id: str,
    actor: ActorDep,
    repository: ProgramRepositoryDep,
) -> ProgramDetailResponse:
    full = repository.load_full(program_id)
    actor.ensure_access(full.program.client_id)
    return _detail_response(full)


@router.post(
    "/programs/{program_id}/activate",
    response_model=ProgramResponse,
    summary="Activate a program",
    description="Archives the client's current active program and activates this one, atomically.",
)
async def activate_program(
    program_id: str,
    actor: CoachDep,
    lifecycle: ProgramLifecycleDep,
) -> ProgramResponse:
    logger.info(
        "Activation requested",
        extra={"program_id": program_id, "coach_id": actor.actor_id}
    )
    return _program_response(lifecycle.activate(program_id))


@router.post(
    "/programs/{program_id}/archive",
    response_model=ProgramResponse,
    summary="Archive a draft program",
    description="The active program cannot be archived (409); activate its replacement instead.",
)
async def archive_program(
    program_id: str,
    actor: CoachDep,
    lifecycle: ProgramLifecycleDep,
) -> ProgramResponse:
    return _program_response(lifecycle.archive(program_id))


@router.post(
    "/programs/{program_id}/duplicate",
    response_model=ProgramResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Copy a program into a new draft",
    description="Copies days, columns, exercises and every written cell.",
)
async def duplicate_program(
    program_id: str,
    actor: CoachDep,
    lifecycle: ProgramLifecycleDep,
) -> ProgramResponse:
    return _program_response(lifecycle.duplicate(program_id))


@router.get(
    "/clients/{client_id}/programs",
    response_model=list[ProgramResponse],
    summary="List a client's programs, newest first",
)
async def list_client_programs(
    client_id: str,
    actor: ClientActorDep,
    repository: ProgramRepositoryDep,
) -> list[ProgramResponse]:
    return [_program_response(p) for p in repository.programs_for_client(client_id)]


@router.get(
    "/clients/{client_id}/programs/active",
    response_model=Optional[ProgramResponse],
    summary="Get a client's active program",
    description="Returns null when the client has never had a program activated.",
)
async def get_active_program(
    client_id: str,
    actor: ClientActorDep,
    lifecycle: ProgramLifecycleDep,
) -> Optional[ProgramResponse]:
    program = lifecycle.active_program(client_id)
    return _program_response(program) if program else None


# ---------------------------------------------------------------------------
# Structure
# ---------------------------------------------------------------------------

@router.post(
    "/programs/{program_id}/days",
    response_model=DayResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add a training day",
)
async def add_day(
    program_id: str,
    request: AddDayRequest,
    actor: CoachDep,
    repository: ProgramRepositoryDep,
) -> DayResponse:
    return _day_response(repository.add_day(program_id, request.name, request.order))


@router.post(
    "/programs/{program_id}/columns",
    response_model=ColumnResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add a matrix column",
)
async def add_column(
    program_id: str,
    request: AddColumnRequest,
    actor: CoachDep,
    repository: ProgramRepositoryDep,
) -> ColumnResponse:
    column = repository.add_column(
        program_id,
        request.label,
        data_type=request.data_type,
        scope=request.scope,
        editable_by_client=request.editable_by_client,
        order=request.order,
    )
    return _column_response(column)


@router.post(
    "/programs/{program_id}/exercises",
    response_model=ExerciseResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add an exercise to a training day",
)
async def add_exercise(
    program_id: str,
    request: AddExerciseRequest,
    actor: CoachDep,
    repository: ProgramRepositoryDep,
) -> ExerciseResponse:
    exercise = repository.add_exercise(program_id, request.day_id, request.name, request.order)
    return _exercise_response(exercise)


# ---------------------------------------------------------------------------
# Cells
# ---------------------------------------------------------------------------

@router.get(
    "/programs/{program_id}/cells",
    response_model=CellResponse,
    summary="Read the effective value of a cell",
    description="Cells nobody has written yet read as null.",
)
async def get_cell(
    program_id: str,
    actor: ActorDep,
    store: StoreDep,
    exercise_id: str = Query(..., description="Exercise row"),
    column_id: str = Query(..., description="Column"),
    week: int = Query(..., ge=0, description="Week to read"),
) -> CellResponse:
    cells = CellStore.load(store, program_id)
    actor.ensure_access(cells.client_id)
    value = cells.get_value(exercise_id, column_id, week)
    return _cell_response(
        exercise_id, column_id, week, cells.resolve_week(column_id, week), value
    )


@router.put(
    "/programs/{program_id}/cells",
    response_model=CellResponse,
    summary="Write a cell",
    description=(
        "Last write wins. Clients may only write columns the coach marked as "
        "client-editable; anything else is rejected with 403 and nothing is stored."
    ),
)
async def write_cell(
    program_id: str,
    request: WriteCellRequest,
    actor: ActorDep,
    store: StoreDep,
) -> CellResponse:
    cells = CellStore.load(store, program_id)
    ref = cells.set_value(
        request.exercise_id,
        request.column_id,
        request.week,
        request.value,
        actor,
    )
    return _cell_response(
        ref.key.exercise_id,
        ref.key.column_id,
        request.week,
        ref.key.week,
        ref.value,
        ref.updated_at,
    )
