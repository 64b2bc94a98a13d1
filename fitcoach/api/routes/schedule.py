"""
Calendar API endpoints.

- Client schedule: strength and cardio sessions merged into one list
- Scheduling: place a training day or a cardio session on a date
- Completion: mark sessions done, log cardio results
- Check-ins: the coach's upcoming check-ins and monthly calendar
"""

import logging
from datetime import date, datetime
from typing import Literal, Optional

from fastapi import APIRouter, Query, status
from pydantic import BaseModel, Field

from ...core.schedule import (
    CardioBlock,
    CardioBlockType,
    CardioSession,
    CardioStructure,
    CheckinEvent,
    SessionType,
    StrengthSession,
    UnifiedCalendarItem,
)
from ..dependencies import (
    ActorDep,
    ClientActorDep,
    CoachDep,
    ScheduleAggregatorDep,
    SettingsDep,
)

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Request/Response Models
# ---------------------------------------------------------------------------

class CardioBlockModel(BaseModel):
    """One block of a cardio session (continuous run or interval set)."""
    type: CardioBlockType = CardioBlockType.CONTINUOUS
    notes: Optional[str] = None
    duration: Optional[float] = Field(None, ge=0, description="Minutes")
    distance: Optional[float] = Field(None, ge=0, description="Kilometres")
    target_pace: Optional[str] = None
    target_hr: Optional[str] = None
    sets: Optional[int] = Field(None, ge=1)
    work_distance: Optional[float] = Field(None, ge=0)
    work_duration: Optional[float] = Field(None, ge=0)
    work_target_pace: Optional[str] = None
    work_target_hr: Optional[str] = None
    rest_duration: Optional[float] = Field(None, ge=0)
    rest_distance: Optional[float] = Field(None, ge=0)
    rest_type: Optional[Literal["active", "passive"]] = None


class CardioStructureModel(BaseModel):
    training_type: Optional[str] = Field(None, description="e.g. rodaje, series, tempo")
    blocks: list[CardioBlockModel] = Field(default_factory=list)


class ScheduleStrengthRequest(BaseModel):
    program_id: str
    day_id: str
    date: date


class ScheduleCardioRequest(BaseModel):
    date: date
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    structure: CardioStructureModel = Field(default_factory=CardioStructureModel)


class UpdateSessionRequest(BaseModel):
    is_completed: bool


class CardioResultRequest(BaseModel):
    """What the client logs after a cardio session."""
    rpe: Optional[int] = Field(None, ge=1, le=10, description="Rate of perceived exertion")
    duration_minutes: Optional[float] = Field(None, ge=0)
    distance_km: Optional[float] = Field(None, ge=0)
    notes: Optional[str] = Field(None, max_length=2000)


class CalendarItemResponse(BaseModel):
    """A calendar entry; `type` tells strength and cardio apart."""
    id: str
    type: SessionType
    client_id: str
    date: date
    is_completed: bool
    created_at: datetime

    # Strength
    program_id: Optional[str] = None
    day_id: Optional[str] = None
    day_name: Optional[str] = None
    program_name: Optional[str] = None

    # Cardio
    name: Optional[str] = None
    description: Optional[str] = None
    structure: Optional[CardioStructureModel] = None
    total_duration_minutes: Optional[float] = None
    rpe: Optional[int] = None
    duration_minutes: Optional[float] = None
    distance_km: Optional[float] = None
    notes: Optional[str] = None


class CheckinResponse(BaseModel):
    id: str
    type: str
    client_id: str
    client_name: str
    date: date
    is_urgent: bool


# ---------------------------------------------------------------------------
# Conversion helpers
# ---------------------------------------------------------------------------

def _structure_to_domain(model: CardioStructureModel) -> CardioStructure:
    return CardioStructure(
        training_type=model.training_type,
        blocks=[CardioBlock(**block.model_dump()) for block in model.blocks],
    )


def _structure_to_model(structure: CardioStructure) -> CardioStructureModel:
    return CardioStructureModel(
        training_type=structure.training_type,
        blocks=[
            CardioBlockModel(**{k: v for k, v in vars(block).items() if k != "id"})
            for block in structure.blocks
        ],
    )


def _item_response(item: UnifiedCalendarItem) -> CalendarItemResponse:
    response = CalendarItemResponse(
        id=item.id,
        type=item.type,
        client_id=item.client_id,
        date=item.date,
        is_completed=item.is_completed,
        created_at=item.created_at,
    )
    if isinstance(item, StrengthSession):
        response.program_id = item.program_id
        response.day_id = item.day_id
        response.day_name = item.day_name
        response.program_name = item.program_name
    elif isinstance(item, CardioSession):
        response.name = item.name
        response.description = item.description
        response.structure = _structure_to_model(item.structure)
        response.total_duration_minutes = item.structure.total_duration_minutes
        response.rpe = item.rpe
        response.duration_minutes = item.duration_minutes
        response.distance_km = item.distance_km
        response.notes = item.notes
    return response


def _checkin_response(event: CheckinEvent) -> CheckinResponse:
    return CheckinResponse(
        id=event.id,
        type=event.type,
        client_id=event.client_id,
        client_name=event.client_name,
        date=event.date,
        is_urgent=event.is_urgent,
    )


# ---------------------------------------------------------------------------
# Client schedule
# ---------------------------------------------------------------------------

@router.get(
    "/clients/{client_id}/schedule",
    response_model=list[CalendarItemResponse],
    summary="Get a client's schedule",
    description=(
        "Strength and cardio sessions between two dates (inclusive), ordered by "
        "date. Fails with 503 rather than returning a partial list."
    ),
)
async def get_schedule(
    client_id: str,
    actor: ClientActorDep,
    aggregator: ScheduleAggregatorDep,
    start: str = Query(..., description="First day, YYYY-MM-DD"),
    end: str = Query(..., description="Last day, YYYY-MM-DD"),
) -> list[CalendarItemResponse]:
    items = aggregator.get_schedule(client_id, start, end)
    return [_item_response(item) for item in items]


@router.post(
    "/clients/{client_id}/schedule/strength",
    response_model=CalendarItemResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Schedule a training day",
)
async def schedule_strength(
    client_id: str,
    request: ScheduleStrengthRequest,
    actor: CoachDep,
    aggregator: ScheduleAggregatorDep,
) -> CalendarItemResponse:
    session = aggregator.schedule_strength(
        client_id, request.program_id, request.day_id, request.date
    )
    return _item_response(session)


@router.post(
    "/clients/{client_id}/schedule/cardio",
    response_model=CalendarItemResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Schedule a cardio session",
)
async def schedule_cardio(
    client_id: str,
    request: ScheduleCardioRequest,
    actor: CoachDep,
    aggregator: ScheduleAggregatorDep,
) -> CalendarItemResponse:
    session = aggregator.schedule_cardio(
        client_id,
        request.date,
        request.name,
        _structure_to_domain(request.structure),
        description=request.description,
    )
    return _item_response(session)


@router.patch(
    "/schedule/{kind}/{session_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Mark a session completed or not",
)
async def update_session(
    kind: SessionType,
    session_id: str,
    request: UpdateSessionRequest,
    actor: ActorDep,
    aggregator: ScheduleAggregatorDep,
) -> None:
    aggregator.set_completed(kind, session_id, request.is_completed, actor=actor)


@router.post(
    "/schedule/cardio/{session_id}/result",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Log the result of a cardio session",
)
async def log_cardio_result(
    session_id: str,
    request: CardioResultRequest,
    actor: ActorDep,
    aggregator: ScheduleAggregatorDep,
) -> None:
    aggregator.log_cardio_result(
        session_id,
        rpe=request.rpe,
        duration_minutes=request.duration_minutes,
        distance_km=request.distance_km,
        notes=request.notes,
        actor=actor,
    )


# ---------------------------------------------------------------------------
# Check-ins
# ---------------------------------------------------------------------------

@router.get(
    "/checkins/upcoming",
    response_model=list[CheckinResponse],
    summary="Upcoming check-ins of the coach's active clients",
)
async def upcoming_checkins(
    actor: CoachDep,
    aggregator: ScheduleAggregatorDep,
    settings: SettingsDep,
    days: Optional[int] = Query(None, ge=0, le=366, description="Look-ahead window in days"),
) -> list[CheckinResponse]:
    window = settings.checkin_lookahead_days if days is None else days
    events = aggregator.upcoming_checkins(actor.actor_id, window)
    return [_checkin_response(event) for event in events]


@router.get(
    "/checkins/calendar",
    response_model=list[CheckinResponse],
    summary="Check-ins in a calendar month",
)
async def checkin_calendar(
    actor: CoachDep,
    aggregator: ScheduleAggregatorDep,
    year: int = Query(..., ge=2000, le=2100),
    month: int = Query(..., ge=1, le=12),
) -> list[CheckinResponse]:
    events = aggregator.calendar_events(actor.actor_id, year, month)
    return [_checkin_response(event) for event in events]
