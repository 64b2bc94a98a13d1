"""
Macro and diet plan API endpoints.

Creating a plan supersedes the client's current one from the new plan's
effective_from onwards. Older versions stay readable through the history
endpoints.
"""

import logging
from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Query, status
from pydantic import BaseModel, Field

from ...core.nutrition import DietPlan, MacroPlan, MealOption, MealTime
from ..dependencies import ClientActorDep, CoachDep, PlanVersioningDep

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Request/Response Models
# ---------------------------------------------------------------------------

class CreateMacroPlanRequest(BaseModel):
    """Daily targets. effective_from defaults to today."""
    kcal: int = Field(ge=0, description="Daily calories")
    protein: int = Field(ge=0, description="Grams of protein")
    carbs: int = Field(ge=0, description="Grams of carbohydrate")
    fat: int = Field(ge=0, description="Grams of fat")
    steps_goal: Optional[int] = Field(None, ge=0)
    cardio_goal: Optional[str] = Field(None, max_length=255)
    effective_from: Optional[date] = None


class MacroPlanResponse(BaseModel):
    id: str
    client_id: str
    kcal: int
    protein: int
    carbs: int
    fat: int
    steps_goal: Optional[int] = None
    cardio_goal: Optional[str] = None
    effective_from: date
    effective_to: Optional[date] = None
    created_at: datetime


class MealOptionModel(BaseModel):
    name: str = Field(min_length=1)
    foods: list[str] = Field(default_factory=list)
    tips: Optional[str] = None
    coach_note: Optional[str] = None


class MealTimeModel(BaseModel):
    name: str = Field(min_length=1, description="e.g. Breakfast")
    options: list[MealOptionModel] = Field(default_factory=list)


class CreateDietPlanRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    meals: list[MealTimeModel] = Field(default_factory=list)
    effective_from: Optional[date] = None


class DietPlanResponse(BaseModel):
    id: str
    client_id: str
    name: str
    meals: list[MealTimeModel]
    effective_from: date
    effective_to: Optional[date] = None
    created_at: datetime


def _macro_response(plan: MacroPlan) -> MacroPlanResponse:
    return MacroPlanResponse(
        id=plan.id,
        client_id=plan.client_id,
        kcal=plan.kcal,
        protein=plan.protein,
        carbs=plan.carbs,
        fat=plan.fat,
        steps_goal=plan.steps_goal,
        cardio_goal=plan.cardio_goal,
        effective_from=plan.effective_from,
        effective_to=plan.effective_to,
        created_at=plan.created_at,
    )


def _diet_response(plan: DietPlan) -> DietPlanResponse:
    return DietPlanResponse(
        id=plan.id,
        client_id=plan.client_id,
        name=plan.name,
        meals=[
            MealTimeModel(
                name=meal.name,
                options=[
                    MealOptionModel(
                        name=option.name,
                        foods=option.foods,
                        tips=option.tips,
                        coach_note=option.coach_note,
                    )
                    for option in meal.options
                ],
            )
            for meal in plan.meals
        ],
        effective_from=plan.effective_from,
        effective_to=plan.effective_to,
        created_at=plan.created_at,
    )


# ---------------------------------------------------------------------------
# Macro plans
# ---------------------------------------------------------------------------

@router.post(
    "/clients/{client_id}/macro-plans",
    response_model=MacroPlanResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a macro plan version",
)
async def create_macro_plan(
    client_id: str,
    request: CreateMacroPlanRequest,
    actor: CoachDep,
    versioning: PlanVersioningDep,
) -> MacroPlanResponse:
    plan = MacroPlan(
        client_id=client_id,
        kcal=request.kcal,
        protein=request.protein,
        carbs=request.carbs,
        fat=request.fat,
        steps_goal=request.steps_goal,
        cardio_goal=request.cardio_goal,
    )
    if request.effective_from:
        plan.effective_from = request.effective_from
    return _macro_response(versioning.create_macro_plan(plan))


@router.get(
    "/clients/{client_id}/macro-plans",
    response_model=list[MacroPlanResponse],
    summary="Macro plan history, newest first",
)
async def list_macro_plans(
    client_id: str,
    actor: ClientActorDep,
    versioning: PlanVersioningDep,
) -> list[MacroPlanResponse]:
    return [_macro_response(p) for p in versioning.macro_plan_history(client_id)]


@router.get(
    "/clients/{client_id}/macro-plans/active",
    response_model=Optional[MacroPlanResponse],
    summary="Macro plan in effect on a day (default today)",
)
async def get_active_macro_plan(
    client_id: str,
    actor: ClientActorDep,
    versioning: PlanVersioningDep,
    on: Optional[date] = Query(None, description="Day to resolve, YYYY-MM-DD"),
) -> Optional[MacroPlanResponse]:
    plan = versioning.active_macro_plan(client_id, on)
    return _macro_response(plan) if plan else None


# ---------------------------------------------------------------------------
# Diet plans
# ---------------------------------------------------------------------------

@router.post(
    "/clients/{client_id}/diet-plans",
    response_model=DietPlanResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a diet plan version",
)
async def create_diet_plan(
    client_id: str,
    request: CreateDietPlanRequest,
    actor: CoachDep,
    versioning: PlanVersioningDep,
) -> DietPlanResponse:
    plan = DietPlan(
        client_id=client_id,
        name=request.name,
        meals=[
            MealTime(
                name=meal.name,
                options=[MealOption(**option.model_dump()) for option in meal.options],
            )
            for meal in request.meals
        ],
    )
    if request.effective_from:
        plan.effective_from = request.effective_from
    return _diet_response(versioning.create_diet_plan(plan))


@router.get(
    "/clients/{client_id}/diet-plans",
    response_model=list[DietPlanResponse],
    summary="Diet plan history, newest first",
)
async def list_diet_plans(
    client_id: str,
    actor: ClientActorDep,
    versioning: PlanVersioningDep,
) -> list[DietPlanResponse]:
    return [_diet_response(p) for p in versioning.diet_plan_history(client_id)]


@router.get(
    "/clients/{client_id}/diet-plans/active",
    response_model=Optional[DietPlanResponse],
    summary="Diet plan in effect on a day (default today)",
)
async def get_active_diet_plan(
    client_id: str,
    actor: ClientActorDep,
    versioning: PlanVersioningDep,
    on: Optional[date] = Query(None, description="Day to resolve, YYYY-MM-DD"),
) -> Optional[DietPlanResponse]:
    plan = versioning.active_diet_plan(client_id, on)
    return _diet_response(plan) if plan else None
