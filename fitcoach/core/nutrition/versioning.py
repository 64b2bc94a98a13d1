"""
Date-range versioning for macro and diet plans.

Creating a plan supersedes the client's current one: every open-ended plan
that started on or before the new plan's first day is closed the day
before it, then the new plan is inserted. Like program activation, the
close and the insert are applied together or not at all.

"Active" is derived, never stored: the plan whose range contains the day,
preferring the most recent effective_from.
"""

import json
import logging
from datetime import date, timedelta
from typing import Callable, Optional

from ..errors import RecordNotFound
from ..program.models import utc_now
from ..program.repository import from_iso_date, from_iso_timestamp, to_iso_date
from ..store import IsNull, LessEqual, RelationalStore
from .models import DietPlan, MacroPlan, MealOption, MealTime

logger = logging.getLogger(__name__)


MACRO_PLANS = "macro_plans"
DIET_PLANS = "diet_plans"


# ---------------------------------------------------------------------------
# Row conversion
# ---------------------------------------------------------------------------

def macro_plan_to_row(plan: MacroPlan) -> dict:
    return {
        "id": plan.id,
        "client_id": plan.client_id,
        "kcal": plan.kcal,
        "protein": plan.protein,
        "carbs": plan.carbs,
        "fat": plan.fat,
        "steps_goal": plan.steps_goal,
        "cardio_goal": plan.cardio_goal,
        "effective_from": to_iso_date(plan.effective_from),
        "effective_to": to_iso_date(plan.effective_to),
        "created_at": plan.created_at.isoformat(),
    }


def macro_plan_from_row(row: dict) -> MacroPlan:
    return MacroPlan(
        id=row["id"],
        client_id=row["client_id"],
        kcal=row.get("kcal") or 0,
        protein=row.get("protein") or 0,
        carbs=row.get("carbs") or 0,
        fat=row.get("fat") or 0,
        steps_goal=row.get("steps_goal"),
        cardio_goal=row.get("cardio_goal"),
        effective_from=from_iso_date(row["effective_from"]),
        effective_to=from_iso_date(row.get("effective_to")),
        created_at=from_iso_timestamp(row.get("created_at")) or utc_now(),
    )


def diet_plan_to_row(plan: DietPlan) -> dict:
    content = [
        {
            "id": meal.id,
            "name": meal.name,
            "options": [
                {
                    "id": option.id,
                    "name": option.name,
                    "foods": option.foods,
                    "tips": option.tips,
                    "coach_note": option.coach_note,
                }
                for option in meal.options
            ],
        }
        for meal in plan.meals
    ]
    return {
        "id": plan.id,
        "client_id": plan.client_id,
        "name": plan.name,
        "content": json.dumps(content),
        "effective_from": to_iso_date(plan.effective_from),
        "effective_to": to_iso_date(plan.effective_to),
        "created_at": plan.created_at.isoformat(),
    }


def diet_plan_from_row(row: dict) -> DietPlan:
    content = row.get("content") or "[]"
    meals_data = json.loads(content) if isinstance(content, str) else content
    meals = [
        MealTime(
            id=meal.get("id") or "",
            name=meal.get("name", ""),
            options=[
                MealOption(
                    id=option.get("id") or "",
                    name=option.get("name", ""),
                    foods=option.get("foods", []),
                    tips=option.get("tips"),
                    coach_note=option.get("coach_note"),
                )
                for option in meal.get("options", [])
            ],
        )
        for meal in meals_data
    ]
    return DietPlan(
        id=row["id"],
        client_id=row["client_id"],
        name=row.get("name") or "",
        meals=meals,
        effective_from=from_iso_date(row["effective_from"]),
        effective_to=from_iso_date(row.get("effective_to")),
        created_at=from_iso_timestamp(row.get("created_at")) or utc_now(),
    )


# ---------------------------------------------------------------------------
# Versioning service
# ---------------------------------------------------------------------------

class PlanVersioning:
    """Creates and resolves macro and diet plan versions."""

    def __init__(
        self,
        store: RelationalStore,
        today: Optional[Callable[[], date]] = None,
    ) -> None:
        self._store = store
        self._today = today or (lambda: utc_now().date())

    # Macro plans

    def create_macro_plan(self, plan: MacroPlan) -> MacroPlan:
        self._supersede_and_insert(MACRO_PLANS, plan.client_id, plan.effective_from,
                                   macro_plan_to_row(plan))
        return plan

    def active_macro_plan(self, client_id: str, on: Optional[date] = None) -> Optional[MacroPlan]:
        row = self._active_row(MACRO_PLANS, client_id, on)
        return macro_plan_from_row(row) if row else None

    def macro_plan_history(self, client_id: str) -> list[MacroPlan]:
        return [macro_plan_from_row(row) for row in self._history(MACRO_PLANS, client_id)]

    # Diet plans

    def create_diet_plan(self, plan: DietPlan) -> DietPlan:
        self._supersede_and_insert(DIET_PLANS, plan.client_id, plan.effective_from,
                                   diet_plan_to_row(plan))
        return plan

    def active_diet_plan(self, client_id: str, on: Optional[date] = None) -> Optional[DietPlan]:
        row = self._active_row(DIET_PLANS, client_id, on)
        return diet_plan_from_row(row) if row else None

    def diet_plan_history(self, client_id: str) -> list[DietPlan]:
        return [diet_plan_from_row(row) for row in self._history(DIET_PLANS, client_id)]

    def get_diet_plan(self, plan_id: str) -> DietPlan:
        rows = self._store.select(DIET_PLANS, {"id": plan_id})
        if not rows:
            raise RecordNotFound(DIET_PLANS, plan_id)
        return diet_plan_from_row(rows[0])

    # -----------------------------------------------------------------------
    # Private Methods
    # -----------------------------------------------------------------------

    def _supersede_and_insert(
        self,
        table: str,
        client_id: str,
        effective_from: date,
        row: dict,
    ) -> None:
        closed: list[str] = []
        if self._store.transactional:
            with self._store.transaction():
                self._close_open_plans(table, client_id, effective_from, closed)
                self._store.insert(table, row)
        else:
            try:
                self._close_open_plans(table, client_id, effective_from, closed)
                self._store.insert(table, row)
            except Exception:
                logger.warning(
                    "Rolling back partial plan supersession",
                    extra={"table": table, "client_id": client_id, "reopening": closed}
                )
                for plan_id in closed:
                    self._store.update(table, {"id": plan_id}, {"effective_to": None})
                raise

        logger.info(
            "Created plan version",
            extra={
                "table": table,
                "client_id": client_id,
                "plan_id": row["id"],
                "effective_from": to_iso_date(effective_from),
                "superseded": closed,
            }
        )

    def _close_open_plans(
        self,
        table: str,
        client_id: str,
        effective_from: date,
        closed: list[str],
    ) -> None:
        cutoff = to_iso_date(effective_from - timedelta(days=1))
        rows = self._store.select(table, {
            "client_id": client_id,
            "effective_to": IsNull(),
            "effective_from": LessEqual(to_iso_date(effective_from)),
        })
        for row in rows:
            self._store.update(table, {"id": row["id"]}, {"effective_to": cutoff})
            closed.append(row["id"])

    def _active_row(self, table: str, client_id: str, on: Optional[date]) -> Optional[dict]:
        day = to_iso_date(on or self._today())
        rows = self._store.select(
            table,
            {"client_id": client_id, "effective_from": LessEqual(day)},
            order_by=["-effective_from", "-created_at"],
        )
        for row in rows:
            if row.get("effective_to") is None or row["effective_to"] >= day:
                return row
        return None

    def _history(self, table: str, client_id: str) -> list[dict]:
        return self._store.select(
            table, {"client_id": client_id}, order_by=["-effective_from", "-created_at"]
        )
