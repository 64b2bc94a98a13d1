"""
Macro targets and diet plans, versioned by effective date range.
"""

from .models import DietPlan, MacroPlan, MealOption, MealTime
from .versioning import PlanVersioning

__all__ = [
    "DietPlan",
    "MacroPlan",
    "MealOption",
    "MealTime",
    "PlanVersioning",
]
