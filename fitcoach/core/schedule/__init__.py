"""
Client calendar: strength and cardio sessions merged, plus check-ins.
"""

from .aggregator import (
    URGENCY_THRESHOLD_DAYS,
    ScheduleAggregator,
    days_until,
    is_urgent,
    parse_iso_date,
)
from .models import (
    CardioBlock,
    CardioBlockType,
    CardioSession,
    CardioStructure,
    CheckinEvent,
    ScheduledSession,
    SessionType,
    StrengthSession,
    UnifiedCalendarItem,
)

__all__ = [
    "URGENCY_THRESHOLD_DAYS",
    "CardioBlock",
    "CardioBlockType",
    "CardioSession",
    "CardioStructure",
    "CheckinEvent",
    "ScheduleAggregator",
    "ScheduledSession",
    "SessionType",
    "StrengthSession",
    "UnifiedCalendarItem",
    "days_until",
    "is_urgent",
    "parse_iso_date",
]
