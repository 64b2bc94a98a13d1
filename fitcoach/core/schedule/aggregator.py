"""
Unified calendar for a client.

Strength sessions and cardio sessions are stored separately. The
aggregator fetches both for a date range, tags them, and merges them into
one chronological list. It also builds the coach-side check-in calendar
and decides which check-ins are urgent.

A schedule missing one of its session types looks complete but isn't, and
a coach planning around it would be misled. So if either fetch fails the
whole call fails with PartialAggregationFailure.
"""

import calendar
import json
import logging
import math
import re
from datetime import date, datetime, time, timedelta, timezone
from typing import Callable, Optional

from ..context import ActorContext
from ..errors import PartialAggregationFailure, RecordNotFound
from ..program.models import utc_now
from ..program.repository import (
    DAYS,
    PROGRAMS,
    from_iso_date,
    from_iso_timestamp,
    to_iso_date,
)
from ..store import Between, In, RelationalStore
from .models import (
    CardioBlock,
    CardioBlockType,
    CardioSession,
    CardioStructure,
    CheckinEvent,
    SessionType,
    StrengthSession,
    UnifiedCalendarItem,
)

logger = logging.getLogger(__name__)


STRENGTH_SESSIONS = "scheduled_strength_sessions"
CARDIO_SESSIONS = "cardio_sessions"
CLIENTS = "clients"

# Due today, tomorrow, in two days, or overdue
URGENCY_THRESHOLD_DAYS = 2

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


# ---------------------------------------------------------------------------
# Urgency
# ---------------------------------------------------------------------------

def days_until(target: date, now: datetime) -> int:
    """Whole days from now until the start of target (UTC), rounded up."""
    start = datetime.combine(target, time.min, tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return math.ceil((start - now) / timedelta(days=1))


def is_urgent(target: date, now: datetime) -> bool:
    return days_until(target, now) <= URGENCY_THRESHOLD_DAYS


def parse_iso_date(value: str) -> date:
    """Parse a strict YYYY-MM-DD string."""
    if not isinstance(value, str) or not _ISO_DATE.match(value):
        raise ValueError(f"Expected a YYYY-MM-DD date, got {value!r}")
    return date.fromisoformat(value)


# ---------------------------------------------------------------------------
# Row conversion
# ---------------------------------------------------------------------------

def _structure_to_json(structure: CardioStructure) -> str:
    return json.dumps({
        "training_type": structure.training_type,
        "blocks": [
            {
                key: (value.value if isinstance(value, CardioBlockType) else value)
                for key, value in vars(block).items()
                if value is not None
            }
            for block in structure.blocks
        ],
    })


def _structure_from_json(raw) -> CardioStructure:
    if not raw:
        return CardioStructure()
    data = json.loads(raw) if isinstance(raw, str) else raw
    blocks = []
    for block in data.get("blocks", []):
        block = dict(block)
        block["type"] = CardioBlockType(block.get("type", "continuous"))
        blocks.append(CardioBlock(**block))
    return CardioStructure(training_type=data.get("training_type"), blocks=blocks)


def _strength_from_row(row: dict, day_names: dict, program_names: dict) -> StrengthSession:
    return StrengthSession(
        id=row["id"],
        client_id=row["client_id"],
        date=from_iso_date(row["date"]),
        is_completed=bool(row.get("is_completed")),
        created_at=from_iso_timestamp(row.get("created_at")) or utc_now(),
        program_id=row["training_program_id"],
        day_id=row["training_day_id"],
        day_name=day_names.get(row["training_day_id"]),
        program_name=program_names.get(row["training_program_id"]),
    )


def _cardio_from_row(row: dict) -> CardioSession:
    return CardioSession(
        id=row["id"],
        client_id=row["client_id"],
        date=from_iso_date(row["date"]),
        is_completed=bool(row.get("is_completed")),
        created_at=from_iso_timestamp(row.get("created_at")) or utc_now(),
        name=row.get("name") or "",
        description=row.get("description"),
        structure=_structure_from_json(row.get("structure")),
        rpe=row.get("rpe"),
        duration_minutes=row.get("duration_minutes"),
        distance_km=row.get("distance_km"),
        notes=row.get("notes"),
    )


def _sort_key(item: UnifiedCalendarItem) -> tuple:
    return (item.date, item.type.rank, item.id)


# ---------------------------------------------------------------------------
# Aggregator
# ---------------------------------------------------------------------------

class ScheduleAggregator:
    """Builds client schedules and coach check-in calendars."""

    def __init__(
        self,
        store: RelationalStore,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._store = store
        self._clock = clock or utc_now

    def get_schedule(
        self,
        client_id: str,
        start_date: str,
        end_date: str,
    ) -> list[UnifiedCalendarItem]:
        """
        All sessions of a client between two ISO dates, inclusive.

        Ordered by date; on the same date strength sessions come before
        cardio sessions, then by id, so the order is deterministic.
        """
        start = parse_iso_date(start_date)
        end = parse_iso_date(end_date)
        if start > end:
            raise ValueError(f"start_date {start_date} is after end_date {end_date}")

        date_range = Between(to_iso_date(start), to_iso_date(end))
        strength = self._fetch(SessionType.STRENGTH, self._strength_sessions, client_id, date_range)
        cardio = self._fetch(SessionType.CARDIO, self._cardio_sessions, client_id, date_range)

        items: list[UnifiedCalendarItem] = [*strength, *cardio]
        items.sort(key=_sort_key)

        logger.debug(
            "Built schedule",
            extra={
                "client_id": client_id,
                "start": start_date,
                "end": end_date,
                "strength": len(strength),
                "cardio": len(cardio),
            }
        )
        return items

    def schedule_strength(
        self,
        client_id: str,
        program_id: str,
        day_id: str,
        on: date,
    ) -> StrengthSession:
        """Place a training day of a program on the client's calendar."""
        days = self._store.select(DAYS, {"id": day_id, "program_id": program_id})
        if not days:
            raise RecordNotFound(DAYS, day_id)

        session = StrengthSession(
            client_id=client_id,
            date=on,
            program_id=program_id,
            day_id=day_id,
            day_name=days[0].get("name"),
        )
        self._store.insert(STRENGTH_SESSIONS, {
            "id": session.id,
            "client_id": client_id,
            "training_program_id": program_id,
            "training_day_id": day_id,
            "date": to_iso_date(on),
            "is_completed": False,
            "created_at": session.created_at.isoformat(),
        })
        logger.info(
            "Scheduled strength session",
            extra={"client_id": client_id, "day_id": day_id, "date": to_iso_date(on)}
        )
        return session

    def schedule_cardio(
        self,
        client_id: str,
        on: date,
        name: str,
        structure: CardioStructure,
        description: Optional[str] = None,
    ) -> CardioSession:
        if not name.strip():
            raise ValueError("Cardio sessions need a name")

        session = CardioSession(
            client_id=client_id,
            date=on,
            name=name,
            structure=structure,
            description=description,
        )
        self._store.insert(CARDIO_SESSIONS, {
            "id": session.id,
            "client_id": client_id,
            "date": to_iso_date(on),
            "name": name,
            "description": description,
            "structure": _structure_to_json(structure),
            "is_completed": False,
            "created_at": session.created_at.isoformat(),
        })
        logger.info(
            "Scheduled cardio session",
            extra={"client_id": client_id, "date": to_iso_date(on), "blocks": len(structure.blocks)}
        )
        return session

    def set_completed(
        self,
        session_type: SessionType,
        session_id: str,
        is_completed: bool = True,
        actor: Optional[ActorContext] = None,
    ) -> None:
        table = STRENGTH_SESSIONS if session_type is SessionType.STRENGTH else CARDIO_SESSIONS
        if actor is not None:
            actor.ensure_access(self._session_owner(table, session_id))
        if not self._store.update(table, {"id": session_id}, {"is_completed": is_completed}):
            raise RecordNotFound(table, session_id)

    def log_cardio_result(
        self,
        session_id: str,
        rpe: Optional[int] = None,
        duration_minutes: Optional[float] = None,
        distance_km: Optional[float] = None,
        notes: Optional[str] = None,
        actor: Optional[ActorContext] = None,
    ) -> None:
        """Client logs how a cardio session went; marks it completed."""
        if rpe is not None and not 1 <= rpe <= 10:
            raise ValueError("RPE must be between 1 and 10")
        if actor is not None:
            actor.ensure_access(self._session_owner(CARDIO_SESSIONS, session_id))
        patch = {"is_completed": True}
        for column, value in (
            ("rpe", rpe),
            ("duration_minutes", duration_minutes),
            ("distance_km", distance_km),
            ("notes", notes),
        ):
            if value is not None:
                patch[column] = value
        if not self._store.update(CARDIO_SESSIONS, {"id": session_id}, patch):
            raise RecordNotFound(CARDIO_SESSIONS, session_id)

    # -----------------------------------------------------------------------
    # Check-ins
    # -----------------------------------------------------------------------

    def upcoming_checkins(self, coach_id: str, days: int = 30) -> list[CheckinEvent]:
        """Check-ins of the coach's active clients from today to today + days."""
        today = self._clock().date()
        return self._checkins(coach_id, today, today + timedelta(days=days))

    def calendar_events(self, coach_id: str, year: int, month: int) -> list[CheckinEvent]:
        """Check-ins falling in a calendar month (month is 1-12)."""
        last_day = calendar.monthrange(year, month)[1]
        return self._checkins(coach_id, date(year, month, 1), date(year, month, last_day))

    # -----------------------------------------------------------------------
    # Private Methods
    # -----------------------------------------------------------------------

    def _session_owner(self, table: str, session_id: str) -> Optional[str]:
        rows = self._store.select(table, {"id": session_id})
        if not rows:
            raise RecordNotFound(table, session_id)
        return rows[0].get("client_id")

    def _fetch(self, session_type: SessionType, fetcher, client_id: str, date_range: Between) -> list:
        try:
            return fetcher(client_id, date_range)
        except Exception as e:
            logger.error(
                "Schedule fetch failed",
                extra={
                    "client_id": client_id,
                    "session_type": session_type.value,
                    "error": str(e),
                }
            )
            raise PartialAggregationFailure(session_type.value, str(e)) from e

    def _strength_sessions(self, client_id: str, date_range: Between) -> list[StrengthSession]:
        rows = self._store.select(
            STRENGTH_SESSIONS, {"client_id": client_id, "date": date_range}, order_by=["date"]
        )
        if not rows:
            return []

        day_ids = {row["training_day_id"] for row in rows}
        program_ids = {row["training_program_id"] for row in rows}
        day_names = {
            day["id"]: day.get("name")
            for day in self._store.select(DAYS, {"id": In(day_ids)})
        }
        program_names = {
            program["id"]: program.get("name")
            for program in self._store.select(PROGRAMS, {"id": In(program_ids)})
        }
        return [_strength_from_row(row, day_names, program_names) for row in rows]

    def _cardio_sessions(self, client_id: str, date_range: Between) -> list[CardioSession]:
        rows = self._store.select(
            CARDIO_SESSIONS, {"client_id": client_id, "date": date_range}, order_by=["date"]
        )
        return [_cardio_from_row(row) for row in rows]

    def _checkins(self, coach_id: str, start: date, end: date) -> list[CheckinEvent]:
        rows = self._store.select(
            CLIENTS,
            {
                "coach_id": coach_id,
                "status": "active",
                "next_checkin_date": Between(to_iso_date(start), to_iso_date(end)),
            },
            order_by=["next_checkin_date"],
        )
        now = self._clock()
        events = []
        for row in rows:
            due = from_iso_date(row["next_checkin_date"])
            events.append(CheckinEvent(
                client_id=row["id"],
                client_name=row.get("full_name") or "",
                date=due,
                is_urgent=is_urgent(due, now),
            ))
        return events
