"""
Unit tests for the schedule aggregator and check-in urgency.
"""

from datetime import date, datetime, timezone

import pytest

from fitcoach.core.context import ActorContext
from fitcoach.core.errors import AccessDenied, PartialAggregationFailure, RecordNotFound
from fitcoach.core.schedule import (
    CardioBlock,
    CardioBlockType,
    CardioSession,
    CardioStructure,
    ScheduleAggregator,
    SessionType,
    StrengthSession,
    days_until,
    is_urgent,
)


NOW = datetime(2024, 1, 1, 9, 30, tzinfo=timezone.utc)


@pytest.fixture
def aggregator(store) -> ScheduleAggregator:
    return ScheduleAggregator(store, clock=lambda: NOW)


def easy_run() -> CardioStructure:
    return CardioStructure(
        training_type="rodaje",
        blocks=[CardioBlock(type=CardioBlockType.CONTINUOUS, duration=40, target_pace="5:30")],
    )


def add_client(store, client_id, name, checkin, coach_id="coach-1", status="active"):
    store.insert("clients", {
        "id": client_id,
        "coach_id": coach_id,
        "full_name": name,
        "next_checkin_date": checkin.isoformat() if checkin else None,
        "status": status,
    })


# ---------------------------------------------------------------------------
# Urgency
# ---------------------------------------------------------------------------

class TestUrgency:

    def test_due_in_two_days_is_urgent(self):
        assert days_until(date(2024, 1, 3), NOW) == 2
        assert is_urgent(date(2024, 1, 3), NOW)

    def test_due_in_three_days_is_not(self):
        assert days_until(date(2024, 1, 4), NOW) == 3
        assert not is_urgent(date(2024, 1, 4), NOW)

    def test_today_and_overdue_are_urgent(self):
        assert is_urgent(date(2024, 1, 1), NOW)
        assert is_urgent(date(2023, 12, 20), NOW)

    def test_exactly_midnight(self):
        midnight = datetime(2024, 1, 1, tzinfo=timezone.utc)
        assert days_until(date(2024, 1, 3), midnight) == 2

    def test_naive_now_is_treated_as_utc(self):
        assert days_until(date(2024, 1, 3), datetime(2024, 1, 1, 9, 30)) == 2


# ---------------------------------------------------------------------------
# Schedule
# ---------------------------------------------------------------------------

class TestGetSchedule:

    def test_merges_and_orders_by_date(self, matrix, aggregator):
        """2 strength (01-02, 01-05) + 1 cardio (01-03) -> 3 items in date order."""
        aggregator.schedule_strength("client-1", matrix.program.id, matrix.day.id, date(2024, 1, 5))
        aggregator.schedule_strength("client-1", matrix.program.id, matrix.day.id, date(2024, 1, 2))
        aggregator.schedule_cardio("client-1", date(2024, 1, 3), "Easy run", easy_run())

        items = aggregator.get_schedule("client-1", "2024-01-01", "2024-01-07")

        assert [item.date.isoformat() for item in items] == [
            "2024-01-02", "2024-01-03", "2024-01-05",
        ]
        assert [item.type for item in items] == [
            SessionType.STRENGTH, SessionType.CARDIO, SessionType.STRENGTH,
        ]

    def test_strength_comes_first_on_the_same_day(self, matrix, aggregator):
        aggregator.schedule_cardio("client-1", date(2024, 1, 2), "Intervals", easy_run())
        aggregator.schedule_strength("client-1", matrix.program.id, matrix.day.id, date(2024, 1, 2))

        items = aggregator.get_schedule("client-1", "2024-01-02", "2024-01-02")

        assert [type(item) for item in items] == [StrengthSession, CardioSession]

    def test_range_is_inclusive_and_scoped_to_client(self, matrix, aggregator):
        aggregator.schedule_cardio("client-1", date(2024, 1, 1), "First", easy_run())
        aggregator.schedule_cardio("client-1", date(2024, 1, 7), "Last", easy_run())
        aggregator.schedule_cardio("client-1", date(2024, 1, 8), "Outside", easy_run())
        aggregator.schedule_cardio("client-2", date(2024, 1, 3), "Someone else", easy_run())

        items = aggregator.get_schedule("client-1", "2024-01-01", "2024-01-07")

        assert [item.name for item in items] == ["First", "Last"]

    def test_strength_items_carry_day_and_program_names(self, matrix, aggregator):
        aggregator.schedule_strength("client-1", matrix.program.id, matrix.day.id, date(2024, 1, 2))

        [item] = aggregator.get_schedule("client-1", "2024-01-01", "2024-01-07")

        assert item.day_name == "Upper"
        assert item.program_name == "Block A"

    def test_cardio_structure_round_trips(self, aggregator):
        aggregator.schedule_cardio("client-1", date(2024, 1, 2), "Easy run", easy_run())

        [item] = aggregator.get_schedule("client-1", "2024-01-01", "2024-01-07")

        assert item.structure.training_type == "rodaje"
        assert item.structure.blocks[0].target_pace == "5:30"
        assert item.structure.total_duration_minutes == 40

    def test_empty_range(self, aggregator):
        assert aggregator.get_schedule("client-1", "2024-01-01", "2024-01-07") == []

    def test_rejects_inverted_range(self, aggregator):
        with pytest.raises(ValueError, match="after"):
            aggregator.get_schedule("client-1", "2024-01-07", "2024-01-01")

    def test_rejects_malformed_dates(self, aggregator):
        with pytest.raises(ValueError, match="YYYY-MM-DD"):
            aggregator.get_schedule("client-1", "01/01/2024", "2024-01-07")

    def test_failed_fetch_fails_the_whole_schedule(self, store, aggregator):
        """A schedule missing its cardio sessions would look complete. It must fail instead."""
        aggregator.schedule_cardio("client-1", date(2024, 1, 2), "Easy run", easy_run())
        store.inject_failure("select", "cardio_sessions")

        with pytest.raises(PartialAggregationFailure) as excinfo:
            aggregator.get_schedule("client-1", "2024-01-01", "2024-01-07")

        assert excinfo.value.session_type == "cardio"


class TestScheduling:

    def test_unknown_training_day_is_rejected(self, matrix, aggregator):
        with pytest.raises(RecordNotFound):
            aggregator.schedule_strength("client-1", matrix.program.id, "missing", date(2024, 1, 2))

    def test_cardio_needs_a_name(self, aggregator):
        with pytest.raises(ValueError):
            aggregator.schedule_cardio("client-1", date(2024, 1, 2), "  ", easy_run())

    def test_mark_completed(self, matrix, aggregator):
        session = aggregator.schedule_strength(
            "client-1", matrix.program.id, matrix.day.id, date(2024, 1, 2)
        )

        aggregator.set_completed(SessionType.STRENGTH, session.id)

        [item] = aggregator.get_schedule("client-1", "2024-01-02", "2024-01-02")
        assert item.is_completed

    def test_mark_completed_unknown_session(self, aggregator):
        with pytest.raises(RecordNotFound):
            aggregator.set_completed(SessionType.CARDIO, "missing")

    def test_log_cardio_result(self, aggregator):
        session = aggregator.schedule_cardio("client-1", date(2024, 1, 2), "Easy run", easy_run())

        aggregator.log_cardio_result(session.id, rpe=6, duration_minutes=42, distance_km=7.6)

        [item] = aggregator.get_schedule("client-1", "2024-01-02", "2024-01-02")
        assert item.is_completed
        assert item.rpe == 6
        assert item.distance_km == 7.6

    def test_rpe_out_of_range(self, aggregator):
        session = aggregator.schedule_cardio("client-1", date(2024, 1, 2), "Easy run", easy_run())
        with pytest.raises(ValueError, match="RPE"):
            aggregator.log_cardio_result(session.id, rpe=11)

    def test_clients_only_update_their_own_sessions(self, aggregator):
        session = aggregator.schedule_cardio("client-1", date(2024, 1, 2), "Easy run", easy_run())
        stranger = ActorContext.client("client-2")

        with pytest.raises(AccessDenied):
            aggregator.set_completed(SessionType.CARDIO, session.id, actor=stranger)
        with pytest.raises(AccessDenied):
            aggregator.log_cardio_result(session.id, rpe=5, actor=stranger)

        [item] = aggregator.get_schedule("client-1", "2024-01-02", "2024-01-02")
        assert not item.is_completed

        aggregator.set_completed(SessionType.CARDIO, session.id, actor=ActorContext.client("client-1"))
        [item] = aggregator.get_schedule("client-1", "2024-01-02", "2024-01-02")
        assert item.is_completed


# ---------------------------------------------------------------------------
# Check-ins
# ---------------------------------------------------------------------------

class TestCheckins:

    def test_upcoming_checkins_are_flagged(self, store, aggregator):
        add_client(store, "c1", "Ana", date(2024, 1, 3))
        add_client(store, "c2", "Ben", date(2024, 1, 4))
        add_client(store, "c3", "Cris", date(2024, 3, 1))

        events = aggregator.upcoming_checkins("coach-1", days=30)

        assert [(e.client_name, e.is_urgent) for e in events] == [
            ("Ana", True), ("Ben", False),
        ]

    def test_inactive_and_other_coaches_clients_are_skipped(self, store, aggregator):
        add_client(store, "c1", "Ana", date(2024, 1, 3), status="paused")
        add_client(store, "c2", "Ben", date(2024, 1, 3), coach_id="coach-2")
        add_client(store, "c3", "Cris", None)

        assert aggregator.upcoming_checkins("coach-1") == []

    def test_calendar_month(self, store, aggregator):
        add_client(store, "c1", "Ana", date(2024, 2, 1))
        add_client(store, "c2", "Ben", date(2024, 2, 29))
        add_client(store, "c3", "Cris", date(2024, 3, 1))

        events = aggregator.calendar_events("coach-1", 2024, 2)

        assert [e.client_id for e in events] == ["c1", "c2"]
        assert all(not e.is_urgent for e in events)
