"""
Unit tests for the domain models.

These tests verify the core value objects without touching any store
(no database, no HTTP, no file system).

Testing philosophy:
- Test behavior, not implementation
- Each test should have a clear "given/when/then" structure
- Use descriptive names that explain what we're testing
- Prefer real objects over mocks where practical
"""

from datetime import date

import pytest

from fitcoach.core.errors import InvalidCellValue
from fitcoach.core.nutrition import MacroPlan
from fitcoach.core.nutrition.models import DateRangeVersion
from fitcoach.core.program import (
    CellValue,
    ColumnDataType,
    ColumnScope,
    Exercise,
    TrainingProgram,
    TrainingProgramFull,
)
from fitcoach.core.schedule import (
    CardioBlock,
    CardioBlockType,
    CardioStructure,
    CheckinEvent,
    SessionType,
)


# ---------------------------------------------------------------------------
# CellValue Tests
# ---------------------------------------------------------------------------

class TestNumberCells:
    """Number columns hold finite floats."""

    def test_accepts_plain_and_comma_decimals(self):
        assert CellValue.parse(ColumnDataType.NUMBER, "82.5").raw == 82.5
        assert CellValue.parse(ColumnDataType.NUMBER, "82,5").raw == 82.5
        assert CellValue.parse(ColumnDataType.NUMBER, 100).raw == 100.0

    def test_rejects_text(self):
        """'abc' is not a load."""
        with pytest.raises(InvalidCellValue, match="not a number"):
            CellValue.parse(ColumnDataType.NUMBER, "abc")

    def test_rejects_non_finite_numbers(self):
        with pytest.raises(InvalidCellValue, match="finite"):
            CellValue.parse(ColumnDataType.NUMBER, "nan")
        with pytest.raises(InvalidCellValue, match="finite"):
            CellValue.parse(ColumnDataType.NUMBER, float("inf"))

    def test_rejects_booleans(self):
        with pytest.raises(InvalidCellValue):
            CellValue.parse(ColumnDataType.NUMBER, True)

    def test_whole_numbers_are_stored_without_decimals(self):
        assert CellValue.parse(ColumnDataType.NUMBER, "80").to_stored() == "80"
        assert CellValue.parse(ColumnDataType.NUMBER, "82,5").to_stored() == "82.5"

    def test_stored_form_reads_back_as_a_number(self):
        value = CellValue.from_stored(ColumnDataType.NUMBER, "82.5")
        assert value.raw == 82.5
        assert value.display == "82.5"


class TestTimeCells:
    """Time columns hold durations like rest periods."""

    @pytest.mark.parametrize("text", ["1:30", "01:30", "0:45", "1:05:00"])
    def test_accepts_clock_formats(self, text):
        assert CellValue.parse(ColumnDataType.TIME, text).raw == text

    @pytest.mark.parametrize("text", ["90", "1:75", "abc", "1:30pm"])
    def test_rejects_anything_else(self, text):
        with pytest.raises(InvalidCellValue, match="not a time"):
            CellValue.parse(ColumnDataType.TIME, text)


class TestTextCells:

    def test_text_is_single_line(self):
        with pytest.raises(InvalidCellValue, match="single line"):
            CellValue.parse(ColumnDataType.TEXT, "first\nsecond")

    def test_textarea_allows_newlines(self):
        value = CellValue.parse(ColumnDataType.TEXTAREA, "Keep elbows in\nPause at chest")
        assert value.raw == "Keep elbows in\nPause at chest"

    def test_blank_input_clears_the_cell(self):
        """An empty or whitespace-only value is valid for every type."""
        for kind in ColumnDataType:
            assert CellValue.parse(kind, "   ").is_empty
            assert CellValue.parse(kind, None).is_empty

    def test_cleared_value_displays_as_empty_string(self):
        assert CellValue(ColumnDataType.TEXT).display == ""
        assert CellValue(ColumnDataType.TEXT).to_stored() is None


# ---------------------------------------------------------------------------
# Program Tests
# ---------------------------------------------------------------------------

class TestColumnScope:

    def test_legacy_cell_scope_reads_as_week(self):
        """Older rows used 'cell' for per-week columns."""
        assert ColumnScope.from_db("cell") is ColumnScope.WEEK
        assert ColumnScope.from_db("exercise") is ColumnScope.EXERCISE


class TestTrainingProgram:

    def test_new_program_is_a_draft(self):
        program = TrainingProgram(client_id="c1", name="Block A", total_weeks=6)
        assert not program.is_active
        assert program.status.value == "draft"

    def test_needs_at_least_one_week(self):
        with pytest.raises(ValueError, match="at least one week"):
            TrainingProgram(client_id="c1", total_weeks=0)

    def test_exercises_for_day_are_ordered(self):
        full = TrainingProgramFull(
            program=TrainingProgram(client_id="c1"),
            exercises=[
                Exercise(id="e2", day_id="d1", name="Row", order=1),
                Exercise(id="e3", day_id="d2", name="Squat", order=0),
                Exercise(id="e1", day_id="d1", name="Bench", order=0),
            ],
        )
        assert [e.id for e in full.exercises_for_day("d1")] == ["e1", "e2"]


# ---------------------------------------------------------------------------
# Schedule Tests
# ---------------------------------------------------------------------------

class TestCardioStructure:

    def test_total_duration_counts_every_interval(self):
        """10' warm-up plus 6 x (3' on, 1.5' off) = 37 minutes."""
        structure = CardioStructure(
            training_type="series",
            blocks=[
                CardioBlock(type=CardioBlockType.CONTINUOUS, duration=10),
                CardioBlock(
                    type=CardioBlockType.INTERVALS,
                    sets=6,
                    work_duration=3,
                    rest_duration=1.5,
                ),
            ],
        )
        assert structure.total_duration_minutes == 37

    def test_intervals_need_at_least_one_set(self):
        with pytest.raises(ValueError):
            CardioBlock(type=CardioBlockType.INTERVALS, sets=0)


class TestSessionType:

    def test_strength_sorts_before_cardio(self):
        assert SessionType.STRENGTH.rank < SessionType.CARDIO.rank

    def test_every_type_has_a_distinct_rank(self):
        ranks = [session_type.rank for session_type in SessionType]
        assert sorted(ranks) == [0, 1]


class TestCheckinEvent:

    def test_id_is_derived_from_client(self):
        event = CheckinEvent("client-9", "Ana", date(2024, 1, 3), is_urgent=True)
        assert event.id == "checkin-client-9"
        assert event.type == "checkin"


# ---------------------------------------------------------------------------
# Nutrition Tests
# ---------------------------------------------------------------------------

class TestDateRangeVersion:

    def test_open_ended_range_is_active_from_its_start(self):
        version = DateRangeVersion(effective_from=date(2024, 1, 10))
        assert not version.is_active_on(date(2024, 1, 9))
        assert version.is_active_on(date(2024, 1, 10))
        assert version.is_active_on(date(2030, 1, 1))
        assert version.is_open_ended

    def test_closed_range_is_inclusive(self):
        version = DateRangeVersion(
            effective_from=date(2024, 1, 1), effective_to=date(2024, 1, 31)
        )
        assert version.is_active_on(date(2024, 1, 31))
        assert not version.is_active_on(date(2024, 2, 1))


class TestMacroPlan:

    def test_rejects_negative_targets(self):
        with pytest.raises(ValueError, match="protein cannot be negative"):
            MacroPlan(client_id="c1", kcal=2000, protein=-1)
