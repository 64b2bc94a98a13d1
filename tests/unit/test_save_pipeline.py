"""
Unit tests for the per-cell save pipeline.

Each scenario runs in its own event loop via asyncio.run, with timings
scaled down to milliseconds.
"""

import asyncio
import threading
import time

import pytest

from fitcoach.config.settings import Settings
from fitcoach.core.errors import PersistenceFailure, WriteUnauthorized
from fitcoach.core.program import CellStore, SavePipeline, SaveState


DEBOUNCE = 0.02
SAVED_DISPLAY = 0.05


class RecordingStore:
    """Wraps a store and records every cell upsert it is asked to make."""

    def __init__(self, inner):
        self._inner = inner
        self.upserts: list[str] = []

    def __getattr__(self, name):
        return getattr(self._inner, name)

    def upsert(self, table, row, conflict_key):
        self.upserts.append(row["value"])
        return self._inner.upsert(table, row, conflict_key)


class StallingStore(RecordingStore):
    """The first upsert hangs, then fails: a dropped connection."""

    def __init__(self, inner, stall_seconds: float):
        super().__init__(inner)
        self.stall_seconds = stall_seconds
        self.stalls = 1

    def upsert(self, table, row, conflict_key):
        if self.stalls:
            self.stalls -= 1
            time.sleep(self.stall_seconds)
            raise PersistenceFailure("connection dropped")
        return super().upsert(table, row, conflict_key)


class SlowStore(RecordingStore):
    """
    Cell upserts succeed, but slowly: the n-th upsert sleeps delays[n]
    (no delay once the list runs out). Records how many overlap.
    """

    def __init__(self, inner, delays: list[float]):
        super().__init__(inner)
        self.delays = list(delays)
        self.in_flight = 0
        self.max_in_flight = 0
        self._guard = threading.Lock()

    def upsert(self, table, row, conflict_key):
        with self._guard:
            delay = self.delays.pop(0) if self.delays else 0.0
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            time.sleep(delay)
            return super().upsert(table, row, conflict_key)
        finally:
            with self._guard:
                self.in_flight -= 1


def make_pipeline(cells, actor, **overrides) -> SavePipeline:
    options = {
        "debounce_seconds": DEBOUNCE,
        "saved_display_seconds": SAVED_DISPLAY,
        "watchdog_seconds": 1.0,
    }
    options.update(overrides)
    return SavePipeline(cells, actor, **options)


# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------

class TestSaveIndicator:

    def test_saving_then_saved_then_idle(self, matrix, coach):
        """edit -> blur -> saving -> saved -> (timeout) -> idle"""
        cells = CellStore.load(matrix.store, matrix.program.id)
        ex, col = matrix.exercise.id, matrix.load.id

        async def scenario():
            pipeline = make_pipeline(cells, coach)

            status = pipeline.submit(ex, col, 1, "80")
            assert status.state is SaveState.SAVING
            # Not applied before the store confirms
            assert cells.get_value(ex, col, 1) is None

            await pipeline.settle()
            assert pipeline.status(ex, col, 1).state is SaveState.SAVED
            assert cells.get_value(ex, col, 1).raw == 80.0

            await asyncio.sleep(SAVED_DISPLAY * 3)
            status = pipeline.status(ex, col, 1)
            assert status.state is SaveState.IDLE
            assert status.last_saved is not None

        asyncio.run(scenario())

    def test_unchanged_value_is_a_no_op(self, matrix, coach):
        cells = CellStore.load(matrix.store, matrix.program.id)
        ex, col = matrix.exercise.id, matrix.load.id
        cells.set_value(ex, col, 1, "80", coach)

        async def scenario():
            pipeline = make_pipeline(cells, coach)
            status = pipeline.submit(ex, col, 1, "80")
            assert status.state is SaveState.IDLE
            await pipeline.settle()

        asyncio.run(scenario())

    def test_rejected_write_leaves_indicator_alone(self, matrix, client_actor):
        cells = CellStore.load(matrix.store, matrix.program.id)
        ex, col = matrix.exercise.id, matrix.tempo.id

        async def scenario():
            pipeline = make_pipeline(cells, client_actor)
            with pytest.raises(WriteUnauthorized):
                pipeline.submit(ex, col, 1, "2-0-2-0")
            assert pipeline.status(ex, col, 1).state is SaveState.IDLE

        asyncio.run(scenario())


class TestDebounce:

    def test_rapid_edits_make_one_write_of_the_last_value(self, matrix, coach):
        recording = RecordingStore(matrix.store)
        cells = CellStore.load(recording, matrix.program.id)
        ex, col = matrix.exercise.id, matrix.load.id

        async def scenario():
            pipeline = make_pipeline(cells, coach, debounce_seconds=0.05)
            pipeline.submit(ex, col, 1, "80")
            pipeline.submit(ex, col, 1, "82")
            pipeline.submit(ex, col, 1, "85")
            await pipeline.settle()

        asyncio.run(scenario())

        assert recording.upserts == ["85"]
        assert cells.get_value(ex, col, 1).raw == 85.0

    def test_edit_reverted_inside_quiet_period_writes_nothing(self, matrix, coach):
        recording = RecordingStore(matrix.store)
        cells = CellStore.load(recording, matrix.program.id)
        ex, col = matrix.exercise.id, matrix.load.id
        cells.set_value(ex, col, 1, "80", coach)
        recording.upserts.clear()

        async def scenario():
            pipeline = make_pipeline(cells, coach, debounce_seconds=0.05)
            pipeline.submit(ex, col, 1, "90")
            pipeline.submit(ex, col, 1, "80")
            await pipeline.settle()
            assert pipeline.status(ex, col, 1).state is SaveState.IDLE

        asyncio.run(scenario())

        assert recording.upserts == []

    def test_different_cells_save_independently(self, matrix, coach):
        recording = RecordingStore(matrix.store)
        cells = CellStore.load(recording, matrix.program.id)
        ex, col = matrix.exercise.id, matrix.load.id

        async def scenario():
            pipeline = make_pipeline(cells, coach)
            pipeline.submit(ex, col, 1, "80")
            pipeline.submit(ex, col, 2, "85")
            await pipeline.settle()
            assert pipeline.status(ex, col, 1).state is SaveState.SAVED
            assert pipeline.status(ex, col, 2).state is SaveState.SAVED

        asyncio.run(scenario())

        assert sorted(recording.upserts) == ["80", "85"]

    def test_edit_during_a_write_waits_for_it(self, matrix, coach):
        """A second edit made while the first is being written goes out after it."""
        slow = SlowStore(matrix.store, delays=[0.1, 0.1])
        cells = CellStore.load(slow, matrix.program.id)
        ex, col = matrix.exercise.id, matrix.load.id

        async def scenario():
            pipeline = make_pipeline(cells, coach)
            pipeline.submit(ex, col, 1, "80")
            await asyncio.sleep(DEBOUNCE + 0.03)
            assert slow.in_flight == 1

            status = pipeline.submit(ex, col, 1, "85")
            assert status.state is SaveState.SAVING

            await pipeline.settle()
            assert pipeline.status(ex, col, 1).state is SaveState.SAVED

        asyncio.run(scenario())

        assert slow.upserts == ["80", "85"]
        assert slow.max_in_flight == 1
        assert cells.get_value(ex, col, 1).raw == 85.0


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------

class TestSaveFailure:

    def test_failure_keeps_previous_value_and_allows_retry(self, matrix, coach):
        cells = CellStore.load(matrix.store, matrix.program.id)
        ex, col = matrix.exercise.id, matrix.load.id
        cells.set_value(ex, col, 1, "80", coach)

        async def scenario():
            pipeline = make_pipeline(cells, coach)
            matrix.store.inject_failure("upsert", "training_cells")

            pipeline.submit(ex, col, 1, "90")
            await pipeline.settle()

            status = pipeline.status(ex, col, 1)
            assert status.state is SaveState.ERROR
            assert status.can_retry
            assert isinstance(status.error, PersistenceFailure)
            assert cells.get_value(ex, col, 1).raw == 80.0

            assert pipeline.retry(ex, col, 1).state is SaveState.SAVING
            await pipeline.settle()
            assert pipeline.status(ex, col, 1).state is SaveState.SAVED
            assert cells.get_value(ex, col, 1).raw == 90.0

        asyncio.run(scenario())

    def test_stuck_save_times_out_into_error(self, matrix, coach):
        stalling = StallingStore(matrix.store, stall_seconds=0.3)
        cells = CellStore.load(stalling, matrix.program.id)
        ex, col = matrix.exercise.id, matrix.load.id

        async def scenario():
            pipeline = make_pipeline(cells, coach, watchdog_seconds=0.05)

            pipeline.submit(ex, col, 1, "90")
            await pipeline.settle()

            status = pipeline.status(ex, col, 1)
            assert status.state is SaveState.ERROR
            assert "did not complete" in str(status.error)
            assert cells.get_value(ex, col, 1) is None

            pipeline.retry(ex, col, 1)
            await pipeline.settle()
            assert pipeline.status(ex, col, 1).state is SaveState.SAVED
            assert cells.get_value(ex, col, 1).raw == 90.0

        asyncio.run(scenario())

    def test_retry_without_failure_changes_nothing(self, matrix, coach):
        cells = CellStore.load(matrix.store, matrix.program.id)

        async def scenario():
            pipeline = make_pipeline(cells, coach)
            status = pipeline.retry(matrix.exercise.id, matrix.load.id, 1)
            assert status.state is SaveState.IDLE

        asyncio.run(scenario())

    def test_write_landing_after_the_watchdog_ends_up_saved(self, matrix, coach):
        """The watchdog reports the slow write as failed, then it lands after all."""
        slow = SlowStore(matrix.store, delays=[0.3])
        cells = CellStore.load(slow, matrix.program.id)
        ex, col = matrix.exercise.id, matrix.load.id

        async def scenario():
            pipeline = make_pipeline(cells, coach, watchdog_seconds=0.05)
            pipeline.submit(ex, col, 1, "90")

            await asyncio.sleep(0.15)
            assert pipeline.status(ex, col, 1).state is SaveState.ERROR
            # Still unconfirmed, so still not applied
            assert cells.get_value(ex, col, 1) is None

            await pipeline.settle()
            status = pipeline.status(ex, col, 1)
            assert status.state is SaveState.SAVED
            assert status.error is None
            assert cells.get_value(ex, col, 1).raw == 90.0
            # Nothing left to retry
            assert pipeline.retry(ex, col, 1).state is SaveState.SAVED

        asyncio.run(scenario())

        assert slow.upserts == ["90"]

    def test_late_write_does_not_overwrite_a_newer_edit(self, matrix, coach):
        slow = SlowStore(matrix.store, delays=[0.3])
        cells = CellStore.load(slow, matrix.program.id)
        ex, col = matrix.exercise.id, matrix.load.id

        async def scenario():
            pipeline = make_pipeline(cells, coach, watchdog_seconds=0.05)
            pipeline.submit(ex, col, 1, "90")
            await asyncio.sleep(0.15)
            assert pipeline.status(ex, col, 1).state is SaveState.ERROR

            pipeline.submit(ex, col, 1, "95")
            await pipeline.settle()

            assert pipeline.status(ex, col, 1).state is SaveState.SAVED
            assert cells.get_value(ex, col, 1).raw == 95.0

        asyncio.run(scenario())

        assert slow.upserts == ["90", "95"]
        assert slow.max_in_flight == 1
        stored = [row["value"] for row in matrix.store.rows("training_cells")]
        assert stored == ["95"]


class TestConfiguration:

    def test_timings_come_from_settings(self, matrix, coach):
        cells = CellStore.load(matrix.store, matrix.program.id)
        settings = Settings(
            save_debounce_ms=250,
            save_indicator_ms=1500,
            save_watchdog_seconds=3.0,
        )

        pipeline = SavePipeline.from_settings(cells, coach, settings)

        assert pipeline.debounce_seconds == 0.25
        assert pipeline.saved_display_seconds == 1.5
        assert pipeline.watchdog_seconds == 3.0
