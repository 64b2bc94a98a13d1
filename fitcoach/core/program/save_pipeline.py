"""
Per-cell save pipeline.

Both the desktop table and the mobile cards save cells the same way: when
a cell loses focus with a changed value, its indicator goes to "saving",
the write is debounced, and once the store confirms it the indicator shows
"saved" for a couple of seconds before going back to idle.

    IDLE --submit(changed)--> SAVING --write ok--> SAVED --timer--> IDLE
                                 |
                                 +--write failed / watchdog--> ERROR --retry--> SAVING

The value is applied to the CellStore only after the write succeeds. The
UI shows the new text in its input while saving, but nothing reading the
CellStore ever sees an unconfirmed value, and a failed save leaves the
previous value in place.

Each cell has its own state and its own lock, so saves to different cells
never wait on each other. For a single cell, rapid submits collapse into
one write of the latest value per quiet period, and only one write is in
flight at a time. That includes a write the watchdog gave up on: its worker
thread keeps running, so the cell stays busy until it settles, and if it
lands after all the cell ends up saved rather than failed.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from ..context import ActorContext
from ..errors import PersistenceFailure
from .cells import CellStore
from .models import CellKey, CellValue, utc_now

logger = logging.getLogger(__name__)


DEFAULT_DEBOUNCE_SECONDS = 0.5
DEFAULT_SAVED_DISPLAY_SECONDS = 2.0
DEFAULT_WATCHDOG_SECONDS = 10.0


class SaveState(Enum):
    IDLE = "idle"
    SAVING = "saving"
    SAVED = "saved"
    ERROR = "error"


@dataclass(frozen=True)
class CellSaveStatus:
    """What the save indicator next to a cell should show."""
    state: SaveState = SaveState.IDLE
    last_saved: Optional[datetime] = None
    error: Optional[Exception] = None

    @property
    def can_retry(self) -> bool:
        return self.state is SaveState.ERROR


@dataclass
class _CellSlot:
    status: CellSaveStatus = field(default_factory=CellSaveStatus)
    # (week, value) of the latest submit not yet handed to a writer
    pending: Optional[tuple[int, Any]] = None
    # (week, value) of the last write that failed, kept for retry()
    failed: Optional[tuple[int, Any]] = None
    sleeping: Optional[asyncio.Task] = None
    reset_timer: Optional[asyncio.TimerHandle] = None
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)


def _same_value(current: Optional[CellValue], new: CellValue) -> bool:
    if current is None or current.is_empty:
        return new.is_empty
    return current == new


class SavePipeline:
    """
    Debounced, confirm-then-apply saving for the cells of one program.

    All methods must be called from the event loop that runs the pipeline.
    Persistence calls run in worker threads because store adapters block.
    """

    def __init__(
        self,
        cells: CellStore,
        actor: ActorContext,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        saved_display_seconds: float = DEFAULT_SAVED_DISPLAY_SECONDS,
        watchdog_seconds: float = DEFAULT_WATCHDOG_SECONDS,
    ) -> None:
        self._cells = cells
        self._actor = actor
        self.debounce_seconds = debounce_seconds
        self.saved_display_seconds = saved_display_seconds
        self.watchdog_seconds = watchdog_seconds
        self._slots: dict[CellKey, _CellSlot] = {}
        self._tasks: set[asyncio.Task] = set()

    @classmethod
    def from_settings(cls, cells: CellStore, actor: ActorContext, settings) -> "SavePipeline":
        """Build a pipeline with the timings from the application Settings."""
        return cls(
            cells,
            actor,
            debounce_seconds=settings.save_debounce_seconds,
            saved_display_seconds=settings.save_indicator_seconds,
            watchdog_seconds=settings.save_watchdog_seconds,
        )

    # -----------------------------------------------------------------------
    # Public API
    # -----------------------------------------------------------------------

    def status(self, exercise_id: str, column_id: str, week: int) -> CellSaveStatus:
        key = CellKey(exercise_id, column_id, self._cells.resolve_week(column_id, week))
        slot = self._slots.get(key)
        return slot.status if slot else CellSaveStatus()

    def submit(self, exercise_id: str, column_id: str, week: int, value) -> CellSaveStatus:
        """
        A cell lost focus (or was submitted) with `value`.

        Authorization and type checks run immediately and raise
        WriteUnauthorized / InvalidCellValue / UnknownCellAddress without
        touching the indicator. An unchanged value is a no-op.
        """
        key, parsed = self._cells.prepare_write(
            exercise_id, column_id, week, value, self._actor
        )
        slot = self._slots.setdefault(key, _CellSlot())

        busy = slot.pending is not None or slot.lock.locked()
        current = self._cells.get_value(exercise_id, column_id, week)
        if not busy and _same_value(current, parsed):
            return slot.status

        slot.pending = (week, value)
        slot.failed = None
        if slot.reset_timer is not None:
            slot.reset_timer.cancel()
            slot.reset_timer = None
        slot.status = CellSaveStatus(SaveState.SAVING, last_saved=slot.status.last_saved)

        # Restart the quiet period. A write already in flight is left alone;
        # the new task queues behind it on the slot lock.
        if slot.sleeping is not None:
            slot.sleeping.cancel()
        task = asyncio.get_running_loop().create_task(self._debounced_write(key, slot))
        slot.sleeping = task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        logger.debug(
            "Queued cell save",
            extra={"exercise_id": exercise_id, "column_id": column_id, "week": key.week}
        )
        return slot.status

    def retry(self, exercise_id: str, column_id: str, week: int) -> CellSaveStatus:
        """Resubmit the value whose save failed."""
        key = CellKey(exercise_id, column_id, self._cells.resolve_week(column_id, week))
        slot = self._slots.get(key)
        if slot is None or slot.failed is None:
            return self.status(exercise_id, column_id, week)
        failed_week, value = slot.failed
        return self.submit(exercise_id, column_id, failed_week, value)

    async def settle(self) -> None:
        """Wait until no save is pending or in flight."""
        while True:
            tasks = [task for task in self._tasks if not task.done()]
            if not tasks:
                return
            results = await asyncio.gather(*tasks, return_exceptions=True)
            for result in results:
                if isinstance(result, Exception):
                    raise result

    def close(self) -> None:
        """Cancel queued saves and indicator timers. In-flight writes finish."""
        for slot in self._slots.values():
            if slot.sleeping is not None:
                slot.sleeping.cancel()
                slot.sleeping = None
            if slot.reset_timer is not None:
                slot.reset_timer.cancel()
                slot.reset_timer = None

    # -----------------------------------------------------------------------
    # Internals
    # -----------------------------------------------------------------------

    async def _debounced_write(self, key: CellKey, slot: _CellSlot) -> None:
        await asyncio.sleep(self.debounce_seconds)
        if slot.sleeping is asyncio.current_task():
            slot.sleeping = None

        async with slot.lock:
            if slot.pending is None:
                return
            week, value = slot.pending
            slot.pending = None
            await self._write(key, slot, week, value)

    async def _write(self, key: CellKey, slot: _CellSlot, week: int, value) -> None:
        current = self._cells.get_value(key.exercise_id, key.column_id, week)
        column = self._cells.column(key.column_id)
        if column is not None and _same_value(current, CellValue.parse(column.data_type, value)):
            # Edited and then reverted inside the quiet period
            if slot.pending is None:
                slot.status = CellSaveStatus(SaveState.IDLE, last_saved=slot.status.last_saved)
            return

        write = asyncio.ensure_future(asyncio.to_thread(
            self._cells.set_value,
            key.exercise_id,
            key.column_id,
            week,
            value,
            self._actor,
        ))
        try:
            await asyncio.wait_for(asyncio.shield(write), timeout=self.watchdog_seconds)
        except asyncio.TimeoutError:
            self._fail(key, slot, week, value, PersistenceFailure(
                f"Save did not complete within {self.watchdog_seconds}s"
            ))
            await self._wait_abandoned(key, slot, write, week, value)
            return
        except PersistenceFailure as e:
            self._fail(key, slot, week, value, e)
            return
        except Exception as e:
            slot.status = CellSaveStatus(
                SaveState.ERROR, last_saved=slot.status.last_saved, error=e
            )
            raise

        if slot.pending is not None:
            # A newer edit is queued; keep showing "saving" until it lands
            return
        self._mark_saved(slot)

    async def _wait_abandoned(
        self,
        key: CellKey,
        slot: _CellSlot,
        write: asyncio.Future,
        week: int,
        value,
    ) -> None:
        """
        Wait out a write the watchdog gave up on.

        A worker thread can't be cancelled, so the write may still land.
        The caller holds the slot lock until it settles, so a newer edit is
        never written before it. If it lands, the cell is saved after all.
        """
        try:
            await write
        except PersistenceFailure:
            return

        logger.info(
            "Timed-out cell save completed late",
            extra={"exercise_id": key.exercise_id, "column_id": key.column_id, "week": key.week}
        )
        if slot.failed == (week, value) and slot.pending is None:
            slot.failed = None
            self._mark_saved(slot)

    def _fail(self, key: CellKey, slot: _CellSlot, week: int, value, error: PersistenceFailure) -> None:
        logger.error(
            "Cell save failed",
            extra={
                "exercise_id": key.exercise_id,
                "column_id": key.column_id,
                "week": key.week,
                "error": str(error),
            }
        )
        if slot.pending is None:
            slot.failed = (week, value)
            slot.status = CellSaveStatus(
                SaveState.ERROR,
                last_saved=slot.status.last_saved,
                error=error,
            )

    def _mark_saved(self, slot: _CellSlot) -> None:
        slot.status = CellSaveStatus(SaveState.SAVED, last_saved=utc_now())
        slot.reset_timer = asyncio.get_running_loop().call_later(
            self.saved_display_seconds, self._clear_saved, slot
        )

    @staticmethod
    def _clear_saved(slot: _CellSlot) -> None:
        slot.reset_timer = None
        if slot.status.state is SaveState.SAVED:
            slot.status = CellSaveStatus(SaveState.IDLE, last_saved=slot.status.last_saved)
