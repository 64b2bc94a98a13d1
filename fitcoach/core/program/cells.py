"""
Cell store for the training matrix.

Holds the (exercise, column, week) -> value entries of one program and
resolves the effective value for a given week:

- EXERCISE-scoped columns are week-invariant. Reads and writes for any
  week land on the single ALL_WEEKS cell.
- WEEK-scoped columns keep one independent value per week.

Cells are created lazily on the first write and never deleted. A write
either overwrites the one existing cell for its resolved key or inserts a
new one, so there is never more than one cell per key.

The in-memory index is only updated after the store has accepted the
write. Callers therefore never observe a value that wasn't persisted.
"""

import logging
import threading
from typing import Iterable, Optional
from uuid import uuid4

from ..context import ActorContext
from ..errors import PersistenceFailure, UnknownCellAddress
from ..store import RelationalStore
from .models import (
    ALL_WEEKS,
    Cell,
    CellKey,
    CellRef,
    CellValue,
    Column,
    ColumnScope,
    utc_now,
)
from .policy import ColumnPolicy
from .repository import CELL_CONFLICT_KEY, CELLS, ProgramRepository, cell_from_row

logger = logging.getLogger(__name__)


class CellStore:
    """
    Read/write access to one program's cells.

    Use CellStore.load() to build one from persisted data. The constructor
    takes the structure directly, which is handy in tests.
    """

    def __init__(
        self,
        store: RelationalStore,
        program_id: str,
        columns: Iterable[Column],
        exercise_ids: Iterable[str],
        total_weeks: Optional[int] = None,
        cells: Iterable[Cell] = (),
        policy: Optional[ColumnPolicy] = None,
        client_id: Optional[str] = None,
    ) -> None:
        self._store = store
        self.program_id = program_id
        self.total_weeks = total_weeks
        # Owner of the program; when set, clients other than this one may not write
        self.client_id = client_id
        self.policy = policy or ColumnPolicy()
        self._columns = {column.id: column for column in columns}
        self._exercise_ids = set(exercise_ids)
        self._cells: dict[CellKey, Cell] = {}
        self._lock = threading.Lock()
        for cell in cells:
            self._cells[cell.key] = cell

    @classmethod
    def load(
        cls,
        store: RelationalStore,
        program_id: str,
        policy: Optional[ColumnPolicy] = None,
    ) -> "CellStore":
        repository = ProgramRepository(store)
        program = repository.get_program(program_id)
        columns = repository.columns(program_id)
        exercises = repository.exercises(program_id)
        cells = repository.cells(program_id, columns)

        logger.debug(
            "Loaded cell store",
            extra={
                "program_id": program_id,
                "columns": len(columns),
                "exercises": len(exercises),
                "cells": len(cells),
            }
        )

        return cls(
            store,
            program_id,
            columns=columns,
            exercise_ids=[e.id for e in exercises],
            total_weeks=program.total_weeks,
            cells=cells,
            policy=policy,
            client_id=program.client_id,
        )

    # -----------------------------------------------------------------------
    # Reads
    # -----------------------------------------------------------------------

    def column(self, column_id: str) -> Optional[Column]:
        return self._columns.get(column_id)

    def resolve_week(self, column_id: str, week: int) -> int:
        column = self._columns.get(column_id)
        if column is None:
            return week
        return self.policy.resolve_week(column, week)

    def get_value(self, exercise_id: str, column_id: str, week: int) -> Optional[CellValue]:
        """
        Effective value of a cell for the given week.

        Never fails: unknown addresses and cells nobody has written yet
        both read as None.
        """
        key = CellKey(exercise_id, column_id, self.resolve_week(column_id, week))
        with self._lock:
            cell = self._cells.get(key)
        if cell is None or cell.value is None or cell.value.is_empty:
            return None
        return cell.value

    def cells(self) -> list[Cell]:
        with self._lock:
            return list(self._cells.values())

    # -----------------------------------------------------------------------
    # Writes
    # -----------------------------------------------------------------------

    def prepare_write(
        self,
        exercise_id: str,
        column_id: str,
        week: int,
        value,
        actor: ActorContext,
    ) -> tuple[CellKey, CellValue]:
        """
        Check a write without performing it.

        Raises AccessDenied if a client writes another client's program,
        UnknownCellAddress for structurally invalid targets,
        WriteUnauthorized if the actor may not write the column, and
        InvalidCellValue if the value doesn't fit the column type.
        """
        if self.client_id is not None:
            actor.ensure_access(self.client_id)

        column = self._columns.get(column_id)
        if column is None:
            raise UnknownCellAddress(f"Column {column_id} is not part of program {self.program_id}")
        if exercise_id not in self._exercise_ids:
            raise UnknownCellAddress(
                f"Exercise {exercise_id} is not part of program {self.program_id}"
            )

        self.policy.authorize_write(column, actor)

        resolved = self.policy.resolve_week(column, week)
        if column.scope is ColumnScope.WEEK:
            if resolved < 1 or (self.total_weeks and resolved > self.total_weeks):
                raise UnknownCellAddress(
                    f"Week {week} is outside 1..{self.total_weeks} for column {column_id}"
                )

        return CellKey(exercise_id, column_id, resolved), CellValue.parse(column.data_type, value)

    def set_value(
        self,
        exercise_id: str,
        column_id: str,
        week: int,
        value,
        actor: ActorContext,
    ) -> CellRef:
        """
        Persist a value and return a reference to the stored cell.

        Last write wins. Writing the same value repeatedly keeps a single
        stored cell. On PersistenceFailure nothing changes locally.
        """
        key, cell_value = self.prepare_write(exercise_id, column_id, week, value, actor)

        with self._lock:
            existing = self._cells.get(key)
        now = utc_now()

        row = {
            "id": existing.id if existing else str(uuid4()),
            "program_id": self.program_id,
            "exercise_id": key.exercise_id,
            "column_id": key.column_id,
            "week_index": key.week,
            "value": cell_value.to_stored(),
            "value_type": cell_value.kind.value,
            "updated_at": now.isoformat(),
            "updated_by": actor.actor_id,
        }

        try:
            stored = self._store.upsert(CELLS, row, CELL_CONFLICT_KEY)
        except PersistenceFailure as e:
            logger.error(
                "Failed to save cell",
                extra={
                    "program_id": self.program_id,
                    "exercise_id": key.exercise_id,
                    "column_id": key.column_id,
                    "week": key.week,
                    "error": str(e),
                }
            )
            raise

        cell = cell_from_row(stored, self._columns[column_id])
        with self._lock:
            self._cells[key] = cell

        logger.debug(
            "Saved cell",
            extra={
                "program_id": self.program_id,
                "cell_id": cell.id,
                "week": key.week,
                "all_weeks": key.week == ALL_WEEKS,
            }
        )

        return CellRef(
            id=cell.id,
            key=key,
            value=cell.value,
            updated_at=cell.updated_at or now,
        )
