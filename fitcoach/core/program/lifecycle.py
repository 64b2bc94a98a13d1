"""
Training program lifecycle.

Programs are created as drafts, promoted to active, and eventually
archived, either when a newer program is activated or, for drafts that
were never used, explicitly. They are never deleted. For each client at
most one program is active at any moment, and once a client has had a
program activated there is always exactly one.

Activation is the one multi-row write in the system: retire the current
active program, then promote the new one. Readers must see both steps or
neither. On a transactional store the two updates run in one transaction.
On a store without transactions, a failure in the second step is undone
by re-activating whatever the first step retired.
"""

import logging
from datetime import date
from typing import Callable, Optional
from uuid import uuid4

from ..errors import InvalidTransition, InvariantViolation, PersistenceFailure
from ..store import RelationalStore
from .models import ProgramStatus, TrainingProgram, utc_now
from .repository import (
    CELLS,
    COLUMNS,
    DAYS,
    EXERCISES,
    PROGRAMS,
    ProgramRepository,
    program_from_row,
    to_iso_date,
)

logger = logging.getLogger(__name__)


def _today() -> date:
    return utc_now().date()


class ProgramLifecycle:
    """Creates, activates and archives training programs."""

    def __init__(
        self,
        store: RelationalStore,
        today: Optional[Callable[[], date]] = None,
    ) -> None:
        self._store = store
        self._programs = ProgramRepository(store)
        self._today = today or _today

    def create_program(
        self,
        client_id: str,
        coach_id: str,
        name: str,
        total_weeks: int,
        effective_from: Optional[date] = None,
        effective_to: Optional[date] = None,
    ) -> TrainingProgram:
        """Create a draft program. Drafts are invisible to the client."""
        program = TrainingProgram(
            client_id=client_id,
            coach_id=coach_id,
            name=name,
            total_weeks=total_weeks,
            effective_from=effective_from,
            effective_to=effective_to,
            status=ProgramStatus.DRAFT,
        )
        self._programs.save_program(program)

        logger.info(
            "Created draft program",
            extra={"program_id": program.id, "client_id": client_id, "weeks": total_weeks}
        )
        return program

    def active_program(self, client_id: str) -> Optional[TrainingProgram]:
        """
        The client's active program, if any.

        Raises InvariantViolation if storage holds more than one.
        """
        rows = self._store.select(
            PROGRAMS,
            {"client_id": client_id, "status": ProgramStatus.ACTIVE.value},
        )
        if len(rows) > 1:
            logger.error(
                "Multiple active programs for client",
                extra={"client_id": client_id, "program_ids": [r["id"] for r in rows]}
            )
            raise InvariantViolation(
                f"Client {client_id} has {len(rows)} active programs"
            )
        return program_from_row(rows[0]) if rows else None

    def activate(self, program_id: str) -> TrainingProgram:
        """
        Make a program the client's only active program.

        Every other active program of the same client is archived and the
        target becomes active with effective_from set to today.
        """
        program = self._programs.get_program(program_id)
        if program.is_active:
            return program

        if self._store.transactional:
            with self._store.transaction():
                retired = self._retire_others(program)
                self._promote(program)
        else:
            retired = []
            try:
                self._retire_others(program, retired)
                self._promote(program)
            except Exception:
                self._undo_activation(program, retired)
                raise

        activated = self.active_program(program.client_id)
        if activated is None or activated.id != program.id:
            raise InvariantViolation(
                f"Program {program_id} is not the active program after activation"
            )

        logger.info(
            "Activated program",
            extra={
                "program_id": program_id,
                "client_id": program.client_id,
                "archived": retired,
            }
        )
        return activated

    def archive(self, program_id: str) -> TrainingProgram:
        """
        Archive a draft that will not be used.

        The active program is only ever replaced, by activating another
        one, so archiving it raises InvalidTransition. Archiving an archived
        program changes nothing.
        """
        program = self._programs.get_program(program_id)
        if program.status is ProgramStatus.ARCHIVED:
            return program
        if program.is_active:
            raise InvalidTransition(
                f"Program {program_id} is active; activate its replacement instead"
            )

        self._store.update(
            PROGRAMS,
            {"id": program_id, "status": ProgramStatus.DRAFT.value},
            {"status": ProgramStatus.ARCHIVED.value},
        )
        logger.info(
            "Archived program",
            extra={"program_id": program_id, "client_id": program.client_id}
        )
        return self._programs.get_program(program_id)

    def duplicate(self, program_id: str) -> TrainingProgram:
        """
        Copy a program into a new draft named "<name> (copy)".

        Days, columns, exercises and cells are copied with fresh ids, and
        the cells are re-pointed at the copied exercises and columns, so
        every cell resolves in the copy exactly as in the source.

        The program row is written last. Until then nothing refers to the
        copied rows, so a copy that fails part-way on a store without
        transactions leaves no program behind.
        """
        source = self._programs.get_program(program_id)
        copy = TrainingProgram(
            client_id=source.client_id,
            coach_id=source.coach_id,
            name=f"{source.name} (copy)",
            total_weeks=source.total_weeks,
            effective_from=source.effective_from,
            effective_to=source.effective_to,
            status=ProgramStatus.DRAFT,
        )

        with self._store.transaction():
            copied = self._copy_structure(source.id, copy.id)
            self._programs.save_program(copy)

        logger.info(
            "Duplicated program",
            extra={"program_id": program_id, "copy_id": copy.id, "rows": copied}
        )
        return copy

    # -----------------------------------------------------------------------
    # Private Methods
    # -----------------------------------------------------------------------

    def _retire_others(
        self,
        program: TrainingProgram,
        retired: Optional[list[str]] = None,
    ) -> list[str]:
        """Archive the client's other active programs, recording each as it goes."""
        retired = [] if retired is None else retired
        rows = self._store.select(
            PROGRAMS,
            {"client_id": program.client_id, "status": ProgramStatus.ACTIVE.value},
        )
        for row in rows:
            if row["id"] == program.id:
                continue
            self._store.update(
                PROGRAMS,
                {"id": row["id"], "status": ProgramStatus.ACTIVE.value},
                {"status": ProgramStatus.ARCHIVED.value},
            )
            retired.append(row["id"])
        return retired

    def _promote(self, program: TrainingProgram) -> None:
        changed = self._store.update(
            PROGRAMS,
            {"id": program.id},
            {
                "status": ProgramStatus.ACTIVE.value,
                "effective_from": to_iso_date(self._today()),
            },
        )
        if changed != 1:
            raise PersistenceFailure(f"Program {program.id} was not promoted")

    def _undo_activation(self, program: TrainingProgram, retired: list[str]) -> None:
        logger.warning(
            "Rolling back partial activation",
            extra={"program_id": program.id, "restoring": retired}
        )
        self._store.update(
            PROGRAMS,
            {"id": program.id},
            {
                "status": program.status.value,
                "effective_from": to_iso_date(program.effective_from),
            },
        )
        for other_id in retired:
            self._store.update(
                PROGRAMS, {"id": other_id}, {"status": ProgramStatus.ACTIVE.value}
            )

    def _copy_structure(self, source_id: str, target_id: str) -> int:
        """Copy every row hanging off source_id to target_id. Returns the row count."""
        new_ids: dict[str, str] = {}
        copied = 0

        def copy_rows(table: str, *references: str) -> None:
            nonlocal copied
            for row in self._store.select(table, {"program_id": source_id}):
                if any(row.get(column) not in new_ids for column in references):
                    # Cell of an exercise or column that no longer exists
                    continue
                new_ids[row["id"]] = str(uuid4())
                patch = {column: new_ids[row[column]] for column in references}
                self._store.insert(
                    table,
                    {**row, **patch, "id": new_ids[row["id"]], "program_id": target_id},
                )
                copied += 1

        copy_rows(DAYS)
        copy_rows(COLUMNS)
        copy_rows(EXERCISES, "day_id")
        copy_rows(CELLS, "exercise_id", "column_id")
        return copied
