"""
Shared fixtures.

Every test gets its own InMemoryStore, so nothing leaks between tests.
The `matrix` fixture builds a small program with one exercise and one
column of each interesting kind.
"""

from datetime import date
from types import SimpleNamespace

import pytest

from fitcoach.core.context import ActorContext
from fitcoach.core.program import (
    ColumnDataType,
    ColumnScope,
    ProgramLifecycle,
    ProgramRepository,
)
from fitcoach.infrastructure.memory import InMemoryStore


TODAY = date(2024, 1, 1)


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def coach() -> ActorContext:
    return ActorContext.coach("coach-1", client_id="client-1")


@pytest.fixture
def client_actor() -> ActorContext:
    return ActorContext.client("client-1")


@pytest.fixture
def lifecycle(store) -> ProgramLifecycle:
    return ProgramLifecycle(store, today=lambda: TODAY)


@pytest.fixture
def matrix(store, lifecycle):
    """
    A four-week program with one exercise and these columns:

    - tempo: text, exercise-scoped, coach only
    - rest: time, exercise-scoped, coach only
    - load: number, week-scoped, client editable
    - notes: textarea, week-scoped, coach only
    """
    repository = ProgramRepository(store)
    program = lifecycle.create_program("client-1", "coach-1", "Block A", total_weeks=4)
    day = repository.add_day(program.id, "Upper")
    exercise = repository.add_exercise(program.id, day.id, "Bench press")

    return SimpleNamespace(
        store=store,
        program=program,
        day=day,
        exercise=exercise,
        tempo=repository.add_column(
            program.id, "Tempo", ColumnDataType.TEXT, ColumnScope.EXERCISE
        ),
        rest=repository.add_column(
            program.id, "Rest", ColumnDataType.TIME, ColumnScope.EXERCISE
        ),
        load=repository.add_column(
            program.id, "Load (kg)", ColumnDataType.NUMBER, ColumnScope.WEEK,
            editable_by_client=True,
        ),
        notes=repository.add_column(
            program.id, "Coach notes", ColumnDataType.TEXTAREA, ColumnScope.WEEK
        ),
    )
