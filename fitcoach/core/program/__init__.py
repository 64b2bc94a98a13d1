"""
Training program matrix: structure, cells, saving and lifecycle.
"""

from .cells import CellStore
from .lifecycle import ProgramLifecycle
from .models import (
    ALL_WEEKS,
    Cell,
    CellKey,
    CellRef,
    CellValue,
    Column,
    ColumnDataType,
    ColumnScope,
    Exercise,
    ProgramStatus,
    TrainingDay,
    TrainingProgram,
    TrainingProgramFull,
)
from .policy import ColumnPolicy
from .repository import ProgramRepository
from .save_pipeline import CellSaveStatus, SavePipeline, SaveState

__all__ = [
    "ALL_WEEKS",
    "Cell",
    "CellKey",
    "CellRef",
    "CellSaveStatus",
    "CellStore",
    "CellValue",
    "Column",
    "ColumnDataType",
    "ColumnPolicy",
    "ColumnScope",
    "Exercise",
    "ProgramLifecycle",
    "ProgramRepository",
    "ProgramStatus",
    "SavePipeline",
    "SaveState",
    "TrainingDay",
    "TrainingProgram",
    "TrainingProgramFull",
]
