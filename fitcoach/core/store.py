"""
Persistence interface used by the coaching core.

The core never talks to a database driver directly. It asks a
RelationalStore for rows using four primitives (select, insert, update,
upsert) plus an optional transaction scope. Implementations live in
fitcoach.infrastructure: an in-memory store for mock mode and tests, and
a Snowflake-backed store for production.

Rows are plain dicts. Dates are stored as ISO "YYYY-MM-DD" strings and
timestamps as ISO-8601 strings, so ordering comparisons work the same in
every backend.
"""

from contextlib import AbstractContextManager
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional, Protocol, Sequence


# ---------------------------------------------------------------------------
# Filter operators
# ---------------------------------------------------------------------------

class Condition:
    """A non-equality filter on a single column."""

    def matches(self, value: Any) -> bool:
        raise NotImplementedError


@dataclass(frozen=True)
class Between(Condition):
    """Inclusive range: low <= value <= high."""
    low: Any
    high: Any

    def matches(self, value: Any) -> bool:
        return value is not None and self.low <= value <= self.high


@dataclass(frozen=True)
class LessEqual(Condition):
    bound: Any

    def matches(self, value: Any) -> bool:
        return value is not None and value <= self.bound


@dataclass(frozen=True)
class Less(Condition):
    bound: Any

    def matches(self, value: Any) -> bool:
        return value is not None and value < self.bound


@dataclass(frozen=True)
class GreaterEqual(Condition):
    bound: Any

    def matches(self, value: Any) -> bool:
        return value is not None and value >= self.bound


@dataclass(frozen=True)
class IsNull(Condition):

    def matches(self, value: Any) -> bool:
        return value is None


@dataclass(frozen=True)
class In(Condition):
    values: tuple

    def __init__(self, values: Iterable[Any]) -> None:
        object.__setattr__(self, "values", tuple(values))

    def matches(self, value: Any) -> bool:
        return value in self.values


Filters = Mapping[str, Any]


def row_matches(row: Mapping[str, Any], filters: Optional[Filters]) -> bool:
    """Check a row against filters. Plain values mean equality."""
    if not filters:
        return True
    for column, expected in filters.items():
        actual = row.get(column)
        if isinstance(expected, Condition):
            if not expected.matches(actual):
                return False
        elif actual != expected:
            return False
    return True


# ---------------------------------------------------------------------------
# Store protocol
# ---------------------------------------------------------------------------

class RelationalStore(Protocol):
    """
    Generic relational primitives.

    Each call is atomic on its own. Calls are only atomic together inside
    transaction(), and only when `transactional` is True; callers that need
    multi-row atomicity on a non-transactional store must compensate
    themselves (see ProgramLifecycle.activate).

    Every backend error is raised as PersistenceFailure.
    """

    transactional: bool

    def select(
        self,
        table: str,
        filters: Optional[Filters] = None,
        order_by: Optional[Sequence[str]] = None,
    ) -> list[dict]:
        """Rows matching filters. order_by entries prefixed '-' sort descending."""
        ...

    def insert(self, table: str, row: Mapping[str, Any]) -> dict:
        """Insert one row and return it as stored."""
        ...

    def update(self, table: str, filters: Filters, patch: Mapping[str, Any]) -> int:
        """Apply patch to matching rows and return how many changed."""
        ...

    def upsert(
        self,
        table: str,
        row: Mapping[str, Any],
        conflict_key: Sequence[str],
    ) -> dict:
        """Update the row matching conflict_key, or insert it."""
        ...

    def transaction(self) -> AbstractContextManager:
        """Scope in which all calls commit or roll back together."""
        ...
