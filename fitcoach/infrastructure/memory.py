"""
In-memory RelationalStore for local development and tests.

Stores rows in dicts, keyed by table name. This enables running the full
API without provisioning Snowflake, and lets tests exercise the real core
services against real (if simple) persistence semantics.

Not suitable for production, but perfect for:
- Local development (STORE_MOCK_MODE=true)
- Unit tests
- CI/CD environments

Transactions are implemented by snapshotting all tables on entry and
restoring the snapshot if the block raises. The store lock is held for the
whole transaction, so no other thread can observe a half-applied change.
"""

import copy
import logging
import threading
import time
from contextlib import contextmanager
from typing import Any, Generator, Mapping, Optional, Sequence
from uuid import uuid4

from ..core.errors import PersistenceFailure
from ..core.store import Filters, row_matches

logger = logging.getLogger(__name__)


class InMemoryStore:
    """
    Dict-backed store implementing the RelationalStore protocol.

    Args:
        transactional: If False, transaction() is a plain pass-through and
            callers must compensate for partial failures themselves.
        write_latency: Seconds to sleep on every write, for exercising
            timeouts.
    """

    def __init__(self, transactional: bool = True, write_latency: float = 0.0) -> None:
        self.transactional = transactional
        self.write_latency = write_latency
        self._tables: dict[str, list[dict]] = {}
        self._lock = threading.RLock()
        self._failures: list[dict] = []
        self._depth = 0

        logger.info(
            "Initialized in-memory store",
            extra={"transactional": transactional}
        )

    # -----------------------------------------------------------------------
    # RelationalStore
    # -----------------------------------------------------------------------

    def select(
        self,
        table: str,
        filters: Optional[Filters] = None,
        order_by: Optional[Sequence[str]] = None,
    ) -> list[dict]:
        with self._lock:
            self._maybe_fail("select", table)
            rows = [
                copy.deepcopy(row)
                for row in self._tables.get(table, [])
                if row_matches(row, filters)
            ]
        for column in reversed(order_by or []):
            descending = column.startswith("-")
            name = column.lstrip("-")
            rows.sort(
                key=lambda row: (row.get(name) is None, row.get(name)),
                reverse=descending,
            )
        return rows

    def insert(self, table: str, row: Mapping[str, Any]) -> dict:
        self._simulate_latency()
        with self._lock:
            self._maybe_fail("insert", table)
            stored = dict(row)
            stored.setdefault("id", str(uuid4()))
            rows = self._tables.setdefault(table, [])
            if any(existing["id"] == stored["id"] for existing in rows):
                raise PersistenceFailure(f"Duplicate id {stored['id']} in {table}")
            rows.append(stored)
            return copy.deepcopy(stored)

    def update(self, table: str, filters: Filters, patch: Mapping[str, Any]) -> int:
        self._simulate_latency()
        with self._lock:
            self._maybe_fail("update", table)
            count = 0
            for row in self._tables.get(table, []):
                if row_matches(row, filters):
                    row.update(patch)
                    count += 1
            return count

    def upsert(
        self,
        table: str,
        row: Mapping[str, Any],
        conflict_key: Sequence[str],
    ) -> dict:
        self._simulate_latency()
        with self._lock:
            self._maybe_fail("upsert", table)
            key = {column: row.get(column) for column in conflict_key}
            for existing in self._tables.get(table, []):
                if row_matches(existing, key):
                    existing.update({
                        column: value
                        for column, value in row.items()
                        if column != "id" and column not in conflict_key
                    })
                    return copy.deepcopy(existing)
            stored = dict(row)
            stored.setdefault("id", str(uuid4()))
            self._tables.setdefault(table, []).append(stored)
            return copy.deepcopy(stored)

    @contextmanager
    def transaction(self) -> Generator["InMemoryStore", None, None]:
        if not self.transactional:
            yield self
            return

        with self._lock:
            outermost = self._depth == 0
            snapshot = copy.deepcopy(self._tables) if outermost else None
            self._depth += 1
            try:
                yield self
            except BaseException:
                if outermost:
                    self._tables = snapshot
                    logger.debug("In-memory transaction rolled back")
                raise
            finally:
                self._depth -= 1

    # -----------------------------------------------------------------------
    # Helper methods for testing
    # -----------------------------------------------------------------------

    def inject_failure(self, operation: str, table: Optional[str] = None, skip: int = 0) -> None:
        """
        Make a future call fail with PersistenceFailure.

        The first `skip` matching calls succeed; the next one fails, once.
        """
        with self._lock:
            self._failures.append({"operation": operation, "table": table, "skip": skip})

    def rows(self, table: str) -> list[dict]:
        """Raw rows of a table (for test assertions)."""
        with self._lock:
            return copy.deepcopy(self._tables.get(table, []))

    def clear(self) -> None:
        with self._lock:
            self._tables.clear()
            self._failures.clear()

    def _maybe_fail(self, operation: str, table: str) -> None:
        for failure in self._failures:
            if failure["operation"] != operation:
                continue
            if failure["table"] not in (None, table):
                continue
            if failure["skip"] > 0:
                failure["skip"] -= 1
                return
            self._failures.remove(failure)
            raise PersistenceFailure(f"Injected {operation} failure on {table}")

    def _simulate_latency(self) -> None:
        if self.write_latency:
            time.sleep(self.write_latency)
