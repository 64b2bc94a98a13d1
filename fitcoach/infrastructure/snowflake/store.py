"""
Snowflake implementation of the RelationalStore protocol.

Translates the four store primitives into parameterized SQL:
- select -> SELECT ... WHERE ... ORDER BY
- insert -> INSERT INTO
- update -> UPDATE ... SET ... WHERE
- upsert -> MERGE INTO (update on conflict key match, insert otherwise)

Rows come back as dicts keyed by lower-case column name. DATE and
TIMESTAMP values are turned back into ISO strings, the representation the
core stores, so comparisons behave the same as with the in-memory store.
"""

import logging
from contextlib import contextmanager
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Generator, Mapping, Optional, Sequence
from uuid import uuid4

from ...core.errors import PersistenceFailure
from ...core.store import (
    Between,
    Filters,
    GreaterEqual,
    In,
    IsNull,
    Less,
    LessEqual,
)
from .client import SnowflakeConnection
from .schema import TABLES, create_table_statements

logger = logging.getLogger(__name__)


_COMPARISONS = {
    LessEqual: "<=",
    Less: "<",
    GreaterEqual: ">=",
}


class SnowflakeStore:
    """
    RelationalStore backed by a Snowflake connection.

    Each call outside transaction() commits on its own. Inside
    transaction() all calls share one Snowflake transaction.
    """

    transactional = True

    def __init__(self, connection: SnowflakeConnection) -> None:
        self._conn = connection
        self._in_transaction = False

    # -----------------------------------------------------------------------
    # RelationalStore
    # -----------------------------------------------------------------------

    def select(
        self,
        table: str,
        filters: Optional[Filters] = None,
        order_by: Optional[Sequence[str]] = None,
    ) -> list[dict]:
        self._check_table(table)
        where, params = self._where(table, filters)
        sql = f"SELECT * FROM {table}{where}"

        if order_by:
            terms = []
            for column in order_by:
                name = column.lstrip("-")
                self._check_column(table, name)
                terms.append(f"{name} {'DESC' if column.startswith('-') else 'ASC'}")
            sql += " ORDER BY " + ", ".join(terms)

        return self._query(sql, params)

    def insert(self, table: str, row: Mapping[str, Any]) -> dict:
        self._check_table(table)
        stored = dict(row)
        stored.setdefault("id", str(uuid4()))
        for column in stored:
            self._check_column(table, column)

        columns = list(stored)
        sql = (
            f"INSERT INTO {table} ({', '.join(columns)}) "
            f"VALUES ({', '.join(['%s'] * len(columns))})"
        )
        self._execute(sql, tuple(stored[c] for c in columns))
        return stored

    def update(self, table: str, filters: Filters, patch: Mapping[str, Any]) -> int:
        self._check_table(table)
        if not patch:
            return 0
        for column in patch:
            self._check_column(table, column)

        assignments = ", ".join(f"{column} = %s" for column in patch)
        where, where_params = self._where(table, filters)
        sql = f"UPDATE {table} SET {assignments}{where}"
        return self._execute(sql, tuple(patch.values()) + where_params)

    def upsert(
        self,
        table: str,
        row: Mapping[str, Any],
        conflict_key: Sequence[str],
    ) -> dict:
        self._check_table(table)
        stored = dict(row)
        stored.setdefault("id", str(uuid4()))
        for column in stored:
            self._check_column(table, column)

        columns = list(stored)
        updatable = [c for c in columns if c != "id" and c not in conflict_key]

        source = ", ".join(f"%s AS {column}" for column in conflict_key)
        on = " AND ".join(f"target.{column} = source.{column}" for column in conflict_key)
        sql = (
            f"MERGE INTO {table} AS target "
            f"USING (SELECT {source}) AS source "
            f"ON {on} "
        )
        params: tuple = tuple(stored[c] for c in conflict_key)
        if updatable:
            sql += "WHEN MATCHED THEN UPDATE SET " + ", ".join(
                f"{column} = %s" for column in updatable
            ) + " "
            params += tuple(stored[c] for c in updatable)
        sql += (
            f"WHEN NOT MATCHED THEN INSERT ({', '.join(columns)}) "
            f"VALUES ({', '.join(['%s'] * len(columns))})"
        )
        params += tuple(stored[c] for c in columns)

        self._execute(sql, params)

        # The matched row keeps its original id, so read back what is stored
        rows = self.select(table, {column: stored[column] for column in conflict_key})
        return rows[0] if rows else stored

    @contextmanager
    def transaction(self) -> Generator["SnowflakeStore", None, None]:
        if self._in_transaction:
            yield self
            return

        self._execute_raw("BEGIN")
        self._in_transaction = True
        try:
            yield self
        except BaseException:
            self._in_transaction = False
            self._conn.rollback()
            logger.warning("Rolled back Snowflake transaction")
            raise
        else:
            self._in_transaction = False
            self._conn.commit()

    # -----------------------------------------------------------------------
    # Maintenance
    # -----------------------------------------------------------------------

    def ping(self) -> bool:
        """Cheap connectivity check used by the readiness endpoint."""
        self._query("SELECT 1 AS ok", ())
        return True

    def create_tables(self) -> None:
        for statement in create_table_statements():
            self._execute_raw(statement)
        logger.info("Ensured Snowflake tables exist", extra={"tables": len(TABLES)})

    # -----------------------------------------------------------------------
    # Private Methods
    # -----------------------------------------------------------------------

    def _check_table(self, table: str) -> None:
        if table not in TABLES:
            raise ValueError(f"Unknown table {table!r}")

    def _check_column(self, table: str, column: str) -> None:
        if column not in TABLES[table]:
            raise ValueError(f"Unknown column {column!r} for table {table!r}")

    def _where(self, table: str, filters: Optional[Filters]) -> tuple[str, tuple]:
        if not filters:
            return "", ()

        clauses = []
        params: list = []
        for column, condition in filters.items():
            self._check_column(table, column)
            if isinstance(condition, Between):
                clauses.append(f"{column} BETWEEN %s AND %s")
                params.extend([condition.low, condition.high])
            elif type(condition) in _COMPARISONS:
                clauses.append(f"{column} {_COMPARISONS[type(condition)]} %s")
                params.append(condition.bound)
            elif isinstance(condition, IsNull) or condition is None:
                clauses.append(f"{column} IS NULL")
            elif isinstance(condition, In):
                if not condition.values:
                    clauses.append("1 = 0")
                else:
                    placeholders = ", ".join(["%s"] * len(condition.values))
                    clauses.append(f"{column} IN ({placeholders})")
                    params.extend(condition.values)
            else:
                clauses.append(f"{column} = %s")
                params.append(condition)

        return " WHERE " + " AND ".join(clauses), tuple(params)

    def _query(self, sql: str, params: tuple) -> list[dict]:
        cursor = self._conn.cursor()
        try:
            cursor.execute(sql, params)
            names = [column[0].lower() for column in cursor.description or []]
            return [
                {name: _normalize(value) for name, value in zip(names, row)}
                for row in cursor.fetchall()
            ]
        except Exception as e:
            logger.error(
                "Snowflake query failed",
                extra={"query": sql[:100], "error": str(e)}
            )
            raise PersistenceFailure(f"Query failed: {e}") from e
        finally:
            cursor.close()

    def _execute(self, sql: str, params: tuple) -> int:
        cursor = self._conn.cursor()
        try:
            cursor.execute(sql, params)
            count = cursor.rowcount or 0
            if not self._in_transaction:
                self._conn.commit()
            return count
        except Exception as e:
            logger.error(
                "Snowflake statement failed",
                extra={"query": sql[:100], "error": str(e)}
            )
            raise PersistenceFailure(f"Statement failed: {e}") from e
        finally:
            cursor.close()

    def _execute_raw(self, sql: str) -> None:
        cursor = self._conn.cursor()
        try:
            cursor.execute(sql)
        except Exception as e:
            raise PersistenceFailure(f"Statement failed: {e}") from e
        finally:
            cursor.close()


def _normalize(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    return value
