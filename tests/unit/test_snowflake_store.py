"""
Unit tests for the Snowflake store's SQL generation.

A fake connection records every statement, so these run without
snowflake-connector-python or a warehouse.
"""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from fitcoach.core.errors import PersistenceFailure
from fitcoach.core.store import Between, In, IsNull, LessEqual
from fitcoach.infrastructure.snowflake import SnowflakeStore
from fitcoach.infrastructure.snowflake.schema import TABLES, create_table_statements


class FakeCursor:

    def __init__(self, connection):
        self._connection = connection
        self.description = None
        self.rowcount = 0
        self._rows = []

    def execute(self, sql, params=None):
        self._connection.statements.append((sql, params))
        if self._connection.fail_on and self._connection.fail_on in sql:
            raise RuntimeError("warehouse suspended")
        result = self._connection.results.pop(0) if self._connection.results else ([], [])
        columns, rows = result
        self.description = [(name.upper(),) for name in columns] or None
        self._rows = rows
        self.rowcount = self._connection.rowcount

    def fetchall(self):
        return self._rows

    def close(self):
        pass


class FakeConnection:

    def __init__(self):
        self.statements: list[tuple] = []
        self.results: list[tuple] = []
        self.rowcount = 1
        self.commits = 0
        self.rollbacks = 0
        self.fail_on = None

    def cursor(self):
        return FakeCursor(self)

    def commit(self):
        self.commits += 1

    def rollback(self):
        self.rollbacks += 1


@pytest.fixture
def connection() -> FakeConnection:
    return FakeConnection()


@pytest.fixture
def store(connection) -> SnowflakeStore:
    return SnowflakeStore(connection)


class TestSelect:

    def test_builds_parameterized_where_and_order(self, store, connection):
        store.select(
            "macro_plans",
            {
                "client_id": "c1",
                "effective_from": LessEqual("2024-02-01"),
                "effective_to": IsNull(),
            },
            order_by=["-effective_from", "created_at"],
        )

        sql, params = connection.statements[0]
        assert sql == (
            "SELECT * FROM macro_plans WHERE client_id = %s AND effective_from <= %s "
            "AND effective_to IS NULL ORDER BY effective_from DESC, created_at ASC"
        )
        assert params == ("c1", "2024-02-01")

    def test_between_and_in(self, store, connection):
        store.select("cardio_sessions", {
            "date": Between("2024-01-01", "2024-01-07"),
            "id": In(["a", "b"]),
        })

        sql, params = connection.statements[0]
        assert "date BETWEEN %s AND %s" in sql
        assert "id IN (%s, %s)" in sql
        assert params == ("2024-01-01", "2024-01-07", "a", "b")

    def test_empty_in_matches_nothing(self, store, connection):
        store.select("training_days", {"id": In([])})
        assert "1 = 0" in connection.statements[0][0]

    def test_rows_are_normalized(self, store, connection):
        connection.results.append((
            ["id", "effective_from", "created_at", "kcal", "fat"],
            [("p1", date(2024, 1, 1), datetime(2024, 1, 1, 8, tzinfo=timezone.utc),
              Decimal("2400"), Decimal("70.5"))],
        ))

        [row] = store.select("macro_plans")

        assert row == {
            "id": "p1",
            "effective_from": "2024-01-01",
            "created_at": "2024-01-01T08:00:00+00:00",
            "kcal": 2400,
            "fat": 70.5,
        }

    def test_unknown_identifiers_are_refused(self, store):
        with pytest.raises(ValueError):
            store.select("users; DROP TABLE clients")
        with pytest.raises(ValueError):
            store.select("clients", {"1=1 OR id": "x"})
        with pytest.raises(ValueError):
            store.select("clients", order_by=["-password"])


class TestWrites:

    def test_insert_commits(self, store, connection):
        row = store.insert("clients", {"id": "c1", "full_name": "Ana"})

        sql, params = connection.statements[0]
        assert sql == "INSERT INTO clients (id, full_name) VALUES (%s, %s)"
        assert params == ("c1", "Ana")
        assert row["id"] == "c1"
        assert connection.commits == 1

    def test_update_returns_rowcount(self, store, connection):
        connection.rowcount = 2

        changed = store.update("training_programs", {"client_id": "c1"}, {"status": "archived"})

        sql, params = connection.statements[0]
        assert sql == "UPDATE training_programs SET status = %s WHERE client_id = %s"
        assert params == ("archived", "c1")
        assert changed == 2

    def test_upsert_merges_on_conflict_key(self, store, connection):
        store.upsert(
            "training_cells",
            {"id": "x", "exercise_id": "e", "column_id": "k", "week_index": 1, "value": "80"},
            ("exercise_id", "column_id", "week_index"),
        )

        sql, params = connection.statements[0]
        assert sql.startswith("MERGE INTO training_cells AS target")
        assert "ON target.exercise_id = source.exercise_id" in sql
        assert "WHEN MATCHED THEN UPDATE SET value = %s" in sql
        assert "WHEN NOT MATCHED THEN INSERT (id, exercise_id, column_id, week_index, value)" in sql
        assert params == ("e", "k", 1, "80", "x", "e", "k", 1, "80")
        # Reads the stored row back
        assert connection.statements[1][0].startswith("SELECT * FROM training_cells")

    def test_driver_errors_become_persistence_failures(self, store, connection):
        connection.fail_on = "INSERT"
        with pytest.raises(PersistenceFailure, match="warehouse suspended"):
            store.insert("clients", {"id": "c1"})


class TestTransactions:

    def test_commit_once_at_the_end(self, store, connection):
        with store.transaction():
            store.update("training_programs", {"id": "a"}, {"status": "archived"})
            store.update("training_programs", {"id": "b"}, {"status": "active"})

        assert connection.statements[0][0] == "BEGIN"
        assert connection.commits == 1
        assert connection.rollbacks == 0

    def test_rollback_on_error(self, store, connection):
        with pytest.raises(RuntimeError):
            with store.transaction():
                store.update("training_programs", {"id": "a"}, {"status": "archived"})
                raise RuntimeError("boom")

        assert connection.rollbacks == 1
        assert connection.commits == 0


class TestSchema:

    def test_create_table_statements_cover_every_table(self):
        statements = create_table_statements()
        assert len(statements) == len(TABLES)
        assert statements[0].startswith("CREATE TABLE IF NOT EXISTS training_programs")
