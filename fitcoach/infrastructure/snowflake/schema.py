"""
Table definitions for the Snowflake store.

SnowflakeStore only builds SQL for tables and columns listed here, which
keeps every identifier in generated SQL out of caller control. Values are
always bound as parameters.
"""

TABLES: dict[str, dict[str, str]] = {
    "training_programs": {
        "id": "VARCHAR(36) PRIMARY KEY",
        "client_id": "VARCHAR(64) NOT NULL",
        "coach_id": "VARCHAR(64)",
        "name": "VARCHAR(255)",
        "total_weeks": "NUMBER(4, 0)",
        "effective_from": "DATE",
        "effective_to": "DATE",
        "status": "VARCHAR(16) NOT NULL",
        "created_at": "TIMESTAMP_TZ",
    },
    "training_days": {
        "id": "VARCHAR(36) PRIMARY KEY",
        "program_id": "VARCHAR(36) NOT NULL",
        "name": "VARCHAR(255)",
        "order_index": "NUMBER(4, 0)",
    },
    "training_columns": {
        "id": "VARCHAR(36) PRIMARY KEY",
        "program_id": "VARCHAR(36) NOT NULL",
        "label": "VARCHAR(255)",
        "data_type": "VARCHAR(16)",
        "scope": "VARCHAR(16)",
        "editable_by": "VARCHAR(16)",
        "order_index": "NUMBER(4, 0)",
    },
    "training_exercises": {
        "id": "VARCHAR(36) PRIMARY KEY",
        "program_id": "VARCHAR(36) NOT NULL",
        "day_id": "VARCHAR(36) NOT NULL",
        "exercise_name": "VARCHAR(255)",
        "order_index": "NUMBER(4, 0)",
    },
    "training_cells": {
        "id": "VARCHAR(36) PRIMARY KEY",
        "program_id": "VARCHAR(36) NOT NULL",
        "exercise_id": "VARCHAR(36) NOT NULL",
        "column_id": "VARCHAR(36) NOT NULL",
        "week_index": "NUMBER(4, 0) NOT NULL",
        "value": "VARCHAR",
        "value_type": "VARCHAR(16)",
        "updated_at": "TIMESTAMP_TZ",
        "updated_by": "VARCHAR(64)",
    },
    "scheduled_strength_sessions": {
        "id": "VARCHAR(36) PRIMARY KEY",
        "client_id": "VARCHAR(64) NOT NULL",
        "training_program_id": "VARCHAR(36) NOT NULL",
        "training_day_id": "VARCHAR(36) NOT NULL",
        "date": "DATE NOT NULL",
        "is_completed": "BOOLEAN",
        "created_at": "TIMESTAMP_TZ",
    },
    "cardio_sessions": {
        "id": "VARCHAR(36) PRIMARY KEY",
        "client_id": "VARCHAR(64) NOT NULL",
        "date": "DATE NOT NULL",
        "name": "VARCHAR(255)",
        "description": "VARCHAR",
        "structure": "VARCHAR",
        "is_completed": "BOOLEAN",
        "created_at": "TIMESTAMP_TZ",
        "rpe": "NUMBER(2, 0)",
        "duration_minutes": "FLOAT",
        "distance_km": "FLOAT",
        "notes": "VARCHAR",
    },
    "clients": {
        "id": "VARCHAR(64) PRIMARY KEY",
        "coach_id": "VARCHAR(64)",
        "full_name": "VARCHAR(255)",
        "next_checkin_date": "DATE",
        "status": "VARCHAR(16)",
    },
    "macro_plans": {
        "id": "VARCHAR(36) PRIMARY KEY",
        "client_id": "VARCHAR(64) NOT NULL",
        "kcal": "NUMBER(6, 0)",
        "protein": "NUMBER(5, 0)",
        "carbs": "NUMBER(5, 0)",
        "fat": "NUMBER(5, 0)",
        "steps_goal": "NUMBER(7, 0)",
        "cardio_goal": "VARCHAR(255)",
        "effective_from": "DATE NOT NULL",
        "effective_to": "DATE",
        "created_at": "TIMESTAMP_TZ",
    },
    "diet_plans": {
        "id": "VARCHAR(36) PRIMARY KEY",
        "client_id": "VARCHAR(64) NOT NULL",
        "name": "VARCHAR(255)",
        "content": "VARCHAR",
        "effective_from": "DATE NOT NULL",
        "effective_to": "DATE",
        "created_at": "TIMESTAMP_TZ",
    },
}


def create_table_statements() -> list[str]:
    """CREATE TABLE IF NOT EXISTS statements for every table."""
    statements = []
    for table, columns in TABLES.items():
        body = ",\n    ".join(f"{name} {ddl}" for name, ddl in columns.items())
        statements.append(f"CREATE TABLE IF NOT EXISTS {table} (\n    {body}\n)")
    return statements
