#!/usr/bin/env python3
"""
Create the FitCoach tables in Snowflake.

Runs CREATE TABLE IF NOT EXISTS for every table the store knows about, so
it is safe to run against a schema that is already set up.

Usage:
    python scripts/setup_schema.py            # create tables
    python scripts/setup_schema.py --dry-run  # print the DDL only

Requires:
    - .env file (or environment) with Snowflake credentials
"""

import sys
from pathlib import Path

# Add the project root to path so we can import our modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from fitcoach.config.settings import get_settings
from fitcoach.infrastructure.snowflake import (
    SnowflakeConfig,
    SnowflakeConnectionError,
    SnowflakeStore,
    get_snowflake_connection,
)
from fitcoach.infrastructure.snowflake.schema import TABLES, create_table_statements


def setup_schema(dry_run: bool = False) -> bool:
    if dry_run:
        print("\n=== DRY RUN - Nothing will be created ===\n")
        for statement in create_table_statements():
            print(statement + ";\n")
        print(f"Total: {len(TABLES)} tables")
        return True

    settings = get_settings()
    missing = [f for f in settings.validate_required_fields() if f.startswith("SNOWFLAKE")]
    if settings.store_mock_mode or missing:
        print(f"ERROR: Snowflake is not configured (missing: {', '.join(missing) or 'mock mode on'})")
        return False

    config = SnowflakeConfig(
        account=settings.snowflake_account,
        user=settings.snowflake_user,
        password=settings.snowflake_password or None,
        private_key_path=settings.snowflake_private_key_path,
        private_key_base64=settings.snowflake_private_key_base64,
        database=settings.snowflake_database,
        schema=settings.snowflake_schema,
        warehouse=settings.snowflake_warehouse,
        role=settings.snowflake_role,
    )

    try:
        print(f"Connecting to Snowflake account: {config.account}")
        with get_snowflake_connection(config) as conn:
            print(f"Using database {config.database}, schema {config.schema}")
            SnowflakeStore(conn).create_tables()
    except SnowflakeConnectionError as e:
        print(f"ERROR connecting to Snowflake: {e}")
        return False

    print("\n=== Schema Ready ===")
    for table in TABLES:
        print(f"[OK] {table}")
    return True


def main():
    import argparse

    parser = argparse.ArgumentParser(description='Create FitCoach tables in Snowflake')
    parser.add_argument('--dry-run', action='store_true', help='Print the DDL, don\'t execute it')
    args = parser.parse_args()

    success = setup_schema(dry_run=args.dry_run)

    sys.exit(0 if success else 1)


if __name__ == '__main__':
    main()
