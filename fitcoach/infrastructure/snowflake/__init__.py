"""
Snowflake persistence: connection management and the SQL-backed store.
"""

from .client import (
    SnowflakeConfig,
    SnowflakeConnectionError,
    get_snowflake_connection,
)
from .store import SnowflakeStore

__all__ = [
    "SnowflakeConfig",
    "SnowflakeConnectionError",
    "SnowflakeStore",
    "get_snowflake_connection",
]
