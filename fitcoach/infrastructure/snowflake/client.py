"""
Snowflake database connection management.

Provides connection factory and context manager for Snowflake operations.

Most code never touches this module directly - it goes through
SnowflakeStore, which handles the translation between store primitives
and SQL.
"""

import base64
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Generator, Optional, Protocol

logger = logging.getLogger(__name__)


class SnowflakeConnection(Protocol):
    """
    Protocol for Snowflake connections.

    Using a protocol means tests can provide a fake without
    importing the actual snowflake-connector-python.
    """

    def cursor(self): ...
    def commit(self) -> None: ...
    def rollback(self) -> None: ...


@dataclass
class SnowflakeConfig:
    """Configuration for Snowflake connection."""
    account: str
    user: str
    password: Optional[str] = None
    private_key_path: Optional[str] = None
    private_key_base64: Optional[str] = None
    database: str = "FITCOACH"
    schema: str = "COACHING"
    warehouse: str = "COMPUTE_WH"
    role: Optional[str] = None


class SnowflakeConnectionError(Exception):
    """Raised when Snowflake connection fails."""
    pass


def _der_private_key(pem: bytes) -> bytes:
    """
    Convert a PEM private key to the DER bytes snowflake-connector expects.

    Snowflake requires the private key as a bytes object, not a file path.
    """
    from cryptography.hazmat.backends import default_backend
    from cryptography.hazmat.primitives import serialization

    private_key = serialization.load_pem_private_key(
        pem,
        password=None,  # No password on the key
        backend=default_backend()
    )

    return private_key.private_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption()
    )


def _load_private_key(config: SnowflakeConfig) -> Optional[bytes]:
    """Private key from a file path, or from base64 (for deployments without files)."""
    if config.private_key_path:
        with open(config.private_key_path, 'rb') as key_file:
            return _der_private_key(key_file.read())
    if config.private_key_base64:
        return _der_private_key(base64.b64decode(config.private_key_base64))
    return None


@contextmanager
def get_snowflake_connection(config: SnowflakeConfig) -> Generator[SnowflakeConnection, None, None]:
    """
    Provide Snowflake connection with automatic cleanup.

    Supports both password and key-pair authentication:
    - If a private key (path or base64) is set, uses key-pair auth
    - Otherwise, uses password auth

    Using a context manager ensures connections are always closed,
    even if an exception occurs.

    Usage:
        with get_snowflake_connection(config) as conn:
            store = SnowflakeStore(conn)
    """
    try:
        import snowflake.connector
    except ImportError:
        raise ImportError(
            "snowflake-connector-python is required. "
            "Install with: pip install snowflake-connector-python"
        )

    conn = None
    try:
        connect_params = {
            'account': config.account,
            'user': config.user,
            'database': config.database,
            'schema': config.schema,
            'warehouse': config.warehouse,
            'role': config.role,
            'client_session_keep_alive': True,
        }

        private_key = _load_private_key(config)
        if private_key:
            logger.info("Using key-pair authentication for Snowflake")
            connect_params['private_key'] = private_key
        elif config.password:
            logger.info("Using password authentication for Snowflake")
            connect_params['password'] = config.password
        else:
            raise SnowflakeConnectionError(
                "Either password or a private key must be provided"
            )

        conn = snowflake.connector.connect(**connect_params)

        logger.debug(
            "Established Snowflake connection",
            extra={
                "account": config.account,
                "database": config.database,
                "schema": config.schema,
            }
        )

    except snowflake.connector.errors.DatabaseError as e:
        logger.error(
            "Snowflake connection failed",
            extra={"error": str(e), "account": config.account}
        )
        raise SnowflakeConnectionError(f"Database connection failed: {e}")

    try:
        yield conn
    finally:
        try:
            conn.close()
            logger.debug("Closed Snowflake connection")
        except Exception as e:
            logger.warning(
                "Error closing Snowflake connection",
                extra={"error": str(e)}
            )
