"""
FastAPI dependency injection.

Dependencies provide instances of services, stores, and configuration
to route handlers. Using dependency injection means:
- Routes don't instantiate their own dependencies (easier to test)
- Dependencies can be overridden for testing
- Configuration is centralized
- Resource lifecycle (connections) is managed properly

The acting role and ids come from request headers and are turned into an
explicit ActorContext here; nothing downstream reads ambient state.
"""

import logging
from typing import Annotated, Generator, Optional

from fastapi import Depends, Header, HTTPException, Security, status
from fastapi.security import APIKeyHeader

from ..config.settings import Settings, get_settings
from ..core.context import ActorContext, Role
from ..core.nutrition import PlanVersioning
from ..core.program import ProgramLifecycle, ProgramRepository
from ..core.schedule import ScheduleAggregator
from ..core.store import RelationalStore
from ..infrastructure.memory import InMemoryStore
from ..infrastructure.snowflake import SnowflakeConfig, SnowflakeStore, get_snowflake_connection

logger = logging.getLogger(__name__)

# API Key security scheme
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)

# Global mock store (shared across requests so data persists in mock mode)
_mock_store: Optional[InMemoryStore] = None


# ---------------------------------------------------------------------------
# Authentication and acting context
# ---------------------------------------------------------------------------

async def verify_api_key(
    settings: Annotated[Settings, Depends(get_settings)],
    api_key: str = Security(api_key_header),
) -> str:
    """
    Validate API key from request header.

    Raises 403 if key is invalid or missing.
    """
    if not api_key:
        logger.warning("Request missing API key")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="API key required. Provide X-API-Key header.",
        )

    if api_key not in settings.api_keys_list:
        logger.warning(
            "Invalid API key attempt",
            extra={"key_prefix": api_key[:8] if api_key else ""}
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid API key",
        )

    return api_key


async def get_actor(
    api_key: Annotated[str, Depends(verify_api_key)],
    x_actor_role: Annotated[Optional[str], Header()] = None,
    x_actor_id: Annotated[Optional[str], Header()] = None,
) -> ActorContext:
    """
    Build the acting context from headers.

    Identity is resolved upstream (by whatever authenticates the user);
    this service only trusts the role and id it is handed.
    """
    if not x_actor_role or not x_actor_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Actor-Role and X-Actor-Id headers are required",
        )
    try:
        role = Role(x_actor_role.lower())
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Actor-Role must be 'coach' or 'client'",
        )

    if role is Role.CLIENT:
        return ActorContext.client(x_actor_id)
    return ActorContext.coach(x_actor_id)


async def require_coach(
    actor: Annotated[ActorContext, Depends(get_actor)],
) -> ActorContext:
    """Only coaches may author programs, plans and schedules."""
    if not actor.is_coach:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="This action is only available to coaches",
        )
    return actor


async def require_client_access(
    client_id: str,
    actor: Annotated[ActorContext, Depends(get_actor)],
) -> ActorContext:
    """For routes under /clients/{client_id}: clients only see their own data."""
    actor.ensure_access(client_id)
    return actor


# ---------------------------------------------------------------------------
# Store and Service Dependencies
# ---------------------------------------------------------------------------

def get_mock_store() -> InMemoryStore:
    """The process-wide in-memory store used in mock mode."""
    global _mock_store

    if _mock_store is None:
        _mock_store = InMemoryStore()
        logger.info("Created shared in-memory store")
    return _mock_store


def reset_mock_store() -> None:
    """Drop the shared in-memory store (for tests)."""
    global _mock_store
    _mock_store = None


def get_store(
    settings: Annotated[Settings, Depends(get_settings)],
) -> Generator[RelationalStore, None, None]:
    """
    Provide a RelationalStore for the request.

    This is a generator function (yields instead of returns) because
    we need to manage the connection lifecycle:
    1. Create connection
    2. Wrap it in a store
    3. Yield the store (FastAPI injects it)
    4. Close connection (cleanup after request)

    In mock mode, we reuse the same in-memory store across requests
    so that data persists during the session.
    """
    if settings.store_mock_mode:
        yield get_mock_store()
        return

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

    with get_snowflake_connection(config) as conn:
        logger.debug("Created SnowflakeStore for request")
        yield SnowflakeStore(conn)


def get_program_repository(
    store: Annotated[RelationalStore, Depends(get_store)],
) -> ProgramRepository:
    return ProgramRepository(store)


def get_program_lifecycle(
    store: Annotated[RelationalStore, Depends(get_store)],
) -> ProgramLifecycle:
    return ProgramLifecycle(store)


def get_schedule_aggregator(
    store: Annotated[RelationalStore, Depends(get_store)],
) -> ScheduleAggregator:
    return ScheduleAggregator(store)


def get_plan_versioning(
    store: Annotated[RelationalStore, Depends(get_store)],
) -> PlanVersioning:
    return PlanVersioning(store)


# ---------------------------------------------------------------------------
# Convenience Type Aliases
# ---------------------------------------------------------------------------

# These type aliases make route signatures cleaner
AuthenticatedUser = Annotated[str, Depends(verify_api_key)]
ActorDep = Annotated[ActorContext, Depends(get_actor)]
CoachDep = Annotated[ActorContext, Depends(require_coach)]
ClientActorDep = Annotated[ActorContext, Depends(require_client_access)]
StoreDep = Annotated[RelationalStore, Depends(get_store)]
ProgramRepositoryDep = Annotated[ProgramRepository, Depends(get_program_repository)]
ProgramLifecycleDep = Annotated[ProgramLifecycle, Depends(get_program_lifecycle)]
ScheduleAggregatorDep = Annotated[ScheduleAggregator, Depends(get_schedule_aggregator)]
PlanVersioningDep = Annotated[PlanVersioning, Depends(get_plan_versioning)]
SettingsDep = Annotated[Settings, Depends(get_settings)]
