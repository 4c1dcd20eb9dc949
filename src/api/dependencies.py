"""
FastAPI dependency injection.

Dependencies provide instances of services, repositories, and configuration
to route handlers. Using dependency injection means:
- Routes don't instantiate their own dependencies (easier to test)
- Dependencies can be overridden in tests
- Resource lifecycle (connections) is managed properly

One database connection is opened per request and shared by every
repository the request uses (FastAPI caches a dependency within a request).
"""

import logging
from typing import Annotated, Generator, Optional

from fastapi import Depends, HTTPException, Security, status
from fastapi.security import APIKeyHeader

from ..config.settings import Settings, get_settings
from ..core.medals.service import MedalService
from ..core.program.locks import PlayerLockRegistry
from ..core.program.service import ProgramService
from ..infrastructure.snowflake.client import (
    MockSnowflakeConnection,
    create_snowflake_connection,
)
from ..infrastructure.snowflake.repositories.medals import MedalRepository
from ..infrastructure.snowflake.repositories.program_state import ProgramStateRepository
from ..infrastructure.snowflake.repositories.sessions import (
    SessionRepository,
    SnowflakeConfig,
    SnowflakeConnection,
)

logger = logging.getLogger(__name__)

# API Key security scheme
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)

# Process-wide singletons
_mock_snowflake_connection: Optional[MockSnowflakeConnection] = None
_player_locks: Optional[PlayerLockRegistry] = None


# ---------------------------------------------------------------------------
# Authentication
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


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

def get_connection(
    settings: Annotated[Settings, Depends(get_settings)],
) -> Generator[SnowflakeConnection, None, None]:
    """
    Provide a database connection for the duration of one request.

    In mock mode, we reuse the same in-memory connection across requests
    so that data persists during the session.
    """
    global _mock_snowflake_connection

    if settings.snowflake_mock_mode:
        if _mock_snowflake_connection is None:
            _mock_snowflake_connection = MockSnowflakeConnection()
            logger.info("Created shared mock Snowflake connection")
        yield _mock_snowflake_connection
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

    with create_snowflake_connection(config=config) as conn:
        yield conn


def get_session_repository(
    conn: Annotated[SnowflakeConnection, Depends(get_connection)],
) -> SessionRepository:
    return SessionRepository(conn)


def get_program_state_repository(
    conn: Annotated[SnowflakeConnection, Depends(get_connection)],
) -> ProgramStateRepository:
    return ProgramStateRepository(conn)


def get_medal_repository(
    conn: Annotated[SnowflakeConnection, Depends(get_connection)],
) -> MedalRepository:
    return MedalRepository(conn)


# ---------------------------------------------------------------------------
# Service Dependencies
# ---------------------------------------------------------------------------

def get_player_locks(
    settings: Annotated[Settings, Depends(get_settings)],
) -> PlayerLockRegistry:
    """
    Provide the process-wide per-player lock registry.

    Must be shared by every request, otherwise the locks serialise nothing.
    """
    global _player_locks

    if _player_locks is None:
        _player_locks = PlayerLockRegistry(
            default_timeout_s=settings.program_lock_timeout_seconds,
        )
    return _player_locks


def get_program_service(
    sessions: Annotated[SessionRepository, Depends(get_session_repository)],
    states: Annotated[ProgramStateRepository, Depends(get_program_state_repository)],
    locks: Annotated[PlayerLockRegistry, Depends(get_player_locks)],
) -> ProgramService:
    return ProgramService(sessions=sessions, states=states, locks=locks)


def get_medal_service(
    settings: Annotated[Settings, Depends(get_settings)],
    medals: Annotated[MedalRepository, Depends(get_medal_repository)],
    states: Annotated[ProgramStateRepository, Depends(get_program_state_repository)],
) -> MedalService:
    return MedalService(
        medals=medals,
        states=states,
        image_base_url=settings.medal_image_base_url or None,
    )


# ---------------------------------------------------------------------------
# Convenience Type Aliases
# ---------------------------------------------------------------------------

# These type aliases make route signatures cleaner
AuthenticatedUser = Annotated[str, Depends(verify_api_key)]
SessionRepositoryDep = Annotated[SessionRepository, Depends(get_session_repository)]
ProgramServiceDep = Annotated[ProgramService, Depends(get_program_service)]
MedalServiceDep = Annotated[MedalService, Depends(get_medal_service)]
SettingsDep = Annotated[Settings, Depends(get_settings)]
