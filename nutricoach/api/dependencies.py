"""
FastAPI dependency injection.

Dependencies provide repositories and configuration to route handlers:
- Routes don't instantiate their own dependencies (easier to test)
- Dependencies can be overridden in tests
- Connection lifecycle is managed in one place
"""

import logging
from typing import Annotated, Generator

from fastapi import Depends, HTTPException, Security, status
from fastapi.security import APIKeyHeader

from ..config.settings import Settings, get_settings
from ..infrastructure.snowflake.client import (
    MockSnowflakeConnection,
    create_snowflake_connection,
)
from ..infrastructure.snowflake.repositories.assignments import (
    AssignmentRepository,
    SnowflakeConfig,
)

logger = logging.getLogger(__name__)

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)

# Shared across requests so mock data persists for the whole process
_mock_snowflake_connection = None


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
            extra={"key_prefix": api_key[:8]}
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid API key",
        )

    return api_key


# ---------------------------------------------------------------------------
# Repository Dependencies
# ---------------------------------------------------------------------------

def get_mock_connection() -> MockSnowflakeConnection:
    """The process-wide mock connection, created on first use."""
    global _mock_snowflake_connection

    if _mock_snowflake_connection is None:
        _mock_snowflake_connection = MockSnowflakeConnection()
        logger.info("Created shared mock Snowflake connection")
    return _mock_snowflake_connection


def build_snowflake_config(settings: Settings) -> SnowflakeConfig:
    """Translate settings into connection config."""
    return SnowflakeConfig(
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


def get_assignment_repository(
    settings: Annotated[Settings, Depends(get_settings)],
) -> Generator[AssignmentRepository, None, None]:
    """
    Provide AssignmentRepository with a database connection.

    A generator so the connection is closed once the request is done.
    In mock mode the same in-memory connection is reused across requests.
    """
    if settings.snowflake_mock_mode:
        logger.debug("Using shared mock Snowflake connection")
        yield AssignmentRepository(get_mock_connection())
        return

    with create_snowflake_connection(config=build_snowflake_config(settings)) as conn:
        logger.debug("Created AssignmentRepository with Snowflake connection")
        yield AssignmentRepository(conn)


# ---------------------------------------------------------------------------
# Convenience Type Aliases
# ---------------------------------------------------------------------------

AuthenticatedUser = Annotated[str, Depends(verify_api_key)]
AssignmentRepositoryDep = Annotated[AssignmentRepository, Depends(get_assignment_repository)]
SettingsDep = Annotated[Settings, Depends(get_settings)]
