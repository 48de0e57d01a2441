"""
FastAPI dependency injection module for the retention analytics backend.

This module provides reusable FastAPI dependencies for configuration and data
access, so endpoint handlers never build infrastructure themselves and tests
can swap them through app.dependency_overrides.

Key Dependencies Provided:
- get_settings_dependency: Returns the cached Settings singleton
- get_data_access: Returns a DataAccess bound to the application pool
- SettingsDep: Type alias for injecting Settings into endpoints
- DataAccessDep: Type alias for injecting DataAccess into endpoints

Usage Examples:
    @router.get("/health-scores/{client_id}")
    async def get_score(
        client_id: str,
        data_access: DataAccessDep,
        settings: SettingsDep,
    ) -> ClientHealthScore:
        ...

    # In tests
    app.dependency_overrides[get_data_access] = lambda: fake_data_access
"""

from typing import Annotated

from fastapi import Depends

from crm_retention.core.config import Settings, get_settings
from crm_retention.core.data_access import DataAccess
from crm_retention.core.database import get_db_pool


# =============================================================================
# Settings Dependency
# =============================================================================

def get_settings_dependency() -> Settings:
    """
    Return the Settings singleton instance.

    This is a thin wrapper around get_settings() to enable FastAPI's
    dependency override mechanism for testing:

        app.dependency_overrides[get_settings_dependency] = lambda: mock_settings
    """
    return get_settings()


# =============================================================================
# Data Access Dependency
# =============================================================================

async def get_data_access() -> DataAccess:
    """
    Return a DataAccess bound to the shared connection pool.

    DataAccess is stateless apart from the pool reference, so a new instance
    per request is cheap; each read acquires and releases its own connection.
    """
    pool = await get_db_pool()
    return DataAccess(pool=pool)


# =============================================================================
# Type Aliases for Dependency Injection
# =============================================================================

# Usage: async def endpoint(settings: SettingsDep)
SettingsDep = Annotated[Settings, Depends(get_settings_dependency)]

# Usage: async def endpoint(data_access: DataAccessDep)
DataAccessDep = Annotated[DataAccess, Depends(get_data_access)]
