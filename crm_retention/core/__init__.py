"""
Core infrastructure package for the FastAPI backend.

Provides:
- Configuration management via pydantic-settings
- Async PostgreSQL database connectivity via asyncpg
- Paginated data access over the CRM tables
- In-process summary caching
- FastAPI dependency injection utilities

This module re-exports key components from submodules for convenient importing:

    from crm_retention.core import get_settings, DataAccess, RecordFilters

Instead of:

    from crm_retention.core.config import get_settings
    from crm_retention.core.data_access import DataAccess, RecordFilters
"""

from crm_retention.core.config import Settings, get_settings

from crm_retention.core.database import init_db, close_db, get_db_pool

from crm_retention.core.data_access import DataAccess, RecordFilters

from crm_retention.core.cache import SummaryCache, summary_cache

from crm_retention.core.dependencies import (
    get_data_access,
    get_settings_dependency,
    SettingsDep,
    DataAccessDep,
)

__all__ = [
    # Configuration management (from config.py)
    'Settings',
    'get_settings',
    # Database pool lifecycle (from database.py)
    'init_db',
    'close_db',
    'get_db_pool',
    # Data access (from data_access.py)
    'DataAccess',
    'RecordFilters',
    # Summary cache (from cache.py)
    'SummaryCache',
    'summary_cache',
    # FastAPI dependency injection (from dependencies.py)
    'get_data_access',
    'get_settings_dependency',
    'SettingsDep',
    'DataAccessDep',
]
