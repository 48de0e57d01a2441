"""
SQL Query Module for the retention analytics backend.

Provides parameterized SQL queries for:
- Paginated reads of the leads, clients, revenues and interactions tables
- Inserts into the append-only client_health_scores fact table
- Latest-score lookups and the health score summary aggregation

Example usage:
    from crm_retention.sql import get_paged_select_query

    query, args = get_paged_select_query(
        'revenues',
        ['client_id', 'date', 'our_share'],
        gte={'date': date(2026, 4, 1)},
        limit=1000,
        offset=0,
    )
"""

from crm_retention.sql.retention_queries import (
    TABLE_COLUMNS,
    HEALTH_SCORE_TABLE,
    HEALTH_SCORE_INSERT_COLUMNS,
    validate_identifiers,
    get_paged_select_query,
    get_insert_query,
    get_latest_health_score_query,
    get_recent_health_scores_query,
    get_health_score_summary_query,
)

__all__ = [
    'TABLE_COLUMNS',
    'HEALTH_SCORE_TABLE',
    'HEALTH_SCORE_INSERT_COLUMNS',
    'validate_identifiers',
    'get_paged_select_query',
    'get_insert_query',
    'get_latest_health_score_query',
    'get_recent_health_scores_query',
    'get_health_score_summary_query',
]
